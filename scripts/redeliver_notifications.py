from __future__ import annotations

import sys

from app.core.database import SessionLocal
from app.services.notifications import deliver_pending, redeliver_failed


def main() -> None:
    with SessionLocal() as db:
        pending = deliver_pending(db)
        retried = redeliver_failed(db)
    delivered = sum(1 for result in pending if result.success)
    print(f"Delivered {delivered} of {len(pending)} pending notifications; redelivered {retried} failed notifications.")


if __name__ == "__main__":
    try:
        main()
    except Exception as exc:  # noqa: BLE001
        print(f"Notification redelivery failed: {exc}", file=sys.stderr)
        sys.exit(1)
