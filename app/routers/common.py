from __future__ import annotations

import logging
from typing import Callable, TypeVar

from fastapi import BackgroundTasks, HTTPException, status

from app.core.errors import WorkflowError
from app.services import notifications as notification_service

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_transition(
    operation: Callable[[], T],
    *,
    failure_detail: str,
    tenant_id: str,
    background_tasks: BackgroundTasks,
) -> T:
    """Run a state-changing service call and schedule outbox delivery once it has committed.

    Business-rule errors propagate to the registered handler; anything else
    becomes a generic 500.
    """
    try:
        result = operation()
    except WorkflowError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.exception(failure_detail)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=failure_detail) from exc
    background_tasks.add_task(notification_service.dispatch_pending_notifications, tenant_id)
    return result
