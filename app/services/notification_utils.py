from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from app.core.config import settings


def build_frontend_url(path_template: str, **kwargs) -> str:
    """Render a frontend-relative path (ensuring a single slash) and prepend the configured base URL."""
    path = path_template.format(**kwargs) if kwargs else path_template
    normalized = path if path.startswith("/") else f"/{path}"
    return f"{settings.frontend_base_url}{normalized}"


def format_datetime(value: datetime | None) -> str:
    if not value:
        return "-"
    localized = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    localized = localized.astimezone(ZoneInfo(settings.notification_timezone))
    return localized.strftime("%b %d, %Y %H:%M %Z")
