"""
Notification fan-out for workflow events.

Transitions call ``enqueue_inspection_event`` inside their own transaction,
which writes a ``NotificationOutbox`` row with the resolved recipients and a
rendered payload. Delivery happens after commit (``deliver_pending``): each
recipient gets an in-app ``Notification`` row plus an email when they have
email notifications enabled. Delivery never raises; failed rows stay in the
outbox and are retried by ``redeliver_failed``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import SessionLocal
from app.core.errors import NotFoundError
from app.models.entities import (
    Inspection,
    Notification,
    NotificationOutbox,
    OutboxStatus,
    StaffMember,
    Tenant,
    TenantInspectionConfig,
    User,
)
from app.services import config as config_service
from app.services import email as email_service
from app.services.notification_utils import build_frontend_url, format_datetime

logger = logging.getLogger(__name__)

INVALID_RECIPIENT_IDS = {"", "null", "undefined", "none"}
INSPECTION_REFERENCE = "quality_inspection"
USER_REFERENCE = "user"
CLAIMABLE_STATUSES = (OutboxStatus.pending.value, OutboxStatus.failed.value)


@dataclass(frozen=True)
class EventTemplate:
    title: str
    body: str
    priority: str = "medium"


EVENT_CATALOGUE: dict[str, EventTemplate] = {
    "inspection_created": EventTemplate(
        "New Quality Inspection", "Quality inspection created for {location}"
    ),
    "inspection_submitted": EventTemplate(
        "Inspection Submitted for Review", "Quality inspection at {location} is ready for review", "high"
    ),
    "inspection_assigned": EventTemplate(
        "Inspection Assigned", "You have been assigned to review the inspection at {location}"
    ),
    "inspection_approved": EventTemplate(
        "Inspection Approved", "Quality inspection for {location} has been approved and awaits final approval"
    ),
    "inspection_rejected": EventTemplate(
        "Inspection Rejected", "Quality inspection for {location} requires attention", "high"
    ),
    "inspection_revision_requested": EventTemplate(
        "Revision Requested", "Quality inspection for {location} needs revision", "high"
    ),
    "final_approval_granted": EventTemplate(
        "Final Approval Granted", "Quality inspection for {location} has received final approval", "high"
    ),
    "inspection_overridden": EventTemplate(
        "Inspection Decision Overridden", "Quality inspection decision for {location} has been overridden", "high"
    ),
    "client_review_submitted": EventTemplate(
        "Client Review Submitted", "The client has submitted a review for the inspection at {location}"
    ),
    "quality_role_assigned": EventTemplate(
        "Quality Role Assigned", "You have been assigned the quality role {role}"
    ),
    "quality_role_removed": EventTemplate(
        "Quality Role Removed", "Your quality role {role} has been removed"
    ),
}


@dataclass
class DispatchResult:
    outbox_id: int
    success: bool
    per_recipient: dict[str, dict[str, Any]] = field(default_factory=dict)
    skipped: bool = False


def clean_recipient_ids(user_ids: Iterable[str | None]) -> list[str]:
    """Drop empty or placeholder ids and deduplicate while keeping order."""
    cleaned: list[str] = []
    for user_id in user_ids:
        if user_id is None:
            continue
        value = str(user_id).strip()
        if value.lower() in INVALID_RECIPIENT_IDS or value in cleaned:
            continue
        cleaned.append(value)
    return cleaned


def users_with_roles(db: Session, tenant_id: str, roles: Iterable[str]) -> list[str]:
    role_names = [role for role in roles if role]
    if not role_names:
        return []
    rows = (
        db.query(StaffMember.user_id)
        .join(User, User.id == StaffMember.user_id)
        .filter(
            StaffMember.tenant_id == tenant_id,
            StaffMember.is_deleted.is_(False),
            User.is_active.is_(True),
            or_(StaffMember.main_role.in_(role_names), StaffMember.quality_role.in_(role_names)),
        )
        .order_by(StaffMember.user_id.asc())
        .all()
    )
    return [row[0] for row in rows]


def tenant_admin_id(db: Session, tenant_id: str) -> str | None:
    tenant = db.get(Tenant, tenant_id)
    return tenant.admin_user_id if tenant else None


def resolve_recipients(
    db: Session,
    inspection: Inspection,
    event_type: str,
    *,
    config: TenantInspectionConfig | None = None,
) -> list[str]:
    if config is None:
        config = config_service.get_config(db, inspection.tenant_id)

    tenant_id = inspection.tenant_id
    recipients: list[str | None] = []
    if event_type in {"inspection_created", "inspection_submitted"}:
        recipients.extend(users_with_roles(db, tenant_id, [*config.can_review, config.final_approver]))
    elif event_type == "inspection_assigned":
        recipients.append(inspection.reviewer_id)
    elif event_type == "inspection_approved":
        recipients.extend(users_with_roles(db, tenant_id, [config.final_approver]))
        recipients.append(inspection.inspector_id)
    elif event_type in {"inspection_rejected", "inspection_revision_requested"}:
        recipients.append(inspection.inspector_id)
    elif event_type == "final_approval_granted":
        recipients.extend([inspection.inspector_id, tenant_admin_id(db, tenant_id)])
    elif event_type == "inspection_overridden":
        recipients.extend([inspection.inspector_id, inspection.reviewer_id, tenant_admin_id(db, tenant_id)])
    elif event_type == "client_review_submitted":
        recipients.extend(users_with_roles(db, tenant_id, ["project_manager", "operations_manager"]))
        recipients.append(tenant_admin_id(db, tenant_id))
    else:
        logger.warning("No recipient rule for notification event %s", event_type)
    return clean_recipient_ids(recipients)


def render_event(event_type: str, context: dict[str, Any]) -> EventTemplate:
    template = EVENT_CATALOGUE.get(event_type)
    if template is None:
        return EventTemplate("Quality Inspection Update", f"Inspection at {context.get('location', '-')} has been updated")
    return EventTemplate(template.title, template.body.format(**context), template.priority)


def enqueue(
    db: Session,
    *,
    tenant_id: str,
    event_type: str,
    reference_type: str,
    reference_id: str | int,
    recipient_ids: Iterable[str | None],
    context: dict[str, Any],
    priority: str | None = None,
) -> NotificationOutbox:
    """Stage an outbox row on the caller's session; it commits with the caller's change."""
    rendered = render_event(event_type, context)
    payload = {
        **context,
        "title": rendered.title,
        "body": rendered.body,
        "priority": priority or rendered.priority,
    }
    outbox = NotificationOutbox(
        tenant_id=tenant_id,
        event_type=event_type,
        reference_type=reference_type,
        reference_id=str(reference_id),
        recipient_ids=clean_recipient_ids(recipient_ids),
        payload=payload,
        status=OutboxStatus.pending.value,
        attempts=0,
    )
    db.add(outbox)
    return outbox


def enqueue_inspection_event(
    db: Session,
    inspection: Inspection,
    event_type: str,
    *,
    config: TenantInspectionConfig | None = None,
    extra: dict[str, Any] | None = None,
    priority: str | None = None,
) -> NotificationOutbox:
    recipients = resolve_recipients(db, inspection, event_type, config=config)
    context = {
        "inspection_id": inspection.id,
        "location": inspection.location,
        "inspection_type": inspection.type,
        "status": inspection.status,
        "has_critical_issues": inspection.has_critical_issues,
        "action_url": build_frontend_url(settings.inspection_view_path_template, inspection_id=inspection.id),
        **(extra or {}),
    }
    if priority is None and inspection.has_critical_issues and event_type == "inspection_submitted":
        priority = "urgent"
    return enqueue(
        db,
        tenant_id=inspection.tenant_id,
        event_type=event_type,
        reference_type=INSPECTION_REFERENCE,
        reference_id=inspection.id,
        recipient_ids=recipients,
        context=context,
        priority=priority,
    )


def _send_email(user: User, outbox: NotificationOutbox) -> bool:
    payload = outbox.payload or {}
    context = {
        "recipient_name": user.full_name or user.email,
        "title": payload.get("title"),
        "body": payload.get("body"),
        "priority": payload.get("priority"),
        "action_url": payload.get("action_url"),
        "sent_at": format_datetime(datetime.utcnow()),
    }
    try:
        return email_service.send_templated_email(
            template_name="inspection_event.html",
            to=user.email,
            subject=payload.get("title") or "Quality inspection update",
            context=context,
            text_body=f"{payload.get('body', '')}\n\n{payload.get('action_url') or ''}".strip(),
        )
    except Exception:  # noqa: BLE001
        logger.exception("Failed to render notification email for user %s", user.id)
        return False


def claim(db: Session, outbox_id: int) -> bool:
    """Move a pending or failed row to ``processing``; False when another worker got it first."""
    claimed = (
        db.query(NotificationOutbox)
        .filter(NotificationOutbox.id == outbox_id, NotificationOutbox.status.in_(CLAIMABLE_STATUSES))
        .update({NotificationOutbox.status: OutboxStatus.processing.value}, synchronize_session=False)
    )
    db.commit()
    return claimed == 1


def deliver(db: Session, outbox: NotificationOutbox) -> DispatchResult:
    """Deliver one outbox row. Never raises; the outcome is recorded on the row.

    The row is claimed with a conditional update first, so concurrent
    dispatchers that loaded the same row deliver it only once.
    """
    outbox_id = outbox.id
    result = DispatchResult(outbox_id=outbox_id, success=False)
    try:
        if not claim(db, outbox_id):
            result.skipped = True
            logger.info("Outbox %s already claimed by another dispatcher", outbox_id)
            return result
        db.refresh(outbox)
    except Exception:  # noqa: BLE001
        db.rollback()
        logger.exception("Failed to claim notification outbox %s", outbox_id)
        return result

    payload = outbox.payload or {}
    try:
        users = {
            user.id: user
            for user in db.query(User).filter(User.id.in_(outbox.recipient_ids or [])).all()
        }
        for user_id in outbox.recipient_ids or []:
            user = users.get(user_id)
            if user is None or not user.is_active:
                result.per_recipient[user_id] = {"in_app": False, "email": False, "error": "recipient_unavailable"}
                continue
            db.add(
                Notification(
                    tenant_id=outbox.tenant_id,
                    user_id=user_id,
                    event_type=outbox.event_type,
                    title=payload.get("title", ""),
                    body=payload.get("body", ""),
                    priority=payload.get("priority", "medium"),
                    reference_type=outbox.reference_type,
                    reference_id=outbox.reference_id,
                    action_data={key: value for key, value in payload.items() if key not in {"title", "body"}},
                )
            )
            result.per_recipient[user_id] = {"in_app": True, "email": False}
        outbox.attempts = (outbox.attempts or 0) + 1
        outbox.status = OutboxStatus.delivered.value
        outbox.delivered_at = datetime.utcnow()
        outbox.last_error = None
        db.commit()
        result.success = True
    except Exception as exc:  # noqa: BLE001 - delivery failures are recorded, never raised
        db.rollback()
        logger.exception("Failed to deliver notification outbox %s", outbox_id)
        _mark_failed(db, outbox_id, exc)
        return result

    # Email is best effort on top of the committed in-app rows.
    for user_id, outcome in result.per_recipient.items():
        user = users.get(user_id)
        if not outcome.get("in_app") or user is None or not user.email_notifications_enabled:
            continue
        outcome["email"] = _send_email(user, outbox)
    logger.info(
        "Delivered %s notification to %s recipients (outbox %s)",
        outbox.event_type,
        sum(1 for outcome in result.per_recipient.values() if outcome.get("in_app")),
        outbox_id,
    )
    return result


def _mark_failed(db: Session, outbox_id: int, exc: Exception) -> None:
    try:
        outbox = db.get(NotificationOutbox, outbox_id)
        if outbox is None:
            return
        outbox.attempts = (outbox.attempts or 0) + 1
        outbox.status = OutboxStatus.failed.value
        outbox.last_error = str(exc)[:500]
        db.commit()
    except Exception:  # noqa: BLE001
        db.rollback()
        logger.exception("Failed to record delivery failure for outbox %s", outbox_id)


def deliver_pending(db: Session, *, tenant_id: str | None = None) -> list[DispatchResult]:
    query = db.query(NotificationOutbox).filter(NotificationOutbox.status == OutboxStatus.pending.value)
    if tenant_id:
        query = query.filter(NotificationOutbox.tenant_id == tenant_id)
    return [deliver(db, outbox) for outbox in query.order_by(NotificationOutbox.id.asc()).all()]


def dispatch_pending_notifications(tenant_id: str | None = None) -> None:
    """Background-task entry point; runs with its own session after the response is sent."""
    try:
        with SessionLocal() as db:
            deliver_pending(db, tenant_id=tenant_id)
    except Exception:  # noqa: BLE001
        logger.exception("Error dispatching pending notifications")


def redeliver_failed(db: Session, *, max_attempts: int | None = None) -> int:
    """Retry failed outbox rows that have attempts left; returns how many were delivered."""
    limit = max_attempts or settings.notification_max_attempts
    rows = (
        db.query(NotificationOutbox)
        .filter(
            NotificationOutbox.status == OutboxStatus.failed.value,
            NotificationOutbox.attempts < limit,
        )
        .order_by(NotificationOutbox.id.asc())
        .all()
    )
    delivered = 0
    for outbox in rows:
        if deliver(db, outbox).success:
            delivered += 1
    if rows:
        logger.info("Redelivered %s of %s failed notifications", delivered, len(rows))
    return delivered


def list_notifications(
    db: Session,
    user_id: str,
    *,
    unread_only: bool = False,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Notification], int]:
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.read_at.is_(None))
    total = query.with_entities(func.count(Notification.id)).scalar() or 0
    items = (
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total


def mark_read(db: Session, user_id: str, notification_id: int) -> Notification:
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user_id)
        .first()
    )
    if notification is None:
        raise NotFoundError("Notification not found")
    if notification.read_at is None:
        notification.read_at = datetime.utcnow()
        db.commit()
        db.refresh(notification)
    return notification


def mark_all_read(db: Session, user_id: str) -> int:
    updated = (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.read_at.is_(None))
        .update({Notification.read_at: datetime.utcnow()}, synchronize_session=False)
    )
    db.commit()
    return updated
