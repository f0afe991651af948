"""
Audit trail for permission-sensitive actions.

Successful actions are added to the caller's session so the entry commits
together with the state change it describes. Failed attempts are written
after the caller's pending changes have been rolled back, so a denied
request leaves only its audit entry behind. Audit writes never break the
business flow: a failure to persist an entry is logged and dropped.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.context import AuthContext, RequestMeta
from app.core.errors import ConflictError, NotFoundError, PermissionDeniedError, WorkflowError
from app.models.entities import AuditAction, AuditLogEntry, AuditSeverity

logger = logging.getLogger(__name__)

HIGH_RISK_ACTIONS = {
    AuditAction.business_config_updated.value,
    AuditAction.user_role_changed.value,
    AuditAction.quality_role_removed.value,
    AuditAction.quality_inspection_deleted.value,
    AuditAction.quality_inspection_final_approved.value,
    AuditAction.quality_inspection_overridden.value,
}


def determine_severity(action: str, *, success: bool = True, error: Exception | None = None) -> str:
    if success:
        if action in HIGH_RISK_ACTIONS:
            return AuditSeverity.high.value
        return AuditSeverity.medium.value
    if isinstance(error, (NotFoundError, PermissionDeniedError)):
        return AuditSeverity.high.value
    if isinstance(error, WorkflowError):
        return AuditSeverity.medium.value
    return AuditSeverity.high.value


def changed_fields(old_values: dict[str, Any] | None, new_values: dict[str, Any] | None) -> list[str]:
    old_values = old_values or {}
    new_values = new_values or {}
    return sorted(key for key in new_values if old_values.get(key) != new_values.get(key))


def _build_entry(
    *,
    ctx: AuthContext,
    meta: RequestMeta | None,
    action: str,
    resource_type: str,
    resource_id: str | int | None,
    resource_name: str | None,
    old_values: dict[str, Any] | None,
    new_values: dict[str, Any] | None,
    success: bool,
    error: Exception | None,
    severity: str | None,
    details: dict[str, Any] | None,
) -> AuditLogEntry:
    meta = meta or RequestMeta()
    error_code = None
    error_message = None
    if error is not None:
        error_code = getattr(error, "code", "unexpected_error")
        # Unexpected failures are recorded without their internals.
        error_message = str(error) if isinstance(error, WorkflowError) else "Unexpected error"
    return AuditLogEntry(
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        resource_name=resource_name,
        old_values=old_values,
        new_values=new_values,
        changed_fields=changed_fields(old_values, new_values) if new_values else None,
        success=success,
        error_code=error_code,
        error_message=error_message,
        severity=severity or determine_severity(action, success=success, error=error),
        ip_address=meta.ip_address,
        user_agent=meta.user_agent,
        request_id=meta.request_id,
        details=details or {},
    )


def record_success(
    db: Session,
    ctx: AuthContext,
    meta: RequestMeta | None,
    *,
    action: str,
    resource_type: str,
    resource_id: str | int | None = None,
    resource_name: str | None = None,
    old_values: dict[str, Any] | None = None,
    new_values: dict[str, Any] | None = None,
    severity: str | None = None,
    details: dict[str, Any] | None = None,
) -> AuditLogEntry:
    """Stage a success entry on the session; the caller commits it with its change."""
    entry = _build_entry(
        ctx=ctx,
        meta=meta,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        resource_name=resource_name,
        old_values=old_values,
        new_values=new_values,
        success=True,
        error=None,
        severity=severity,
        details=details,
    )
    db.add(entry)
    return entry


def record_failure(
    db: Session,
    ctx: AuthContext,
    meta: RequestMeta | None,
    *,
    action: str,
    resource_type: str,
    error: Exception,
    resource_id: str | int | None = None,
    resource_name: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Roll back pending work and persist a failed-attempt entry on its own."""
    db.rollback()
    entry = _build_entry(
        ctx=ctx,
        meta=meta,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        resource_name=resource_name,
        old_values=None,
        new_values=None,
        success=False,
        error=error,
        severity=None,
        details=details,
    )
    try:
        db.add(entry)
        db.commit()
    except Exception:  # noqa: BLE001 - audit failures must not mask the original error
        db.rollback()
        logger.exception("Failed to write audit entry for %s on %s %s", action, resource_type, resource_id)


def list_audit_logs(
    db: Session,
    tenant_id: str,
    *,
    page: int = 1,
    limit: int = 20,
    action: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    success: bool | None = None,
    severity: str | None = None,
) -> tuple[list[AuditLogEntry], int]:
    query = db.query(AuditLogEntry).filter(AuditLogEntry.tenant_id == tenant_id)
    if action:
        query = query.filter(AuditLogEntry.action == action)
    if resource_type:
        query = query.filter(AuditLogEntry.resource_type == resource_type)
    if resource_id:
        query = query.filter(AuditLogEntry.resource_id == resource_id)
    if success is not None:
        query = query.filter(AuditLogEntry.success.is_(success))
    if severity:
        query = query.filter(AuditLogEntry.severity == severity)
    total = query.with_entities(func.count(AuditLogEntry.id)).scalar() or 0
    items = (
        query.order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total


@contextmanager
def audited(
    db: Session,
    ctx: AuthContext,
    meta: RequestMeta | None,
    *,
    action: str,
    resource_type: str,
    resource_id: str | int | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[None]:
    """Record a failed-attempt entry for anything raised inside the block, then re-raise.

    A lost optimistic-concurrency race surfaces as ``ConflictError``.
    """
    try:
        yield
    except StaleDataError as exc:
        conflict = ConflictError("Inspection was modified by another request; reload and retry")
        record_failure(
            db, ctx, meta, action=action, resource_type=resource_type, resource_id=resource_id, error=conflict, details=details
        )
        raise conflict from exc
    except WorkflowError as exc:
        record_failure(
            db, ctx, meta, action=action, resource_type=resource_type, resource_id=resource_id, error=exc, details=details
        )
        raise
    except Exception as exc:
        logger.exception("Unexpected failure during %s on %s %s", action, resource_type, resource_id)
        record_failure(
            db, ctx, meta, action=action, resource_type=resource_type, resource_id=resource_id, error=exc, details=details
        )
        raise
