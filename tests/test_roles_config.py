from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.core.context import RequestMeta
from app.core.errors import InvalidInputError, NotFoundError
from app.models.entities import AuditLogEntry, NotificationOutbox, TenantInspectionConfig, User
from app.schemas.config import InspectionConfigUpdate
from app.services import audit as audit_service
from app.services import config as config_service
from app.services import notifications as notification_service
from app.services import roles as role_service
from app.services.roles import EffectiveRole

META = RequestMeta(ip_address="10.0.0.5", user_agent="pytest", request_id="req-1")
TENANT_ID = "demo-tenant"


def _user_id(db, email: str) -> str:
    return db.query(User).filter(User.email == email).one().id


def _config_payload(**overrides) -> InspectionConfigUpdate:
    data = {
        "can_inspect": ["team_leader", "quality_staff"],
        "can_review": ["team_leader", "project_manager"],
        "final_approver": "operations_manager",
        "allow_self_review": True,
        "require_client_signoff": False,
        "require_photos": True,
        "require_signature": True,
        "use_detailed_inspections": True,
    }
    data.update(overrides)
    return InspectionConfigUpdate(**data)


def test_resolve_role_reads_both_slots(db):
    leader = role_service.resolve_role(db, TENANT_ID, _user_id(db, "leader@example.com"))
    crew = role_service.resolve_role(db, TENANT_ID, _user_id(db, "crew@example.com"))

    assert leader == EffectiveRole(main_role="business_staff", quality_role="team_leader")
    assert leader.primary == "team_leader"
    assert leader.permissions["can_review"] is True
    assert crew.quality_role is None
    assert crew.primary == "business_staff"
    # No quality role falls back to the most restricted permission set.
    assert crew.permissions == role_service.role_permissions("quality_staff")


def test_policy_membership_checks_main_role_too(db):
    config = config_service.get_config(db, TENANT_ID)
    crew = role_service.resolve_role(db, TENANT_ID, _user_id(db, "crew@example.com"))
    admin = role_service.resolve_role(db, TENANT_ID, _user_id(db, "admin@example.com"))

    assert role_service.can_review(crew, config) is False
    config.can_review = ["business_staff"]
    assert role_service.can_review(crew, config) is True

    assert role_service.can_override(admin) is True
    assert role_service.is_final_approver(admin, config) is False
    config.final_approver = "business_admin"
    assert role_service.is_final_approver(admin, config) is True


def test_client_user_has_no_staff_role(db):
    with pytest.raises(NotFoundError):
        role_service.resolve_role(db, TENANT_ID, _user_id(db, "client@example.com"))


def test_get_config_falls_back_to_defaults(db):
    config = config_service.get_config(db, "tenant-without-config")
    assert config.final_approver == "operations_manager"
    assert config.can_inspect == ["team_leader", "quality_staff"]
    assert config.allow_self_review is True


def test_assign_quality_role_is_audited_and_notified(db, ctx_for):
    admin = ctx_for("admin@example.com")
    crew_id = _user_id(db, "crew@example.com")

    staff = role_service.assign_quality_role(db, admin, META, crew_id, "site_supervisor")

    assert staff.quality_role == "site_supervisor"
    assert staff.quality_assigned_at is not None
    assert staff.quality_permissions["can_view_all"] is True
    entry = (
        db.query(AuditLogEntry)
        .filter(AuditLogEntry.action == "user_role_changed", AuditLogEntry.resource_id == crew_id)
        .one()
    )
    assert entry.success is True
    assert entry.old_values == {"quality_role": None}
    assert entry.new_values == {"quality_role": "site_supervisor"}
    assert entry.changed_fields == ["quality_role"]
    assert entry.ip_address == "10.0.0.5"
    assert entry.request_id == "req-1"
    outbox = db.query(NotificationOutbox).filter(NotificationOutbox.event_type == "quality_role_assigned").one()
    assert outbox.recipient_ids == [crew_id]
    assert outbox.payload["body"] == "You have been assigned the quality role site supervisor"


def test_assign_invalid_role_records_failure(db, ctx_for):
    admin = ctx_for("admin@example.com")
    crew_id = _user_id(db, "crew@example.com")

    with pytest.raises(InvalidInputError):
        role_service.assign_quality_role(db, admin, META, crew_id, "chief_inspector")

    entry = db.query(AuditLogEntry).filter(AuditLogEntry.action == "user_role_changed").one()
    assert entry.success is False
    assert entry.error_code == "invalid_input"
    assert entry.details == {"requested_role": "chief_inspector"}
    assert role_service.resolve_role(db, TENANT_ID, crew_id).quality_role is None


def test_assign_to_unknown_user_is_not_found(db, ctx_for):
    with pytest.raises(NotFoundError):
        role_service.assign_quality_role(db, ctx_for("admin@example.com"), META, "missing-user", "team_leader")


def test_remove_quality_role(db, ctx_for):
    admin = ctx_for("admin@example.com")
    inspector_id = _user_id(db, "inspector@example.com")

    staff = role_service.remove_quality_role(db, admin, META, inspector_id)

    assert staff.quality_role is None
    assert staff.quality_permissions is None
    entry = db.query(AuditLogEntry).filter(AuditLogEntry.action == "quality_role_removed").one()
    assert entry.severity == "high"
    assert entry.old_values == {"quality_role": "quality_staff"}

    with pytest.raises(InvalidInputError):
        role_service.remove_quality_role(db, admin, META, inspector_id)


def test_quality_team_lists_members_with_a_quality_role(db):
    team = role_service.get_quality_team(db, TENANT_ID)

    emails = {member.user.email for member in team}
    assert emails == {
        "inspector@example.com",
        "leader@example.com",
        "pm@example.com",
        "ops@example.com",
    }

    with pytest.raises(NotFoundError):
        role_service.get_quality_team(db, "unknown-tenant")


def test_config_update_rejects_empty_role_lists(db, ctx_for):
    admin = ctx_for("admin@example.com")

    with pytest.raises(InvalidInputError):
        config_service.update_config(db, admin, META, _config_payload(can_review=[]))
    with pytest.raises(InvalidInputError):
        config_service.update_config(db, admin, META, _config_payload(can_inspect=["team_leader", " "]))
    with pytest.raises(InvalidInputError):
        config_service.update_config(db, admin, META, _config_payload(final_approver=""))

    failures = (
        db.query(AuditLogEntry)
        .filter(AuditLogEntry.action == "business_config_updated", AuditLogEntry.success.is_(False))
        .count()
    )
    assert failures == 3
    assert db.get(TenantInspectionConfig, TENANT_ID).can_review == ["team_leader", "project_manager"]


def test_config_update_records_changed_fields(db, ctx_for):
    admin = ctx_for("admin@example.com")

    config = config_service.update_config(
        db,
        admin,
        META,
        _config_payload(
            can_review=["project_manager", "project_manager", "site_supervisor"],
            allow_self_review=False,
        ),
    )

    assert config.can_review == ["project_manager", "site_supervisor"]
    assert config.allow_self_review is False
    entry = (
        db.query(AuditLogEntry)
        .filter(AuditLogEntry.action == "business_config_updated", AuditLogEntry.success.is_(True))
        .one()
    )
    assert entry.severity == "high"
    assert entry.changed_fields == ["allow_self_review", "can_review"]
    assert entry.resource_id == TENANT_ID


def test_config_flags_must_be_real_booleans():
    with pytest.raises(ValidationError):
        _config_payload(require_photos="yes")


def test_unexpected_error_during_role_assignment_is_rolled_back_and_audited(db, ctx_for, monkeypatch):
    def _outbox_down(*_args, **_kwargs):
        raise RuntimeError("outbox unavailable")

    monkeypatch.setattr(notification_service, "enqueue", _outbox_down)
    crew_id = _user_id(db, "crew@example.com")

    with pytest.raises(RuntimeError):
        role_service.assign_quality_role(db, ctx_for("admin@example.com"), META, crew_id, "site_supervisor")

    entry = db.query(AuditLogEntry).filter(AuditLogEntry.action == "user_role_changed").one()
    assert entry.success is False
    assert entry.severity == "high"
    assert entry.error_code == "unexpected_error"
    assert entry.error_message == "Unexpected error"
    assert role_service.resolve_role(db, TENANT_ID, crew_id).quality_role is None


def test_unexpected_error_during_role_removal_is_audited(db, ctx_for, monkeypatch):
    def _outbox_down(*_args, **_kwargs):
        raise RuntimeError("outbox unavailable")

    monkeypatch.setattr(notification_service, "enqueue", _outbox_down)
    inspector_id = _user_id(db, "inspector@example.com")

    with pytest.raises(RuntimeError):
        role_service.remove_quality_role(db, ctx_for("admin@example.com"), META, inspector_id)

    entry = db.query(AuditLogEntry).filter(AuditLogEntry.action == "quality_role_removed").one()
    assert entry.success is False
    assert entry.severity == "high"
    assert role_service.resolve_role(db, TENANT_ID, inspector_id).quality_role == "quality_staff"


def test_unexpected_error_during_config_update_is_rolled_back_and_audited(db, ctx_for, monkeypatch):
    def _audit_down(*_args, **_kwargs):
        raise RuntimeError("audit table locked")

    monkeypatch.setattr(audit_service, "record_success", _audit_down)

    with pytest.raises(RuntimeError):
        config_service.update_config(db, ctx_for("admin@example.com"), META, _config_payload(allow_self_review=False))

    entry = db.query(AuditLogEntry).filter(AuditLogEntry.action == "business_config_updated").one()
    assert entry.success is False
    assert entry.severity == "high"
    assert db.get(TenantInspectionConfig, TENANT_ID).allow_self_review is True
