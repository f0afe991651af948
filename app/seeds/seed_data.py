from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from app.core.database import SessionLocal
from app.core.security import get_password_hash, hash_api_key
from app.models.entities import (
    ExternalClient,
    Project,
    StaffMember,
    Tenant,
    User,
    UserRole,
)
from app.services import config as config_service
from app.services.roles import role_permissions

logger = logging.getLogger(__name__)

DEMO_TENANT_ID = "demo-tenant"
DEMO_API_KEY = "qik_demo_tenant_key"

DEMO_CLIENTS = [
    {"id": "demo-client", "name": "Harbourview Developments"},
    {"id": "other-client", "name": "Northgate Retail"},
]

DEMO_PROJECTS = [
    {"id": "demo-project", "name": "Harbourview Tower Fit-out", "external_client_id": "demo-client"},
    {"id": "other-project", "name": "Northgate Mall Refurbishment", "external_client_id": "other-client"},
]

DEFAULT_USERS: list[dict[str, Any]] = [
    {
        "email": "admin@example.com",
        "full_name": "Admin User",
        "role": UserRole.business_admin.value,
        "password": "adminpass",
        "main_role": "business_admin",
        "quality_role": None,
    },
    {
        "email": "inspector@example.com",
        "full_name": "Inspector One",
        "role": UserRole.staff.value,
        "password": "inspectorpass",
        "main_role": "business_staff",
        "quality_role": "quality_staff",
    },
    {
        "email": "leader@example.com",
        "full_name": "Team Leader",
        "role": UserRole.staff.value,
        "password": "leaderpass",
        "main_role": "business_staff",
        "quality_role": "team_leader",
    },
    {
        "email": "pm@example.com",
        "full_name": "Project Manager",
        "role": UserRole.staff.value,
        "password": "pmpass",
        "main_role": "business_staff",
        "quality_role": "project_manager",
    },
    {
        "email": "ops@example.com",
        "full_name": "Operations Manager",
        "role": UserRole.staff.value,
        "password": "opspass",
        "main_role": "business_staff",
        "quality_role": "operations_manager",
    },
    {
        "email": "crew@example.com",
        "full_name": "Site Crew",
        "role": UserRole.staff.value,
        "password": "crewpass",
        "main_role": "business_staff",
        "quality_role": None,
    },
    {
        "email": "client@example.com",
        "full_name": "Client Contact",
        "role": UserRole.client.value,
        "password": "clientpass",
        "external_client_id": "demo-client",
    },
    {
        "email": "other-client@example.com",
        "full_name": "Other Client Contact",
        "role": UserRole.client.value,
        "password": "otherclientpass",
        "external_client_id": "other-client",
    },
]


def _get_or_create_tenant(db: Session) -> Tenant:
    tenant = db.get(Tenant, DEMO_TENANT_ID)
    if tenant:
        return tenant
    tenant = Tenant(id=DEMO_TENANT_ID, name="Demo Construction Co", api_key_hash=hash_api_key(DEMO_API_KEY))
    db.add(tenant)
    db.flush()
    return tenant


def _get_or_create_user(
    db: Session,
    tenant: Tenant,
    *,
    email: str,
    full_name: str,
    role: str,
    password: str,
    main_role: str | None = None,
    quality_role: str | None = None,
    external_client_id: str | None = None,
) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user:
        return user

    user = User(
        email=email,
        full_name=full_name,
        role=role,
        tenant_id=tenant.id,
        external_client_id=external_client_id,
        hashed_password=get_password_hash(password),
    )
    db.add(user)
    db.flush()
    if main_role:
        db.add(
            StaffMember(
                tenant_id=tenant.id,
                user_id=user.id,
                main_role=main_role,
                quality_role=quality_role,
                quality_assigned_at=datetime.utcnow() if quality_role else None,
                quality_permissions=role_permissions(quality_role) if quality_role else None,
            )
        )
    return user


def seed_initial_data() -> None:
    db = SessionLocal()
    try:
        tenant = _get_or_create_tenant(db)
        for client_config in DEMO_CLIENTS:
            if db.get(ExternalClient, client_config["id"]) is None:
                db.add(ExternalClient(tenant_id=tenant.id, **client_config))
        for project_config in DEMO_PROJECTS:
            if db.get(Project, project_config["id"]) is None:
                db.add(Project(tenant_id=tenant.id, **project_config))
        db.flush()

        for user_config in DEFAULT_USERS:
            user = _get_or_create_user(db, tenant, **user_config)
            if user_config["role"] == UserRole.business_admin.value and not tenant.admin_user_id:
                tenant.admin_user_id = user.id

        if tenant.inspection_config is None:
            db.add(config_service.default_config(tenant.id))

        db.commit()
        logger.info("Seeded demo tenant %s", tenant.id)
    finally:
        db.close()
