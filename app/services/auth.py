from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader, OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.core.context import AuthContext
from app.core.database import get_db
from app.core.security import create_access_token, decode_access_token, hash_api_key, verify_password
from app.models.entities import Tenant, User, UserRole

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)
api_key_scheme = APIKeyHeader(name="X-API-Key", auto_error=False)

STAFF_ROLES = {UserRole.staff.value, UserRole.business_admin.value}


def authenticate_user(db: Session, email: str, password: str) -> User | None:
    user = db.query(User).filter(User.email == email).first()
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user


def issue_token_for_user(user: User) -> str:
    return create_access_token(
        {
            "sub": user.id,
            "role": user.role,
            "tenant_id": user.tenant_id,
            "external_client_id": user.external_client_id,
        }
    )


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _user_from_token(db: Session, token: str) -> User:
    try:
        payload = decode_access_token(token)
        user_id: str | None = payload.get("sub")
    except Exception as exc:  # noqa: BLE001 - propagate as 401
        raise _credentials_exception() from exc
    if user_id is None:
        raise _credentials_exception()
    user = db.get(User, user_id)
    if user is None:
        raise _credentials_exception()
    return user


def _user_from_api_key(db: Session, api_key: str) -> User:
    tenant = db.query(Tenant).filter(Tenant.api_key_hash == hash_api_key(api_key)).first()
    if tenant is None or not tenant.admin_user_id:
        logger.warning("Rejected request with unknown API key")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
    user = db.get(User, tenant.admin_user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
    return user


def get_current_user(
    token: str | None = Depends(oauth2_scheme),
    api_key: str | None = Security(api_key_scheme),
    db: Session = Depends(get_db),
) -> User:
    if token:
        return _user_from_token(db, token)
    if api_key:
        return _user_from_api_key(db, api_key)
    raise _credentials_exception()


def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Inactive user")
    return current_user


def _context_for(user: User) -> AuthContext:
    if not user.tenant_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User is not linked to a business")
    return AuthContext(
        user_id=user.id,
        tenant_id=user.tenant_id,
        role=user.role,
        external_client_id=user.external_client_id,
    )


def get_staff_context(user: User = Depends(get_current_active_user)) -> AuthContext:
    if user.role not in STAFF_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Staff access required")
    return _context_for(user)


def get_business_admin_context(user: User = Depends(get_current_active_user)) -> AuthContext:
    if user.role != UserRole.business_admin.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Business admin access required")
    return _context_for(user)


def get_client_context(user: User = Depends(get_current_active_user)) -> AuthContext:
    if user.role != UserRole.client.value or not user.external_client_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Client access required")
    return _context_for(user)


def get_user_context(user: User = Depends(get_current_active_user)) -> AuthContext:
    return _context_for(user)
