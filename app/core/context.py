from __future__ import annotations

from dataclasses import dataclass

from fastapi import HTTPException, Request, status


@dataclass(frozen=True)
class AuthContext:
    """Identity resolved by the auth guard; the workflow trusts it completely."""

    user_id: str
    tenant_id: str
    role: str
    external_client_id: str | None = None


@dataclass(frozen=True)
class RequestMeta:
    ip_address: str = "unknown"
    user_agent: str | None = None
    request_id: str | None = None


def extract_ip_address(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for") or request.headers.get("x-real-ip")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


def get_request_meta(request: Request) -> RequestMeta:
    return RequestMeta(
        ip_address=extract_ip_address(request),
        user_agent=request.headers.get("user-agent"),
        request_id=request.headers.get("x-request-id"),
    )


def get_expected_version(request: Request) -> int | None:
    """Parse an ``If-Match`` header carrying the inspection version, e.g. ``"3"`` or ``W/"3"``."""
    raw = request.headers.get("if-match")
    if raw is None or raw.strip() in {"", "*"}:
        return None
    value = raw.strip()
    if value.startswith("W/"):
        value = value[2:]
    value = value.strip('"')
    try:
        return int(value)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="If-Match must be an inspection version") from exc
