from __future__ import annotations

import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.database import SessionLocal
from app.core.errors import register_exception_handlers
from app.core.migrations import run_migrations
from app.routers import (
    audit_logs,
    auth,
    business_quality,
    client_inspections,
    final_approval,
    notifications,
    reviews,
    staff_inspections,
)
from app.seeds.seed_data import seed_initial_data

logger = logging.getLogger("quality_app")
logging.basicConfig(level=logging.INFO)

app = FastAPI(title="Quality Inspection Workflow API", version="0.1.0")
register_exception_handlers(app)

cors_origins = settings.cors_allow_origins or ["*"]
allow_credentials = "*" not in cors_origins
if "*" in cors_origins:
    logger.warning("CORS_ALLOW_ORIGINS includes '*'; do not use this in production")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_origin_regex=settings.cors_allow_origin_regex,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Permissions-Policy", "camera=(), microphone=(), geolocation=()")
    return response


@app.on_event("startup")
async def startup_event() -> None:
    if settings.run_migrations_on_startup:
        run_migrations()
    if settings.seed_initial_data:
        if settings.app_profile != "demo":
            logger.warning("Seeding demo data while APP_PROFILE=%s; disable SEED_INITIAL_DATA in production", settings.app_profile)
        seed_initial_data()
    if settings.enable_notification_retry:
        _start_notification_retry()


@app.on_event("shutdown")
def shutdown_event() -> None:
    _stop_notification_retry()


app.include_router(auth.router, prefix="/auth", tags=["auth"])
# Queue routers ahead of the /{inspection_id} routes.
app.include_router(
    reviews.router, prefix="/staff/quality-inspections/review", tags=["quality-inspection-reviews"]
)
app.include_router(
    final_approval.router,
    prefix="/staff/quality-inspections/final-approval",
    tags=["quality-inspection-final-approval"],
)
app.include_router(
    staff_inspections.router, prefix="/staff/quality-inspections", tags=["staff-quality-inspections"]
)
app.include_router(
    client_inspections.router, prefix="/client/quality-inspections", tags=["client-quality-inspections"]
)
app.include_router(
    business_quality.router, prefix="/business/quality-inspections", tags=["business-quality-inspections"]
)
app.include_router(audit_logs.router, prefix="/business/audit-logs", tags=["audit-logs"])
app.include_router(notifications.router, prefix="/notifications", tags=["notifications"])

retry_task: asyncio.Task | None = None


def _start_notification_retry() -> None:
    global retry_task
    if retry_task:
        return

    async def _retry_loop() -> None:
        from app.services.notifications import redeliver_failed

        while True:
            try:
                await asyncio.sleep(settings.notification_retry_interval_seconds)
                with SessionLocal() as db:
                    delivered = redeliver_failed(db)
                if delivered:
                    logger.info("Redelivered %s failed notifications", delivered)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Error running notification retry loop")

    retry_task = asyncio.create_task(_retry_loop())


def _stop_notification_retry() -> None:
    global retry_task
    if retry_task:
        retry_task.cancel()
        retry_task = None


@app.get("/health")
def health_check() -> dict[str, str]:
    return {"status": "ok"}
