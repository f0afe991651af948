from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.context import AuthContext
from app.core.database import get_db
from app.schemas.common import ApiResponse, Page
from app.schemas.notification import NotificationRead
from app.services import auth as auth_service
from app.services import notifications as notification_service

router = APIRouter()


@router.get("/", response_model=ApiResponse[Page[NotificationRead]])
def list_notifications(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_user_context),
) -> ApiResponse[Page[NotificationRead]]:
    items, total = notification_service.list_notifications(
        db, ctx.user_id, unread_only=unread_only, page=page, limit=limit
    )
    data = Page[NotificationRead].build(
        [NotificationRead.model_validate(item) for item in items], total=total, page=page, limit=limit
    )
    return ApiResponse(message="Notifications retrieved", data=data)


@router.put("/read-all", response_model=ApiResponse[int])
def mark_all_read(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_user_context),
) -> ApiResponse[int]:
    updated = notification_service.mark_all_read(db, ctx.user_id)
    return ApiResponse(message="Notifications marked as read", data=updated)


@router.put("/{notification_id}/read", response_model=ApiResponse[NotificationRead])
def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(auth_service.get_user_context),
) -> ApiResponse[NotificationRead]:
    notification = notification_service.mark_read(db, ctx.user_id, notification_id)
    return ApiResponse(message="Notification marked as read", data=NotificationRead.model_validate(notification))
