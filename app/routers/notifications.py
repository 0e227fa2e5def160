import uuid
from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, func, select

from app.db.db import get_session
from app.models.notification import Notification
from app.models.user import User
from app.utils.auth_helper import get_acting_user


router = APIRouter()

@router.get("/")
async def get_my_notifications(
    limit: int = 20,
    unread_only: bool = False,
    session: Session = Depends(get_session),
    user: User = Depends(get_acting_user),
):
    query = select(Notification).where(Notification.user_id == user.id)

    if unread_only:
        query = query.where(Notification.is_read == False)  # noqa: E712

    notifications = session.exec(
        query.order_by(Notification.created_at.desc()).limit(limit)
    ).all()

    return {"notifications": notifications}

@router.get("/count")
async def get_unread_count(
    session: Session = Depends(get_session),
    user: User = Depends(get_acting_user),
):
    count = session.exec(
        select(func.count(Notification.id))
        .where(Notification.user_id == user.id)
        .where(Notification.is_read == False)  # noqa: E712
    ).one()

    return {"count": count}

@router.post("/{notification_id}/mark-read")
async def mark_read(
    notification_id: uuid.UUID,
    session: Session = Depends(get_session),
    user: User = Depends(get_acting_user),
):
    notification = session.get(Notification, notification_id)

    # other users' notifications look the same as missing ones
    if not notification or notification.user_id != user.id:
        raise HTTPException(status_code=404, detail="Notification not found")

    notification.is_read = True
    session.add(notification)
    session.commit()

    return {"ok": True}

@router.post("/mark-all-read")
async def mark_all_read(
    session: Session = Depends(get_session),
    user: User = Depends(get_acting_user),
):
    unread = session.exec(
        select(Notification)
        .where(Notification.user_id == user.id)
        .where(Notification.is_read == False)  # noqa: E712
    ).all()

    for notification in unread:
        notification.is_read = True
        session.add(notification)

    session.commit()

    return {"ok": True}
