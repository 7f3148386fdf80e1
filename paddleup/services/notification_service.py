"""
In-app notifications.

Invites and referrals write notifications as a side effect of their own
transaction; the notification routes read and acknowledge them.
"""

from typing import Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from paddleup.database.models import Notification, NotificationType
from paddleup.utils.datetime_utils import utcnow, isoformat
import json
import logging

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = {t.value for t in NotificationType}


def _to_dict(row: Notification) -> Dict:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "type": row.type,
        "title": row.title,
        "message": row.message,
        "data": json.loads(row.data) if row.data else None,
        "action_url": row.action_url,
        "reference_type": row.reference_type,
        "reference_id": row.reference_id,
        "is_read": row.is_read,
        "read_at": isoformat(row.read_at),
        "created_at": isoformat(row.created_at),
    }


def _owned_by(user_id: int, unread_only: bool = False):
    """WHERE clauses selecting a user's notifications."""
    clauses = [Notification.user_id == user_id]
    if unread_only:
        clauses.append(Notification.is_read.is_(False))
    return clauses


async def create_notification(
    session: AsyncSession,
    user_id: int,
    type: str,
    title: str,
    message: str,
    data: Optional[Dict] = None,
    action_url: Optional[str] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
) -> Dict:
    """
    Store a notification for ``user_id``.

    Args:
        session: Database session
        user_id: Recipient
        type: NotificationType value
        title: Short heading
        message: Body text
        data: Extra metadata, stored as JSON (invite_code, reward, ...)
        action_url: Frontend path opened when the notification is clicked
        reference_type: Kind of entity the notification is about ("team_invite", ...)
        reference_id: Id of that entity

    Returns:
        The stored notification

    Raises:
        ValueError: A required field is empty or the type is unknown
    """
    for field, value in (("user_id", user_id), ("type", type), ("title", title), ("message", message)):
        if not value:
            raise ValueError(f"{field} is required")
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"Invalid notification type: {type}")

    row = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        data=json.dumps(data, default=str) if data is not None else None,
        action_url=action_url,
        reference_type=reference_type,
        reference_id=reference_id,
        is_read=False,
    )
    session.add(row)
    await session.flush()
    # created_at comes from the server default
    await session.refresh(row)
    logger.debug(f"Notification {row.id} ({type}) created for user {user_id}")
    return _to_dict(row)


async def get_user_notifications(
    session: AsyncSession,
    user_id: int,
    limit: int = 50,
    offset: int = 0,
    unread_only: bool = False
) -> Dict:
    """
    Page through a user's notifications, newest first.

    Returns:
        {"notifications": [...], "total_count": int, "has_more": bool}
    """
    clauses = _owned_by(user_id, unread_only)

    total_count = (
        await session.execute(select(func.count(Notification.id)).where(*clauses))
    ).scalar_one()

    rows = (
        await session.execute(
            select(Notification)
            .where(*clauses)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .offset(offset)
        )
    ).scalars().all()

    return {
        "notifications": [_to_dict(row) for row in rows],
        "total_count": total_count,
        "has_more": offset + len(rows) < total_count,
    }


async def get_unread_count(session: AsyncSession, user_id: int) -> int:
    result = await session.execute(
        select(func.count(Notification.id)).where(*_owned_by(user_id, unread_only=True))
    )
    return result.scalar_one()


async def mark_as_read(
    session: AsyncSession,
    notification_id: int,
    user_id: int
) -> Dict:
    """
    Mark one of the user's notifications as read. Already-read
    notifications keep their original read_at.

    Raises:
        ValueError: No such notification for this user
    """
    row = (
        await session.execute(
            select(Notification).where(
                Notification.id == notification_id, *_owned_by(user_id)
            )
        )
    ).scalar_one_or_none()
    if row is None:
        raise ValueError("Notification not found or access denied")

    if not row.is_read:
        row.is_read = True
        row.read_at = utcnow()
        await session.flush()
    return _to_dict(row)


async def mark_all_as_read(session: AsyncSession, user_id: int) -> int:
    """Mark every unread notification of the user as read; returns how many changed."""
    result = await session.execute(
        update(Notification)
        .where(*_owned_by(user_id, unread_only=True))
        .values(is_read=True, read_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await session.flush()
    return result.rowcount or 0
