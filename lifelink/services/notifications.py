import logging
from typing import Any, Iterable, NamedTuple, Optional, Protocol, Sequence

from sqlalchemy import delete, func, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from lifelink.errors import NotFoundError
from lifelink.models import Donation, Notification, Request

logger = logging.getLogger(__name__)


class Achievement(NamedTuple):
    id: int
    title: str
    type: str = "milestone"
    points: int = 0
    message: Optional[str] = None


class NotificationSink(Protocol):
    async def notify_match(self, hospital_user_id: int, donation: Donation, request: Request) -> Any: ...

    async def notify_request_broadcast(self, donor_ids: Sequence[int], request: Request) -> Any: ...

    async def notify_milestone(self, user_id: int, achievement: Achievement) -> Any: ...


async def emit(sink: Optional[NotificationSink], event: str, *args: Any) -> None:
    """Fire a sink call without letting its failure reach the caller.

    Notifications are side effects of an already committed change, so a
    broken sink is logged and otherwise ignored.
    """
    if sink is None:
        return
    try:
        await getattr(sink, event)(*args)
    except Exception:
        logger.exception("notification_failed: %s", event)


class DatabaseNotificationSink:
    """Stores notifications as rows for the owners to poll.

    Every call uses its own session so nothing here can roll back the
    donation or request change that triggered it.
    """

    def __init__(self, session_pool: async_sessionmaker):
        self.session_pool = session_pool

    async def _store(self, notifications: list[Notification]) -> list[Notification]:
        async with self.session_pool() as session:
            session.add_all(notifications)
            await session.commit()
            for n in notifications:
                await session.refresh(n)
        return notifications

    async def notify_match(self, hospital_user_id: int, donation: Donation, request: Request) -> Notification:
        notification = Notification(
            user_id=hospital_user_id,
            type="match",
            title="New Donor Matched",
            message=f"A donor has matched your {request.wanted} request",
            related_id=donation.id,
            related_type="Donation",
            data={
                "donation_id": donation.id,
                "request_id": request.id,
                "request_type": request.kind,
            },
        )
        (stored,) = await self._store([notification])
        return stored

    async def notify_request_broadcast(self, donor_ids: Sequence[int], request: Request) -> list[Notification]:
        if not donor_ids:
            return []
        notifications = [
            Notification(
                user_id=donor_id,
                type="request",
                title="New Donation Request Available",
                message=f"A {request.urgency} priority {request.wanted} request is available",
                related_id=request.id,
                related_type="Request",
                data={
                    "request_id": request.id,
                    "request_type": request.kind,
                    "urgency": request.urgency,
                    "hospital_id": request.hospital_id,
                },
            )
            for donor_id in donor_ids
        ]
        return await self._store(notifications)

    async def notify_milestone(self, user_id: int, achievement: Achievement) -> Notification:
        notification = Notification(
            user_id=user_id,
            type="milestone",
            title=f"Achievement Unlocked: {achievement.title}",
            message=achievement.message or f"Congratulations! You've unlocked: {achievement.title}",
            related_id=achievement.id,
            related_type="Achievement",
            data={
                "achievement_id": achievement.id,
                "achievement_type": achievement.type,
                "points": achievement.points,
            },
        )
        (stored,) = await self._store([notification])
        return stored


# --------- read side ---------


async def mark_as_read(session: AsyncSession, notification_id: int) -> Notification:
    notification = await session.get(Notification, notification_id)
    if not notification:
        raise NotFoundError("Notification", notification_id)
    notification.read = True
    session.add(notification)
    await session.commit()
    return notification


async def mark_multiple_as_read(
    session: AsyncSession, user_id: int, notification_ids: Optional[Iterable[int]] = None
) -> int:
    """Mark the given (or, without ids, all) notifications of *user_id* read."""
    stmt = update(Notification).where(Notification.user_id == user_id)  # type: ignore[arg-type]
    if notification_ids is not None:
        stmt = stmt.where(Notification.id.in_(list(notification_ids)))  # type: ignore[union-attr]
    result = await session.execute(stmt.values(read=True))
    await session.commit()
    return result.rowcount


async def get_unread_notifications(session: AsyncSession, user_id: int) -> list[Notification]:
    result = await session.execute(
        select(Notification)
        .where(Notification.user_id == user_id, Notification.read == False)  # noqa: E712
        .order_by(Notification.created_at.desc(), Notification.id.desc())  # type: ignore[attr-defined,union-attr]
    )
    return list(result.scalars().all())


async def get_user_notifications(
    session: AsyncSession,
    user_id: int,
    read: Optional[bool] = None,
    type: Optional[str] = None,
    skip: int = 0,
    limit: int = 10,
) -> tuple[list[Notification], int]:
    conditions = [Notification.user_id == user_id]
    if read is not None:
        conditions.append(Notification.read == read)
    if type:
        conditions.append(Notification.type == type)

    total = (
        await session.execute(select(func.count()).select_from(Notification).where(*conditions))
    ).scalar_one()
    result = await session.execute(
        select(Notification)
        .where(*conditions)
        .order_by(Notification.created_at.desc(), Notification.id.desc())  # type: ignore[attr-defined,union-attr]
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all()), total


async def delete_notification(session: AsyncSession, notification_id: int) -> Notification:
    notification = await session.get(Notification, notification_id)
    if not notification:
        raise NotFoundError("Notification", notification_id)
    await session.delete(notification)
    await session.commit()
    return notification


async def clear_all_notifications(session: AsyncSession, user_id: int) -> int:
    result = await session.execute(delete(Notification).where(Notification.user_id == user_id))  # type: ignore[arg-type]
    await session.commit()
    return result.rowcount


async def get_notification_stats(session: AsyncSession, user_id: int) -> dict[str, Any]:
    rows = (
        await session.execute(
            select(Notification.type, Notification.read, func.count())
            .where(Notification.user_id == user_id)
            .group_by(Notification.type, Notification.read)
        )
    ).all()

    by_type: dict[str, int] = {}
    total = unread = 0
    for ntype, is_read, count in rows:
        by_type[ntype] = by_type.get(ntype, 0) + count
        total += count
        if not is_read:
            unread += count
    return {"total": total, "unread": unread, "read": total - unread, "by_type": by_type}
