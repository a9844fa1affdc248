"""Daily motivational message lookup."""

from __future__ import annotations

from datetime import datetime, time, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.base import utcnow
from app.models.motivational_message import MotivationalMessage


async def todays_message(
    session: AsyncSession, now: Optional[datetime] = None
) -> Optional[MotivationalMessage]:
    """Today's active message (UTC day), else the most recent active one."""
    now = now or utcnow()
    start = datetime.combine(now.date(), time.min)
    end = start + timedelta(days=1)

    result = await session.execute(
        select(MotivationalMessage)
        .where(
            MotivationalMessage.active.is_(True),
            MotivationalMessage.date >= start,
            MotivationalMessage.date < end,
        )
        .order_by(MotivationalMessage.created_at.desc())
        .limit(1)
    )
    message = result.scalar_one_or_none()
    if message:
        return message

    result = await session.execute(
        select(MotivationalMessage)
        .where(MotivationalMessage.active.is_(True))
        .order_by(MotivationalMessage.date.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()
