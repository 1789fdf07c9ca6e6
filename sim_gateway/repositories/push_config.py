"""Notification channel config repository."""
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncSession

from sim_gateway.models import PushConfig
from sim_gateway.services.timeutil import now_canonical


async def list_all(session: AsyncSession) -> list[PushConfig]:
    result = await session.execute(select(PushConfig).order_by(PushConfig.id))
    return list(result.scalars().all())


async def list_subscribed(session: AsyncSession, event: str) -> list[PushConfig]:
    """Enabled channels whose event list contains ``event``."""
    return [c for c in await list_all(session) if c.enabled and event in (c.events or [])]


async def save(
    session: AsyncSession,
    channel: str,
    enabled: bool,
    config: dict[str, Any],
    events: list[str],
) -> PushConfig:
    """Insert or update the single row for ``channel``."""
    values = {"enabled": enabled, "config": config, "events": events, "updated_at": now_canonical()}
    stmt = insert(PushConfig).values(channel=channel, **values)
    stmt = stmt.on_conflict_do_update(index_elements=[PushConfig.channel], set_=values)
    await session.execute(stmt)
    await session.commit()
    result = await session.execute(
        select(PushConfig).where(PushConfig.channel == channel).execution_options(populate_existing=True)
    )
    return result.scalar_one()
