"""SIM card repository."""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sim_gateway.models import SimCard
from sim_gateway.services.timeutil import now_canonical

_MERGED_STRINGS = ("iccid", "imsi", "msisdn", "operator", "plmn")


async def get(session: AsyncSession, dev_id: str, slot: int) -> SimCard | None:
    result = await session.execute(select(SimCard).where(SimCard.dev_id == dev_id, SimCard.slot == slot))
    return result.scalar_one_or_none()


async def merge_upsert(
    session: AsyncSession,
    dev_id: str,
    slot: int,
    status: str,
    dbm: int | None = None,
    **fields: str,
) -> SimCard:
    """
    Create or update the card in (dev_id, slot).

    Blank strings never overwrite known values and a missing ``dbm`` keeps the stored one.
    """
    sim = await get(session, dev_id, slot)
    if sim is None:
        sim = SimCard(dev_id=dev_id, slot=slot, dbm=dbm or 0)
        session.add(sim)
    elif dbm is not None:
        sim.dbm = dbm
    for name in _MERGED_STRINGS:
        value = fields.get(name)
        if value:
            setattr(sim, name, value)
        elif getattr(sim, name) is None:
            setattr(sim, name, "")
    sim.status = status
    sim.updated_at = now_canonical()
    await session.commit()
    return sim


async def set_timezone(session: AsyncSession, dev_id: str, slot: int, timezone: float | None) -> SimCard | None:
    sim = await get(session, dev_id, slot)
    if sim is None:
        return None
    sim.timezone = timezone
    await session.commit()
    return sim


async def resolve_timezone(session: AsyncSession, dev_id: str, slot: int | None = None, imsi: str | None = None) -> float:
    """
    Source timezone for a device's SIM: exact slot, then matching IMSI, then any
    configured card on the device, else UTC.
    """
    if slot is not None:
        sim = await get(session, dev_id, slot)
        if sim is not None and sim.timezone is not None:
            return sim.timezone
    if imsi:
        result = await session.execute(
            select(SimCard.timezone).where(
                SimCard.dev_id == dev_id, SimCard.imsi == imsi, SimCard.timezone.is_not(None)
            )
        )
        tz = result.scalars().first()
        if tz is not None:
            return tz
    result = await session.execute(
        select(SimCard.timezone)
        .where(SimCard.dev_id == dev_id, SimCard.timezone.is_not(None))
        .order_by(SimCard.slot)
    )
    tz = result.scalars().first()
    return tz if tz is not None else 0
