"""Device repository."""
from sqlalchemy import delete as sa_delete
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sim_gateway.constants import DeviceStatus
from sim_gateway.models import CallRecord, Device, Message, SimCard, SmsRecord
from sim_gateway.services.timeutil import now_canonical


async def get_by_dev_id(session: AsyncSession, dev_id: str) -> Device | None:
    result = await session.execute(select(Device).where(Device.dev_id == dev_id))
    return result.scalar_one_or_none()


async def list_all(session: AsyncSession, status: str | None = None) -> list[Device]:
    stmt = select(Device).order_by(Device.id)
    if status is not None:
        stmt = stmt.where(Device.status == status)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def upsert_network(
    session: AsyncSession,
    dev_id: str,
    ip: str,
    ssid: str,
    dbm: int,
    hw_ver: str,
) -> Device:
    """Record a connectivity event, registering the device if it is new."""
    now = now_canonical()
    device = await get_by_dev_id(session, dev_id)
    if device is None:
        device = Device(dev_id=dev_id)
        session.add(device)
    device.last_ip = ip
    device.last_ssid = ssid
    device.last_dbm = dbm
    device.hw_ver = hw_ver
    device.status = DeviceStatus.ONLINE
    device.last_seen_at = now
    device.updated_at = now
    await session.commit()
    return device


async def touch(session: AsyncSession, dev_id: str) -> Device:
    """Mark the device online and seen now, creating it if unknown."""
    now = now_canonical()
    device = await get_by_dev_id(session, dev_id)
    if device is None:
        device = Device(dev_id=dev_id)
        session.add(device)
    device.status = DeviceStatus.ONLINE
    device.last_seen_at = now
    device.updated_at = now
    await session.commit()
    return device


async def mark_offline_before(session: AsyncSession, threshold: str) -> int:
    """Flip every online device last seen before ``threshold`` to offline."""
    result = await session.execute(
        update(Device)
        .where(Device.status == DeviceStatus.ONLINE, Device.last_seen_at < threshold)
        .values(status=DeviceStatus.OFFLINE)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    return result.rowcount


async def delete(session: AsyncSession, device: Device) -> None:
    """Delete a device and every row that belongs to it."""
    for model in (SimCard, Message, SmsRecord, CallRecord):
        await session.execute(sa_delete(model).where(model.dev_id == device.dev_id))
    await session.delete(device)
    await session.commit()
