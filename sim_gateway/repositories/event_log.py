"""Append-only logs: raw messages, SMS and call records."""
import json
from typing import Any

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from sim_gateway.models import CallRecord, Message, SmsRecord


async def create_message(session: AsyncSession, dev_id: str, type: int, type_name: str, raw: dict[str, Any]) -> Message:
    message = Message(
        dev_id=dev_id,
        type=type,
        type_name=type_name,
        raw_data=json.dumps(raw, ensure_ascii=False, default=str),
    )
    session.add(message)
    await session.commit()
    return message


async def create_sms(
    session: AsyncSession,
    dev_id: str,
    slot: int,
    phone_num: str,
    content: str,
    sms_time: str,
    direction: str,
    msisdn: str = "",
) -> SmsRecord:
    record = SmsRecord(
        dev_id=dev_id,
        slot=slot,
        msisdn=msisdn,
        phone_num=phone_num,
        content=content,
        sms_time=sms_time,
        direction=direction,
    )
    session.add(record)
    await session.commit()
    return record


async def create_call(
    session: AsyncSession,
    dev_id: str,
    slot: int,
    phone_num: str,
    msg_type: int,
    call_type: str,
    start_time: str,
    duration: int,
    msisdn: str = "",
) -> CallRecord:
    record = CallRecord(
        dev_id=dev_id,
        slot=slot,
        msisdn=msisdn,
        phone_num=phone_num,
        msg_type=msg_type,
        call_type=call_type,
        start_time=start_time,
        duration=duration,
    )
    session.add(record)
    await session.commit()
    return record


async def purge_messages_before(session: AsyncSession, threshold: str) -> int:
    result = await session.execute(delete(Message).where(Message.created_at < threshold))
    await session.commit()
    return result.rowcount
