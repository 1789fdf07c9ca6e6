"""Apply decoded gateway events to device, SIM and log state."""
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from sim_gateway.constants import (
    CALL_NOTIFY_TYPES,
    HEARTBEAT_TYPE,
    SIM_NOTIFY_TYPES,
    SIM_STATUS_BY_TYPE,
    SMS_OUT_TYPE,
    EventClass,
    SimStatus,
    classify,
    resolve_field,
)
from sim_gateway.db import Store
from sim_gateway.errors import StorageError
from sim_gateway.repositories import device as device_repo
from sim_gateway.repositories import event_log as event_log_repo
from sim_gateway.repositories import sim_card as sim_card_repo
from sim_gateway.schemas import TelemetryEvent
from sim_gateway.services.timeutil import epoch_seconds, normalize

logger = logging.getLogger(__name__)

Notification = tuple[str, dict[str, Any]] | None


class Notifier(Protocol):
    def submit(self, event: str, data: dict[str, Any]) -> bool: ...


@dataclass(frozen=True)
class HandleResult:
    success: bool
    category: str
    label: str
    error: str | None = None


_INT64_MIN, _INT64_MAX = -(2**63), 2**63 - 1


def _int(value: Any, default: int | None = 0) -> int | None:
    if value is None or value == "" or isinstance(value, bool):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        return default
    # Out-of-range values cannot be stored in an SQLite INTEGER column.
    if not _INT64_MIN <= number <= _INT64_MAX:
        return default
    return number


def _str(value: Any) -> str:
    return "" if value is None else str(value)


class MessageHandler:
    """
    Reconciles one event at a time. Every write is an idempotent upsert or an
    append to a log; missing optional fields fall back to empty values.
    """

    def __init__(self, store: Store, notifier: Notifier | None = None, log_raw_messages: bool = True):
        self.store = store
        self.notifier = notifier
        self.log_raw_messages = log_raw_messages
        self._handlers: dict[str, Callable[[AsyncSession, TelemetryEvent, EventClass], Awaitable[Notification]]] = {
            "network": self._handle_network,
            "sim": self._handle_sim,
            "sms": self._handle_sms,
            "call": self._handle_call,
            "system": self._handle_system,
            "call_ctrl": self._handle_liveness,
            "module": self._handle_liveness,
            "command": self._handle_liveness,
        }

    async def handle_message(self, event: TelemetryEvent) -> HandleResult:
        info = classify(event.type)
        await self._record_message(event, info)

        handler = self._handlers.get(info.category)
        if handler is None:
            logger.info("Received %s from %s, no handler", info.label, event.dev_id)
            return HandleResult(True, info.category, info.label)

        try:
            async with self.store.session() as session:
                notification = await handler(session, event, info)
        except StorageError as e:
            logger.error("Storing %s from %s failed: %s", info.label, event.dev_id, e)
            return HandleResult(False, info.category, info.label, str(e))

        if notification is not None:
            self._notify(*notification)
        return HandleResult(True, info.category, info.label)

    async def _record_message(self, event: TelemetryEvent, info: EventClass) -> None:
        if not self.log_raw_messages:
            return
        try:
            async with self.store.session() as session:
                await event_log_repo.create_message(session, event.dev_id, event.type, info.label, event.as_dict())
        except StorageError as e:
            logger.error("Recording raw message from %s failed: %s", event.dev_id, e)

    def _notify(self, event: str, data: dict[str, Any]) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.submit(event, data)
        except Exception:
            logger.exception("Queueing %s notification failed", event)

    async def _handle_network(self, session: AsyncSession, event: TelemetryEvent, info: EventClass) -> Notification:
        data = event.as_dict()
        ip = _str(data.get("ip"))
        logger.info("Network: %s %s, IP: %s, SSID: %s", event.dev_id, info.label, ip, data.get("ssid"))
        await device_repo.upsert_network(
            session,
            event.dev_id,
            ip=ip,
            ssid=_str(data.get("ssid")),
            dbm=_int(data.get("dbm")),
            hw_ver=_str(data.get("hwVer")),
        )
        return "device_status", {"dev_id": event.dev_id, "status": info.label, "ip": ip or "unknown"}

    async def _handle_sim(self, session: AsyncSession, event: TelemetryEvent, info: EventClass) -> Notification:
        data = event.as_dict()
        slot = _int(data.get("slot"), None)
        status = SIM_STATUS_BY_TYPE.get(event.type, SimStatus.UNKNOWN)
        logger.info("SIM: %s slot %s: %s", event.dev_id, slot, info.label)

        await device_repo.touch(session, event.dev_id)
        if slot is None:
            logger.warning("SIM: %s event without slot, SIM state not updated", event.dev_id)
        else:
            await sim_card_repo.merge_upsert(
                session,
                event.dev_id,
                slot,
                status=status,
                dbm=_int(data.get("dbm"), None),
                iccid=_str(resolve_field(data, "iccid")),
                imsi=_str(resolve_field(data, "imsi")),
                msisdn=_str(resolve_field(data, "msisdn")),
                operator=_str(resolve_field(data, "operator")),
                plmn=_str(resolve_field(data, "plmn")),
            )

        if event.type not in SIM_NOTIFY_TYPES:
            return None
        return "sim", {"dev_id": event.dev_id, "slot": slot, "status": status, "label": info.label}

    async def _handle_sms(self, session: AsyncSession, event: TelemetryEvent, info: EventClass) -> Notification:
        data = event.as_dict()
        slot = _int(data.get("slot"), None)
        phone = _str(resolve_field(data, "phone"))
        content = _str(resolve_field(data, "content"))
        direction = "out" if event.type == SMS_OUT_TYPE else "in"
        logger.info("SMS: %s %s %s", event.dev_id, direction, phone)

        await device_repo.touch(session, event.dev_id)
        offset = await sim_card_repo.resolve_timezone(session, event.dev_id, slot, _str(data.get("imsi")))
        sim = await sim_card_repo.get(session, event.dev_id, slot) if slot is not None else None
        await event_log_repo.create_sms(
            session,
            event.dev_id,
            slot=slot or 0,
            phone_num=phone,
            content=content,
            sms_time=normalize(resolve_field(data, "sms_time"), offset),
            direction=direction,
            msisdn=sim.msisdn if sim else "",
        )
        return "sms", {
            "dev_id": event.dev_id,
            "slot": slot,
            "direction": direction,
            "phone_num": phone,
            "content": content,
        }

    async def _handle_call(self, session: AsyncSession, event: TelemetryEvent, info: EventClass) -> Notification:
        data = event.as_dict()
        slot = _int(data.get("slot"), None)
        phone = _str(resolve_field(data, "phone"))
        logger.info("Call: %s %s (%s)", event.dev_id, phone, info.label)

        start_raw = resolve_field(data, "call_start")
        start = epoch_seconds(start_raw)
        end = epoch_seconds(resolve_field(data, "call_end"))
        duration = int(end - start) if start is not None and end is not None and end > start else 0

        await device_repo.touch(session, event.dev_id)
        offset = await sim_card_repo.resolve_timezone(session, event.dev_id, slot, _str(data.get("imsi")))
        sim = await sim_card_repo.get(session, event.dev_id, slot) if slot is not None else None
        await event_log_repo.create_call(
            session,
            event.dev_id,
            slot=slot or 0,
            phone_num=phone,
            msg_type=event.type,
            call_type=info.label,
            start_time=normalize(start_raw, offset),
            duration=duration,
            msisdn=sim.msisdn if sim else "",
        )

        if event.type not in CALL_NOTIFY_TYPES:
            return None
        return "call", {
            "dev_id": event.dev_id,
            "slot": slot,
            "phone_num": phone,
            "call_type": info.label,
            "duration": duration,
        }

    async def _handle_system(self, session: AsyncSession, event: TelemetryEvent, info: EventClass) -> Notification:
        await device_repo.touch(session, event.dev_id)
        if event.type == HEARTBEAT_TYPE:
            logger.debug("System: %s PING", event.dev_id)
            return None
        logger.info("System: %s %s", event.dev_id, info.label)
        return "system", {"dev_id": event.dev_id, "label": info.label}

    async def _handle_liveness(self, session: AsyncSession, event: TelemetryEvent, info: EventClass) -> Notification:
        logger.info("Received %s from %s", info.label, event.dev_id)
        await device_repo.touch(session, event.dev_id)
        return None
