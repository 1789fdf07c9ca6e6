import asyncio

import pytest
from sqlalchemy import func, select

from sim_gateway.models import CallRecord, Device, Message, SimCard, SmsRecord
from sim_gateway.repositories import sim_card as sim_card_repo
from sim_gateway.schemas import TelemetryEvent
from sim_gateway.services.reconciler import MessageHandler
from sim_gateway.services.sweeper import sweep


def ev(**fields) -> TelemetryEvent:
    return TelemetryEvent.model_validate(fields)


async def count(store, model, **where) -> int:
    async with store.session() as session:
        stmt = select(func.count()).select_from(model)
        for name, value in where.items():
            stmt = stmt.where(getattr(model, name) == value)
        return (await session.execute(stmt)).scalar_one()


async def fetch_one(store, model, **where):
    async with store.session() as session:
        stmt = select(model)
        for name, value in where.items():
            stmt = stmt.where(getattr(model, name) == value)
        return (await session.execute(stmt)).scalar_one()


@pytest.mark.parametrize("code", [100, 101, 202, 204, 205, 209, 301, 401, 501, 502, 601, 623, 681, 998])
async def test_known_codes_leave_exactly_one_device(handler, store, code):
    result = await handler.handle_message(ev(devId="gw-1", type=code, slot=1))
    assert result.success
    assert await count(store, Device, dev_id="gw-1") == 1


async def test_network_event_twice_updates_device(handler, store, notifier):
    await handler.handle_message(ev(devId="gw-1", type=100, ip="10.0.0.2", ssid="lab", dbm=-60, hwVer="v1"))
    await handler.handle_message(ev(devId="gw-1", type=101, ip="10.0.0.3"))

    assert await count(store, Device) == 1
    device = await fetch_one(store, Device, dev_id="gw-1")
    assert device.last_ip == "10.0.0.3"
    assert device.status == "online"
    assert device.last_seen_at is not None
    assert await count(store, Message, dev_id="gw-1") == 2
    assert [e for e, _ in notifier.events] == ["device_status", "device_status"]
    assert notifier.events[0][1]["ip"] == "10.0.0.2"


async def test_sim_fields_merge_without_blank_overwrite(handler, store):
    await handler.handle_message(ev(devId="gw-1", type=203, slot=1, iccId="8986001", dbm=-70))
    await handler.handle_message(ev(devId="gw-1", type=204, slot=1, imsi="460001", iccId=""))

    sim = await fetch_one(store, SimCard, dev_id="gw-1", slot=1)
    assert sim.iccid == "8986001"
    assert sim.imsi == "460001"
    assert sim.dbm == -70
    assert sim.status == "ready"
    assert await count(store, SimCard) == 1


async def test_sim_status_table_and_notifications(handler, store, notifier):
    await handler.handle_message(ev(devId="gw-1", type=202, slot=2))
    sim = await fetch_one(store, SimCard, dev_id="gw-1", slot=2)
    assert sim.status == "registering"
    await handler.handle_message(ev(devId="gw-1", type=203, slot=2))
    assert notifier.events == []

    for code, status in ((204, "ready"), (205, "removed"), (209, "error")):
        await handler.handle_message(ev(devId="gw-1", type=code, slot=2))
        sim = await fetch_one(store, SimCard, dev_id="gw-1", slot=2)
        assert sim.status == status
    assert [d["status"] for e, d in notifier.events if e == "sim"] == ["ready", "removed", "error"]


async def test_sms_aliases_direction_and_timezone(handler, store, notifier):
    await handler.handle_message(ev(devId="gw-1", type=204, slot=1, msIsdn="13800000000"))
    async with store.session() as session:
        await sim_card_repo.set_timezone(session, "gw-1", 1, 9)

    await handler.handle_message(ev(devId="gw-1", type=501, slot=1, phNum="10086", smsBd="hello", smsTs=1700000000))
    await handler.handle_message(ev(devId="gw-1", type=502, slot=1, phoneNum="10010", content="bye"))

    incoming = await fetch_one(store, SmsRecord, direction="in")
    assert (incoming.phone_num, incoming.content) == ("10086", "hello")
    assert incoming.sms_time == "2023-11-14 21:13:20"
    assert incoming.msisdn == "13800000000"
    outgoing = await fetch_one(store, SmsRecord, direction="out")
    assert (outgoing.phone_num, outgoing.content) == ("10010", "bye")

    sms_events = [d for e, d in notifier.events if e == "sms"]
    assert [d["direction"] for d in sms_events] == ["in", "out"]
    assert sms_events[0]["slot"] == 1


async def test_sms_without_optional_fields(handler, store):
    result = await handler.handle_message(ev(devId="gw-1", type=501))
    assert result.success
    record = await fetch_one(store, SmsRecord, dev_id="gw-1")
    assert record.phone_num == ""
    assert record.slot == 0
    assert record.sms_time


async def test_timezone_falls_back_to_any_configured_slot(store):
    async with store.session() as session:
        await sim_card_repo.merge_upsert(session, "gw-1", 1, status="ready", imsi="A")
        await sim_card_repo.merge_upsert(session, "gw-1", 2, status="ready", imsi="B")
        assert await sim_card_repo.resolve_timezone(session, "gw-1", 1) == 0
        await sim_card_repo.set_timezone(session, "gw-1", 2, -3)
        assert await sim_card_repo.resolve_timezone(session, "gw-1", 2) == -3
        assert await sim_card_repo.resolve_timezone(session, "gw-1", 7, "B") == -3
        assert await sim_card_repo.resolve_timezone(session, "gw-1", 1) == -3
        assert await sim_card_repo.resolve_timezone(session, "gw-other", 1) == 0


async def test_call_duration_and_notification_filter(handler, store, notifier):
    await handler.handle_message(ev(devId="gw-1", type=601, slot=1, phNum="555", telStartTs=1700000000))
    await handler.handle_message(ev(devId="gw-1", type=602, slot=1, phNum="555", telStartTs=1700000000))
    await handler.handle_message(
        ev(devId="gw-1", type=603, slot=1, phNum="555", telStartTs=1700000000, telEndTs=1700000042)
    )
    await handler.handle_message(
        ev(devId="gw-1", type=623, slot=1, phNum="555", telStartTs=1700000100000, telEndTs=1700000090000)
    )

    assert await count(store, CallRecord) == 4
    hangup = await fetch_one(store, CallRecord, msg_type=603)
    assert hangup.duration == 42
    assert hangup.start_time == "2023-11-15 06:13:20"
    outgoing = await fetch_one(store, CallRecord, msg_type=623)
    assert outgoing.duration == 0
    assert [d["call_type"] for e, d in notifier.events if e == "call"] == [
        "Incoming call ringing",
        "Incoming call hung up by caller",
        "Outgoing call hung up",
    ]


async def test_heartbeat_refreshes_device_without_notification(handler, store, notifier):
    await handler.handle_message(ev(devId="gw-1", type=998))
    device = await fetch_one(store, Device, dev_id="gw-1")
    assert device.status == "online"
    assert notifier.events == []


async def test_unknown_code_only_logs_message(handler, store):
    result = await handler.handle_message(ev(devId="gw-1", type=9999))
    assert result.success
    assert result.category == "unknown"
    for model in (SimCard, SmsRecord, CallRecord):
        assert await count(store, model) == 0
    message = await fetch_one(store, Message, dev_id="gw-1")
    assert message.type_name == "unknown message(9999)"
    assert '"devId": "gw-1"' in message.raw_data


async def test_raw_logging_disabled(store, notifier):
    handler = MessageHandler(store, notifier, log_raw_messages=False)
    assert (await handler.handle_message(ev(devId="gw-1", type=100))).success
    assert (await handler.handle_message(ev(devId="gw-1", type=9999))).success
    assert await count(store, Message) == 0
    assert await count(store, Device) == 1


async def test_notifier_failure_does_not_fail_ingestion(store):
    class BrokenNotifier:
        def submit(self, event, data):
            raise RuntimeError("queue gone")

    handler = MessageHandler(store, BrokenNotifier())
    result = await handler.handle_message(ev(devId="gw-1", type=100, ip="1.2.3.4"))
    assert result.success
    assert await count(store, Device) == 1


async def test_concurrent_events_and_sweep_share_one_device(handler, store):
    events = [ev(devId="gw-1", type=998 if i % 2 else 100, ip="10.0.0.9") for i in range(50)]
    *results, swept = await asyncio.gather(*(handler.handle_message(e) for e in events), sweep(store, 300))
    assert all(r.success for r in results)
    assert swept == 0
    assert await count(store, Device, dev_id="gw-1") == 1
    assert await count(store, Message, dev_id="gw-1") == 50


async def test_out_of_range_slot_and_dbm_are_treated_as_missing(handler, store):
    result = await handler.handle_message(ev(devId="gw-1", type=204, slot=10**20))
    assert result.success
    assert await count(store, SimCard) == 0

    result = await handler.handle_message(ev(devId="gw-1", type=100, dbm=10**20))
    assert result.success
    assert (await fetch_one(store, Device, dev_id="gw-1")).last_dbm == 0


async def test_non_finite_call_end_gives_zero_duration(handler, store):
    result = await handler.handle_message(
        ev(devId="gw-1", type=603, slot=1, phNum="10086", telStartTs=1700000000, telEndTs=float("inf"))
    )
    assert result.success
    assert (await fetch_one(store, CallRecord, dev_id="gw-1")).duration == 0


async def test_type_beyond_integer_range_is_acknowledged_as_unknown(handler, store):
    result = await handler.handle_message(ev(devId="gw-1", type=10**20))
    assert result.success
    assert result.category == "unknown"
    assert await count(store, Device) == 0
