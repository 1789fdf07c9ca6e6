"""SQLAlchemy models for devices, SIM cards, event logs and push channels."""
from typing import Any

from sqlalchemy import JSON, Boolean, Float, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from sim_gateway.constants import DeviceStatus, SimStatus
from sim_gateway.db import Base
from sim_gateway.services.timeutil import now_canonical


class Device(Base):
    __tablename__ = "devices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    dev_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    hw_ver: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    last_ip: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    last_ssid: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    last_dbm: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=DeviceStatus.OFFLINE, index=True)
    last_seen_at: Mapped[str | None] = mapped_column(String(19), nullable=True)
    created_at: Mapped[str] = mapped_column(String(19), nullable=False, default=now_canonical)
    updated_at: Mapped[str] = mapped_column(String(19), nullable=False, default=now_canonical, onupdate=now_canonical)


class SimCard(Base):
    __tablename__ = "sim_cards"
    __table_args__ = (UniqueConstraint("dev_id", "slot"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    dev_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    slot: Mapped[int] = mapped_column(Integer, nullable=False)
    iccid: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    imsi: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    msisdn: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    operator: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    plmn: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    dbm: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=SimStatus.UNKNOWN)
    # Hours east of UTC of the SIM's network clock; set by the operator.
    timezone: Mapped[float | None] = mapped_column(Float, nullable=True)
    updated_at: Mapped[str] = mapped_column(String(19), nullable=False, default=now_canonical, onupdate=now_canonical)


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    dev_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    type: Mapped[int] = mapped_column(Integer, nullable=False)
    type_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    raw_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[str] = mapped_column(String(19), nullable=False, default=now_canonical, index=True)


class SmsRecord(Base):
    __tablename__ = "sms_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    dev_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    slot: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    msisdn: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    phone_num: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    sms_time: Mapped[str | None] = mapped_column(String(19), nullable=True)
    direction: Mapped[str] = mapped_column(String(8), nullable=False, default="in")
    created_at: Mapped[str] = mapped_column(String(19), nullable=False, default=now_canonical)


class CallRecord(Base):
    __tablename__ = "call_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    dev_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    slot: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    msisdn: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    phone_num: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    msg_type: Mapped[int] = mapped_column(Integer, nullable=False)
    call_type: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    start_time: Mapped[str | None] = mapped_column(String(19), nullable=True)
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[str] = mapped_column(String(19), nullable=False, default=now_canonical)


class PushConfig(Base):
    __tablename__ = "push_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    channel: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    events: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    updated_at: Mapped[str] = mapped_column(String(19), nullable=False, default=now_canonical, onupdate=now_canonical)
