"""Pydantic schemas for inbound events and API request/response."""
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TelemetryEvent(BaseModel):
    """One decoded gateway event; unknown fields are kept as extras."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    dev_id: str = Field(..., alias="devId", min_length=1)
    type: int

    @field_validator("dev_id", mode="before")
    @classmethod
    def coerce_dev_id(cls, v: Any) -> Any:
        # Per-field decryption turns all-digit ids into ints.
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("type", mode="before")
    @classmethod
    def check_type(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError("type must be an integer")
        if isinstance(v, str):
            v = v.strip()
            if not v.lstrip("-").isdigit():
                raise ValueError("type must be an integer")
            return int(v)
        return v

    def as_dict(self) -> dict[str, Any]:
        """Flat key/value view using the gateway's field names."""
        return self.model_dump(by_alias=True)


class PushResponse(BaseModel):
    code: int = 0
    message: str = "OK"


class DeviceResponse(BaseModel):
    id: int
    dev_id: str
    name: str
    hw_ver: str
    last_ip: str
    last_ssid: str
    last_dbm: int
    status: str
    last_seen_at: str | None
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}


class SimConfigUpdate(BaseModel):
    slot: int = Field(..., ge=1)
    timezone: float | None = Field(None, ge=-12, le=14)


class PushConfigUpdate(BaseModel):
    enabled: bool = False
    config: dict[str, Any] = Field(default_factory=dict)
    events: list[Literal["device_status", "sim", "sms", "call", "system"]] = Field(default_factory=list)


class PushConfigResponse(BaseModel):
    channel: str
    enabled: bool
    config: dict[str, Any]
    events: list[str]
    updated_at: str

    model_config = {"from_attributes": True}
