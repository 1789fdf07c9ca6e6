"""Transport decoder: JSON body, form body or query string -> TelemetryEvent."""
import json
import logging
from typing import Any, Literal, Mapping

from pydantic import ValidationError as PydanticValidationError

from sim_gateway.crypto import AesConfig, decrypt_payload
from sim_gateway.errors import DecodeError, ValidationError
from sim_gateway.schemas import TelemetryEvent

logger = logging.getLogger(__name__)

Source = Literal["json", "form", "query"]

# Form and query transports deliver everything as text.
NUMERIC_FIELDS = ("type", "slot", "dbm", "smsTs", "telStartTs", "telEndTs")


def parse_json_body(body: bytes) -> dict[str, Any]:
    try:
        data = json.loads(body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DecodeError(f"invalid JSON body: {e}") from e
    if not isinstance(data, dict):
        raise DecodeError("JSON body must be an object")
    return data


def _coerce_numeric(data: dict[str, Any]) -> dict[str, Any]:
    for name in NUMERIC_FIELDS:
        value = data.get(name)
        if isinstance(value, str):
            value = value.strip()
            if value.isdigit():
                data[name] = int(value)
            elif value == "" and name != "type":
                data.pop(name)
    return data


def _plain_query_p(data: dict[str, Any]) -> dict[str, Any]:
    """GET with unencrypted JSON in ``p``; fall back to the raw query if it is not JSON."""
    try:
        decoded = json.loads(data["p"])
    except (json.JSONDecodeError, TypeError):
        return data
    return decoded if isinstance(decoded, dict) else data


def decode(payload: Mapping[str, Any], source: Source, aes: AesConfig) -> TelemetryEvent:
    """
    Normalize one inbound payload into a validated event.

    Raises DecodeError, DecryptionError (whole-payload mode) or ValidationError.
    """
    data = dict(payload)
    if source == "query" and not aes.enabled and isinstance(data.get("p"), str):
        data = _plain_query_p(data)
    data = decrypt_payload(data, aes)
    if source in ("form", "query"):
        data = _coerce_numeric(data)

    try:
        return TelemetryEvent.model_validate(data)
    except PydanticValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        logger.warning("Rejected %s event (%s): %s", source, fields, data)
        raise ValidationError(f"invalid event fields: {fields}") from e
