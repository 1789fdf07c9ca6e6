"""Canonical timestamps: fixed UTC+8 wall clock rendered as YYYY-MM-DD HH:MM:SS."""
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any

logger = logging.getLogger(__name__)

CANONICAL_OFFSET_HOURS = 8
CANONICAL_FORMAT = "%Y-%m-%d %H:%M:%S"
# Epoch values below this are seconds, above it milliseconds.
EPOCH_MS_THRESHOLD = 10_000_000_000
# 9999-12-31 23:59:59 UTC, the last second a datetime can hold.
MAX_EPOCH_SECONDS = 253_402_300_799

_STRING_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y/%m/%d %H:%M:%S", "%Y-%m-%d %H:%M", "%Y/%m/%d %H:%M")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_canonical(wall: datetime) -> str:
    return wall.strftime(CANONICAL_FORMAT)


def now_canonical(now: datetime | None = None) -> str:
    """Current instant as a canonical string. ``now`` is a naive UTC datetime."""
    now = now or _utcnow()
    return format_canonical(now + timedelta(hours=CANONICAL_OFFSET_HOURS))


def canonical_before(seconds: float, now: datetime | None = None) -> str:
    """Canonical string for ``seconds`` before now."""
    now = now or _utcnow()
    return now_canonical(now - timedelta(seconds=seconds))


def _parse_epoch(value: float) -> datetime:
    if value >= EPOCH_MS_THRESHOLD:
        value = value / 1000
    return datetime(1970, 1, 1) + timedelta(seconds=value)


def _parse_string(text: str) -> tuple[datetime, bool]:
    """Return (naive wall clock, is_absolute). Absolute values are already UTC."""
    text = text.strip()
    if text.isdigit():
        return _parse_epoch(int(text)), False
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        parsed = None
        for fmt in _STRING_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
        if parsed is None:
            raise ValueError(f"unrecognized time: {text!r}")
    if parsed.tzinfo is not None:
        return parsed.astimezone(timezone.utc).replace(tzinfo=None), True
    return parsed, False


def normalize(raw_time: Any, source_offset_hours: float | None = 0, now: datetime | None = None) -> str:
    """
    Convert a gateway timestamp to the canonical UTC+8 string.

    The gateway reports its local wall clock (as epoch or string) for a SIM whose
    network is ``source_offset_hours`` east of UTC, so
    canonical = raw - offset + 8h. Strings carrying their own UTC offset are
    absolute and ignore ``source_offset_hours``. Anything unparseable becomes now.
    """
    offset = source_offset_hours or 0
    if raw_time is None or raw_time == "":
        return now_canonical(now)
    try:
        if isinstance(raw_time, bool):
            raise ValueError("boolean is not a time")
        if isinstance(raw_time, (int, float)):
            wall, absolute = _parse_epoch(raw_time), False
        elif isinstance(raw_time, str):
            wall, absolute = _parse_string(raw_time)
        else:
            raise ValueError(f"unsupported time type {type(raw_time).__name__}")
        if not absolute:
            wall -= timedelta(hours=offset)
        return format_canonical(wall + timedelta(hours=CANONICAL_OFFSET_HOURS))
    except (ValueError, OverflowError) as e:
        logger.warning("Unparseable time %r, using now: %s", raw_time, e)
        return now_canonical(now)


def epoch_seconds(raw_time: Any) -> float | None:
    """Epoch seconds from a numeric or all-digit value, else None."""
    if isinstance(raw_time, bool):
        return None
    if isinstance(raw_time, str) and raw_time.strip().isdigit():
        raw_time = int(raw_time.strip())
    if isinstance(raw_time, float) and not math.isfinite(raw_time):
        return None
    if isinstance(raw_time, (int, float)):
        if abs(raw_time) > MAX_EPOCH_SECONDS * 1000:
            return None
        return raw_time / 1000 if raw_time >= EPOCH_MS_THRESHOLD else float(raw_time)
    return None
