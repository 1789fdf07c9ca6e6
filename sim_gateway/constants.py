"""Gateway event codes, categories and field aliases."""
from typing import Any, Mapping, NamedTuple


class EventClass(NamedTuple):
    category: str
    label: str


MESSAGE_TYPES: dict[int, EventClass] = {
    # network (100-102)
    100: EventClass("network", "WiFi connected"),
    101: EventClass("network", "Slot 1 connected"),
    102: EventClass("network", "Slot 2 connected"),
    # sim (202-209)
    202: EventClass("sim", "SIM registering on network"),
    203: EventClass("sim", "SIM ID acquired"),
    204: EventClass("sim", "SIM ready"),
    205: EventClass("sim", "SIM removed"),
    209: EventClass("sim", "SIM error"),
    # module (301)
    301: EventClass("module", "Modem module error"),
    # command ack (401-402)
    401: EventClass("command", "Command received"),
    402: EventClass("command", "Command processed"),
    # sms (501-502)
    501: EventClass("sms", "New SMS"),
    502: EventClass("sms", "SMS sent"),
    # call (601-642)
    601: EventClass("call", "Incoming call ringing"),
    602: EventClass("call", "Incoming call answered"),
    603: EventClass("call", "Incoming call hung up by caller"),
    620: EventClass("call", "Outgoing call dialing"),
    621: EventClass("call", "Outgoing call ringing"),
    622: EventClass("call", "Outgoing call answered"),
    623: EventClass("call", "Outgoing call hung up"),
    641: EventClass("call", "Local key press during call"),
    642: EventClass("call", "Remote key press during call"),
    # call control responses (681-689)
    681: EventClass("call_ctrl", "Dial succeeded"),
    682: EventClass("call_ctrl", "Dial failed"),
    684: EventClass("call_ctrl", "Answer succeeded"),
    685: EventClass("call_ctrl", "Answer failed"),
    687: EventClass("call_ctrl", "TTS playback succeeded"),
    688: EventClass("call_ctrl", "TTS playback failed"),
    689: EventClass("call_ctrl", "TTS playback finished"),
    # system
    998: EventClass("system", "PING heartbeat"),
}

UNKNOWN_CATEGORY = "unknown"


def classify(type: int) -> EventClass:
    """Return the category and label for an event code; never raises."""
    try:
        return MESSAGE_TYPES[type]
    except (KeyError, TypeError):
        return EventClass(UNKNOWN_CATEGORY, f"unknown message({type})")


class DeviceStatus:
    ONLINE = "online"
    OFFLINE = "offline"


class SimStatus:
    UNKNOWN = "unknown"
    REGISTERING = "registering"
    READY = "ready"
    REMOVED = "removed"
    ERROR = "error"


SIM_STATUS_BY_TYPE = {
    202: SimStatus.REGISTERING,
    203: SimStatus.READY,
    204: SimStatus.READY,
    205: SimStatus.REMOVED,
    209: SimStatus.ERROR,
}

HEARTBEAT_TYPE = 998
SMS_OUT_TYPE = 502

# Codes that produce a notification; everything else in the category is silent.
SIM_NOTIFY_TYPES = frozenset({204, 205, 209})
CALL_NOTIFY_TYPES = frozenset({601, 603, 623})

KNOWN_CHANNELS = ("wecom", "feishu", "smtp")

# Gateway firmware versions disagree on field names; first present wins.
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "phone": ("phNum", "phoneNum", "phone", "from", "number"),
    "content": ("smsBd", "content", "msg", "text"),
    "msisdn": ("msIsdn", "msisdn"),
    "iccid": ("iccId", "iccid"),
    "imsi": ("imsi",),
    "plmn": ("plmn",),
    "operator": ("operator", "opName"),
    "sms_time": ("smsTs", "time", "ts"),
    "call_start": ("telStartTs", "time", "ts"),
    "call_end": ("telEndTs",),
}


def resolve_field(data: Mapping[str, Any], field: str, default: Any = None) -> Any:
    """Return the value of the first alias of ``field`` present and non-empty in ``data``."""
    for key in FIELD_ALIASES[field]:
        value = data.get(key)
        if value is not None and value != "":
            return value
    return default
