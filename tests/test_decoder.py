import json

import pytest

from sim_gateway.crypto import AesConfig, aes_encrypt
from sim_gateway.errors import DecodeError, DecryptionError, ValidationError
from sim_gateway.services.decoder import decode, parse_json_body

KEY = b"abcdefghijklmnop"
IV = b"ponmlkjihgfedcba"
AES = AesConfig(enabled=True, key=KEY, iv=IV)
PLAIN = AesConfig(enabled=False)


def test_json_body_must_be_an_object():
    with pytest.raises(DecodeError):
        parse_json_body(b"[1, 2, 3]")
    with pytest.raises(DecodeError):
        parse_json_body(b"{not json")


def test_json_event_keeps_extra_fields():
    event = decode({"devId": "gw-1", "type": 100, "ip": "10.0.0.2"}, "json", PLAIN)
    assert event.dev_id == "gw-1"
    assert event.type == 100
    assert event.get("ip") == "10.0.0.2"
    assert event.as_dict()["devId"] == "gw-1"


def test_form_fields_are_coerced_to_ints():
    event = decode(
        {"devId": "gw-1", "type": "501", "slot": "2", "smsTs": "1700000000", "dbm": "", "smsBd": "007"},
        "form",
        PLAIN,
    )
    data = event.as_dict()
    assert event.type == 501
    assert data["slot"] == 2
    assert data["smsTs"] == 1700000000
    assert "dbm" not in data
    assert data["smsBd"] == "007"


def test_query_with_plain_json_in_p():
    p = json.dumps({"devId": "gw-9", "type": 998})
    event = decode({"p": p}, "query", PLAIN)
    assert (event.dev_id, event.type) == ("gw-9", 998)


def test_query_with_non_json_p_uses_raw_query():
    event = decode({"p": "x", "devId": "gw-9", "type": "998"}, "query", PLAIN)
    assert event.type == 998


def test_encrypted_whole_payload_round_trip():
    original = {"devId": "gw-2", "type": 601, "phNum": "10086", "slot": 1}
    token = aes_encrypt(json.dumps(original), KEY, IV)
    event = decode({"p": token}, "json", AES)
    assert event.as_dict() == original


def test_encrypted_query_per_field():
    payload = {"devId": aes_encrypt("gw-3", KEY, IV), "type": aes_encrypt("204", KEY, IV), "slot": "1"}
    event = decode(payload, "query", AES)
    assert event.dev_id == "gw-3"
    assert event.type == 204
    assert event.get("slot") == 1


def test_numeric_dev_id_becomes_string():
    payload = {"devId": aes_encrypt("860000000000001", KEY, IV), "type": aes_encrypt("998", KEY, IV)}
    event = decode(payload, "form", AES)
    assert event.dev_id == "860000000000001"


def test_bad_whole_payload_raises():
    with pytest.raises(DecryptionError):
        decode({"p": "AAAA"}, "json", AES)


@pytest.mark.parametrize(
    "payload",
    [
        {"type": 100},
        {"devId": "", "type": 100},
        {"devId": "gw-1"},
        {"devId": "gw-1", "type": "abc"},
        {"devId": "gw-1", "type": True},
    ],
)
def test_invalid_required_fields(payload):
    with pytest.raises(ValidationError):
        decode(payload, "json", PLAIN)
