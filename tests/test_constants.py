import pytest

from sim_gateway.constants import classify, resolve_field


@pytest.mark.parametrize(
    "code, category",
    [
        (100, "network"),
        (102, "network"),
        (202, "sim"),
        (209, "sim"),
        (301, "module"),
        (401, "command"),
        (502, "sms"),
        (601, "call"),
        (642, "call"),
        (681, "call_ctrl"),
        (689, "call_ctrl"),
        (998, "system"),
    ],
)
def test_known_codes(code, category):
    assert classify(code).category == category


@pytest.mark.parametrize("code", [9999, 0, -1, 206, "abc", None])
def test_unknown_codes_never_raise(code):
    info = classify(code)
    assert info.category == "unknown"
    assert info.label == f"unknown message({code})"


def test_resolve_field_first_present_wins():
    data = {"phoneNum": "", "phNum": None, "phone": "123", "from": "456"}
    assert resolve_field(data, "phone") == "123"
    assert resolve_field({"phNum": "1", "phone": "2"}, "phone") == "1"
    assert resolve_field({}, "content", "") == ""
