from datetime import datetime

import pytest

from sim_gateway.services.timeutil import canonical_before, epoch_seconds, normalize, now_canonical

NOW = datetime(2024, 1, 1, 0, 0, 0)  # naive UTC


def test_epoch_seconds_is_shifted_to_utc_plus_8():
    # 1700000000 is 2023-11-14 22:13:20 UTC
    assert normalize(1700000000, 0) == "2023-11-15 06:13:20"


def test_epoch_milliseconds():
    assert normalize(1700000000000, 0) == "2023-11-15 06:13:20"
    assert normalize("1700000000000", 0) == "2023-11-15 06:13:20"


def test_source_offset_matching_target_is_unchanged():
    assert normalize(1700000000, 8) == "2023-11-14 22:13:20"


def test_negative_source_offset():
    # 22:13:20 wall clock at UTC-5 is 03:13:20 UTC next day, 11:13:20 at UTC+8
    assert normalize(1700000000, -5) == "2023-11-15 11:13:20"


def test_fractional_offset():
    assert normalize(1700000000, 5.5) == "2023-11-15 00:43:20"


def test_naive_string_uses_source_offset():
    assert normalize("2023-11-14 22:13:20", 0) == "2023-11-15 06:13:20"
    assert normalize("2023/11/14 22:13:20", 9) == "2023-11-14 21:13:20"


def test_string_with_own_offset_ignores_source_offset():
    assert normalize("2023-11-14T22:13:20Z", 3) == "2023-11-15 06:13:20"
    assert normalize("2023-11-15T06:13:20+08:00", -7) == "2023-11-15 06:13:20"


@pytest.mark.parametrize("raw", [None, "", "yesterday", [1, 2], True])
def test_missing_or_unparseable_falls_back_to_now(raw):
    assert normalize(raw, 0, now=NOW) == "2024-01-01 08:00:00"


def test_now_and_threshold():
    assert now_canonical(NOW) == "2024-01-01 08:00:00"
    assert canonical_before(300, NOW) == "2024-01-01 07:55:00"


def test_epoch_seconds_helper():
    assert epoch_seconds(1700000000) == 1700000000
    assert epoch_seconds(1700000000500) == 1700000000.5
    assert epoch_seconds("1700000000") == 1700000000
    assert epoch_seconds("2023-11-14") is None
    assert epoch_seconds(None) is None


@pytest.mark.parametrize("raw", [float("inf"), float("-inf"), float("nan"), 10**400, -(10**400)])
def test_epoch_seconds_rejects_non_finite_and_huge_values(raw):
    assert epoch_seconds(raw) is None


def test_normalize_falls_back_to_now_for_infinite_epoch():
    now = datetime(2024, 1, 1, 0, 0, 0)
    assert normalize(float("inf"), 0, now=now) == "2024-01-01 08:00:00"
