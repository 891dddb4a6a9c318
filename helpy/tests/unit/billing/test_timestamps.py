"""Tests for epoch-second timestamp normalization."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from helpy.billing.timestamps import MAX_EPOCH_SECONDS, normalize_timestamp, timestamp_to_iso


def test_epoch_seconds_become_aware_utc_datetime() -> None:
    result = normalize_timestamp(1700000000)

    assert result == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
    assert result.tzinfo is timezone.utc


def test_timestamp_to_iso_formats_with_offset() -> None:
    assert timestamp_to_iso(1700000000) == "2023-11-14T22:13:20+00:00"


def test_numeric_strings_are_accepted() -> None:
    assert timestamp_to_iso(" 1700000000 ") == "2023-11-14T22:13:20+00:00"
    assert timestamp_to_iso(1700000000.0) == "2023-11-14T22:13:20+00:00"


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "",
        "not-a-number",
        0,
        -5,
        float("nan"),
        float("inf"),
        float("-inf"),
        "Infinity",
        MAX_EPOCH_SECONDS * 10,
        10**20,
        True,
        [1700000000],
        {"seconds": 1700000000},
    ],
)
def test_unusable_values_normalize_to_none(raw) -> None:
    assert normalize_timestamp(raw) is None
    assert timestamp_to_iso(raw) is None


def test_datetime_values_pass_through_as_utc() -> None:
    aware = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    naive = datetime(2024, 1, 2, 3, 4, 5)

    assert normalize_timestamp(aware) == aware
    assert normalize_timestamp(naive) == aware
    assert timestamp_to_iso(date(2024, 1, 2)) == "2024-01-02T00:00:00+00:00"


def test_non_numeric_strings_are_rejected() -> None:
    assert normalize_timestamp("1_700_000_000") is None
    assert normalize_timestamp("2023-11-14T22:13:20+00:00") is None
