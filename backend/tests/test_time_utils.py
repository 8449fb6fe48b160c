"""
Timestamp helper tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from pos_engine.time_utils import parse_iso_datetime, to_utc_z, utcnow


@pytest.mark.parametrize("raw,expected", [
    ("2026-03-01T08:30:00Z", datetime(2026, 3, 1, 8, 30)),
    ("2026-03-01T15:30:00+07:00", datetime(2026, 3, 1, 8, 30)),
    ("2026-03-01T08:30", datetime(2026, 3, 1, 8, 30)),
    ("  ", None),
    (None, None),
])
def test_parse_iso_datetime_normalizes_to_utc(raw, expected):
    assert parse_iso_datetime(raw) == expected


def test_parse_iso_datetime_rejects_garbage():
    with pytest.raises(ValueError):
        parse_iso_datetime("next tuesday")


def test_to_utc_z_drops_microseconds():
    assert to_utc_z(datetime(2026, 3, 1, 8, 30, 5, 999)) == "2026-03-01T08:30:05Z"


def test_to_utc_z_converts_aware_values():
    aware = datetime(2026, 3, 1, 15, 30, tzinfo=timezone(timedelta(hours=7)))
    assert to_utc_z(aware) == "2026-03-01T08:30:00Z"
    assert to_utc_z(None) is None


def test_utcnow_is_naive():
    assert utcnow().tzinfo is None
