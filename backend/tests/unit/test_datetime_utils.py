"""
Unit tests for datetime helpers.
"""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from utils.datetime_utils import (
    combine_date_time,
    day_end,
    day_start,
    format_datetime,
    format_rfc3339,
    parse_date_string,
    parse_rfc3339,
)

TAIPEI = ZoneInfo("Asia/Taipei")


def test_combine_date_time_is_aware():
    dt = combine_date_time(date(2026, 1, 5), "9:30", TAIPEI)
    assert dt == datetime(2026, 1, 5, 9, 30, tzinfo=TAIPEI)


def test_day_bounds():
    assert day_start(date(2026, 1, 5), timezone.utc) == datetime(2026, 1, 5, tzinfo=timezone.utc)
    assert day_end(date(2026, 1, 5), timezone.utc) == datetime(2026, 1, 6, tzinfo=timezone.utc)


class TestRfc3339:
    def test_utc_uses_z_suffix(self):
        assert format_rfc3339(datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)) == "2026-01-05T09:00:00Z"

    def test_offset_is_kept(self):
        dt = datetime(2026, 1, 5, 9, 0, tzinfo=timezone(timedelta(hours=8)))
        assert format_rfc3339(dt) == "2026-01-05T09:00:00+08:00"

    def test_naive_is_rejected(self):
        with pytest.raises(ValueError):
            format_rfc3339(datetime(2026, 1, 5, 9, 0))

    def test_parse(self):
        assert parse_rfc3339("2026-01-05T09:00:00Z") == datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)
        assert parse_rfc3339("2026-01-05T09:00:00+08:00").utcoffset() == timedelta(hours=8)

    def test_parse_invalid(self):
        with pytest.raises(ValueError):
            parse_rfc3339("not a date")


def test_format_datetime():
    assert format_datetime(datetime(2026, 1, 5, 9, 30)) == "Mon, Jan 05 2026 at 9:30 AM"
    assert format_datetime(datetime(2026, 1, 5, 0, 5)) == "Mon, Jan 05 2026 at 12:05 AM"
    assert format_datetime(datetime(2026, 1, 5, 15, 0)) == "Mon, Jan 05 2026 at 3:00 PM"


class TestParseDateString:
    def test_formats(self):
        assert parse_date_string("2026-01-05") == date(2026, 1, 5)
        assert parse_date_string("2026/1/5") == date(2026, 1, 5)

    @pytest.mark.parametrize("value", ["", "2026-13-01", "05-01", "tomorrow"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_date_string(value)
