"""
Tests for src/utils/datetime_utils.py

Tests timezone conversion and the validity-window helpers.
"""

import pytest
from datetime import datetime, timedelta
import pytz
from src.utils.datetime_utils import (
    days_ago,
    get_local_tz,
    get_local_now,
    is_past,
    to_naive_local,
)


class TestGetLocalTz:
    """Tests for get_local_tz function."""

    def test_returns_timezone_object(self):
        tz = get_local_tz()
        assert isinstance(tz, pytz.BaseTzInfo)


class TestGetLocalNow:
    """Tests for get_local_now function."""

    def test_returns_naive_datetime(self):
        """Test that get_local_now returns naive datetime."""
        now = get_local_now()
        assert isinstance(now, datetime)
        assert now.tzinfo is None


class TestToNaiveLocal:
    """Tests for to_naive_local function."""

    def test_none_returns_none(self):
        assert to_naive_local(None) is None

    def test_naive_returned_unchanged(self):
        dt = datetime(2026, 5, 1, 12, 0)
        assert to_naive_local(dt) == dt

    def test_aware_converted_to_local(self):
        aware = pytz.utc.localize(datetime(2026, 5, 1, 12, 0))
        result = to_naive_local(aware)

        assert result.tzinfo is None
        assert result == aware.astimezone(get_local_tz()).replace(tzinfo=None)


class TestIsPast:

    def test_none_never_expires(self):
        assert is_past(None) is False

    def test_yesterday_is_past(self):
        assert is_past(get_local_now() - timedelta(days=1)) is True

    def test_tomorrow_is_not_past(self):
        assert is_past(get_local_now() + timedelta(days=1)) is False

    def test_aware_moment(self):
        assert is_past(datetime(2000, 1, 1, tzinfo=pytz.utc)) is True


class TestDaysAgo:

    def test_days_ago(self):
        moment = days_ago(30)
        delta = get_local_now() - moment

        assert moment.tzinfo is None
        assert timedelta(days=30) <= delta < timedelta(days=30, minutes=1)
