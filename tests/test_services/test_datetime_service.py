"""Tests for datetime parsing service."""

from datetime import datetime, timezone

import pytest

from objcatalog.models.catalog import EPOCH
from objcatalog.services.datetime_service import format_iso, now_utc, parse_datetime


class TestDatetimeParsing:
    def test_parse_full_format(self) -> None:
        result = parse_datetime("2026-02-02T22:21:29.975359+00:00")
        assert result.year == 2026
        assert result.month == 2
        assert result.day == 2
        assert result.hour == 22
        assert result.minute == 21

    def test_parse_date_only(self) -> None:
        result = parse_datetime("2026-02-02")
        assert (result.year, result.month, result.day) == (2026, 2, 2)
        assert result.hour == 0
        assert result.tzinfo is not None

    def test_parse_datetime_object(self) -> None:
        dt = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert parse_datetime(dt) == dt

    def test_parse_datetime_naive_adds_tz(self) -> None:
        result = parse_datetime(datetime(2026, 1, 1, 12, 0), default_tz="UTC")
        assert result.tzinfo is not None

    def test_none_is_epoch(self) -> None:
        assert parse_datetime(None) == EPOCH

    def test_garbage_raises_value_error(self) -> None:
        with pytest.raises(ValueError, match="Invalid datetime"):
            parse_datetime("not a timestamp")


class TestFormatting:
    def test_format_iso(self) -> None:
        dt = datetime(2026, 2, 2, 22, 21, 29, tzinfo=timezone.utc)
        assert format_iso(dt) == "2026-02-02T22:21:29+00:00"

    def test_format_naive_treated_as_utc(self) -> None:
        assert format_iso(datetime(2026, 2, 2, 8, 0)).endswith("+00:00")

    def test_now_utc(self) -> None:
        assert now_utc().tzinfo is not None
