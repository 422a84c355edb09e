"""
Tests for liftsync MCP utility functions.
"""

import pytest

from liftsync_mcp.utils import (
    format_duration,
    generate_local_session_id,
    is_local_session_id,
    local_iso_now,
    parse_index,
    parse_iso,
    timestamp_of,
)


class TestTimestamps:
    def test_local_iso_now_keeps_offset(self):
        value = local_iso_now()
        assert not value.endswith("Z")
        assert parse_iso(value).utcoffset() is not None

    def test_parse_iso_accepts_z(self):
        assert parse_iso("2026-02-19T10:00:00Z").utcoffset().total_seconds() == 0

    def test_parse_iso_invalid(self):
        assert parse_iso("yesterday") is None
        assert parse_iso(None) is None

    def test_timestamp_of_compares_offsets(self):
        assert timestamp_of("2026-02-19T12:00:00+02:00") == timestamp_of("2026-02-19T10:00:00Z")
        assert timestamp_of("") == 0.0


class TestLocalSessionIds:
    def test_generated_ids_are_local_and_unique(self):
        first, second = generate_local_session_id(), generate_local_session_id()
        assert is_local_session_id(first)
        assert first != second
        assert first.split("_")[1].isdigit()

    def test_server_ids_are_not_local(self):
        assert not is_local_session_id("42")
        assert not is_local_session_id(None)


class TestParseIndex:
    def test_accepts_ints_and_digit_strings(self):
        assert parse_index(3, "setIndex") == 3
        assert parse_index("12", "setIndex") == 12

    @pytest.mark.parametrize("value", [True, 1.5, "1.5", "-1", -1, "abc", "١"])
    def test_rejects_invalid(self, value):
        with pytest.raises(ValueError):
            parse_index(value, "setIndex")

    def test_optional(self):
        assert parse_index(None, "setIndex", optional=True) is None
        with pytest.raises(ValueError, match="required"):
            parse_index(None, "setIndex")

    def test_upper_bound(self):
        with pytest.raises(ValueError, match="out of range"):
            parse_index(10_001, "setIndex")


class TestFormatDuration:
    def test_hours(self):
        assert format_duration(3661) == "1h01m01s"

    def test_minutes(self):
        assert format_duration(1530) == "25m30s"

    def test_seconds(self):
        assert format_duration(45) == "45s"

    def test_zero(self):
        assert format_duration(0) == "0s"
