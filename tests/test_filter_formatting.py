"""Tests for active filter chip labels."""

from datetime import datetime, timezone

from src.discover_filters.formatting import (
    format_compact_number,
    format_enum,
    format_growth,
    format_percent,
    format_range,
    format_timestamp,
)
from src.discover_filters.slots import GrowthFilter, NumericRange


class TestFormatting:

    def test_compact_numbers(self):
        assert format_compact_number(950) == "950"
        assert format_compact_number(1500) == "1.5K"
        assert format_compact_number(10000) == "10K"
        assert format_compact_number(2_000_000) == "2M"
        assert format_compact_number(None) == ""

    def test_ranges(self):
        assert format_range(NumericRange(1000, 10000)) == "1K to 10K"
        assert format_range(NumericRange(min=1000)) == "1K+"
        assert format_range(NumericRange(max=500)) == "up to 500"

    def test_percent(self):
        assert format_percent(3.5) == "3.5%"
        assert format_percent(10.0) == "10%"

    def test_growth(self):
        assert format_growth(GrowthFilter(interval=3)) == "> 5% in 3 months"
        assert format_growth(GrowthFilter(interval=1, operator="LTE", percentage_value=2)) == "<= 2% in 1 month"

    def test_enum(self):
        assert format_enum("FEMALE") == "Female"

    def test_timestamp(self):
        now = datetime(2024, 3, 31, tzinfo=timezone.utc)
        assert format_timestamp("2024-03-01T00:00:00Z", now=now) == "Within 30 days"
        assert format_timestamp("soon") == "soon"
