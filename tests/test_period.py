"""Tests for beestats.telemetry.period."""

import pytest

from beestats.telemetry.period import (
    DEFAULT_PERIOD_SEC,
    MAX_PERIOD_SEC,
    cutoff_for,
    period_seconds,
)


class TestPeriodSeconds:
    @pytest.mark.parametrize(
        "period,expected",
        [
            ("30s", 30),
            ("15m", 900),
            ("1h", 3600),
            ("24h", 86400),
            ("7d", 7 * 86400),
            ("30d", MAX_PERIOD_SEC),
        ],
    )
    def test_units(self, period, expected):
        assert period_seconds(period) == expected

    @pytest.mark.parametrize("period", ["31d", "1000h", "99999999d"])
    def test_clamped_to_thirty_days(self, period):
        assert period_seconds(period) == MAX_PERIOD_SEC

    @pytest.mark.parametrize("period", [None, "", "h", "24", "1w", "-1h", "1.5h", " 1h", "1h ", "1h\n", "0h", "1H"])
    def test_malformed_defaults_to_a_day(self, period):
        assert period_seconds(period) == DEFAULT_PERIOD_SEC

    def test_non_string_defaults(self):
        assert period_seconds(3600) == DEFAULT_PERIOD_SEC


class TestCutoff:
    def test_cutoff_subtracts_duration(self):
        assert cutoff_for("1h", now=10_000) == 10_000 - 3600

    def test_cutoff_default(self):
        assert cutoff_for(None, now=200_000) == 200_000 - 86400
