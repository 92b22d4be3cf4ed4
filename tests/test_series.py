"""Tests for beestats.telemetry.series."""

from beestats.telemetry.series import (
    BUFF_POINT_LIMIT,
    UserSeries,
    backpack_points,
    day_summary,
    shape_stats,
)


class TestBackpackPoints:
    def test_percent_uses_latest_capacity_at_or_before(self):
        pts = backpack_points(
            [(100, 50.0), (200, 50.0), (300, 150.0)],
            [(100, 200.0), (250, 100.0)],
        )
        assert pts == [
            {"t": 100, "v": 50.0, "percent": 25.0},
            {"t": 200, "v": 50.0, "percent": 25.0},
            {"t": 300, "v": 150.0, "percent": 100.0},
        ]

    def test_no_capacity_is_zero(self):
        assert backpack_points([(10, 40.0)], [(20, 100.0)]) == [{"t": 10, "v": 40.0, "percent": 0.0}]

    def test_zero_capacity_and_negative_value(self):
        assert backpack_points([(10, 40.0)], [(5, 0.0)])[0]["percent"] == 0.0
        assert backpack_points([(10, -5.0)], [(5, 100.0)])[0]["percent"] == 0.0

    def test_unsorted_capacity(self):
        pts = backpack_points([(30, 10.0)], [(20, 50.0), (10, 1000.0)])
        assert pts[0]["percent"] == 20.0


class TestShapeStats:
    def test_shape(self):
        series = UserSeries(
            honey=[(1, 10.0)],
            nectar={"comforting": [(1, 3.0)]},
            buffs={"haste": [(t, 1.0) for t in range(BUFF_POINT_LIMIT + 5)], "empty": []},
            tokens=[(1, "Haste"), (2, "Haste"), (3, "Focus")],
            honey_sources={"convert": [(1, 100.0), (2, 50.0)]},
            current_honey=42.0,
            username="Bee",
        )
        out = shape_stats(series)
        assert out["honey"] == [{"t": 1, "v": 10.0}]
        assert out["nectar"]["comforting"] == [{"t": 1, "v": 3.0}]
        assert out["nectar"]["satisfying"] == []
        assert len(out["buffs"]["haste"]) == BUFF_POINT_LIMIT
        assert out["buffs"]["haste"][-1]["t"] == BUFF_POINT_LIMIT + 4
        assert "empty" not in out["buffs"]
        assert out["tokenCounts"] == {"Haste": 2, "Focus": 1}
        assert out["honeySourcesTotals"] == {"convert": 150.0, "gather": 0, "token": 0, "other": 0}
        assert out["currentHoney"] == 42.0
        assert out["username"] == "Bee"


class TestDaySummary:
    def test_total_and_rate(self):
        start = 1704067200  # 2024-01-01T00:00:00Z
        out = day_summary([(start + 60, 5.0), (start + 120, 7.0), (start + 3 * 3600, 12.0)], start)
        assert out["summary"]["total_honey"] == 24.0
        assert out["summary"]["active_hours"] == 2
        assert out["summary"]["avg_hourly_rate"] == 12.0
        assert out["hourly"][0] == {"hour": 0, "honey": 12.0}
        assert out["hourly"][3] == {"hour": 3, "honey": 12.0}

    def test_empty_day(self):
        out = day_summary([], 0)
        assert out["summary"]["total_honey"] == 0
        assert out["summary"]["avg_hourly_rate"] == 0
        assert len(out["hourly"]) == 24
