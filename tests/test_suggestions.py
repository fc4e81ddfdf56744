from decimal import Decimal

from evcharge_analytics import suggestions
from evcharge_analytics.models import (
    RevenuePoint,
    RevenueSeries,
    StationAggregate,
    peak_histogram,
    with_percentages,
)
from evcharge_analytics.rules import SuggestionRules


def _series(revenue: int = 1_000_000, sessions: int = 10) -> RevenueSeries:
    return RevenueSeries([RevenuePoint("01/03", Decimal(revenue), sessions, Decimal(50))])


def _stations(*revenues):
    return with_percentages(
        [
            StationAggregate(station_id=name, name=name, revenue=Decimal(revenue), sessions=1)
            for name, revenue in revenues
        ]
    )


def _flat_hours():
    return peak_histogram([0] * 24)


def test_station_share_above_threshold_fires():
    stations = _stations(("A", 310_000), ("B", 690_000))
    result = suggestions.derive(_series(), stations, _flat_hours(), {"A": "X", "B": "X"},
                                SuggestionRules(region_share_pct=100))
    assert len(result) == 1
    assert result[0].startswith("A generates 31.0% of total revenue")


def test_station_share_below_threshold_is_quiet():
    stations = _stations(("A", 290_000), ("B", 290_000), ("C", 210_000), ("D", 210_000))
    regions = {"A": "R1", "B": "R2", "C": "R3", "D": "R4"}
    result = suggestions.derive(_series(), stations, _flat_hours(), regions)
    assert result == [suggestions.STABLE_MESSAGE]


def test_peak_hour_concentration():
    counts = [0] * 24
    counts[8], counts[18], counts[19], counts[12] = 5, 9, 5, 1
    stations = _stations(("A", 250_000), ("B", 250_000), ("C", 250_000), ("D", 250_000))
    regions = {"A": "R1", "B": "R2", "C": "R3", "D": "R4"}
    result = suggestions.derive(_series(), stations, peak_histogram(counts), regions)
    assert len(result) == 1
    assert "18:00, 08:00, 19:00" in result[0]
    assert "95.0%" in result[0]


def test_region_concentration():
    stations = _stations(("A", 250_000), ("B", 250_000), ("C", 250_000), ("D", 250_000))
    regions = {"A": "North", "B": "North"}
    result = suggestions.derive(_series(), stations, _flat_hours(), regions)
    assert result == [
        "Region North accounts for 50.0% of revenue; consider expanding the network there."
    ]


def test_heuristics_are_independent():
    counts = [0] * 24
    counts[17] = 4
    stations = _stations(("A", 600_000), ("B", 400_000))
    result = suggestions.derive(_series(), stations, peak_histogram(counts), {"A": "North"})
    assert len(result) == 3
    assert result[0].startswith("A generates")
    assert result[1].startswith("Peak hours 17:00")
    assert result[2].startswith("Region North")


def test_no_revenue_data_short_circuits():
    empty = RevenueSeries([RevenuePoint("01/03"), RevenuePoint("02/03")])
    stations = _stations(("A", 900_000), ("B", 100_000))
    assert suggestions.derive(empty, stations, _flat_hours(), {}) == [suggestions.NO_DATA_MESSAGE]
    assert suggestions.derive(RevenueSeries(), [], [], {}) == [suggestions.NO_DATA_MESSAGE]


def test_thresholds_are_configurable():
    stations = _stations(("A", 310_000), ("B", 690_000))
    rules = SuggestionRules(station_share_pct=35, region_share_pct=100)
    result = suggestions.derive(_series(), stations, _flat_hours(), {}, rules)
    assert result == [suggestions.STABLE_MESSAGE]


def test_shares_are_of_total_revenue_not_listed_stations():
    # ten listed stations carry 70 of a period total of 100
    stations = _stations(("A", 25), *((f"S{i}", 5) for i in range(9)))
    regions = {station.station_id: f"R{i}" for i, station in enumerate(stations)}
    result = suggestions.derive(_series(revenue=100), stations, _flat_hours(), regions)
    assert result == [suggestions.STABLE_MESSAGE]
