import asyncio
from decimal import Decimal

import pytest
import requests

from evcharge_analytics.client import AggregationStatus, AnalyticsClient
from evcharge_analytics.window import ReportFilter

from conftest import FakeResponse, FakeSession

REVENUE = {
    "dataPoints": [
        {"timeLabel": "2025-03-14", "revenue": 80000, "sessions": 2, "energyKwh": 30.5},
        {"timeLabel": "2025-03-15", "revenue": 0, "sessions": 1, "energyKwh": 5},
    ],
    "totalRevenue": 80000,
    "totalSessions": 3,
}
USAGE = {
    "topStations": [
        {"stationId": 2, "stationName": "Harbour Point", "revenue": 20000, "sessions": 1, "energyKwh": 5},
        {"stationId": 1, "stationName": "Central Plaza", "revenue": 60000, "sessions": 2, "energyKwh": 30.5},
    ]
}
PEAK = {"hourlyData": [{"hour": 9, "hourLabel": "09:00", "sessions": 2}, {"hourLabel": "18:00", "sessions": 1}]}
FORECAST = {"suggestions": [{"message": "Add a charger at station 1"}, {"description": "Region North grows"}]}


def _client(routes):
    session = FakeSession(routes)
    return AnalyticsClient("http://analytics.test/api/analytics/", session=session), session


def _all_routes():
    return {"/revenue": REVENUE, "/usage": USAGE, "/peak-hours": PEAK, "/forecast": FORECAST}


def test_fetch_all_ok(month_window):
    client, session = _client(_all_routes())
    result = asyncio.run(client.fetch_all(ReportFilter(station_id=1), month_window))

    assert result.status is AggregationStatus.OK
    # remote points are aligned onto the 30 daily buckets
    assert len(result.revenue.points) == 30
    assert result.revenue.points[28].revenue == Decimal("80000")
    assert result.revenue.points[29].sessions == 1
    assert result.revenue.total_revenue == Decimal("80000")

    assert [s.station_id for s in result.usage] == [1, 2]
    assert result.usage[0].percentage_of_total == Decimal(75)
    assert result.peak_hours[9].sessions == 2
    assert result.peak_hours[18].sessions == 1
    assert result.forecast == ["Add a charger at station 1", "Region North grows"]

    revenue_call = next(c for c in session.calls if c[1].endswith("/revenue"))
    assert revenue_call[1] == "http://analytics.test/api/analytics/revenue"
    assert revenue_call[2] == {
        "stationId": 1,
        "from": "2025-02-14T00:00:00",
        "to": "2025-03-15T23:59:59",
        "granularity": "day",
    }
    forecast_call = next(c for c in session.calls if c[1].endswith("/forecast"))
    assert forecast_call[2] == {"stationId": 1, "horizonMonths": 3}


def test_partial_failure_degrades(month_window):
    routes = _all_routes()
    routes["/forecast"] = FakeResponse({}, status_code=500)
    routes["/usage"] = requests.Timeout("read timed out")
    client, _ = _client(routes)
    result = asyncio.run(client.fetch_all(ReportFilter(), month_window))
    assert result.status is AggregationStatus.DEGRADED
    assert result.revenue is not None
    assert result.usage is None
    assert result.forecast is None
    assert result.peak_hours is not None


def test_revenue_failure_is_unavailable(month_window):
    routes = _all_routes()
    routes["/revenue"] = requests.ConnectionError("refused")
    client, _ = _client(routes)
    result = asyncio.run(client.fetch_all(ReportFilter(), month_window))
    assert result.status is AggregationStatus.UNAVAILABLE
    assert result.usage is not None


def test_empty_revenue_is_unavailable(month_window):
    routes = _all_routes()
    routes["/revenue"] = {"dataPoints": [], "totalRevenue": 0}
    client, _ = _client(routes)
    result = asyncio.run(client.fetch_all(ReportFilter(), month_window))
    assert result.status is AggregationStatus.UNAVAILABLE


def test_week_labels_land_on_quarter_buckets(quarter_window):
    routes = _all_routes()
    routes["/revenue"] = {
        "dataPoints": [
            {"timeLabel": "Week 10", "revenue": 50000, "sessions": 2},
            {"timeLabel": "Week 2", "revenue": 30000, "sessions": 1},
        ],
        "totalRevenue": 80000,
    }
    client, _ = _client(routes)
    series = client.get_revenue(ReportFilter(range_keyword="quarter"), quarter_window)

    assert [p.time_label for p in series.points] == [b.label for b in quarter_window.buckets()]
    assert len(series.points) == 13
    # day 70 of 2025 is 11 March, inside the week starting 10 March
    assert series.points[12].revenue == Decimal("50000")
    # day 14 of 2025 is 14 January, inside the week starting 13 January
    assert series.points[4].revenue == Decimal("30000")
    assert series.total_revenue == Decimal("80000")


def test_unplaceable_labels_make_revenue_unavailable(quarter_window):
    routes = _all_routes()
    routes["/revenue"] = {"dataPoints": [{"timeLabel": "Week 40", "revenue": 5, "sessions": 1}]}
    client, _ = _client(routes)

    with pytest.raises(ValueError):
        client.get_revenue(ReportFilter(), quarter_window)
    result = asyncio.run(client.fetch_all(ReportFilter(), quarter_window))
    assert result.status is AggregationStatus.UNAVAILABLE


def test_station_shares_use_revenue_total(month_window):
    routes = _all_routes()
    routes["/revenue"] = {
        "dataPoints": [{"timeLabel": "2025-03-14", "revenue": 100, "sessions": 10}],
        "totalRevenue": 100,
    }
    # the service lists at most ten stations
    routes["/usage"] = {
        "topStations": [{"stationId": 1, "revenue": 25, "sessions": 3}]
        + [{"stationId": i, "revenue": 5, "sessions": 1} for i in range(2, 11)]
    }
    client, _ = _client(routes)
    result = asyncio.run(client.fetch_all(ReportFilter(), month_window))

    assert result.usage[0].station_id == 1
    assert result.usage[0].percentage_of_total == Decimal(25)
    assert result.usage[1].percentage_of_total == Decimal(5)



def test_trigger_sync():
    client, session = _client({"/sync/trigger": {"success": True, "syncedCount": 12}})
    result = client.trigger_sync()
    assert result.success
    assert result.synced_count == 12
    assert session.calls[0][0] == "POST"


def test_token_is_sent():
    session = FakeSession()
    AnalyticsClient("http://analytics.test", session=session, token="abc")
    assert session.headers["Authorization"] == "Bearer abc"
