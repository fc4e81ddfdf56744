"""Client for the remote analytics aggregation service."""
from __future__ import annotations

import asyncio
import enum
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Dict, List, Optional

import requests

from .data import normalise_id, to_decimal
from .models import (
    HOURS_PER_DAY,
    PeakHour,
    RevenuePoint,
    RevenueSeries,
    StationAggregate,
    peak_histogram,
    with_percentages,
)
from .window import Bucket, ReportFilter, TimeWindow

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
DEFAULT_FORECAST_MONTHS = 3

_WEEK_LABEL = re.compile(r"^week\s+(\d+)$", re.IGNORECASE)


class AggregationStatus(enum.Enum):
    OK = "ok"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"


@dataclass
class AggregationResult:
    """Outcome of one parallel fetch against the analytics service."""

    revenue: RevenueSeries | None = None
    usage: List[StationAggregate] | None = None
    peak_hours: List[PeakHour] | None = None
    forecast: List[str] | None = None

    @property
    def status(self) -> AggregationStatus:
        if self.revenue is None or not self.revenue.has_data():
            return AggregationStatus.UNAVAILABLE
        if self.usage is None or self.peak_hours is None or self.forecast is None:
            return AggregationStatus.DEGRADED
        return AggregationStatus.OK


@dataclass
class SyncResult:
    success: bool
    synced_count: int | None = None
    message: str | None = None


def _week_bucket(label: str, buckets: List[Bucket], window: TimeWindow) -> int | None:
    """Place a ``Week N`` label (day of year // 7 == N) onto a window bucket."""
    match = _WEEK_LABEL.match(label.strip())
    if not match:
        return None
    group = int(match.group(1))
    for year in range(window.start.year, window.end.year + 1):
        first = date(year, 1, 1)
        for day_of_year in range(max(7 * group, 1), 7 * group + 7):
            day = first + timedelta(days=day_of_year - 1)
            if day.year != year:
                break
            ts = datetime.combine(day, time.min)
            for i, bucket in enumerate(buckets):
                if bucket.contains(ts):
                    return i
    return None


def _aligned_points(raw_points: List[Dict[str, Any]], window: TimeWindow) -> List[RevenuePoint]:
    """Map remote revenue points onto every bucket of ``window``.

    Raises ``ValueError`` when a point cannot be placed, so the caller
    never sees a gapped or reordered series.
    """
    points = [
        RevenuePoint(
            time_label=str(p.get("timeLabel") or ""),
            revenue=to_decimal(p.get("revenue")),
            sessions=int(p.get("sessions") or 0),
            energy_kwh=to_decimal(p.get("energyKwh")),
        )
        for p in raw_points
        if isinstance(p, dict)
    ]
    if not points:
        return points

    buckets = window.buckets()
    index: Dict[str, int] = {}
    for i, bucket in enumerate(buckets):
        index.setdefault(bucket.key, i)
        index.setdefault(bucket.label, i)

    aligned = [RevenuePoint(time_label=b.label) for b in buckets]
    unplaced: List[str] = []
    for point in points:
        i = index.get(point.time_label)
        if i is None:
            i = _week_bucket(point.time_label, buckets, window)
        if i is None:
            unplaced.append(point.time_label)
            continue
        target = aligned[i]
        target.revenue += point.revenue
        target.sessions += point.sessions
        target.energy_kwh += point.energy_kwh
    if unplaced:
        raise ValueError(f"Remote revenue labels outside window: {', '.join(unplaced)}")
    return aligned


class AnalyticsClient:
    """Fetch revenue, usage, peak-hour and forecast aggregates."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        token: str | None = None,
        session: requests.Session | None = None,
        forecast_months: int = DEFAULT_FORECAST_MONTHS,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.forecast_months = forecast_months
        self.session = session or requests.Session()
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/{path}"
        logger.debug("GET %s params=%s", url, params)
        resp = self.session.get(url, params=params, timeout=self.timeout)
        resp.raise_for_status()
        payload = resp.json()
        if not isinstance(payload, dict):
            raise ValueError(f"Unexpected {path} payload: {type(payload).__name__}")
        return payload

    def get_revenue(self, report_filter: ReportFilter, window: TimeWindow) -> RevenueSeries:
        params = {**report_filter.scope_params(), **window.params(), "granularity": window.granularity}
        payload = self._get("revenue", params)
        return RevenueSeries(_aligned_points(payload.get("dataPoints") or [], window))

    def get_usage(self, report_filter: ReportFilter, window: TimeWindow) -> List[StationAggregate]:
        payload = self._get("usage", {**report_filter.scope_params(), **window.params()})
        stations: List[StationAggregate] = []
        for it in payload.get("topStations") or []:
            if not isinstance(it, dict):
                continue
            station_id = normalise_id(it.get("stationId"))
            stations.append(
                StationAggregate(
                    station_id=station_id,
                    name=str(it.get("stationName") or f"Station {station_id}"),
                    revenue=to_decimal(it.get("revenue")),
                    sessions=int(it.get("sessions") or 0),
                    energy_kwh=to_decimal(it.get("energyKwh")),
                )
            )
        stations.sort(key=lambda s: (s.revenue, s.sessions), reverse=True)
        return with_percentages(stations)

    def get_peak_hours(self, report_filter: ReportFilter, window: TimeWindow) -> List[PeakHour]:
        payload = self._get("peak-hours", {**report_filter.scope_params(), **window.params()})
        counts = [0] * HOURS_PER_DAY
        for position, it in enumerate(payload.get("hourlyData") or []):
            if not isinstance(it, dict):
                continue
            hour = it.get("hour")
            if hour is None:
                label = str(it.get("hourLabel") or "")
                hour = int(label.split(":", 1)[0]) if label[:2].isdigit() else position
            hour = int(hour)
            if 0 <= hour < HOURS_PER_DAY:
                counts[hour] += int(it.get("sessions") or 0)
        return peak_histogram(counts)

    def get_forecast(self, report_filter: ReportFilter) -> List[str]:
        params = {**report_filter.scope_params(), "horizonMonths": self.forecast_months}
        payload = self._get("forecast", params)
        messages: List[str] = []
        for it in payload.get("suggestions") or []:
            if isinstance(it, dict):
                text = it.get("message") or it.get("description")
            else:
                text = it
            if text:
                messages.append(str(text))
        return messages

    def trigger_sync(self) -> SyncResult:
        """Ask the analytics service to pull fresh data from charging records."""
        url = f"{self.base_url}/sync/trigger"
        logger.info("Triggering analytics data sync")
        resp = self.session.post(url, timeout=self.timeout)
        resp.raise_for_status()
        payload = resp.json() or {}
        count = payload.get("syncedCount")
        return SyncResult(
            success=bool(payload.get("success")),
            synced_count=int(count) if count is not None else None,
            message=payload.get("message"),
        )

    async def _guarded(self, name: str, func: Callable[..., Any], *args: Any) -> Optional[Any]:
        try:
            return await asyncio.to_thread(func, *args)
        except Exception as exc:
            logger.warning("Analytics %s request failed: %s", name, exc)
            return None

    async def fetch_all(self, report_filter: ReportFilter, window: TimeWindow) -> AggregationResult:
        """Fetch the four aggregates concurrently; failed slices become ``None``."""
        revenue, usage, peak_hours, forecast = await asyncio.gather(
            self._guarded("revenue", self.get_revenue, report_filter, window),
            self._guarded("usage", self.get_usage, report_filter, window),
            self._guarded("peak-hours", self.get_peak_hours, report_filter, window),
            self._guarded("forecast", self.get_forecast, report_filter),
        )
        if revenue is not None and usage is not None:
            # shares are of total revenue, not of the listed top stations
            with_percentages(usage, revenue.total_revenue)
        result = AggregationResult(revenue, usage, peak_hours, forecast)
        logger.debug("Remote aggregation status: %s", result.status.value)
        return result
