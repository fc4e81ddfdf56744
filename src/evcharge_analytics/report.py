"""Report view model and the refresh cycle that builds it."""
from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List

from . import fallback
from .config import Settings
from .client import AggregationResult, AggregationStatus, AnalyticsClient, SyncResult
from .data import DataSource, Station, build_region_map
from .models import (
    PeakHour,
    RevenueSeries,
    StationAggregate,
    TransactionStats,
    UsageSummary,
    top_peak_hours,
    with_percentages,
)
from .rules import SuggestionRules
from .suggestions import derive
from .window import ReportFilter, TimeWindow

logger = logging.getLogger(__name__)

TOP_STATION_COUNT = 5
NO_REPORT_DATA = "No report data is available for the selected period."


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if is_dataclass(value) and not isinstance(value, type):
        return _jsonable(asdict(value))
    return value


@dataclass
class ReportViewModel:
    """Everything the report screen renders for one refresh."""

    report_filter: ReportFilter
    window: TimeWindow
    sequence: int
    source: str
    status: AggregationStatus
    revenue_data: RevenueSeries = field(default_factory=RevenueSeries)
    station_aggregates: List[StationAggregate] = field(default_factory=list)
    peak_hours: List[PeakHour] = field(default_factory=list)
    transaction_stats: TransactionStats = field(default_factory=TransactionStats)
    usage: UsageSummary = field(default_factory=UsageSummary)
    forecast_suggestions: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    error: str | None = None
    retryable: bool = False
    generated_at: datetime = field(default_factory=lambda: datetime.now().astimezone())

    @property
    def top_stations(self) -> List[StationAggregate]:
        return self.station_aggregates[:TOP_STATION_COUNT]

    @property
    def top_peak_hours(self) -> List[PeakHour]:
        return top_peak_hours(self.peak_hours, 5)

    @property
    def total_revenue(self) -> Decimal:
        return self.revenue_data.total_revenue

    @property
    def total_sessions(self) -> int:
        return self.revenue_data.total_sessions

    @property
    def total_energy_kwh(self) -> Decimal:
        return self.revenue_data.total_energy_kwh

    def as_dict(self) -> Dict[str, Any]:
        return _jsonable(
            {
                "sequence": self.sequence,
                "generated_at": self.generated_at,
                "source": self.source,
                "status": self.status,
                "filter": {
                    "station_id": self.report_filter.station_id,
                    "region": self.report_filter.region,
                    "range": self.report_filter.range_keyword,
                },
                "window": {
                    "from": self.window.start,
                    "to": self.window.end,
                    "granularity": self.window.granularity,
                    "range": self.window.range_keyword,
                },
                "summary": {
                    "total_revenue": self.total_revenue,
                    "total_sessions": self.total_sessions,
                    "total_energy_kwh": self.total_energy_kwh,
                },
                "revenue": self.revenue_data.points,
                "stations": self.station_aggregates,
                "top_stations": self.top_stations,
                "peak_hours": self.peak_hours,
                "top_peak_hours": self.top_peak_hours,
                "transactions": self.transaction_stats,
                "usage": self.usage,
                "forecast": self.forecast_suggestions,
                "suggestions": self.suggestions,
                "error": self.error,
                "retryable": self.retryable,
            }
        )


class ReportService:
    """Build report view models and keep the latest one.

    Every refresh takes a sequence number; a result is applied to
    :attr:`current` only if no newer refresh was started meanwhile.
    """

    def __init__(
        self,
        client: AnalyticsClient,
        source: DataSource,
        *,
        rules: SuggestionRules | None = None,
        aggregator: Callable[..., fallback.LocalAggregates] = fallback.compute_all,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.client = client
        self.source = source
        self.rules = rules or SuggestionRules()
        self.aggregator = aggregator
        self.clock = clock or (lambda: datetime.now().astimezone())
        self.active_filter = ReportFilter()
        self.current: ReportViewModel | None = None
        self.stations: List[Station] = []
        self.region_map: Dict[Any, str] = {}
        self._latest = 0

    @property
    def latest_sequence(self) -> int:
        return self._latest

    def _next_sequence(self) -> int:
        self._latest += 1
        return self._latest

    async def refresh(self, report_filter: ReportFilter | None = None) -> ReportViewModel:
        """Run one refresh cycle for ``report_filter`` (or the active filter)."""
        if report_filter is not None:
            self.active_filter = report_filter
        report_filter = self.active_filter
        sequence = self._next_sequence()
        window = report_filter.resolve(self.clock())
        logger.debug("Refresh #%d for %s over %s", sequence, report_filter, window)

        result, stations = await asyncio.gather(
            self.client.fetch_all(report_filter, window),
            asyncio.to_thread(self.source.stations),
        )
        region_map = build_region_map(stations)
        payments, sessions = await asyncio.gather(
            asyncio.to_thread(self.source.payments),
            asyncio.to_thread(self.source.sessions),
        )

        if result.status is AggregationStatus.UNAVAILABLE:
            model = self._from_local(
                sequence, report_filter, window, payments, sessions, stations, region_map
            )
        else:
            model = self._from_remote(
                sequence, report_filter, window, result, payments, sessions, stations, region_map
            )
        model.suggestions = derive(
            model.revenue_data, model.station_aggregates, model.peak_hours, region_map, self.rules
        )

        if sequence == self._latest:
            self.current = model
            self.stations = stations
            self.region_map = region_map
            logger.info(
                "Report #%d ready (source=%s status=%s revenue=%s sessions=%d)",
                sequence,
                model.source,
                model.status.value,
                model.total_revenue,
                model.total_sessions,
            )
        else:
            logger.info("Discarding stale report #%d (latest is #%d)", sequence, self._latest)
        return model

    def _from_local(
        self,
        sequence: int,
        report_filter: ReportFilter,
        window: TimeWindow,
        payments: List[Any],
        sessions: List[Any],
        stations: List[Station],
        region_map: Dict[Any, str],
    ) -> ReportViewModel:
        logger.info("Analytics service unavailable; aggregating locally")
        local = self.aggregator(
            payments,
            sessions,
            report_filter,
            window,
            stations=stations,
            region_map=region_map,
            long_session_hours=self.rules.long_session_hours,
        )
        model = ReportViewModel(
            report_filter=report_filter,
            window=window,
            sequence=sequence,
            source="local",
            status=AggregationStatus.UNAVAILABLE,
            revenue_data=local.revenue_data,
            station_aggregates=local.station_aggregates,
            peak_hours=local.peak_hours,
            transaction_stats=local.transaction_stats,
            usage=local.usage,
        )
        if not local.revenue_data.has_data():
            model.error = NO_REPORT_DATA
            model.retryable = True
        return model

    def _from_remote(
        self,
        sequence: int,
        report_filter: ReportFilter,
        window: TimeWindow,
        result: AggregationResult,
        payments: List[Any],
        sessions: List[Any],
        stations: List[Station],
        region_map: Dict[Any, str],
    ) -> ReportViewModel:
        station_aggregates = result.usage
        if station_aggregates is None:
            logger.info("Remote usage unavailable; using local station aggregates")
            station_aggregates = fallback.station_aggregates(
                payments, sessions, report_filter, window, stations, region_map
            )
        names = {s.station_id: s.name for s in stations}
        for aggregate in station_aggregates:
            name = names.get(aggregate.station_id)
            if name:
                aggregate.name = name
        with_percentages(station_aggregates, result.revenue.total_revenue)

        peak_hours = result.peak_hours
        if peak_hours is None:
            logger.info("Remote peak hours unavailable; using local histogram")
            peak_hours = fallback.peak_hours(sessions, report_filter, window, region_map)

        return ReportViewModel(
            report_filter=report_filter,
            window=window,
            sequence=sequence,
            source="remote",
            status=result.status,
            revenue_data=result.revenue,
            station_aggregates=station_aggregates,
            peak_hours=peak_hours,
            transaction_stats=fallback.transaction_stats(
                payments, sessions, report_filter, window, region_map
            ),
            usage=fallback.usage_summary(
                sessions, report_filter, window, region_map, self.rules.long_session_hours
            ),
            forecast_suggestions=result.forecast or [],
        )

    async def trigger_sync(self) -> SyncResult:
        return await asyncio.to_thread(self.client.trigger_sync)


def build_service(settings: Settings) -> ReportService:
    """Wire a :class:`ReportService` from runtime settings."""
    client = AnalyticsClient(
        settings.analytics_url,
        timeout=settings.request_timeout,
        token=settings.api_token,
        forecast_months=settings.forecast_months,
    )
    source = DataSource(
        settings.api_url,
        timeout=settings.request_timeout,
        token=settings.api_token,
        payments_file=settings.payments_file,
        sessions_file=settings.sessions_file,
        stations_file=settings.stations_file,
    )
    return ReportService(client, source, rules=settings.rules)
