"""Recompute report aggregates locally from raw payment and session records.

Used when the analytics service is unreachable or returns no revenue
data. The shapes and bucketing rules match the remote responses so the
report renders the same way whichever path produced it.
"""
from __future__ import annotations

import logging
from bisect import bisect_right
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from .data import (
    DEFAULT_REGION,
    PaymentRecord,
    SessionRecord,
    Station,
    build_region_map,
    parse_payments,
    parse_sessions,
)
from .models import (
    HOURS_PER_DAY,
    PeakHour,
    RevenuePoint,
    RevenueSeries,
    StationAggregate,
    TransactionStats,
    UsageSummary,
    peak_histogram,
    with_percentages,
)
from .status import COMPLETED, FAILED, PENDING, outcome
from .window import ReportFilter, TimeWindow, align_to

logger = logging.getLogger(__name__)

DEFAULT_LONG_SESSION_HOURS = 3.0

_SKIPPABLE = (TypeError, ValueError, AttributeError, ArithmeticError)


@dataclass
class LocalAggregates:
    revenue_data: RevenueSeries = field(default_factory=RevenueSeries)
    station_aggregates: List[StationAggregate] = field(default_factory=list)
    peak_hours: List[PeakHour] = field(default_factory=list)
    transaction_stats: TransactionStats = field(default_factory=TransactionStats)
    usage: UsageSummary = field(default_factory=UsageSummary)

    @property
    def total_revenue(self) -> Decimal:
        return self.revenue_data.total_revenue

    @property
    def total_sessions(self) -> int:
        return self.revenue_data.total_sessions

    @property
    def total_energy_kwh(self) -> Decimal:
        return self.revenue_data.total_energy_kwh


class _Scope:
    """Station/region filter applied to sessions and their payments."""

    def __init__(
        self,
        report_filter: ReportFilter,
        sessions: Sequence[SessionRecord],
        region_map: Mapping[Any, str],
    ) -> None:
        self.station_id = report_filter.station_id
        self.region = report_filter.region
        self.region_map = region_map
        self.sessions_by_id: Dict[Any, SessionRecord] = {}
        for session in sessions:
            if session.session_id is not None:
                self.sessions_by_id.setdefault(session.session_id, session)

    @property
    def active(self) -> bool:
        return self.station_id is not None or bool(self.region)

    def session_passes(self, session: SessionRecord) -> bool:
        if self.station_id is not None and session.station_id != self.station_id:
            return False
        if self.region:
            return self.region_map.get(session.station_id, DEFAULT_REGION) == self.region
        return True

    def linked_session(self, payment: PaymentRecord) -> SessionRecord | None:
        if payment.session_id is None:
            return None
        return self.sessions_by_id.get(payment.session_id)

    def payment_passes(self, payment: PaymentRecord) -> bool:
        """A payment passes when its session does, or when nothing is filtered."""
        session = self.linked_session(payment)
        if session is None:
            return not self.active
        return self.session_passes(session)

    def is_charging_revenue(self, payment: PaymentRecord) -> bool:
        if payment.is_top_up or payment.amount < 0:
            return False
        if outcome(payment.status) != COMPLETED:
            return False
        return self.payment_passes(payment)


def _as_payments(items: Iterable[Any]) -> List[PaymentRecord]:
    items = list(items)
    raw = [it for it in items if isinstance(it, dict)]
    parsed = [it for it in items if isinstance(it, PaymentRecord)]
    return parsed + parse_payments(raw) if raw else parsed


def _as_sessions(items: Iterable[Any]) -> List[SessionRecord]:
    items = list(items)
    raw = [it for it in items if isinstance(it, dict)]
    parsed = [it for it in items if isinstance(it, SessionRecord)]
    return parsed + parse_sessions(raw) if raw else parsed


class _BucketIndex:
    def __init__(self, window: TimeWindow) -> None:
        self.window = window
        self.buckets = window.buckets()
        self.starts = [b.start for b in self.buckets]

    def locate(self, ts: datetime | None) -> int | None:
        if ts is None or not self.window.contains(ts):
            return None
        ts = align_to(ts, self.window.start)
        i = bisect_right(self.starts, ts) - 1
        if i < 0 or not self.buckets[i].contains(ts):
            return None
        return i


def revenue_series(
    payments: Sequence[PaymentRecord],
    sessions: Sequence[SessionRecord],
    report_filter: ReportFilter,
    window: TimeWindow,
    region_map: Mapping[Any, str] | None = None,
) -> RevenueSeries:
    """Per-bucket revenue, session count and energy for every bucket of ``window``."""
    scope = _Scope(report_filter, sessions, region_map or {})
    index = _BucketIndex(window)
    points = [RevenuePoint(time_label=b.label) for b in index.buckets]

    for payment in payments:
        try:
            if not scope.is_charging_revenue(payment):
                continue
            i = index.locate(payment.paid_at)
            if i is not None:
                points[i].revenue += payment.amount
        except _SKIPPABLE:
            logger.debug("Skipping payment %s in revenue series", payment.payment_id)

    for session in sessions:
        try:
            if not scope.session_passes(session):
                continue
            i = index.locate(session.start_time)
            if i is None:
                continue
            points[i].sessions += 1
            points[i].energy_kwh += session.energy_kwh
        except _SKIPPABLE:
            logger.debug("Skipping session %s in revenue series", session.session_id)

    return RevenueSeries(points)


def station_aggregates(
    payments: Sequence[PaymentRecord],
    sessions: Sequence[SessionRecord],
    report_filter: ReportFilter,
    window: TimeWindow,
    stations: Iterable[Station] = (),
    region_map: Mapping[Any, str] | None = None,
) -> List[StationAggregate]:
    """Revenue, sessions and energy per station, highest revenue first."""
    scope = _Scope(report_filter, sessions, region_map or {})
    names = {s.station_id: s.name for s in stations}
    groups: Dict[Any, StationAggregate] = {}

    def _group(station_id: Any) -> StationAggregate:
        agg = groups.get(station_id)
        if agg is None:
            name = names.get(station_id) or f"Station {station_id}"
            agg = groups[station_id] = StationAggregate(station_id=station_id, name=name)
        return agg

    for session in sessions:
        try:
            if session.station_id is None or not scope.session_passes(session):
                continue
            if not window.contains(session.start_time):
                continue
            agg = _group(session.station_id)
            agg.sessions += 1
            agg.energy_kwh += session.energy_kwh
        except _SKIPPABLE:
            logger.debug("Skipping session %s in station aggregates", session.session_id)

    for payment in payments:
        try:
            if not scope.is_charging_revenue(payment) or not window.contains(payment.paid_at):
                continue
            session = scope.linked_session(payment)
            if session is None or session.station_id is None:
                continue
            _group(session.station_id).revenue += payment.amount
        except _SKIPPABLE:
            logger.debug("Skipping payment %s in station aggregates", payment.payment_id)

    result = [agg for agg in groups.values() if agg.sessions > 0 or agg.revenue > 0]
    result.sort(key=lambda s: (s.revenue, s.sessions), reverse=True)
    return with_percentages(result)


def peak_hours(
    sessions: Sequence[SessionRecord],
    report_filter: ReportFilter,
    window: TimeWindow,
    region_map: Mapping[Any, str] | None = None,
) -> List[PeakHour]:
    """24-slot histogram of session starts by hour of day."""
    scope = _Scope(report_filter, sessions, region_map or {})
    counts = [0] * HOURS_PER_DAY
    for session in sessions:
        try:
            if not scope.session_passes(session) or not window.contains(session.start_time):
                continue
            counts[align_to(session.start_time, window.start).hour] += 1
        except _SKIPPABLE:
            logger.debug("Skipping session %s in peak hours", session.session_id)
    return peak_histogram(counts)


def transaction_stats(
    payments: Sequence[PaymentRecord],
    sessions: Sequence[SessionRecord],
    report_filter: ReportFilter,
    window: TimeWindow,
    region_map: Mapping[Any, str] | None = None,
) -> TransactionStats:
    """Count payments in range by outcome and sum the completed amounts."""
    scope = _Scope(report_filter, sessions, region_map or {})
    stats = TransactionStats()
    for payment in payments:
        try:
            if not window.contains(payment.paid_at) or not scope.payment_passes(payment):
                continue
            bucket = outcome(payment.status)
            if bucket == COMPLETED:
                stats.total_amount += payment.amount
                stats.completed += 1
            elif bucket == PENDING:
                stats.pending += 1
            elif bucket == FAILED:
                stats.failed += 1
            stats.total += 1
        except _SKIPPABLE:
            logger.debug("Skipping payment %s in transaction stats", payment.payment_id)
    return stats


def usage_summary(
    sessions: Sequence[SessionRecord],
    report_filter: ReportFilter,
    window: TimeWindow,
    region_map: Mapping[Any, str] | None = None,
    long_session_hours: float = DEFAULT_LONG_SESSION_HOURS,
) -> UsageSummary:
    scope = _Scope(report_filter, sessions, region_map or {})
    summary = UsageSummary()
    users = set()
    long_threshold = long_session_hours * 60
    for session in sessions:
        try:
            if not scope.session_passes(session) or not window.contains(session.start_time):
                continue
            summary.total_sessions += 1
            summary.total_energy_kwh += session.energy_kwh
            if session.user_id is not None:
                users.add(session.user_id)
            if session.end_time is None:
                continue
            start = align_to(session.start_time, window.start)
            end = align_to(session.end_time, window.start)
            minutes = int((end - start).total_seconds() // 60)
            if minutes < 0:
                continue
            summary.total_charging_minutes += minutes
            if minutes > long_threshold:
                summary.long_sessions += 1
        except _SKIPPABLE:
            logger.debug("Skipping session %s in usage summary", session.session_id)
    summary.unique_users = len(users)
    if summary.total_sessions:
        count = Decimal(summary.total_sessions)
        summary.avg_session_minutes = Decimal(summary.total_charging_minutes) / count
        summary.avg_energy_per_session = summary.total_energy_kwh / count
    return summary


def compute_all(
    payments: Iterable[Any],
    sessions: Iterable[Any],
    report_filter: ReportFilter,
    window: TimeWindow | None,
    *,
    stations: Iterable[Station] = (),
    region_map: Mapping[Any, str] | None = None,
    long_session_hours: float = DEFAULT_LONG_SESSION_HOURS,
) -> LocalAggregates:
    """Compute every report aggregate from raw records.

    ``payments`` and ``sessions`` may be parsed records or raw listing
    entries. Without a usable window an empty result is returned.
    """
    if window is None or window.start > window.end:
        logger.debug("No usable window for local aggregation")
        return LocalAggregates()

    stations = list(stations)
    if region_map is None:
        region_map = build_region_map(stations)
    payment_records = _as_payments(payments)
    session_records = _as_sessions(sessions)
    logger.debug(
        "Aggregating %d payments and %d sessions locally",
        len(payment_records),
        len(session_records),
    )

    series = revenue_series(payment_records, session_records, report_filter, window, region_map)
    ranked = station_aggregates(
        payment_records, session_records, report_filter, window, stations, region_map
    )
    return LocalAggregates(
        revenue_data=series,
        station_aggregates=with_percentages(ranked, series.total_revenue),
        peak_hours=peak_hours(session_records, report_filter, window, region_map),
        transaction_stats=transaction_stats(
            payment_records, session_records, report_filter, window, region_map
        ),
        usage=usage_summary(
            session_records, report_filter, window, region_map, long_session_hours
        ),
    )
