"""Aggregate shapes shared by the remote and local computation paths."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List

HOURS_PER_DAY = 24


def hour_label(hour: int) -> str:
    return f"{hour:02d}:00"


def share_pct(part: Decimal, total: Decimal) -> Decimal:
    """Percentage of ``part`` in ``total``; 0 when the total is 0."""
    if not total:
        return Decimal(0)
    return part / total * 100


@dataclass
class RevenuePoint:
    time_label: str
    revenue: Decimal = Decimal(0)
    sessions: int = 0
    energy_kwh: Decimal = Decimal(0)


@dataclass
class RevenueSeries:
    points: List[RevenuePoint] = field(default_factory=list)

    @property
    def total_revenue(self) -> Decimal:
        return sum((p.revenue for p in self.points), Decimal(0))

    @property
    def total_sessions(self) -> int:
        return sum(p.sessions for p in self.points)

    @property
    def total_energy_kwh(self) -> Decimal:
        return sum((p.energy_kwh for p in self.points), Decimal(0))

    def has_data(self) -> bool:
        return any(p.revenue or p.sessions for p in self.points)


@dataclass
class StationAggregate:
    station_id: Any
    name: str
    revenue: Decimal = Decimal(0)
    sessions: int = 0
    energy_kwh: Decimal = Decimal(0)
    percentage_of_total: Decimal = Decimal(0)


def with_percentages(
    stations: List[StationAggregate], total: Decimal | None = None
) -> List[StationAggregate]:
    """Fill ``percentage_of_total`` as a share of ``total`` revenue.

    Without ``total`` the revenue of the given stations is summed.
    """
    if total is None:
        total = sum((s.revenue for s in stations), Decimal(0))
    for station in stations:
        station.percentage_of_total = share_pct(station.revenue, total)
    return stations


@dataclass
class PeakHour:
    hour: int
    label: str
    sessions: int = 0
    percentage: Decimal = Decimal(0)


def peak_histogram(counts: List[int]) -> List[PeakHour]:
    """Build the 24-slot peak hour list from per-hour session counts."""
    total = Decimal(sum(counts))
    return [
        PeakHour(hour, hour_label(hour), count, share_pct(Decimal(count), total))
        for hour, count in enumerate(counts)
    ]


def top_peak_hours(hours: List[PeakHour], limit: int) -> List[PeakHour]:
    """Busiest hours with at least one session, most sessions first."""
    busy = [h for h in hours if h.sessions > 0]
    busy.sort(key=lambda h: (-h.sessions, h.hour))
    return busy[:limit]


@dataclass
class TransactionStats:
    total: int = 0
    completed: int = 0
    pending: int = 0
    failed: int = 0
    total_amount: Decimal = Decimal(0)


@dataclass
class UsageSummary:
    total_sessions: int = 0
    total_energy_kwh: Decimal = Decimal(0)
    total_charging_minutes: int = 0
    unique_users: int = 0
    avg_session_minutes: Decimal = Decimal(0)
    avg_energy_per_session: Decimal = Decimal(0)
    long_sessions: int = 0
