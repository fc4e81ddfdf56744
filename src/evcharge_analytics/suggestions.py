from decimal import Decimal
from typing import Any, Dict, List, Mapping, Sequence
import logging

from .data import DEFAULT_REGION
from .models import PeakHour, RevenueSeries, StationAggregate, share_pct, top_peak_hours
from .rules import SuggestionRules

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = "Insufficient data to generate suggestions for the selected period."
STABLE_MESSAGE = "The network is operating stably; no overload risk detected."


def _pct(value: Decimal) -> str:
    return f"{value:.1f}%"


def _station_concentration(
    stations: Sequence[StationAggregate], total: Decimal, rules: SuggestionRules
) -> str | None:
    if not stations or not total:
        return None
    # aggregates arrive ranked; the first entry is the top station
    top = stations[0]
    share = share_pct(top.revenue, total)
    if share <= Decimal(str(rules.station_share_pct)):
        return None
    return (
        f"{top.name} generates {_pct(share)} of total revenue; "
        "consider upgrading its charging capacity."
    )


def _peak_concentration(hours: Sequence[PeakHour], rules: SuggestionRules) -> str | None:
    total = sum(h.sessions for h in hours)
    top = top_peak_hours(list(hours), rules.peak_hour_count)
    if not top or not total:
        return None
    share = share_pct(Decimal(sum(h.sessions for h in top)), Decimal(total))
    labels = ", ".join(h.label for h in top)
    return (
        f"Peak hours {labels} account for {_pct(share)} of sessions; "
        "consider peak-hour pricing or load balancing."
    )


def _region_concentration(
    stations: Sequence[StationAggregate],
    region_map: Mapping[Any, str],
    total: Decimal,
    rules: SuggestionRules,
) -> str | None:
    by_region: Dict[str, Decimal] = {}
    for station in stations:
        region = region_map.get(station.station_id, DEFAULT_REGION)
        by_region[region] = by_region.get(region, Decimal(0)) + station.revenue
    if not by_region or not total:
        return None
    region, revenue = max(by_region.items(), key=lambda item: item[1])
    share = share_pct(revenue, total)
    if share <= Decimal(str(rules.region_share_pct)):
        return None
    return (
        f"Region {region} accounts for {_pct(share)} of revenue; "
        "consider expanding the network there."
    )


def derive(
    revenue_series: RevenueSeries,
    station_aggregates: Sequence[StationAggregate],
    peak_hours: Sequence[PeakHour],
    region_map: Mapping[Any, str],
    rules: SuggestionRules | None = None,
) -> List[str]:
    """Return advisory upgrade suggestions for the aggregated report."""
    rules = rules or SuggestionRules()
    if revenue_series is None or not revenue_series.has_data():
        return [NO_DATA_MESSAGE]

    # shares are of the period's total revenue
    total = revenue_series.total_revenue

    suggestions: List[str] = []
    for message in (
        _station_concentration(station_aggregates, total, rules),
        _peak_concentration(peak_hours, rules),
        _region_concentration(station_aggregates, region_map, total, rules),
    ):
        if message:
            suggestions.append(message)
    if not suggestions:
        suggestions.append(STABLE_MESSAGE)
    logger.debug("Derived %d suggestions", len(suggestions))
    return suggestions
