"""Resolve report range keywords into concrete time windows and buckets."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

RANGE_KEYWORDS = ("day", "week", "month", "quarter", "year", "custom")
DEFAULT_RANGE = "month"

GRANULARITIES = ("hour", "day", "week", "month")
_GRANULARITY_BY_RANGE = {"day": "hour", "quarter": "week", "year": "month"}

# Days before today included in rolling windows
_LOOKBACK_DAYS = {"week": 6, "month": 29, "quarter": 89}
_YEAR_LOOKBACK_MONTHS = 11

_RESOLUTION = timedelta(microseconds=1)


def granularity_for(range_keyword: str) -> str:
    return _GRANULARITY_BY_RANGE.get(range_keyword, "day")


def start_of_day(ts: datetime) -> datetime:
    return ts.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(ts: datetime) -> datetime:
    return ts.replace(hour=23, minute=59, second=59, microsecond=999999)


def _shift_months(ts: datetime, months: int) -> datetime:
    """Move ``ts`` by whole months with the day pinned to 1."""
    index = ts.year * 12 + (ts.month - 1) + months
    return ts.replace(year=index // 12, month=index % 12 + 1, day=1)


def align_to(ts: datetime, reference: datetime) -> datetime:
    """Express ``ts`` in the same timezone convention as ``reference``.

    Naive timestamps are assumed to already be in the reference's local
    time. Aware timestamps compared against a naive reference are
    converted to local time and stripped.
    """
    if reference.tzinfo is None:
        if ts.tzinfo is None:
            return ts
        return ts.astimezone().replace(tzinfo=None)
    if ts.tzinfo is None:
        return ts.replace(tzinfo=reference.tzinfo)
    return ts.astimezone(reference.tzinfo)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a timestamp from a datetime, date or ISO 8601 string."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            logger.debug("Unable to parse timestamp '%s'", value)
            return None
    return None


def format_timestamp(ts: datetime) -> str:
    """Render a bound the way the analytics service expects it."""
    return ts.replace(tzinfo=None).isoformat(timespec="seconds")


@dataclass(frozen=True)
class Bucket:
    """One interval of a time series, half-open ``[start, end)``."""

    start: datetime
    end: datetime
    key: str
    label: str

    def contains(self, ts: datetime) -> bool:
        ts = align_to(ts, self.start)
        return self.start <= ts < self.end


def _truncate(ts: datetime, granularity: str) -> datetime:
    if granularity == "hour":
        return ts.replace(minute=0, second=0, microsecond=0)
    if granularity == "month":
        return start_of_day(ts).replace(day=1)
    if granularity == "day":
        return start_of_day(ts)
    # weeks are counted from the window start
    return ts


def _advance(ts: datetime, granularity: str) -> datetime:
    if granularity == "hour":
        return ts + timedelta(hours=1)
    if granularity == "week":
        return ts + timedelta(days=7)
    if granularity == "month":
        return _shift_months(ts, 1)
    return ts + timedelta(days=1)


def _bucket_key(ts: datetime, granularity: str) -> str:
    if granularity == "hour":
        return ts.strftime("%Y-%m-%d %H:00")
    if granularity == "month":
        return ts.strftime("%Y-%m")
    return ts.strftime("%Y-%m-%d")


def _bucket_label(ts: datetime, granularity: str) -> str:
    if granularity == "hour":
        return ts.strftime("%H:00")
    if granularity == "month":
        return ts.strftime("%m/%Y")
    return ts.strftime("%d/%m")


@dataclass(frozen=True)
class TimeWindow:
    """Concrete ``[start, end]`` reporting window with its bucket width."""

    start: datetime
    end: datetime
    granularity: str
    range_keyword: str = DEFAULT_RANGE

    def contains(self, ts: datetime | None) -> bool:
        if ts is None:
            return False
        ts = align_to(ts, self.start)
        return self.start <= ts <= self.end

    def buckets(self) -> List[Bucket]:
        """Materialise every bucket of the window, empty ones included."""
        result: List[Bucket] = []
        limit = self.end + _RESOLUTION
        cursor = _truncate(self.start, self.granularity)
        while cursor < limit:
            following = _advance(cursor, self.granularity)
            result.append(
                Bucket(
                    start=max(cursor, self.start),
                    end=min(following, limit),
                    key=_bucket_key(cursor, self.granularity),
                    label=_bucket_label(cursor, self.granularity),
                )
            )
            cursor = following
        return result

    def params(self) -> Dict[str, str]:
        return {"from": format_timestamp(self.start), "to": format_timestamp(self.end)}


def _rolling(keyword: str, now: datetime) -> TimeWindow:
    end = end_of_day(now)
    if keyword == "day":
        start = start_of_day(now)
    elif keyword == "year":
        start = _shift_months(start_of_day(now), -_YEAR_LOOKBACK_MONTHS)
    else:
        start = start_of_day(now - timedelta(days=_LOOKBACK_DAYS[keyword]))
    return TimeWindow(start, end, granularity_for(keyword), keyword)


def resolve(
    range_keyword: str | None,
    custom_start: Any = None,
    custom_end: Any = None,
    now: datetime | None = None,
) -> TimeWindow:
    """Turn a range keyword into a :class:`TimeWindow`.

    Invalid custom bounds and unknown keywords resolve as the default
    ``month`` range rather than raising.
    """
    if now is None:
        now = datetime.now().astimezone()
    keyword = (range_keyword or DEFAULT_RANGE).strip().lower()
    if keyword not in RANGE_KEYWORDS:
        logger.debug("Unknown range keyword '%s'; using %s", range_keyword, DEFAULT_RANGE)
        keyword = DEFAULT_RANGE

    if keyword == "custom":
        start = parse_timestamp(custom_start)
        end = parse_timestamp(custom_end)
        if start is not None and end is not None:
            start = align_to(start, now)
            end = end_of_day(align_to(end, now))
            if start <= end:
                return TimeWindow(start, end, granularity_for(keyword), keyword)
        logger.debug(
            "Invalid custom range %r..%r; using %s", custom_start, custom_end, DEFAULT_RANGE
        )
        keyword = DEFAULT_RANGE

    return _rolling(keyword, now)


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        return None


@dataclass(frozen=True)
class ReportFilter:
    """User-selected report scope."""

    station_id: int | None = None
    region: str | None = None
    range_keyword: str = DEFAULT_RANGE
    custom_start: Any = None
    custom_end: Any = None

    @classmethod
    def from_params(
        cls,
        range_keyword: str | None = None,
        start: Any = None,
        end: Any = None,
        station_id: Any = None,
        region: str | None = None,
    ) -> "ReportFilter":
        """Build a filter from loosely-typed query or CLI values."""
        region_value = region.strip() if isinstance(region, str) else None
        return cls(
            station_id=_optional_int(station_id),
            region=region_value or None,
            range_keyword=(range_keyword or DEFAULT_RANGE).strip().lower(),
            custom_start=start,
            custom_end=end,
        )

    def resolve(self, now: datetime | None = None) -> TimeWindow:
        return resolve(self.range_keyword, self.custom_start, self.custom_end, now)

    def scope_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        if self.station_id is not None:
            params["stationId"] = self.station_id
        if self.region:
            params["region"] = self.region
        return params
