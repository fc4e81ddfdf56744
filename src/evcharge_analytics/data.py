import json
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

import requests

from .status import Status, classify
from .window import parse_timestamp

logger = logging.getLogger(__name__)

DEFAULT_REGION = "Other"

_REGION_KEYS = ("region", "area", "city", "province", "district")

# Upper bound on the payments page requested from the listing endpoint
PAYMENTS_PAGE_SIZE = 1000


@dataclass
class PaymentRecord:
    payment_id: Any
    user_id: Any
    session_id: Any
    amount: Decimal
    status: Status | None
    paid_at: datetime | None

    @property
    def is_top_up(self) -> bool:
        """Payments without a charging session are wallet top-ups."""
        return self.session_id is None


@dataclass
class SessionRecord:
    session_id: Any
    station_id: Any
    user_id: Any
    start_time: datetime | None
    end_time: datetime | None
    energy_kwh: Decimal
    status: Status | None


@dataclass
class Station:
    station_id: Any
    name: str
    region: str


def to_decimal(value: Any) -> Decimal:
    """Convert loosely-typed numbers to ``Decimal``; unusable values become 0."""
    if value is None or isinstance(value, bool):
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    try:
        result = Decimal(str(value).strip().replace(",", "."))
    except (InvalidOperation, ValueError):
        return Decimal(0)
    if not result.is_finite():
        return Decimal(0)
    return result


def _first(entry: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = entry.get(key)
        if value is not None and value != "":
            return value
    return None


def normalise_id(value: Any) -> Any:
    """Use integers for numeric identifiers so joins match across sources."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return int(text)
        return text or None
    return value


def _items(data: Any) -> List[Any]:
    """Accept a bare array or a paginated envelope."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in ("content", "data", "items", "records"):
            value = data.get(key)
            if isinstance(value, list):
                return value
    return []


def parse_payments(data: Any) -> List[PaymentRecord]:
    """Parse a payments listing into :class:`PaymentRecord` entries."""
    result: List[PaymentRecord] = []
    for it in _items(data):
        if not isinstance(it, dict):
            logger.debug("Skipping non-object payment entry: %r", it)
            continue
        try:
            result.append(
                PaymentRecord(
                    payment_id=normalise_id(_first(it, "paymentId", "id")),
                    user_id=normalise_id(it.get("userId")),
                    session_id=normalise_id(it.get("sessionId")),
                    amount=to_decimal(it.get("amount")),
                    status=classify(_first(it, "status", "paymentStatus")),
                    paid_at=parse_timestamp(_first(it, "paymentTime", "createdAt")),
                )
            )
        except (TypeError, ValueError, AttributeError):
            logger.debug("Skipping invalid payment entry: %s", it)
    logger.debug("Parsed %d payment records", len(result))
    return result


def parse_sessions(data: Any) -> List[SessionRecord]:
    """Parse a sessions listing into :class:`SessionRecord` entries."""
    result: List[SessionRecord] = []
    for it in _items(data):
        if not isinstance(it, dict):
            logger.debug("Skipping non-object session entry: %r", it)
            continue
        try:
            result.append(
                SessionRecord(
                    session_id=normalise_id(_first(it, "sessionId", "id")),
                    station_id=normalise_id(it.get("stationId")),
                    user_id=normalise_id(it.get("userId")),
                    start_time=parse_timestamp(_first(it, "startTime", "createdAt")),
                    end_time=parse_timestamp(it.get("endTime")),
                    energy_kwh=to_decimal(it.get("energyConsumed")),
                    status=classify(it.get("status")),
                )
            )
        except (TypeError, ValueError, AttributeError):
            logger.debug("Skipping invalid session entry: %s", it)
    logger.debug("Parsed %d session records", len(result))
    return result


def _region_from(entry: Any) -> str | None:
    if not isinstance(entry, Mapping):
        return None
    for key in _REGION_KEYS:
        for candidate, value in entry.items():
            if str(candidate).lower() != key:
                continue
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def _structured_location(value: Any) -> Any:
    if isinstance(value, str):
        text = value.strip()
        if not text.startswith("{"):
            return None
        try:
            return json.loads(text)
        except ValueError:
            return None
    return value


def station_region(entry: Mapping[str, Any]) -> str:
    """Region of a station: explicit field, then parsed location, then ``Other``."""
    region = _region_from(entry)
    if region:
        return region
    for key in ("location", "address"):
        region = _region_from(_structured_location(entry.get(key)))
        if region:
            return region
    return DEFAULT_REGION


def parse_stations(data: Any) -> List[Station]:
    """Parse the station directory."""
    result: List[Station] = []
    for it in _items(data):
        if not isinstance(it, dict):
            continue
        station_id = normalise_id(_first(it, "stationId", "id"))
        if station_id is None:
            logger.debug("Skipping station without id: %s", it)
            continue
        name = _first(it, "stationName", "stationCode", "name")
        result.append(
            Station(
                station_id=station_id,
                name=str(name) if name is not None else f"Station {station_id}",
                region=station_region(it),
            )
        )
    logger.debug("Parsed %d stations", len(result))
    return result


def build_region_map(stations: Iterable[Station]) -> Dict[Any, str]:
    """Return a mapping of station_id -> region."""
    return {station.station_id: station.region for station in stations}


def _load_file(path: Path) -> Any:
    logger.debug("Loading listing from %s", path)
    with path.open(encoding="utf-8") as f:
        return json.load(f)


class DataSource:
    """Raw payments, sessions and stations listings.

    Each listing is read from a local JSON file when one is configured,
    otherwise fetched from the platform API. A listing that cannot be
    loaded is reported as empty.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30,
        token: str | None = None,
        session: requests.Session | None = None,
        payments_file: Path | None = None,
        sessions_file: Path | None = None,
        stations_file: Path | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        self.payments_file = payments_file
        self.sessions_file = sessions_file
        self.stations_file = stations_file

    def _fetch(self, name: str, path: Path | None, params: Dict[str, Any] | None = None) -> Any:
        try:
            if path:
                return _load_file(path)
            url = f"{self.base_url}/{name}"
            logger.debug("Fetching %s from %s", name, url)
            resp = self.session.get(url, params=params, timeout=self.timeout)
            resp.raise_for_status()
            return resp.json()
        except (requests.RequestException, OSError, ValueError) as exc:
            logger.warning("Failed to load %s listing: %s", name, exc)
            return []

    def payments(self) -> List[PaymentRecord]:
        return parse_payments(
            self._fetch("payments", self.payments_file, {"page": 0, "size": PAYMENTS_PAGE_SIZE})
        )

    def sessions(self) -> List[SessionRecord]:
        return parse_sessions(self._fetch("sessions", self.sessions_file))

    def stations(self) -> List[Station]:
        return parse_stations(self._fetch("stations", self.stations_file))
