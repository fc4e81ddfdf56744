import sys
from datetime import datetime
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from evcharge_analytics import window


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            import requests

            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


class FakeSession:
    """Stand-in for ``requests.Session`` answering by URL suffix."""

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.headers = {}
        self.calls = []

    def _answer(self, method, url, params):
        self.calls.append((method, url, params))
        for suffix, answer in self.routes.items():
            if url.endswith(suffix):
                if isinstance(answer, Exception):
                    raise answer
                if isinstance(answer, FakeResponse):
                    return answer
                return FakeResponse(answer)
        return FakeResponse({"error": "not found"}, status_code=404)

    def get(self, url, params=None, timeout=None):
        return self._answer("GET", url, params)

    def post(self, url, timeout=None):
        return self._answer("POST", url, None)


@pytest.fixture
def now():
    return datetime(2025, 3, 15, 14, 30)


@pytest.fixture
def month_window(now):
    return window.resolve("month", now=now)


@pytest.fixture
def quarter_window(now):
    return window.resolve("quarter", now=now)


@pytest.fixture
def stations_payload():
    return [
        {"stationId": 1, "stationName": "Central Plaza", "region": "North"},
        {"stationId": 2, "stationName": "Harbour Point", "city": "South"},
        {"stationId": 3, "stationCode": "ST-03", "location": '{"area": "North"}'},
        {"id": 4, "name": "Depot"},
    ]


@pytest.fixture
def sessions_payload():
    return [
        {"sessionId": 10, "stationId": 1, "userId": 7, "startTime": "2025-03-14T09:15:00",
         "endTime": "2025-03-14T10:15:00", "energyConsumed": 20.5, "status": "COMPLETED"},
        {"sessionId": 11, "stationId": 1, "userId": 8, "startTime": "2025-03-14T09:45:00",
         "endTime": "2025-03-14T13:45:00", "energyConsumed": "10", "status": "completed"},
        {"sessionId": 12, "stationId": 2, "userId": 7, "startTime": "2025-03-15T18:00:00",
         "endTime": None, "energyConsumed": 5, "status": "CHARGING"},
        {"sessionId": 13, "stationId": 3, "userId": 9, "startTime": "2025-01-02T08:00:00",
         "endTime": "2025-01-02T09:00:00", "energyConsumed": 8, "status": "COMPLETED"},
    ]


@pytest.fixture
def payments_payload():
    return {
        "content": [
            {"paymentId": 100, "userId": 7, "sessionId": 10, "amount": 50000,
             "paymentStatus": "COMPLETED", "paymentTime": "2025-03-14T10:20:00"},
            {"paymentId": 101, "userId": 8, "sessionId": 11, "amount": "30000",
             "status": {"name": "SUCCESS"}, "paymentTime": "2025-03-14T13:50:00"},
            {"paymentId": 102, "userId": 7, "sessionId": 12, "amount": 20000,
             "status": "pending", "createdAt": "2025-03-15T18:05:00"},
            {"paymentId": 103, "userId": 7, "sessionId": None, "amount": 100000,
             "status": "completed", "paymentTime": "2025-03-13T08:00:00"},
            {"paymentId": 104, "userId": 9, "sessionId": 13, "amount": 15000,
             "status": "completed", "paymentTime": "2025-01-02T09:05:00"},
            {"paymentId": 105, "userId": 8, "sessionId": 11, "amount": 30000,
             "status": "Error", "paymentTime": "2025-03-14T13:49:00"},
        ],
        "totalElements": 6,
    }
