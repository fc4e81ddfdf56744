import enum
from types import SimpleNamespace

import pytest

from evcharge_analytics import status


class PaymentStatus(enum.Enum):
    COMPLETED = 1
    PROCESSING = 2


@pytest.mark.parametrize(
    "value,expected",
    [
        ("COMPLETED", "completed"),
        ("  Pending ", "pending"),
        (PaymentStatus.COMPLETED, "completed"),
        ({"name": "FAILED"}, "failed"),
        ({"status": "Refunded"}, "refunded"),
        ({"paymentStatus": "SUCCESS"}, "success"),
        ({"status": None, "paymentStatus": "Cancelled"}, "cancelled"),
        ({"status": {"name": "ERROR"}}, "error"),
        ({}, "pending"),
        (None, "pending"),
        (SimpleNamespace(status=PaymentStatus.PROCESSING), "processing"),
        (SimpleNamespace(status=None, payment_status="failed"), "failed"),
    ],
)
def test_normalize(value, expected):
    assert status.normalize(value) == expected


@pytest.mark.parametrize(
    "value",
    ["COMPLETED", "Success", PaymentStatus.PROCESSING, {"name": "Failed"}, {"status": "X"}, None],
)
def test_normalize_is_idempotent(value):
    once = status.normalize(value)
    assert status.normalize(once) == once


def test_classify_discriminates_representations():
    assert status.classify("done") == status.RawStatus("done")
    assert status.classify(PaymentStatus.COMPLETED) == status.EnumStatus("COMPLETED")
    assert status.classify({"name": "PENDING"}) == status.EnumStatus("PENDING")
    assert status.classify("   ") is None
    assert status.classify(None) is None


@pytest.mark.parametrize(
    "value,bucket",
    [
        ("completed", status.COMPLETED),
        ("SUCCESS", status.COMPLETED),
        ("processing", status.PENDING),
        (None, status.PENDING),
        ("Cancelled", status.FAILED),
        ("error", status.FAILED),
        ("refunded", None),
    ],
)
def test_outcome(value, bucket):
    assert status.outcome(value) == bucket
