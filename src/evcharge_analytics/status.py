"""Canonical status vocabulary shared by payment and session records.

Upstream services serialise statuses differently: one sends plain
strings in any case, the other enum objects exposing ``name``. Every
count or sum goes through :func:`normalize` first.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union

DEFAULT_STATUS = "pending"

COMPLETED = "completed"
PENDING = "pending"
FAILED = "failed"

_OUTCOMES = {
    "completed": COMPLETED,
    "success": COMPLETED,
    "pending": PENDING,
    "processing": PENDING,
    "failed": FAILED,
    "cancelled": FAILED,
    "error": FAILED,
}


@dataclass(frozen=True)
class RawStatus:
    value: str


@dataclass(frozen=True)
class EnumStatus:
    name: str


Status = Union[RawStatus, EnumStatus]


def classify(value: Any) -> Status | None:
    """Wrap a raw status value in its union member, ``None`` when absent."""
    if value is None or isinstance(value, (RawStatus, EnumStatus)):
        return value
    if isinstance(value, str):
        return RawStatus(value) if value.strip() else None
    if isinstance(value, Mapping):
        # enum serialised as an object, e.g. {"name": "COMPLETED"}
        name = value.get("name")
    else:
        name = getattr(value, "name", None)
    if isinstance(name, str) and name.strip():
        return EnumStatus(name)
    text = str(value)
    return RawStatus(text) if text.strip() else None


def canonical(status: Status | None) -> str:
    if status is None:
        return DEFAULT_STATUS
    if isinstance(status, EnumStatus):
        return status.name.strip().lower()
    return status.value.strip().lower()


def _lookup(record: Any, *keys: str) -> Any:
    for key in keys:
        if isinstance(record, Mapping):
            value = record.get(key)
        else:
            value = getattr(record, key, None)
        if classify(value) is not None:
            return value
    return None


def normalize(record: Any) -> str:
    """Return the canonical lower-case status of ``record``.

    ``record`` may be a mapping or object carrying ``status`` (or
    ``paymentStatus`` as a secondary field), or a status value itself.
    """
    if isinstance(record, Mapping):
        if "name" in record and "status" not in record and "paymentStatus" not in record:
            value = record
        else:
            value = _lookup(record, "status", "paymentStatus")
    elif isinstance(record, (str, RawStatus, EnumStatus)) or record is None:
        value = record
    elif hasattr(record, "status") or hasattr(record, "payment_status"):
        value = _lookup(record, "status", "payment_status")
    else:
        value = record
    return canonical(classify(value))


def outcome(status: Any) -> str | None:
    """Map a status to its transaction bucket (completed, pending or failed)."""
    return _OUTCOMES.get(normalize(status))
