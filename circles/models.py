"""Data shapes produced and consumed by the aggregation engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class Profile:
    address: str
    display_name: str = ""
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class TrustRelation:
    truster: str
    trustee: str
    limit: float | None = None
    expiry_time: int | None = None


@dataclass(frozen=True)
class TransactionRecord:
    timestamp: int | None
    method: str = ""
    input: str = ""
    event_type: str = ""
    tx_hash: str = ""


@dataclass(frozen=True)
class Counterpart:
    address: str
    mutual_trust: bool


@dataclass(frozen=True)
class Connection:
    address: str
    balance: float
    unclaimed: float
    mutual_trust: bool
    name: str | None = None
    last_claim: datetime | None = None


@dataclass(frozen=True)
class ExcludedConnection:
    address: str
    reason: str
    detail: str = ""


@dataclass(frozen=True)
class AggregationSnapshot:
    address: str
    total_balance: float
    unclaimed: float
    unclaimed_known: bool
    connections: tuple[Connection, ...]
    is_registered: bool = True
    name: str | None = None
    last_claim: datetime | None = None
    excluded: tuple[ExcludedConnection, ...] = ()
    trace_id: str = ""
