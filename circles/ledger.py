"""Read-only access to the Circles ledger.

``CirclesRpcLedger`` talks JSON-RPC to a Circles RPC node and performs a single
attempt per read. ``ResilientLedgerClient`` wraps any ``LedgerReader`` with the
rate-limit retry policy; every component that touches the ledger goes through it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Protocol, TypeVar

import config
from circles.errors import LedgerDataError, RateLimitedError
from circles.models import Profile, TransactionRecord, TrustRelation
from utils.addressing import normalize_address
from utils.http_client import ResilientHttpClient
from utils.retry import retry_async

logger = logging.getLogger(__name__)

T = TypeVar("T")

PERSONAL_MINT_METHOD = "personalMint"
PERSONAL_MINT_SELECTOR = "0x2c6ba5ca"
PERSONAL_MINT_EVENT = "PersonalMint"


class LedgerReader(Protocol):
    async def get_profile(self, address: str) -> Profile | None: ...

    async def get_balance(self, address: str) -> float: ...

    async def get_trust_relations(self, address: str, limit: int) -> list[TrustRelation]: ...

    async def get_transaction_history(self, address: str, limit: int) -> list[TransactionRecord]: ...


def is_personal_mint(tx: TransactionRecord) -> bool:
    if tx.method == PERSONAL_MINT_METHOD:
        return True
    if str(tx.input or "").lower().startswith(PERSONAL_MINT_SELECTOR):
        return True
    return tx.event_type == PERSONAL_MINT_EVENT


def last_personal_mint_time(history: Iterable[TransactionRecord]) -> datetime | None:
    """Timestamp of the most recent personalMint; history is newest-first."""
    for tx in history:
        if not is_personal_mint(tx):
            continue
        if tx.timestamp is None:
            return None
        return datetime.fromtimestamp(int(tx.timestamp), tz=timezone.utc)
    return None


def _to_amount(value: Any) -> float:
    try:
        amount = float(value or 0)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, amount)


def _rows(result: Any) -> list[dict[str, Any]]:
    if not isinstance(result, dict):
        return []
    columns = [str(c) for c in (result.get("columns") or [])]
    out: list[dict[str, Any]] = []
    for raw in result.get("rows") or []:
        if isinstance(raw, dict):
            out.append(raw)
        elif isinstance(raw, (list, tuple)):
            out.append(dict(zip(columns, raw)))
    return out


def _equals(column: str, value: str) -> dict[str, Any]:
    return {"Type": "FilterPredicate", "FilterType": "Equals", "Column": column, "Value": value}


def _either(*predicates: dict[str, Any]) -> dict[str, Any]:
    return {"Type": "Conjunction", "ConjunctionType": "Or", "Predicates": list(predicates)}


class CirclesRpcLedger:
    def __init__(
        self,
        rpc_url: str | None = None,
        *,
        http: ResilientHttpClient | None = None,
        namespace: str | None = None,
        include_v1: bool | None = None,
    ) -> None:
        self._rpc_url = rpc_url or config.CIRCLES_RPC_URL
        self._http = http or ResilientHttpClient(
            timeout_seconds=float(config.CIRCLES_RPC_TIMEOUT),
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            source_limits={"circles_rpc": int(config.CIRCLES_RPC_CONCURRENCY)},
        )
        self._namespace = namespace or config.CIRCLES_QUERY_NAMESPACE
        self._include_v1 = config.CIRCLES_INCLUDE_V1_BALANCE if include_v1 is None else bool(include_v1)

    async def close(self) -> None:
        await self._http.close()

    def runtime_stats(self, reset: bool = False) -> dict[str, dict[str, int | float]]:
        return self._http.snapshot_stats(reset=reset)

    async def _call(self, method: str, params: list[Any]) -> Any:
        return await self._http.call_rpc(self._rpc_url, method, params, source="circles_rpc")

    async def _query(
        self,
        table: str,
        filters: list[dict[str, Any]],
        *,
        limit: int,
        order_column: str | None = "blockNumber",
    ) -> list[dict[str, Any]]:
        query: dict[str, Any] = {
            "Namespace": self._namespace,
            "Table": table,
            "Columns": [],
            "Filter": filters,
            "Order": [{"Column": order_column, "SortOrder": "DESC"}] if order_column else [],
            "Limit": max(1, int(limit)),
        }
        return _rows(await self._call("circles_query", [query]))

    async def get_profile(self, address: str) -> Profile | None:
        key = normalize_address(address)
        rows = await self._query("Avatars", [_equals("avatar", key)], limit=1, order_column=None)
        if not rows:
            return None
        row = rows[0]
        name = str(row.get("name") or row.get("displayName") or "").strip()
        return Profile(address=str(row.get("avatar") or key), display_name=name, metadata=dict(row))

    async def get_balance(self, address: str) -> float:
        key = normalize_address(address)
        calls: list[Awaitable[Any]] = [self._call("circlesV2_getTotalBalance", [key, True])]
        if self._include_v1:
            calls.append(self._call("circles_getTotalBalance", [key, True]))
        results = await asyncio.gather(*calls, return_exceptions=True)
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors and len(errors) == len(results):
            raise errors[0]
        for err in errors:
            # A rate-limited version must be re-read, not silently counted as zero.
            if isinstance(err, RateLimitedError):
                raise err
            logger.warning("BALANCE_VERSION_FAILED address=%s error=%s", key, err)
        return sum(_to_amount(r) for r in results if not isinstance(r, BaseException))

    async def get_trust_relations(self, address: str, limit: int) -> list[TrustRelation]:
        key = normalize_address(address)
        rows = await self._query(
            "TrustRelations",
            [_either(_equals("truster", key), _equals("trustee", key))],
            limit=limit,
        )
        out: list[TrustRelation] = []
        for row in rows:
            truster = str(row.get("truster") or "").strip()
            trustee = str(row.get("trustee") or "").strip()
            if not truster or not trustee:
                continue
            limit_raw = row.get("limit")
            expiry_raw = row.get("expiryTime")
            try:
                relation = TrustRelation(
                    truster=truster,
                    trustee=trustee,
                    limit=float(limit_raw) if limit_raw is not None else None,
                    expiry_time=int(expiry_raw) if expiry_raw is not None else None,
                )
            except (TypeError, ValueError) as exc:
                raise LedgerDataError(f"malformed_trust_row address={key}: {exc}") from exc
            out.append(relation)
        return out

    async def get_transaction_history(self, address: str, limit: int) -> list[TransactionRecord]:
        key = normalize_address(address)
        rows = await self._query(
            "Transfers",
            [_either(_equals("from", key), _equals("to", key))],
            limit=limit,
        )
        out: list[TransactionRecord] = []
        for row in rows:
            ts_raw = row.get("timestamp")
            try:
                timestamp = int(ts_raw) if ts_raw is not None else None
            except (TypeError, ValueError) as exc:
                raise LedgerDataError(f"malformed_transfer_row address={key} timestamp={ts_raw!r}") from exc
            out.append(
                TransactionRecord(
                    timestamp=timestamp,
                    method=str(row.get("method") or ""),
                    input=str(row.get("input") or ""),
                    event_type=str(row.get("event_type") or row.get("type") or ""),
                    tx_hash=str(row.get("transactionHash") or ""),
                )
            )
        return out


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    base_delay: float = 1.0

    @classmethod
    def from_config(cls) -> "RetryPolicy":
        return cls(
            attempts=int(config.LEDGER_RETRY_ATTEMPTS),
            base_delay=float(config.LEDGER_RETRY_BASE_SECONDS),
        )


def _is_rate_limited(exc: BaseException) -> bool:
    return isinstance(exc, RateLimitedError)


def _exhausted(exc: BaseException, attempts: int) -> BaseException:
    status = int(getattr(exc, "status", 0) or 0)
    return RateLimitedError(f"rate limited after {attempts} attempts: {exc}", attempts=attempts, status=status)


class ResilientLedgerClient:
    """Applies the rate-limit retry policy uniformly to every ledger read.

    Holds no per-request state, so one instance can serve many concurrent
    lookups for different addresses.
    """

    def __init__(
        self,
        reader: LedgerReader,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._reader = reader
        self._policy = policy or RetryPolicy.from_config()
        self._sleep = sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def _with_retry(self, label: str, operation: Callable[[], Awaitable[T]]) -> T:
        return await retry_async(
            operation,
            attempts=self._policy.attempts,
            base_delay=self._policy.base_delay,
            is_retryable=_is_rate_limited,
            on_exhausted=_exhausted,
            label=label,
            sleep=self._sleep,
        )

    async def get_profile(self, address: str) -> Profile | None:
        return await self._with_retry(f"get_profile:{address}", lambda: self._reader.get_profile(address))

    async def get_balance(self, address: str) -> float:
        balance = await self._with_retry(f"get_balance:{address}", lambda: self._reader.get_balance(address))
        return max(0.0, float(balance or 0.0))

    async def get_trust_relations(self, address: str, limit: int) -> list[TrustRelation]:
        rows = await self._with_retry(
            f"get_trust_relations:{address}",
            lambda: self._reader.get_trust_relations(address, limit),
        )
        return list(rows or [])

    async def get_transaction_history(self, address: str, limit: int) -> list[TransactionRecord]:
        rows = await self._with_retry(
            f"get_transaction_history:{address}",
            lambda: self._reader.get_transaction_history(address, limit),
        )
        return list(rows or [])

    async def get_last_claim_time(self, address: str, limit: int) -> datetime | None:
        history = await self.get_transaction_history(address, limit)
        last_claim = last_personal_mint_time(history)
        if last_claim is None:
            logger.info("NO_PERSONAL_MINT address=%s scanned=%s", address, len(history))
        return last_claim
