"""Per-counterpart enrichment with failure isolation."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Iterable

from circles.accrual import AccrualCalculator
from circles.errors import AccrualError, FutureTimestampError, NoClaimHistoryError
from circles.ledger import ResilientLedgerClient
from circles.models import Connection, Counterpart, ExcludedConnection, Profile
from utils import log_contracts
from utils.addressing import is_hex_address, to_checksum

logger = logging.getLogger(__name__)


def _canonical(address: str) -> str:
    text = str(address or "").strip()
    if is_hex_address(text.lower()):
        return to_checksum(text)
    return text


def _unwrap(result: Any) -> Any:
    # Cancellation and interpreter exits are not lookup failures.
    if isinstance(result, BaseException) and not isinstance(result, Exception):
        raise result
    return result


def _describe(exc: BaseException) -> str:
    text = str(exc).strip()
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


class ConnectionEnricher:
    def __init__(
        self,
        ledger: ResilientLedgerClient,
        calculator: AccrualCalculator,
        *,
        history_limit: int = 100,
        max_concurrency: int = 0,
        run_tag: str = "",
        trace_id: str = "",
    ) -> None:
        self._ledger = ledger
        self._calculator = calculator
        self._history_limit = max(1, int(history_limit))
        self._max_concurrency = max(0, int(max_concurrency))
        self._run_tag = run_tag
        self._trace_id = trace_id

    def _log_decision(self, root: str, address: str, reason: str, **fields: Any) -> None:
        event = {"root_address": root, "address": address, "reason": reason, **fields}
        if self._trace_id:
            event["trace_id"] = self._trace_id
        row = log_contracts.connection_decision_event(event, run_tag=self._run_tag)
        level = logging.DEBUG if reason == "included" else logging.INFO
        logger.log(level, "CONNECTION_DECISION %s", json.dumps(row, sort_keys=True, default=str))

    async def enrich(
        self,
        root: str,
        counterparts: Iterable[Counterpart],
    ) -> tuple[list[Connection], list[ExcludedConnection]]:
        """Enrich every counterpart concurrently; output keeps the input order."""
        items = list(counterparts)
        sem = asyncio.Semaphore(self._max_concurrency) if self._max_concurrency > 0 else None

        async def _run(counterpart: Counterpart) -> Connection | ExcludedConnection:
            if sem is None:
                return await self.enrich_one(root, counterpart)
            async with sem:
                return await self.enrich_one(root, counterpart)

        results = await asyncio.gather(*(_run(cp) for cp in items)) if items else []
        connections = [r for r in results if isinstance(r, Connection)]
        excluded = [r for r in results if isinstance(r, ExcludedConnection)]
        logger.info(
            "ENRICH_DONE root=%s counterparts=%s included=%s excluded=%s",
            root,
            len(items),
            len(connections),
            len(excluded),
        )
        return connections, excluded

    async def enrich_one(self, root: str, counterpart: Counterpart) -> Connection | ExcludedConnection:
        """Build one connection; a failed lookup degrades or excludes only this counterpart."""
        address = _canonical(counterpart.address)
        profile_res, balance_res, claim_res = await asyncio.gather(
            self._ledger.get_profile(address),
            self._ledger.get_balance(address),
            self._ledger.get_last_claim_time(address, self._history_limit),
            return_exceptions=True,
        )
        profile_res = _unwrap(profile_res)
        balance_res = _unwrap(balance_res)
        claim_res = _unwrap(claim_res)

        if isinstance(claim_res, Exception):
            detail = _describe(claim_res)
            logger.warning("HISTORY_LOOKUP_FAILED address=%s error=%s", address, detail)
            self._log_decision(root, address, "history_unavailable", decision="exclude", detail=detail)
            return ExcludedConnection(address=address, reason="history_unavailable", detail=detail)
        try:
            unclaimed = self._calculator.accrual(claim_res)
        except NoClaimHistoryError as exc:
            self._log_decision(root, address, "no_claim_history", decision="exclude", detail=str(exc))
            return ExcludedConnection(address=address, reason="no_claim_history", detail=str(exc))
        except FutureTimestampError as exc:
            self._log_decision(root, address, "future_timestamp", decision="exclude", detail=str(exc))
            return ExcludedConnection(address=address, reason="future_timestamp", detail=str(exc))
        except AccrualError as exc:
            self._log_decision(root, address, "accrual_failed", decision="exclude", detail=str(exc))
            return ExcludedConnection(address=address, reason="accrual_failed", detail=str(exc))

        balance = 0.0
        if isinstance(balance_res, Exception):
            logger.warning("BALANCE_LOOKUP_FAILED address=%s error=%s", address, _describe(balance_res))
            self._log_decision(root, address, "balance_unavailable", decision="degrade", detail=_describe(balance_res))
        else:
            try:
                balance = max(0.0, float(balance_res or 0.0))
            except (TypeError, ValueError):
                self._log_decision(root, address, "balance_unavailable", decision="degrade", detail=repr(balance_res))

        name: str | None = None
        if isinstance(profile_res, Exception):
            logger.warning("PROFILE_LOOKUP_FAILED address=%s error=%s", address, _describe(profile_res))
            self._log_decision(root, address, "profile_unavailable", decision="degrade", detail=_describe(profile_res))
        elif isinstance(profile_res, Profile):
            name = profile_res.display_name or None

        self._log_decision(
            root,
            address,
            "included",
            decision="include",
            mutual_trust=counterpart.mutual_trust,
            unclaimed=round(unclaimed, 4),
        )
        return Connection(
            address=address,
            balance=balance,
            unclaimed=unclaimed,
            mutual_trust=counterpart.mutual_trust,
            name=name,
            last_claim=claim_res,
        )
