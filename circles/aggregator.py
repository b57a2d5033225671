"""Stateless entry point: identifier in, aggregation snapshot out."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable

import config
from circles.accrual import AccrualCalculator, AccrualSettings, utc_now
from circles.enricher import ConnectionEnricher
from circles.errors import AccrualError, InvalidInputError, NotRegisteredError
from circles.ledger import LedgerReader, ResilientLedgerClient, RetryPolicy
from circles.models import AggregationSnapshot
from circles.trust_graph import aggregate_counterparts
from utils import log_contracts
from utils.addressing import is_hex_address, normalize_input, to_checksum

logger = logging.getLogger(__name__)

NameResolver = Callable[[str], Awaitable["str | None"]]


@dataclass(frozen=True)
class EngineSettings:
    accrual: AccrualSettings = field(default_factory=AccrualSettings)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    trust_page_size: int = 100
    history_page_size: int = 100
    max_concurrency: int = 0
    run_tag: str = ""

    @classmethod
    def from_config(cls) -> "EngineSettings":
        return cls(
            accrual=AccrualSettings.from_config(),
            retry=RetryPolicy.from_config(),
            trust_page_size=int(config.TRUST_RELATIONS_PAGE_SIZE),
            history_page_size=int(config.TRANSACTION_HISTORY_PAGE_SIZE),
            max_concurrency=int(config.ENRICH_MAX_CONCURRENCY),
            run_tag=str(config.RUN_TAG),
        )


async def resolve_root(identifier: str, resolver: NameResolver | None = None) -> str:
    """Normalize user input and resolve name handles to a checksum address."""
    normalized = normalize_input(identifier)
    if is_hex_address(normalized):
        return normalized
    if resolver is None:
        raise InvalidInputError("unresolved_name", f"No name resolver configured for {normalized}")
    resolved = await resolver(normalized)
    if not resolved or not is_hex_address(str(resolved).strip()):
        raise InvalidInputError("unresolved_name", f"Could not resolve {normalized} to an address")
    return to_checksum(str(resolved))


async def _root_unclaimed(
    client: ResilientLedgerClient,
    calculator: AccrualCalculator,
    address: str,
    history_limit: int,
) -> tuple[float, bool, datetime | None]:
    try:
        last_claim = await client.get_last_claim_time(address, history_limit)
    except Exception as exc:
        logger.warning("ROOT_HISTORY_UNAVAILABLE address=%s error=%s: %s", address, type(exc).__name__, exc)
        return 0.0, False, None
    try:
        return max(0.0, calculator.accrual(last_claim)), True, last_claim
    except AccrualError as exc:
        logger.warning("ROOT_UNCLAIMED_UNKNOWN address=%s error=%s", address, exc)
        return 0.0, False, last_claim


async def aggregate(
    identifier: str,
    ledger: LedgerReader | ResilientLedgerClient,
    settings: EngineSettings | None = None,
    *,
    resolver: NameResolver | None = None,
    clock: Callable[[], datetime] = utc_now,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> AggregationSnapshot:
    """Compute one snapshot of the root's trust network.

    Failures on the root (invalid input, missing profile, balance or relation
    lookups) raise; failures on counterparts degrade or exclude them.

    ``ledger`` may be a bare ``LedgerReader``, which is wrapped with
    ``settings.retry`` and ``sleep``. A ready-made ``ResilientLedgerClient`` is
    used as is: its own retry policy and sleep apply, and ``settings.retry``
    and ``sleep`` are ignored.
    """
    settings = settings or EngineSettings.from_config()
    address = await resolve_root(identifier, resolver)
    if isinstance(ledger, ResilientLedgerClient):
        client = ledger
        if settings.retry != client.policy:
            logger.debug(
                "RETRY_POLICY_FROM_CLIENT attempts=%s base_delay=%s",
                client.policy.attempts,
                client.policy.base_delay,
            )
    else:
        client = ResilientLedgerClient(ledger, settings.retry, sleep=sleep)
    calculator = AccrualCalculator(settings.accrual, clock=clock)
    trace_id = log_contracts.aggregation_trace_id(address, started=clock(), run_tag=settings.run_tag)

    profile = await client.get_profile(address)
    if profile is None:
        raise NotRegisteredError(address)
    total_balance = await client.get_balance(address)
    if total_balance <= 0:
        logger.info("ROOT_BALANCE_EMPTY address=%s", address)
    relations = await client.get_trust_relations(address, settings.trust_page_size)
    counterparts = aggregate_counterparts(address, relations)
    logger.info(
        "TRUST_GRAPH address=%s relations=%s counterparts=%s mutual=%s",
        address,
        len(relations),
        len(counterparts),
        sum(1 for cp in counterparts if cp.mutual_trust),
    )

    enricher = ConnectionEnricher(
        client,
        calculator,
        history_limit=settings.history_page_size,
        max_concurrency=settings.max_concurrency,
        run_tag=settings.run_tag,
        trace_id=trace_id,
    )
    (connections, excluded), (unclaimed, unclaimed_known, last_claim) = await asyncio.gather(
        enricher.enrich(address, counterparts),
        _root_unclaimed(client, calculator, address, settings.history_page_size),
    )
    if not unclaimed_known:
        row = log_contracts.connection_decision_event(
            {
                "root_address": address,
                "address": address,
                "decision_stage": "root",
                "reason": "root_unclaimed_unknown",
                "trace_id": trace_id,
            },
            run_tag=settings.run_tag,
        )
        logger.info("CONNECTION_DECISION %s", json.dumps(row, sort_keys=True, default=str))

    return AggregationSnapshot(
        address=address,
        total_balance=total_balance,
        unclaimed=unclaimed,
        unclaimed_known=unclaimed_known,
        connections=tuple(connections),
        is_registered=True,
        name=profile.display_name or None,
        last_claim=last_claim,
        excluded=tuple(excluded),
        trace_id=trace_id,
    )
