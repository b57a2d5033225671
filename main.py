"""Entry point for the CRC notifier."""

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import replace
from logging.handlers import RotatingFileHandler
from typing import Any

from circles.aggregator import EngineSettings, aggregate
from circles.errors import CirclesError, InvalidInputError, NotRegisteredError
from circles.ledger import CirclesRpcLedger
from circles.models import AggregationSnapshot
from circles.reminders import ReminderPrioritizer, compose_url, format_crc, format_time_since_last_claim
from config import APP_LOG_FILE, LOG_DIR, LOG_LEVEL
from utils import log_contracts
from utils.addressing import truncate_address

logger = logging.getLogger(__name__)

EXIT_ERROR = 1
EXIT_INVALID_INPUT = 2
EXIT_NOT_REGISTERED = 3


def configure_logging() -> None:
    os.makedirs(LOG_DIR, exist_ok=True)
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    file_handler = RotatingFileHandler(APP_LOG_FILE, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(getattr(logging, LOG_LEVEL.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(file_handler)
    root.addHandler(console_handler)

    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("web3").setLevel(logging.WARNING)


def snapshot_payload(snapshot: AggregationSnapshot, prioritizer: ReminderPrioritizer) -> dict[str, Any]:
    return {
        "address": snapshot.address,
        "name": snapshot.name,
        "total_balance": round(snapshot.total_balance, 6),
        "unclaimed": round(snapshot.unclaimed, 6) if snapshot.unclaimed_known else None,
        "is_registered": snapshot.is_registered,
        "connections": [
            {
                "address": c.address,
                "name": c.name,
                "balance": round(c.balance, 6),
                "unclaimed": round(c.unclaimed, 6),
                "mutual_trust": c.mutual_trust,
                "last_claim": c.last_claim.isoformat() if c.last_claim else None,
            }
            for c in snapshot.connections
        ],
        "excluded": [{"address": e.address, "reason": e.reason} for e in snapshot.excluded],
        "reminders": [
            {"address": r.connection.address, "priority": r.priority, "message": r.message}
            for r in prioritizer.prioritize(snapshot)
        ],
    }


def render_text(snapshot: AggregationSnapshot, prioritizer: ReminderPrioritizer, *, with_links: bool) -> str:
    own = f"{format_crc(snapshot.unclaimed)} CRC" if snapshot.unclaimed_known else "unknown"
    lines = [
        f"Account: {snapshot.name or truncate_address(snapshot.address)} ({snapshot.address})",
        f"Balance: {format_crc(snapshot.total_balance)} CRC",
        f"Unclaimed: {own}",
        f"Last claim: {format_time_since_last_claim(snapshot.last_claim)}",
        f"Connections: {len(snapshot.connections)} ({sum(1 for c in snapshot.connections if c.mutual_trust)} mutual), "
        f"excluded: {len(snapshot.excluded)}",
        prioritizer.summary(snapshot),
    ]
    for reminder in prioritizer.prioritize(snapshot):
        lines.append(f"[{reminder.priority}] {reminder.message}")
        if with_links:
            lines.append(f"    {compose_url(reminder.message)}")
    return "\n".join(lines)


async def run(identifier: str, *, as_json: bool, with_links: bool, max_concurrency: int | None) -> int:
    settings = EngineSettings.from_config()
    if max_concurrency is not None:
        settings = replace(settings, max_concurrency=max(0, max_concurrency))
    ledger = CirclesRpcLedger()
    try:
        snapshot = await aggregate(identifier, ledger, settings)
    except InvalidInputError as exc:
        print(f"Invalid input: {exc}", file=sys.stderr)
        return EXIT_INVALID_INPUT
    except NotRegisteredError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_NOT_REGISTERED
    except CirclesError as exc:
        logger.error("AGGREGATION_FAILED identifier=%s error=%s", identifier, exc)
        print(f"Failed to fetch Circles data: {exc}", file=sys.stderr)
        return EXIT_ERROR
    finally:
        logger.info("RPC_STATS %s", json.dumps(ledger.runtime_stats(), sort_keys=True))
        await ledger.close()

    prioritizer = ReminderPrioritizer()
    for reminder in prioritizer.prioritize(snapshot):
        row = log_contracts.reminder_event(
            {
                "root_address": snapshot.address,
                "address": reminder.connection.address,
                "priority": reminder.priority,
                "unclaimed": reminder.connection.unclaimed,
                "trace_id": snapshot.trace_id,
            },
            run_tag=settings.run_tag,
        )
        logger.info("REMINDER %s", json.dumps(row, sort_keys=True, default=str))
    if as_json:
        print(json.dumps(snapshot_payload(snapshot, prioritizer), indent=2, ensure_ascii=False))
    else:
        print(render_text(snapshot, prioritizer, with_links=with_links))
    return 0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Find trusted Circles friends with unclaimed CRC.")
    parser.add_argument("identifier", help="Circles address (0x...) or name handle")
    parser.add_argument("--json", action="store_true", help="print the snapshot as JSON")
    parser.add_argument("--links", action="store_true", help="print a compose link under each reminder")
    parser.add_argument("--max-concurrency", type=int, default=None, help="cap concurrent counterpart lookups")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging()
    return asyncio.run(
        run(args.identifier, as_json=args.json, with_links=args.links, max_concurrency=args.max_concurrency)
    )


if __name__ == "__main__":
    sys.exit(main())
