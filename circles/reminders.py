"""Reminder ranking and message templates."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import quote

import config
from circles.accrual import (
    PRIORITY_HIGH,
    PRIORITY_MEDIUM,
    PRIORITY_URGENT,
    AccrualCalculator,
    AccrualSettings,
)
from circles.models import AggregationSnapshot, Connection
from utils.addressing import truncate_address

# (emoji, suffix) per priority; anything else gets the plain coin tone.
_TONES: dict[str, tuple[str, str]] = {
    PRIORITY_URGENT: ("🚨", " (You're missing out on a lot of CRC!)"),
    PRIORITY_HIGH: ("⏰", " (Don't let it accumulate too much!)"),
    PRIORITY_MEDIUM: ("💫", ""),
}
_DEFAULT_TONE = ("🪙", "")


@dataclass(frozen=True)
class Reminder:
    connection: Connection
    priority: str
    message: str


def format_crc(amount: float | str | None, decimals: int = 1) -> str:
    try:
        value = float(amount)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        value = float("nan")
    if math.isnan(value):
        return f"{0:.{decimals}f}"
    return f"{value:.{decimals}f}"


def describe_unclaimed(amount: float, daily_unit: float = 24.0) -> str:
    days = int(math.floor(amount / daily_unit))
    hours = int(math.floor(amount % daily_unit))
    if days == 0:
        return f"{hours} hours of unclaimed CRC"
    if days == 1 and hours == 0:
        return "1 day of unclaimed CRC"
    if hours == 0:
        return f"{days} days of unclaimed CRC"
    return f"{days} days, {hours} hours of unclaimed CRC"


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'}"


def format_time_since_last_claim(last_claim: datetime | None, now: datetime | None = None) -> str:
    if last_claim is None:
        return "Never claimed or unknown"
    current = now or datetime.now(timezone.utc)
    if last_claim.tzinfo is None:
        last_claim = last_claim.replace(tzinfo=timezone.utc)
    hours = (current - last_claim).total_seconds() / 3600.0
    if hours < 0:
        return "Invalid date"
    if hours < 1:
        return f"{_plural(int(math.floor(hours * 60)), 'minute')} ago"
    if hours < 24:
        return f"{_plural(int(math.floor(hours)), 'hour')} ago"
    days = int(math.floor(hours / 24))
    remaining = int(math.floor(hours % 24))
    if remaining == 0:
        return f"{_plural(days, 'day')} ago"
    return f"{_plural(days, 'day')}, {_plural(remaining, 'hour')} ago"


def display_name(connection: Connection) -> str:
    return connection.name or truncate_address(connection.address)


def profile_url(address: str, base_url: str | None = None) -> str:
    return f"{(base_url or config.REMINDER_CLAIM_URL).rstrip('/')}/profile/{address}"


def wallet_url(address: str, base_url: str | None = None) -> str:
    return f"{(base_url or config.REMINDER_CLAIM_URL).rstrip('/')}/wallet/{address}"


def compose_url(text: str, base_url: str | None = None) -> str:
    """Link that opens a social composer prefilled with ``text``."""
    return f"{base_url or config.REMINDER_COMPOSE_URL}?text={quote(text, safe='')}"


class ReminderPrioritizer:
    def __init__(
        self,
        calculator: AccrualCalculator | None = None,
        *,
        claim_url: str | None = None,
        hashtags: list[str] | None = None,
    ) -> None:
        self._calculator = calculator or AccrualCalculator(AccrualSettings.from_config())
        self._claim_url = claim_url or config.REMINDER_CLAIM_URL
        self._hashtags = list(config.REMINDER_HASHTAGS if hashtags is None else hashtags)

    def message(self, connection: Connection) -> str:
        priority = self._calculator.priority(connection.unclaimed)
        emoji, urgency = _TONES.get(priority, _DEFAULT_TONE)
        description = describe_unclaimed(connection.unclaimed, self._calculator.settings.daily_unit)
        tags = " ".join(f"#{tag}" for tag in self._hashtags)
        text = (
            f"Hey {display_name(connection)}! 👋 You have {format_crc(connection.unclaimed)} CRC ready to redeem "
            f"({description}){urgency} Claim your Circles UBI at {self._claim_url} {emoji}"
        )
        return f"{text} {tags}" if tags else text

    def pending(self, snapshot: AggregationSnapshot) -> list[Connection]:
        """Connections needing a reminder, most unclaimed first (stable on ties)."""
        flagged = [c for c in snapshot.connections if self._calculator.needs_reminder(c.unclaimed)]
        return sorted(flagged, key=lambda c: c.unclaimed, reverse=True)

    def prioritize(self, snapshot: AggregationSnapshot) -> list[Reminder]:
        return [
            Reminder(connection=c, priority=self._calculator.priority(c.unclaimed), message=self.message(c))
            for c in self.pending(snapshot)
        ]

    def summary(self, snapshot: AggregationSnapshot) -> str:
        count = len(self.pending(snapshot))
        if count == 0:
            return "No friends need a reminder right now"
        if count == 1:
            return "1 friend needs a reminder"
        return f"{count} friends need a reminder"
