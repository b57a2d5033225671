"""Time-based CRC accrual and reminder severity tiers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

import config
from circles.errors import FutureTimestampError, NoClaimHistoryError

SECONDS_PER_HOUR = 3600.0

PRIORITY_URGENT = "urgent"
PRIORITY_HIGH = "high"
PRIORITY_MEDIUM = "medium"
PRIORITY_LOW = "low"
PRIORITY_NONE = "none"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class AccrualSettings:
    hourly_rate: float = 1.0
    max_accrual_days: float = 7.0
    daily_unit: float = 24.0

    @classmethod
    def from_config(cls) -> "AccrualSettings":
        return cls(
            hourly_rate=float(config.CIRCLES_HOURLY_RATE),
            max_accrual_days=float(config.CIRCLES_MAX_ACCRUAL_DAYS),
            daily_unit=float(config.CIRCLES_DAILY_UNIT),
        )

    @property
    def max_hours(self) -> float:
        return self.max_accrual_days * 24.0


class AccrualCalculator:
    def __init__(
        self,
        settings: AccrualSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings or AccrualSettings()
        self._clock = clock

    def now(self) -> datetime:
        return _as_utc(self._clock())

    def hours_since(self, last_claim_time: datetime | None) -> float:
        """Elapsed hours, clamped at zero; 0 when the claim time is unknown."""
        if last_claim_time is None:
            return 0.0
        seconds = (self.now() - _as_utc(last_claim_time)).total_seconds()
        return max(0.0, seconds / SECONDS_PER_HOUR)

    def accrual(self, last_claim_time: datetime | None) -> float:
        if last_claim_time is None:
            raise NoClaimHistoryError()
        seconds = (self.now() - _as_utc(last_claim_time)).total_seconds()
        if seconds < 0:
            raise FutureTimestampError(last_claim_time)
        hours = seconds / SECONDS_PER_HOUR
        return min(hours, self.settings.max_hours) * self.settings.hourly_rate

    def priority(self, amount: float) -> str:
        unit = self.settings.daily_unit
        if amount >= unit * 5:
            return PRIORITY_URGENT
        if amount >= unit * 3:
            return PRIORITY_HIGH
        if amount >= unit * 2:
            return PRIORITY_MEDIUM
        if amount >= unit:
            return PRIORITY_LOW
        return PRIORITY_NONE

    def needs_reminder(self, amount: float) -> bool:
        return amount >= self.settings.daily_unit


_DEFAULT = AccrualCalculator()


def accrual(last_claim_time: datetime | None) -> float:
    return _DEFAULT.accrual(last_claim_time)


def priority(amount: float) -> str:
    return _DEFAULT.priority(amount)


def needs_reminder(amount: float) -> bool:
    return _DEFAULT.needs_reminder(amount)
