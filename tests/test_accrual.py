from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from circles import accrual as accrual_module
from circles.accrual import AccrualCalculator, AccrualSettings
from circles.errors import FutureTimestampError, NoClaimHistoryError

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class AccrualCalculatorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.calc = AccrualCalculator(AccrualSettings(), clock=lambda: NOW)

    def test_three_hours_accrue_three_crc(self) -> None:
        self.assertEqual(self.calc.accrual(NOW - timedelta(hours=3)), 3.0)

    def test_accrual_is_capped_at_a_week(self) -> None:
        for days in (7, 8, 30, 365):
            self.assertEqual(self.calc.accrual(NOW - timedelta(days=days)), 168.0)

    def test_missing_claim_time_raises(self) -> None:
        with self.assertRaises(NoClaimHistoryError):
            self.calc.accrual(None)

    def test_future_claim_time_raises(self) -> None:
        with self.assertRaises(FutureTimestampError):
            self.calc.accrual(NOW + timedelta(hours=1))

    def test_just_claimed_is_zero(self) -> None:
        self.assertEqual(self.calc.accrual(NOW), 0.0)

    def test_naive_datetimes_are_treated_as_utc(self) -> None:
        naive = (NOW - timedelta(hours=5)).replace(tzinfo=None)
        self.assertEqual(self.calc.accrual(naive), 5.0)

    def test_rates_are_overridable(self) -> None:
        calc = AccrualCalculator(AccrualSettings(hourly_rate=2.0, max_accrual_days=1.0), clock=lambda: NOW)
        self.assertEqual(calc.accrual(NOW - timedelta(hours=10)), 20.0)
        self.assertEqual(calc.accrual(NOW - timedelta(days=3)), 48.0)

    def test_needs_reminder_boundary(self) -> None:
        self.assertFalse(self.calc.needs_reminder(23.999))
        self.assertTrue(self.calc.needs_reminder(24.0))

    def test_priority_tiers(self) -> None:
        self.assertEqual(self.calc.priority(23.9), "none")
        self.assertEqual(self.calc.priority(24), "low")
        self.assertEqual(self.calc.priority(48), "medium")
        self.assertEqual(self.calc.priority(72), "high")
        self.assertEqual(self.calc.priority(119.9), "high")
        self.assertEqual(self.calc.priority(120), "urgent")

    def test_priority_uses_configured_daily_unit(self) -> None:
        calc = AccrualCalculator(AccrualSettings(daily_unit=10.0))
        self.assertEqual(calc.priority(20), "medium")
        self.assertTrue(calc.needs_reminder(10))

    def test_hours_since_clamps_and_handles_unknown(self) -> None:
        self.assertEqual(self.calc.hours_since(None), 0.0)
        self.assertEqual(self.calc.hours_since(NOW + timedelta(hours=2)), 0.0)
        self.assertEqual(self.calc.hours_since(NOW - timedelta(hours=30)), 30.0)

    def test_module_helpers_use_defaults(self) -> None:
        self.assertEqual(accrual_module.priority(120), "urgent")
        self.assertTrue(accrual_module.needs_reminder(24.0))
        with self.assertRaises(NoClaimHistoryError):
            accrual_module.accrual(None)


if __name__ == "__main__":
    unittest.main()
