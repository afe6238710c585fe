"""
Geração de ocorrências de séries recorrentes (dias / meses / anos).
"""
from datetime import datetime, timedelta
from unittest import TestCase
from zoneinfo import ZoneInfo

from appointment_scheduling.core.domain.entities.occurrence_rule import (
    DaysRule,
    MonthsRule,
    YearsRule,
    clamp_occurrence_count,
    rule_from_dict,
    rule_from_preset,
)
from appointment_scheduling.core.domain.services.recurrence_engine import generate_occurrences
from clinic_core.core.domain.events.exceptions import ValidationError

SP = ZoneInfo("America/Sao_Paulo")
NY = ZoneInfo("America/New_York")


class GenerateOccurrencesTests(TestCase):
    def test_exact_count_and_strictly_increasing(self):
        first = datetime(2025, 5, 5, 14, 30, tzinfo=SP)
        for rule in (DaysRule(7, 12), MonthsRule(1, 9), YearsRule(1, 4), DaysRule(1, 60)):
            with self.subTest(rule=rule):
                occ = generate_occurrences(first, rule, 45)
                self.assertEqual(len(occ), rule.occurrence_count)
                self.assertEqual([o.index for o in occ], list(range(1, rule.occurrence_count + 1)))
                self.assertTrue(all(o.total_count == rule.occurrence_count for o in occ))
                starts = [o.start_time for o in occ]
                self.assertTrue(all(a < b for a, b in zip(starts, starts[1:], strict=False)))
                self.assertTrue(all(o.end_time - o.start_time == timedelta(minutes=45) for o in occ))

    def test_monthly_series_from_jan_31_clamps_without_drifting(self):
        occ = generate_occurrences(datetime(2025, 1, 31, 10, 0, tzinfo=SP), MonthsRule(1, 3), 60)
        self.assertEqual(
            [(o.start_time.month, o.start_time.day, o.start_time.hour) for o in occ],
            [(1, 31, 10), (2, 28, 10), (3, 31, 10)],
        )

    def test_fourteen_day_interval(self):
        occ = generate_occurrences(datetime(2025, 3, 1, 9, 0, tzinfo=SP), DaysRule(14, 4), 30)
        self.assertEqual(
            [o.start_time.date().isoformat() for o in occ],
            ["2025-03-01", "2025-03-15", "2025-03-29", "2025-04-12"],
        )
        self.assertTrue(all(o.start_time.hour == 9 for o in occ))

    def test_day_interval_keeps_wall_clock_across_dst(self):
        # horário de verão nos EUA começa em 09/03/2025
        occ = generate_occurrences(datetime(2025, 3, 1, 9, 0), DaysRule(14, 2), 30, tz=NY)
        self.assertEqual([o.start_time.hour for o in occ], [9, 9])
        self.assertEqual(occ[1].start_time.utcoffset(), timedelta(hours=-4))
        self.assertEqual(occ[0].start_time.utcoffset(), timedelta(hours=-5))

    def test_yearly_series_from_leap_day(self):
        occ = generate_occurrences(datetime(2024, 2, 29, 8, 0, tzinfo=SP), YearsRule(1, 5), 60)
        self.assertEqual(
            [o.start_time.date().isoformat() for o in occ],
            ["2024-02-29", "2025-02-28", "2026-02-28", "2027-02-28", "2028-02-29"],
        )

    def test_time_of_day_seconds_are_preserved(self):
        occ = generate_occurrences(datetime(2025, 1, 15, 16, 45, 30, tzinfo=SP), MonthsRule(2, 3), 15)
        self.assertTrue(all((o.start_time.hour, o.start_time.minute, o.start_time.second) == (16, 45, 30) for o in occ))

    def test_naive_start_is_clinic_local_time(self):
        occ = generate_occurrences(datetime(2025, 6, 2, 8, 0), DaysRule(7, 2), 60)
        self.assertEqual(occ[0].start_time.utcoffset(), timedelta(hours=-3))
        self.assertEqual(occ[0].start_time.hour, 8)

    def test_aware_start_is_converted_to_clinic_zone(self):
        occ = generate_occurrences(datetime(2025, 6, 2, 11, 0, tzinfo=ZoneInfo("UTC")), DaysRule(7, 1), 60)
        self.assertEqual(occ[0].start_time.hour, 8)

    def test_count_is_clamped(self):
        first = datetime(2025, 1, 1, 9, 0, tzinfo=SP)
        self.assertEqual(len(generate_occurrences(first, DaysRule(1, 500), 30)), 60)
        self.assertEqual(len(generate_occurrences(first, DaysRule(1, 0), 30)), 1)
        self.assertEqual(clamp_occurrence_count(None), 10)

    def test_invalid_input_fails_fast(self):
        first = datetime(2025, 1, 1, 9, 0, tzinfo=SP)
        with self.assertRaises(ValidationError):
            generate_occurrences(first, DaysRule(0, 3), 30)
        with self.assertRaises(ValidationError):
            generate_occurrences(first, MonthsRule(-1, 3), 30)
        with self.assertRaises(ValidationError):
            generate_occurrences(first, DaysRule(7, 3), 0)
        with self.assertRaises(ValidationError):
            generate_occurrences("2025-01-01", DaysRule(7, 3), 30)
        with self.assertRaises(ValidationError):
            generate_occurrences(first, {"kind": "days"}, 30)


class OccurrenceRuleTests(TestCase):
    def test_rule_is_serialised_with_client_keys(self):
        self.assertEqual(DaysRule(14, 4).to_dict(), {"kind": "days", "intervalDays": 14, "occurrenceCount": 4})
        self.assertEqual(
            rule_from_dict({"kind": "years", "intervalYears": 2, "occurrenceCount": 3}),
            YearsRule(2, 3),
        )

    def test_unknown_kind_is_rejected(self):
        with self.assertRaises(ValidationError):
            rule_from_dict({"kind": "weeks", "intervalWeeks": 1})

    def test_presets(self):
        self.assertEqual(rule_from_preset("weekly-2", 5), DaysRule(14, 5))
        self.assertEqual(rule_from_preset("monthly-6", 100), MonthsRule(6, 60))
        self.assertEqual(rule_from_preset("yearly-1"), YearsRule(1, 10))
        self.assertIsNone(rule_from_preset(""))
        self.assertIsNone(rule_from_preset("fortnightly"))
