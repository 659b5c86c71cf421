"""
Unit Tests for Competence Month Calculator
"""

from datetime import date

import pytest

from commission_engine.calculators.competence import CompetenceCalculator, next_month
from commission_engine.models import CutoffPeriod


class TestCutoffDay:
    """Default rule: on or before the cutoff day stays, after it rolls forward."""

    @pytest.fixture
    def calculator(self):
        return CompetenceCalculator()

    @pytest.mark.parametrize(
        "paid,expected",
        [
            (date(2024, 1, 3), "2024-01"),
            (date(2024, 2, 1), "2024-02"),
            (date(2024, 2, 5), "2024-02"),
            (date(2024, 2, 6), "2024-03"),
            (date(2024, 2, 7), "2024-03"),
            (date(2024, 2, 29), "2024-03"),
        ],
    )
    def test_default_cutoff_of_day_five(self, calculator, paid, expected):
        assert calculator.competence_month(paid) == expected

    def test_december_rolls_into_next_year(self, calculator):
        assert calculator.competence_month(date(2024, 12, 20)) == "2025-01"

    def test_custom_cutoff_day(self):
        calculator = CompetenceCalculator(cutoff_day=10)

        assert calculator.competence_month(date(2024, 3, 10)) == "2024-03"
        assert calculator.competence_month(date(2024, 3, 11)) == "2024-04"

    def test_next_month(self):
        assert next_month(2024, 1) == (2024, 2)
        assert next_month(2024, 12) == (2025, 1)


class TestCutoffPeriods:
    """Operator-defined windows override the cutoff day."""

    @pytest.fixture
    def period(self):
        return CutoffPeriod(
            id="p-1",
            name="Fechamento Março",
            start_date=date(2024, 2, 1),
            end_date=date(2024, 2, 10),
            competence_month="2024-04",
        )

    def test_period_wins_inside_window(self, period):
        calculator = CompetenceCalculator(periods=[period])

        assert calculator.competence_month(date(2024, 2, 1)) == "2024-04"
        assert calculator.competence_month(date(2024, 2, 3)) == "2024-04"
        assert calculator.competence_month(date(2024, 2, 10)) == "2024-04"

    def test_cutoff_day_applies_outside_window(self, period):
        calculator = CompetenceCalculator(periods=[period])

        assert calculator.competence_month(date(2024, 2, 11)) == "2024-03"
        assert calculator.competence_month(date(2024, 1, 31)) == "2024-02"
