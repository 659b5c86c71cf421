"""
Competence Month Calculator

Maps a payment date to the accounting month its commission is attributed to.
"""

from datetime import date

from ..models import CutoffPeriod


class CompetenceCalculator:
    """Derives competence months from payment dates."""

    def __init__(self, cutoff_day: int = 5, periods: list[CutoffPeriod] | None = None):
        self.cutoff_day = cutoff_day
        self.periods = list(periods or [])

    def competence_month(self, paid_date: date) -> str:
        """
        Derive the competence month for a payment.

        Order of resolution:
        1. A configured cutoff period containing the date
        2. Cutoff day: on or before it → same month, after it → following month
        """
        for period in self.periods:
            if period.contains(paid_date):
                return period.competence_month

        year, month = paid_date.year, paid_date.month
        if paid_date.day > self.cutoff_day:
            year, month = next_month(year, month)
        return f"{year:04d}-{month:02d}"


def next_month(year: int, month: int) -> tuple[int, int]:
    if month == 12:
        return year + 1, 1
    return year, month + 1
