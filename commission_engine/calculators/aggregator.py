"""
Competence Aggregator

Rolls paid installments up by competence month and recipient role. Reports
are always re-derived from each record's ledger and states; nothing here is
persisted.
"""

import threading
import time
from decimal import Decimal
from typing import Iterable

from ..errors import AggregationCancelledError
from ..models import (
    COMPLETED,
    DELAYED,
    IN_PROGRESS,
    PAID,
    RECORD_CANCELLED,
    CommissionRecord,
    CompetenceFilter,
    CompetenceReport,
    MonthTotals,
    RecordSummary,
    ReportLine,
)

ZERO = Decimal("0")
ALL_ROLES = frozenset({"consultant", "manager", "angel"})


class Deadline:
    """
    Cooperative cancellation for long scans.

    Expires after `timeout` seconds, or as soon as `event` is set, whichever
    comes first. Either argument may be omitted.
    """

    def __init__(self, timeout: float | None = None, event: threading.Event | None = None):
        self._expires_at = time.monotonic() + timeout if timeout is not None else None
        self._event = event

    @property
    def expired(self) -> bool:
        if self._event is not None and self._event.is_set():
            return True
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def check(self) -> None:
        if self.expired:
            raise AggregationCancelledError("Competence aggregation was cancelled before completing")


class CompetenceAggregator:
    """Builds competence reports from commission records."""

    def aggregate(
        self,
        records: Iterable[CommissionRecord],
        report_filter: CompetenceFilter | None = None,
        deadline: Deadline | None = None,
    ) -> CompetenceReport:
        """
        Aggregate paid installments into a CompetenceReport.

        Only installments with status Pago and a competence month count.
        total_sold sums the gross base of contributing installments; recipient
        totals sum their nets. With a recipient filter, totals and lines carry
        only the shares of the roles that person holds.

        Raises:
            AggregationCancelledError: the deadline expired mid-scan. No
                partial report is ever returned.
        """
        report_filter = report_filter or CompetenceFilter()
        report = CompetenceReport()
        months: dict[str, MonthTotals] = {}

        for record in records:
            if deadline is not None:
                deadline.check()
            if not report_filter.matches_record(record):
                continue

            roles = ALL_ROLES
            if report_filter.recipient:
                roles = record.recipients.roles_of(report_filter.recipient)

            for number in sorted(record.states):
                state = record.states[number]
                if not self._contributes(state, report_filter):
                    continue

                entry = record.ledger_entry(number)
                consultant = entry.consultant_net if "consultant" in roles else ZERO
                manager = entry.manager_net if "manager" in roles else ZERO
                angel = entry.angel_net if "angel" in roles else ZERO

                bucket = months.setdefault(state.competence_month, MonthTotals(month=state.competence_month))
                for target in (report, bucket):
                    target.total_sold += entry.gross_base
                    target.totals.consultant += consultant
                    target.totals.manager += manager
                    target.totals.angel += angel

                report.lines.append(
                    ReportLine(
                        record_id=record.id,
                        client_name=record.sale.client_name,
                        group=record.sale.group,
                        quota=record.sale.quota,
                        sale_type=record.sale.sale_type,
                        installment_number=number,
                        competence_month=state.competence_month,
                        paid_date=state.paid_date,
                        gross_base=entry.gross_base,
                        consultant_net=consultant,
                        manager_net=manager,
                        angel_net=angel,
                    )
                )

        if deadline is not None:
            deadline.check()

        report.per_month = [months[month] for month in sorted(months)]
        report.lines.sort(key=lambda line: (line.competence_month, line.paid_date, line.record_id, line.installment_number))
        return report

    def _contributes(self, state, report_filter: CompetenceFilter) -> bool:
        if state.status != PAID or not state.competence_month:
            return False
        if report_filter.competence_month and state.competence_month != report_filter.competence_month:
            return False
        if report_filter.paid_from and state.paid_date < report_filter.paid_from:
            return False
        if report_filter.paid_to and state.paid_date > report_filter.paid_to:
            return False
        return True

    def summarize(self, records: Iterable[CommissionRecord]) -> RecordSummary:
        """Count records by overall status and total their sale values."""
        summary = RecordSummary()
        for record in records:
            status = record.overall_status
            if status == IN_PROGRESS:
                summary.in_progress += 1
            elif status == DELAYED:
                summary.delayed += 1
            elif status == COMPLETED:
                summary.completed += 1
            elif status == RECORD_CANCELLED:
                summary.cancelled += 1
            summary.total_value += record.terms.sale_value
        return summary
