"""
Installment State Store

Per-installment payment state machine for one commission record:

    Pendente ──► Pago ──► Pendente (unmark)
       │          ▲
       ▼          │
     Atraso ──────┘
    (any) ──► Cancelado ──► Pendente (unmark)

Every operation validates first and only then replaces the affected state,
so a rejected call leaves the record untouched.
"""

import logging
from datetime import date

from .calculators.competence import CompetenceCalculator
from .errors import InvalidDateError, InvalidTransitionError, ValidationError
from .models import (
    CANCELLED,
    INSTALLMENT_STATUSES,
    OVERDUE,
    PAID,
    PENDING,
    CommissionRecord,
    InstallmentState,
)

logger = logging.getLogger(__name__)


def initial_states(total_installments: int) -> dict[int, InstallmentState]:
    """Every installment starts Pendente."""
    return {n: InstallmentState(installment_number=n) for n in range(1, total_installments + 1)}


def reconcile_states(
    states: dict[int, InstallmentState], total_installments: int
) -> tuple[dict[int, InstallmentState], list[InstallmentState]]:
    """
    Fit existing states to a new installment count.

    Numbers beyond the new count are dropped (their history is lost); new
    numbers start Pendente; everything else is kept as is.

    Returns:
        (reconciled states, dropped states)
    """
    kept = {}
    for n in range(1, total_installments + 1):
        kept[n] = states.get(n) or InstallmentState(installment_number=n)
    dropped = [states[n] for n in sorted(states) if n > total_installments]
    return kept, dropped


class InstallmentStateStore:
    """Applies state transitions to the installments of one record."""

    def __init__(self, record: CommissionRecord, competence: CompetenceCalculator | None = None):
        self.record = record
        self.competence = competence or CompetenceCalculator()

    def get(self, installment_number: int) -> InstallmentState:
        state = self.record.states.get(installment_number)
        if state is None:
            raise InvalidTransitionError(
                f"Installment {installment_number} does not exist; "
                f"record has {self.record.terms.total_installments} installments",
                record_id=self.record.id,
                installment_number=installment_number,
                field="installment_number",
            )
        return state

    def mark_paid(self, installment_number: int, paid_date: date) -> InstallmentState:
        """
        Record a payment and derive its competence month.

        Allowed from Pendente, Atraso and Pago (date correction). A cancelled
        installment has to be reopened with unmark() first.
        """
        self._check_payable(installment_number, paid_date)
        new_state = self._paid_state(installment_number, paid_date)
        self.record.states[installment_number] = new_state
        return new_state

    def mark_range_paid(self, start: int, end: int, paid_date: date) -> list[InstallmentState]:
        """Mark every installment in [start, end] paid on the same date, all or nothing."""
        if start < 1 or start > end:
            raise ValidationError(
                f"Invalid installment range {start}-{end}",
                record_id=self.record.id,
                field="start_installment",
            )

        numbers = range(start, end + 1)
        for n in numbers:
            self._check_payable(n, paid_date)

        new_states = [self._paid_state(n, paid_date) for n in numbers]
        for state in new_states:
            self.record.states[state.installment_number] = state
        return new_states

    def mark_overdue(self, installment_number: int) -> InstallmentState:
        """Only a pending installment can become overdue."""
        state = self.get(installment_number)
        if state.status == OVERDUE:
            return state
        if state.status != PENDING:
            raise InvalidTransitionError(
                f"Installment {installment_number} is {state.status}; only {PENDING} installments can become {OVERDUE}",
                record_id=self.record.id,
                installment_number=installment_number,
                field="status",
            )
        new_state = InstallmentState(installment_number=installment_number, status=OVERDUE)
        self.record.states[installment_number] = new_state
        return new_state

    def mark_cancelled(self, installment_number: int) -> InstallmentState:
        self.get(installment_number)
        new_state = InstallmentState(installment_number=installment_number, status=CANCELLED)
        self.record.states[installment_number] = new_state
        return new_state

    def unmark(self, installment_number: int) -> InstallmentState:
        """Reopen an installment as Pendente, clearing any payment data."""
        state = self.get(installment_number)
        if state.status == PENDING:
            return state
        new_state = InstallmentState(installment_number=installment_number, status=PENDING)
        self.record.states[installment_number] = new_state
        return new_state

    def set_status(self, installment_number: int, status: str, paid_date: date | None = None) -> InstallmentState:
        """Dispatch a raw status change to the matching transition."""
        if status not in INSTALLMENT_STATUSES:
            raise ValidationError(
                f"Invalid status: {status}. Must be one of {', '.join(INSTALLMENT_STATUSES)}",
                record_id=self.record.id,
                installment_number=installment_number,
                field="status",
            )
        if status == PAID:
            return self.mark_paid(installment_number, paid_date or date.today())
        if status == OVERDUE:
            return self.mark_overdue(installment_number)
        if status == CANCELLED:
            return self.mark_cancelled(installment_number)
        return self.unmark(installment_number)

    def _check_payable(self, installment_number: int, paid_date: date) -> None:
        state = self.get(installment_number)
        if state.status == CANCELLED:
            raise InvalidTransitionError(
                f"Installment {installment_number} is {CANCELLED}; reopen it before recording a payment",
                record_id=self.record.id,
                installment_number=installment_number,
                field="status",
            )
        if paid_date < self.record.sale.sale_date:
            raise InvalidDateError(
                f"paid_date {paid_date} is before the sale date {self.record.sale.sale_date}",
                record_id=self.record.id,
                installment_number=installment_number,
                field="paid_date",
            )

    def _paid_state(self, installment_number: int, paid_date: date) -> InstallmentState:
        latest_earlier = self._latest_paid_before(installment_number)
        backdated = latest_earlier is not None and paid_date < latest_earlier
        if backdated:
            logger.warning(
                f"Backdated payment on record {self.record.id}: installment {installment_number} "
                f"paid {paid_date}, earlier installment paid {latest_earlier}"
            )
        return InstallmentState(
            installment_number=installment_number,
            status=PAID,
            paid_date=paid_date,
            competence_month=self.competence.competence_month(paid_date),
            backdated=backdated,
        )

    def _latest_paid_before(self, installment_number: int) -> date | None:
        dates = [
            state.paid_date
            for n, state in self.record.states.items()
            if n < installment_number and state.status == PAID and state.paid_date
        ]
        return max(dates) if dates else None
