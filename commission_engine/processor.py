"""
Commission Service - Main Orchestrator

Binds sale terms, the derived ledger and the installment state store behind
the operations the API layers expose. Every mutation of a record runs under
that record's lock and is saved with an optimistic version check, so a terms
rebuild and a payment can never interleave on the same record.
"""

import logging
import threading
import uuid
import weakref
from contextlib import contextmanager
from dataclasses import replace
from datetime import date
from typing import Any, Callable, Dict

from .calculators import CompetenceAggregator, CompetenceCalculator, Deadline, LedgerBuilder
from .config import EngineSettings
from .errors import ConcurrentModificationError, RecordNotFoundError
from .models import (
    PAID,
    CommissionRecord,
    CommissionTerms,
    CompetenceFilter,
    CompetenceReport,
    CutoffPeriod,
    InstallmentLedgerEntry,
    InstallmentState,
    Recipients,
    RecordSummary,
    SaleIdentity,
)
from .repository import CommissionRepository
from .states import InstallmentStateStore, initial_states, reconcile_states
from .validators import CutoffPeriodValidator, TermsValidator

logger = logging.getLogger(__name__)


class _RecordLock:
    """A plain mutex that can sit in a WeakValueDictionary."""

    __slots__ = ("_lock", "__weakref__")

    def __init__(self):
        self._lock = threading.Lock()

    def __enter__(self):
        self._lock.acquire()
        return self

    def __exit__(self, *exc_info):
        self._lock.release()


class CommissionService:
    """
    Main orchestrator for commission records.

    Record lifecycle:
    1. Validate sale, recipients and terms
    2. Build the ledger from the terms
    3. Initialize every installment as Pendente
    4. Apply payment/status transitions as they happen
    5. Rebuild the ledger and reconcile states when terms change
    6. Derive competence reports from ledger + states on demand
    """

    def __init__(self, repository: CommissionRepository, settings: EngineSettings | None = None):
        self.settings = settings or EngineSettings()
        self.repository = repository
        self.validator = TermsValidator(self.settings.overlap_policy)
        self.period_validator = CutoffPeriodValidator()
        self.ledger_builder = LedgerBuilder()
        self.aggregator = CompetenceAggregator()

        # Entries vanish once no thread holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[str, _RecordLock] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> "CommissionService":
        return cls(CommissionRepository.from_url(settings.database_url), settings)

    # =========================================================================
    # RECORD LIFECYCLE
    # =========================================================================

    def create_commission_record(
        self, terms: CommissionTerms, sale: SaleIdentity, recipients: Recipients
    ) -> CommissionRecord:
        """
        Register a sale's commission record.

        Args:
            terms: Financial terms and rate configuration
            sale: Client/group/quota/date/type of the sale
            recipients: Consultant and optional manager/angel names

        Returns:
            The persisted CommissionRecord with its ledger and Pendente states
        """
        self.validator.validate_sale(sale)
        self.validator.validate(terms, recipients)

        record = CommissionRecord(
            id=str(uuid.uuid4()),
            sale=sale,
            recipients=recipients,
            terms=terms,
            ledger=self.ledger_builder.build(terms),
            states=initial_states(terms.total_installments),
        )
        self.repository.add(record)

        logger.info(
            f"Commission record created: {record.id} ({sale.client_name}, "
            f"{terms.total_installments} installments, value {terms.sale_value})"
        )
        return record

    def create_from_dict(self, data: Dict[str, Any]) -> CommissionRecord:
        """
        Create a record from raw dictionary input.

        Convenience method for API usage.
        """
        return self.create_commission_record(
            terms=CommissionTerms.from_dict(data["terms"]),
            sale=SaleIdentity.from_dict(data["sale"]),
            recipients=Recipients.from_dict(data["recipients"]),
        )

    def update_commission_terms(
        self, record_id: str, new_terms: CommissionTerms, expected_version: int | None = None
    ) -> CommissionRecord:
        """
        Replace a record's terms.

        The ledger is rebuilt from scratch. States are kept by installment
        number; numbers beyond a reduced count are dropped and new numbers
        start Pendente. Identical terms are a no-op.
        """
        with self._record_lock(record_id):
            record = self._load_checked(record_id, expected_version)
            self.validator.validate(new_terms, record.recipients)

            if new_terms == record.terms:
                logger.info(f"Terms unchanged for record {record_id}; nothing to rebuild")
                return record

            states, dropped = reconcile_states(record.states, new_terms.total_installments)
            if dropped:
                paid_lost = sum(1 for state in dropped if state.status == PAID)
                logger.warning(
                    f"Record {record_id} shrank to {new_terms.total_installments} installments; "
                    f"discarded {len(dropped)} installment state(s), {paid_lost} of them paid"
                )

            record.terms = new_terms
            record.ledger = self.ledger_builder.build(new_terms)
            record.states = states
            self.repository.save(record)

        logger.info(f"Terms updated for record {record_id} (version {record.version})")
        return record

    def get_record(self, record_id: str) -> CommissionRecord:
        return self.repository.load(record_id)

    def get_ledger(self, record_id: str) -> list[InstallmentLedgerEntry]:
        return self.repository.load(record_id).ledger

    def list_records(self, record_filter: CompetenceFilter | None = None) -> list[CommissionRecord]:
        record_filter = record_filter or CompetenceFilter()
        return [r for r in self.repository.iter_records(record_filter) if record_filter.matches_record(r)]

    def delete_record(self, record_id: str) -> None:
        with self._record_lock(record_id):
            self.repository.delete(record_id)
        logger.info(f"Commission record deleted: {record_id}")

    def preview_ledger(self, terms: CommissionTerms) -> list[InstallmentLedgerEntry]:
        """Validate terms and build their ledger without persisting anything."""
        self.validator.validate(terms)
        return self.ledger_builder.build(terms)

    # =========================================================================
    # INSTALLMENT STATES
    # =========================================================================

    def record_installment_payment(
        self,
        record_id: str,
        installment_number: int,
        paid_date: date,
        expected_version: int | None = None,
    ) -> InstallmentState:
        state = self._mutate_states(
            record_id, expected_version, lambda store: store.mark_paid(installment_number, paid_date)
        )
        logger.info(
            f"Installment {installment_number} of record {record_id} paid on {paid_date} "
            f"(competence {state.competence_month})"
        )
        return state

    def set_installment_status(
        self,
        record_id: str,
        installment_number: int,
        status: str,
        paid_date: date | None = None,
        expected_version: int | None = None,
    ) -> InstallmentState:
        state = self._mutate_states(
            record_id, expected_version, lambda store: store.set_status(installment_number, status, paid_date)
        )
        logger.info(f"Installment {installment_number} of record {record_id} set to {state.status}")
        return state

    def mark_installment_range_paid(
        self,
        record_id: str,
        start: int,
        end: int,
        paid_date: date,
        expected_version: int | None = None,
    ) -> list[InstallmentState]:
        states = self._mutate_states(
            record_id, expected_version, lambda store: store.mark_range_paid(start, end, paid_date)
        )
        logger.info(f"Installments {start}-{end} of record {record_id} paid on {paid_date}")
        return states

    # =========================================================================
    # REPORTING
    # =========================================================================

    def aggregate_competence(
        self, report_filter: CompetenceFilter | None = None, deadline: Deadline | None = None
    ) -> CompetenceReport:
        """
        Roll paid installments up by competence month.

        Raises AggregationCancelledError instead of returning a partial
        report when the deadline expires.
        """
        report_filter = report_filter or CompetenceFilter()
        return self.aggregator.aggregate(
            self.repository.iter_records(report_filter), report_filter, deadline
        )

    def summarize_records(self, record_filter: CompetenceFilter | None = None) -> RecordSummary:
        return self.aggregator.summarize(self.list_records(record_filter))

    # =========================================================================
    # CUTOFF PERIODS
    # =========================================================================

    def add_cutoff_period(self, period: CutoffPeriod) -> CutoffPeriod:
        if not period.id:
            period = replace(period, id=str(uuid.uuid4()))
        self.period_validator.validate(period, self.repository.list_cutoff_periods())
        self.repository.add_cutoff_period(period)
        logger.info(
            f"Cutoff period added: {period.name} ({period.start_date} to {period.end_date}) "
            f"→ {period.competence_month}"
        )
        return period

    def update_cutoff_period(self, period: CutoffPeriod) -> CutoffPeriod:
        """Replace a stored period, revalidating it against all the others."""
        existing = self.repository.list_cutoff_periods()
        if not any(other.id == period.id for other in existing):
            raise RecordNotFoundError(f"Cutoff period not found: {period.id}", field="id")
        self.period_validator.validate(period, existing)
        self.repository.update_cutoff_period(period)
        logger.info(
            f"Cutoff period updated: {period.name} ({period.start_date} to {period.end_date}) "
            f"→ {period.competence_month}"
        )
        return period

    def list_cutoff_periods(self) -> list[CutoffPeriod]:
        return self.repository.list_cutoff_periods()

    def delete_cutoff_period(self, period_id: str) -> None:
        self.repository.delete_cutoff_period(period_id)
        logger.info(f"Cutoff period deleted: {period_id}")

    # =========================================================================
    # INTERNALS
    # =========================================================================

    @contextmanager
    def _record_lock(self, record_id: str):
        with self._locks_guard:
            lock = self._locks.setdefault(record_id, _RecordLock())
        with lock:
            yield

    def _load_checked(self, record_id: str, expected_version: int | None) -> CommissionRecord:
        record = self.repository.load(record_id)
        if expected_version is not None and record.version != expected_version:
            raise ConcurrentModificationError(
                f"Record {record_id} is at version {record.version}, expected {expected_version}",
                record_id=record_id,
            )
        return record

    def _mutate_states(self, record_id: str, expected_version: int | None, operation: Callable):
        with self._record_lock(record_id):
            record = self._load_checked(record_id, expected_version)
            competence = CompetenceCalculator(self.settings.cutoff_day, self.repository.list_cutoff_periods())
            result = operation(InstallmentStateStore(record, competence))
            self.repository.save(record)
        return result
