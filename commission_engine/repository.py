"""
Commission Record Persistence

One row per commission record holding its serialized terms, sale, recipients
and installment states. The ledger is cached in the row for consumers that
read the table directly, but it is always rebuilt from the terms on load.
Writes are guarded by an optimistic version column.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator

from sqlalchemy import JSON, Column, Date, DateTime, Integer, String, create_engine, or_
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from .calculators.ledger import LedgerBuilder
from .errors import ConcurrentModificationError, RecordNotFoundError
from .models import (
    CommissionRecord,
    CommissionTerms,
    CompetenceFilter,
    CutoffPeriod,
    InstallmentState,
    Recipients,
    SaleIdentity,
)
from .output import ledger_entry_to_dict

logger = logging.getLogger(__name__)

Base = declarative_base()


class CommissionRecordRow(Base):
    __tablename__ = "commission_records"

    id = Column(String(36), primary_key=True)
    client_name = Column(String, nullable=False)
    sale_date = Column(Date, nullable=False, index=True)
    sale_type = Column(String, nullable=False)
    point_of_sale = Column(String, nullable=True)
    consultant_name = Column(String, nullable=False, index=True)
    manager_name = Column(String, nullable=True)
    angel_name = Column(String, nullable=True)
    overall_status = Column(String, nullable=False)
    sale = Column(JSON, nullable=False)
    recipients = Column(JSON, nullable=False)
    terms = Column(JSON, nullable=False)
    states = Column(JSON, nullable=False)  # {"<installment number>": {status, paid_date, competence_month}}
    ledger_cache = Column(JSON, nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}


class CutoffPeriodRow(Base):
    __tablename__ = "cutoff_periods"

    id = Column(String(36), primary_key=True)
    name = Column(String, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    competence_month = Column(String(7), nullable=False)


class CommissionRepository:
    """Loads and stores commission records and cutoff periods."""

    def __init__(self, engine, ledger_builder: LedgerBuilder | None = None):
        self.engine = engine
        self.Session = sessionmaker(bind=engine, expire_on_commit=False)
        self.ledger_builder = ledger_builder or LedgerBuilder()

    @classmethod
    def from_url(cls, database_url: str) -> "CommissionRepository":
        """Create a repository (and its tables) for a database URL."""
        options = {}
        if database_url.startswith("sqlite"):
            options["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                options["poolclass"] = StaticPool
        repository = cls(create_engine(database_url, **options))
        repository.create_schema()
        logger.info(f"Commission repository ready on {repository.engine.dialect.name}")
        return repository

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session(self):
        session = self.Session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # -------------------------------------------------------------------------
    # Commission records
    # -------------------------------------------------------------------------

    def add(self, record: CommissionRecord) -> CommissionRecord:
        with self.session() as session:
            row = CommissionRecordRow(id=record.id)
            self._fill_row(row, record)
            session.add(row)
            session.flush()
            record.version = row.version
            record.created_at = row.created_at
        return record

    def load(self, record_id: str) -> CommissionRecord:
        with self.session() as session:
            row = session.get(CommissionRecordRow, record_id)
            if row is None:
                raise RecordNotFoundError(f"Commission record not found: {record_id}", record_id=record_id)
            return self._to_record(row)

    def save(self, record: CommissionRecord) -> CommissionRecord:
        """
        Persist a mutated record.

        The stored version must still equal record.version; otherwise another
        writer committed in between and the caller has to reload.
        """
        with self.session() as session:
            row = session.get(CommissionRecordRow, record.id, with_for_update=True)
            if row is None:
                raise RecordNotFoundError(f"Commission record not found: {record.id}", record_id=record.id)
            if row.version != record.version:
                raise ConcurrentModificationError(
                    f"Record {record.id} changed since it was loaded "
                    f"(loaded version {record.version}, stored version {row.version})",
                    record_id=record.id,
                )
            self._fill_row(row, record)
            try:
                session.flush()
            except StaleDataError:
                raise ConcurrentModificationError(
                    f"Record {record.id} was modified concurrently", record_id=record.id
                )
            record.version = row.version
        return record

    def delete(self, record_id: str) -> None:
        with self.session() as session:
            row = session.get(CommissionRecordRow, record_id)
            if row is None:
                raise RecordNotFoundError(f"Commission record not found: {record_id}", record_id=record_id)
            session.delete(row)

    def iter_records(self, record_filter: CompetenceFilter | None = None) -> Iterator[CommissionRecord]:
        """Stream records matching the sale-level criteria of a filter."""
        record_filter = record_filter or CompetenceFilter()
        with self.Session() as session:
            query = session.query(CommissionRecordRow)
            if record_filter.recipient:
                name = record_filter.recipient
                query = query.filter(
                    or_(
                        CommissionRecordRow.consultant_name == name,
                        CommissionRecordRow.manager_name == name,
                        CommissionRecordRow.angel_name == name,
                    )
                )
            if record_filter.consultant_name:
                query = query.filter(CommissionRecordRow.consultant_name == record_filter.consultant_name)
            if record_filter.manager_name:
                query = query.filter(CommissionRecordRow.manager_name == record_filter.manager_name)
            if record_filter.angel_name:
                query = query.filter(CommissionRecordRow.angel_name == record_filter.angel_name)
            if record_filter.sale_type:
                query = query.filter(CommissionRecordRow.sale_type == record_filter.sale_type)
            if record_filter.point_of_sale:
                query = query.filter(CommissionRecordRow.point_of_sale == record_filter.point_of_sale)
            if record_filter.sale_from:
                query = query.filter(CommissionRecordRow.sale_date >= record_filter.sale_from)
            if record_filter.sale_to:
                query = query.filter(CommissionRecordRow.sale_date <= record_filter.sale_to)
            if record_filter.status:
                query = query.filter(CommissionRecordRow.overall_status == record_filter.status)

            query = query.order_by(CommissionRecordRow.sale_date.desc(), CommissionRecordRow.id)
            for row in query.yield_per(200):
                yield self._to_record(row)

    # -------------------------------------------------------------------------
    # Cutoff periods
    # -------------------------------------------------------------------------

    def list_cutoff_periods(self) -> list[CutoffPeriod]:
        with self.Session() as session:
            rows = session.query(CutoffPeriodRow).order_by(CutoffPeriodRow.start_date).all()
            return [
                CutoffPeriod(
                    id=row.id,
                    name=row.name,
                    start_date=row.start_date,
                    end_date=row.end_date,
                    competence_month=row.competence_month,
                )
                for row in rows
            ]

    def add_cutoff_period(self, period: CutoffPeriod) -> CutoffPeriod:
        with self.session() as session:
            session.add(
                CutoffPeriodRow(
                    id=period.id,
                    name=period.name,
                    start_date=period.start_date,
                    end_date=period.end_date,
                    competence_month=period.competence_month,
                )
            )
        return period

    def update_cutoff_period(self, period: CutoffPeriod) -> CutoffPeriod:
        with self.session() as session:
            row = session.get(CutoffPeriodRow, period.id)
            if row is None:
                raise RecordNotFoundError(f"Cutoff period not found: {period.id}", field="id")
            row.name = period.name
            row.start_date = period.start_date
            row.end_date = period.end_date
            row.competence_month = period.competence_month
        return period

    def delete_cutoff_period(self, period_id: str) -> None:
        with self.session() as session:
            row = session.get(CutoffPeriodRow, period_id)
            if row is None:
                raise RecordNotFoundError(f"Cutoff period not found: {period_id}", field="id")
            session.delete(row)

    # -------------------------------------------------------------------------
    # Mapping
    # -------------------------------------------------------------------------

    def _fill_row(self, row: CommissionRecordRow, record: CommissionRecord) -> None:
        row.client_name = record.sale.client_name
        row.sale_date = record.sale.sale_date
        row.sale_type = record.sale.sale_type
        row.point_of_sale = record.sale.point_of_sale
        row.consultant_name = record.recipients.consultant_name
        row.manager_name = record.recipients.manager_name
        row.angel_name = record.recipients.angel_name
        row.overall_status = record.overall_status
        row.sale = record.sale.to_dict()
        row.recipients = record.recipients.to_dict()
        row.terms = record.terms.to_dict()
        # JSON columns are not mutation-tracked; always assign fresh objects.
        row.states = {str(n): state.to_dict() for n, state in sorted(record.states.items())}
        row.ledger_cache = [ledger_entry_to_dict(entry, as_text=True) for entry in record.ledger]

    def _to_record(self, row: CommissionRecordRow) -> CommissionRecord:
        terms = CommissionTerms.from_dict(row.terms)
        states = {int(n): InstallmentState.from_dict(int(n), data) for n, data in row.states.items()}
        return CommissionRecord(
            id=row.id,
            sale=SaleIdentity.from_dict(row.sale),
            recipients=Recipients.from_dict(row.recipients),
            terms=terms,
            ledger=self.ledger_builder.build(terms),
            states=states,
            version=row.version,
            created_at=row.created_at,
        )
