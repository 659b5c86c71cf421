"""
Shared fixtures.

The app modules build their service at import time, so the database URL is
pinned to in-memory SQLite before any of them is imported.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"

from datetime import date
from decimal import Decimal

import pytest

from commission_engine import CommissionService, EngineSettings
from commission_engine.calculators import LedgerBuilder
from commission_engine.models import (
    CommissionRecord,
    CommissionRule,
    CommissionTerms,
    Recipients,
    SaleIdentity,
)
from commission_engine.repository import CommissionRepository
from commission_engine.states import initial_states


@pytest.fixture
def make_terms():
    """Factory for terms; defaults to the 120k / 12x / 6% reference sale."""

    def _make(**overrides) -> CommissionTerms:
        values = dict(
            sale_value=Decimal("120000.00"),
            total_installments=12,
            tax_rate_percent=Decimal("6"),
            default_consultant_rate=Decimal("1.5"),
            default_manager_rate=Decimal("0.5"),
            default_angel_rate=Decimal("0"),
        )
        values.update(overrides)
        return CommissionTerms(**values)

    return _make


@pytest.fixture
def make_rule():
    def _make(rule_id, start, end, consultant="0", manager="0", angel="0") -> CommissionRule:
        return CommissionRule(
            id=rule_id,
            start_installment=start,
            end_installment=end,
            consultant_rate=Decimal(consultant),
            manager_rate=Decimal(manager),
            angel_rate=Decimal(angel),
        )

    return _make


@pytest.fixture
def sale():
    return SaleIdentity(
        client_name="Maria Souza",
        sale_date=date(2024, 1, 2),
        sale_type="Imóvel",
        group="1040",
        quota="221",
        point_of_sale="Centro",
    )


@pytest.fixture
def recipients():
    return Recipients(consultant_name="Ana Lima", manager_name="Carlos Prado", angel_name="Joana Reis")


@pytest.fixture
def make_record(sale, recipients, make_terms):
    """Factory for in-memory records (no persistence)."""

    def _make(record_id="rec-1", terms=None, sale_identity=None, people=None) -> CommissionRecord:
        terms = terms or make_terms()
        return CommissionRecord(
            id=record_id,
            sale=sale_identity or sale,
            recipients=people or recipients,
            terms=terms,
            ledger=LedgerBuilder().build(terms),
            states=initial_states(terms.total_installments),
        )

    return _make


@pytest.fixture
def service():
    """A service over a fresh in-memory database."""
    settings = EngineSettings(database_url="sqlite://")
    return CommissionService(CommissionRepository.from_url(settings.database_url), settings)


@pytest.fixture
def sample_payload():
    """API payload for the reference sale."""
    return {
        "terms": {
            "sale_value": "120000.00",
            "total_installments": 12,
            "tax_rate_percent": 6,
            "default_consultant_rate": 1.5,
            "default_manager_rate": 0.5,
            "default_angel_rate": 0,
        },
        "sale": {
            "client_name": "Maria Souza",
            "sale_date": "2024-01-02",
            "sale_type": "Imóvel",
            "group": "1040",
            "quota": "221",
            "point_of_sale": "Centro",
        },
        "recipients": {
            "consultant_name": "Ana Lima",
            "manager_name": "Carlos Prado",
        },
    }
