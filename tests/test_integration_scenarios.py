"""
Integration Test Scenarios for the Installment Commission Engine

End-to-end scenarios taken from how the sales office actually runs a quota:
a sale is registered, installments get paid (sometimes late, sometimes out
of order), terms get corrected, and the monthly competence report is pulled.

Run with: python -m pytest tests/test_integration_scenarios.py -v
"""

from datetime import date
from decimal import Decimal

import pytest

from commission_engine.models import COMPLETED, DELAYED, IN_PROGRESS, CommissionTerms, CompetenceFilter


def _payload(**terms_overrides):
    terms = {
        "sale_value": "120000.00",
        "total_installments": 12,
        "tax_rate_percent": 6,
        "default_consultant_rate": 1.5,
        "default_manager_rate": 0.5,
        "default_angel_rate": 0,
    }
    terms.update(terms_overrides)
    return {
        "terms": terms,
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
            "angel_name": "Joana Reis",
        },
    }


class TestReferenceSale:
    """120000.00 in 12 installments, 6% tax, 1.5% consultant and 0.5% manager."""

    def test_full_lifecycle(self, service):
        record = service.create_from_dict(_payload())

        for entry in record.ledger:
            assert entry.gross_base == Decimal("10000.00")
            assert entry.consultant_gross == Decimal("150.00")
            assert entry.manager_gross == Decimal("50.00")
            assert entry.tax_deduction == Decimal("12.00")
            assert entry.consultant_net == Decimal("141.00")
            assert entry.manager_net == Decimal("47.00")

        first = service.record_installment_payment(record.id, 1, date(2024, 1, 3))
        second = service.record_installment_payment(record.id, 2, date(2024, 2, 7))

        assert first.competence_month == "2024-01"
        assert second.competence_month == "2024-03"
        assert service.get_record(record.id).overall_status == IN_PROGRESS

        report = service.aggregate_competence()
        assert [m.month for m in report.per_month] == ["2024-01", "2024-03"]
        assert report.totals.consultant == Decimal("282.00")
        assert report.totals.manager == Decimal("94.00")

    def test_late_installment_then_paid_off(self, service):
        record = service.create_from_dict(_payload())
        service.mark_installment_range_paid(record.id, 1, 5, date(2024, 5, 4))
        service.set_installment_status(record.id, 6, "Atraso")

        assert service.get_record(record.id).overall_status == DELAYED

        service.record_installment_payment(record.id, 6, date(2024, 7, 1))
        service.mark_installment_range_paid(record.id, 7, 12, date(2024, 12, 3))

        record = service.get_record(record.id)
        assert record.overall_status == COMPLETED
        assert record.paid_count == 12


class TestStepRates:
    """Higher commission on the first installments, lower afterwards."""

    def test_front_loaded_schedule(self, service):
        record = service.create_from_dict(
            _payload(
                use_custom_rules=True,
                custom_rules=[
                    {"id": "inicio", "start_installment": 1, "end_installment": 3, "consultant_rate": 3, "manager_rate": 1},
                    {"id": "resto", "start_installment": 4, "end_installment": 12, "consultant_rate": 1, "manager_rate": 0.25},
                ],
            )
        )

        assert record.ledger[0].consultant_gross == Decimal("300.00")
        assert record.ledger[3].consultant_gross == Decimal("100.00")
        assert record.ledger[3].manager_gross == Decimal("25.00")
        assert record.rule_gaps == []

    def test_bonus_rule_overrides_one_installment(self, service):
        record = service.create_from_dict(
            _payload(
                use_custom_rules=True,
                custom_rules=[
                    {"id": "base", "start_installment": 1, "end_installment": 12, "consultant_rate": 1},
                    {"id": "bonus", "start_installment": 6, "end_installment": 6, "consultant_rate": 5},
                ],
            )
        )

        assert record.ledger[4].consultant_gross == Decimal("100.00")
        assert record.ledger[5].consultant_gross == Decimal("500.00")
        assert record.ledger[6].consultant_gross == Decimal("100.00")

    def test_uncovered_installments_are_reported(self, service):
        record = service.create_from_dict(
            _payload(
                use_custom_rules=True,
                custom_rules=[{"start_installment": 1, "end_installment": 6, "consultant_rate": 2}],
            )
        )

        assert [gap.installment_number for gap in record.rule_gaps] == [7, 8, 9, 10, 11, 12]
        assert record.ledger[6].net_total == 0


class TestTermsCorrection:
    """The sale value was typed wrong and is fixed after payments started."""

    def test_payments_survive_value_correction(self, service):
        record = service.create_from_dict(_payload())
        service.record_installment_payment(record.id, 1, date(2024, 1, 3))
        service.record_installment_payment(record.id, 2, date(2024, 2, 3))

        corrected = CommissionTerms.from_dict(dict(_payload()["terms"], sale_value="132000.00"))
        record = service.update_commission_terms(record.id, corrected)

        assert record.ledger[0].gross_base == Decimal("11000.00")
        assert record.paid_count == 2

        report = service.aggregate_competence(CompetenceFilter(competence_month="2024-01"))
        assert report.total_sold == Decimal("11000.00")
        assert report.totals.consultant == Decimal("155.10")

    def test_renegotiated_to_fewer_installments(self, service):
        record = service.create_from_dict(_payload())
        service.mark_installment_range_paid(record.id, 1, 8, date(2024, 1, 3))

        shorter = CommissionTerms.from_dict(dict(_payload()["terms"], total_installments=8))
        record = service.update_commission_terms(record.id, shorter)

        assert record.overall_status == COMPLETED
        assert record.ledger[0].gross_base == Decimal("15000.00")


class TestOutOfOrderPayments:
    def test_backdated_payment_is_flagged(self, service):
        record = service.create_from_dict(_payload())
        service.record_installment_payment(record.id, 1, date(2024, 3, 1))

        state = service.record_installment_payment(record.id, 2, date(2024, 2, 1))

        assert state.backdated is True
        assert service.get_record(record.id).states[2].backdated is True

    def test_cancelled_then_reopened_installment(self, service):
        record = service.create_from_dict(_payload())
        service.set_installment_status(record.id, 3, "Cancelado")
        service.set_installment_status(record.id, 3, "Pendente")

        state = service.record_installment_payment(record.id, 3, date(2024, 3, 4))

        assert state.status == "Pago"


class TestTeamReport:
    """Two sales where Ana and Carlos swap consultant and manager roles."""

    @pytest.fixture
    def team(self, service):
        first = service.create_from_dict(_payload())
        swapped = _payload()
        swapped["recipients"] = {"consultant_name": "Carlos Prado", "manager_name": "Ana Lima"}
        second = service.create_from_dict(swapped)
        service.record_installment_payment(first.id, 1, date(2024, 1, 3))
        service.record_installment_payment(second.id, 1, date(2024, 1, 4))
        return first, second

    def test_month_totals(self, service, team):
        report = service.aggregate_competence(CompetenceFilter(competence_month="2024-01"))

        assert report.total_sold == Decimal("20000.00")
        assert report.totals.consultant == Decimal("282.00")
        assert report.totals.manager == Decimal("94.00")

    def test_each_person_sees_only_their_shares(self, service, team):
        ana = service.aggregate_competence(CompetenceFilter(recipient="Ana Lima"))
        carlos = service.aggregate_competence(CompetenceFilter(recipient="Carlos Prado"))

        assert ana.totals.total == Decimal("188.00")
        assert carlos.totals.total == Decimal("188.00")
        assert ana.totals.total + carlos.totals.total == service.aggregate_competence().totals.total
