"""
Output Builder

Converts engine results into JSON-ready dictionaries for the API layers.
"""

from decimal import Decimal

from .models import (
    CommissionRecord,
    CompetenceReport,
    CutoffPeriod,
    InstallmentLedgerEntry,
    InstallmentState,
    RecipientTotals,
    RecordSummary,
)


def to_money(value: Decimal) -> float:
    """Convert Decimal to float with 2 decimal places."""
    return round(float(value), 2)


def ledger_entry_to_dict(entry: InstallmentLedgerEntry, as_text: bool = False) -> dict:
    """Serialize a ledger entry; `as_text` keeps exact Decimal strings for storage."""
    convert = str if as_text else to_money
    return {
        "installment_number": entry.installment_number,
        "gross_base": convert(entry.gross_base),
        "consultant_gross": convert(entry.consultant_gross),
        "manager_gross": convert(entry.manager_gross),
        "angel_gross": convert(entry.angel_gross),
        "tax_deduction": convert(entry.tax_deduction),
        "consultant_net": convert(entry.consultant_net),
        "manager_net": convert(entry.manager_net),
        "angel_net": convert(entry.angel_net),
        "rule_gap": entry.rule_gap,
    }


class OutputBuilder:
    """Builds API responses from domain objects."""

    def record(self, record: CommissionRecord, include_ledger: bool = True) -> dict:
        """Full view of a commission record."""
        output = {
            "id": record.id,
            "version": record.version,
            "sale": record.sale.to_dict(),
            "recipients": record.recipients.to_dict(),
            "terms": record.terms.to_dict(),
            "overall_status": record.overall_status,
            "paid_installments": record.paid_count,
            "total_installments": record.terms.total_installments,
            "totals": self._ledger_totals(record.ledger),
            "states": [self.state(record.states[n]) for n in sorted(record.states)],
            "rule_gaps": [
                {"installment_number": gap.installment_number, "message": gap.message}
                for gap in record.rule_gaps
            ],
        }
        if record.created_at is not None:
            output["created_at"] = record.created_at.isoformat()
        if include_ledger:
            output["ledger"] = self.ledger(record.ledger)
        return output

    def ledger(self, ledger: list[InstallmentLedgerEntry]) -> list[dict]:
        return [ledger_entry_to_dict(entry) for entry in ledger]

    def simulation(self, ledger: list[InstallmentLedgerEntry]) -> dict:
        """Ledger preview with totals, for terms that have not been saved."""
        return {
            "ledger": self.ledger(ledger),
            "totals": self._ledger_totals(ledger),
            "rule_gaps": [entry.installment_number for entry in ledger if entry.rule_gap],
        }

    def state(self, state: InstallmentState) -> dict:
        return {"installment_number": state.installment_number, **state.to_dict()}

    def report(self, report: CompetenceReport) -> dict:
        return {
            "total_sold": to_money(report.total_sold),
            "totals": self._recipient_totals(report.totals),
            "per_month": [
                {
                    "month": bucket.month,
                    "total_sold": to_money(bucket.total_sold),
                    "totals": self._recipient_totals(bucket.totals),
                }
                for bucket in report.per_month
            ],
            "lines": [
                {
                    "record_id": line.record_id,
                    "client_name": line.client_name,
                    "group": line.group,
                    "quota": line.quota,
                    "sale_type": line.sale_type,
                    "installment_number": line.installment_number,
                    "competence_month": line.competence_month,
                    "paid_date": line.paid_date.isoformat(),
                    "gross_base": to_money(line.gross_base),
                    "consultant_net": to_money(line.consultant_net),
                    "manager_net": to_money(line.manager_net),
                    "angel_net": to_money(line.angel_net),
                }
                for line in report.lines
            ],
        }

    def summary(self, summary: RecordSummary) -> dict:
        return {
            "in_progress": summary.in_progress,
            "delayed": summary.delayed,
            "completed": summary.completed,
            "cancelled": summary.cancelled,
            "total_value": to_money(summary.total_value),
        }

    def cutoff_period(self, period: CutoffPeriod) -> dict:
        return period.to_dict()

    def _recipient_totals(self, totals: RecipientTotals) -> dict:
        return {
            "consultant": to_money(totals.consultant),
            "manager": to_money(totals.manager),
            "angel": to_money(totals.angel),
            "total": to_money(totals.total),
        }

    def _ledger_totals(self, ledger: list[InstallmentLedgerEntry]) -> dict:
        """Whole-contract gross, tax and net per recipient."""
        zero = Decimal("0")
        return {
            "gross_base": to_money(sum((e.gross_base for e in ledger), zero)),
            "consultant_gross": to_money(sum((e.consultant_gross for e in ledger), zero)),
            "manager_gross": to_money(sum((e.manager_gross for e in ledger), zero)),
            "angel_gross": to_money(sum((e.angel_gross for e in ledger), zero)),
            "tax_deduction": to_money(sum((e.tax_deduction for e in ledger), zero)),
            "consultant_net": to_money(sum((e.consultant_net for e in ledger), zero)),
            "manager_net": to_money(sum((e.manager_net for e in ledger), zero)),
            "angel_net": to_money(sum((e.angel_net for e in ledger), zero)),
            "net_total": to_money(sum((e.net_total for e in ledger), zero)),
        }
