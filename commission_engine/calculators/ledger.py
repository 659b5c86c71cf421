"""
Installment Ledger Builder

Produces the per-installment schedule of gross and net payouts for a set of
commission terms. All arithmetic is Decimal with ROUND_HALF_UP to the cent,
so totals never drift no matter how many installments a sale has.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal

from ..models import CommissionTerms, InstallmentLedgerEntry, ResolvedRates
from .rates import RateResolver

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def quantize_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places, half-up."""
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def split_installments(sale_value: Decimal, total_installments: int) -> list[Decimal]:
    """
    Split the sale value into per-installment bases.

    Every installment but the last gets round2(value / n); the last absorbs
    the rounding remainder so the bases always sum to the sale value exactly.
    """
    base = quantize_money(sale_value / Decimal(total_installments))
    last = sale_value - base * (total_installments - 1)
    return [base] * (total_installments - 1) + [last]


class LedgerBuilder:
    """Builds the full installment ledger from commission terms."""

    def __init__(self, resolver: RateResolver | None = None):
        self.resolver = resolver or RateResolver()

    def build(self, terms: CommissionTerms) -> list[InstallmentLedgerEntry]:
        """
        Build the ledger from scratch.

        Args:
            terms: Validated CommissionTerms

        Returns:
            One InstallmentLedgerEntry per installment, numbered from 1
        """
        bases = split_installments(terms.sale_value, terms.total_installments)
        ledger = []
        gaps = []

        for number, gross_base in enumerate(bases, start=1):
            rates = self.resolver.resolve(number, terms)
            if rates.gap:
                gaps.append(number)
            ledger.append(self._build_entry(number, gross_base, rates, terms.tax_rate_percent))

        if gaps:
            logger.warning(f"{len(gaps)} installment(s) match no custom rule and earn nothing: {gaps}")

        return ledger

    def _build_entry(
        self,
        number: int,
        gross_base: Decimal,
        rates: ResolvedRates,
        tax_rate_percent: Decimal,
    ) -> InstallmentLedgerEntry:
        """Compute gross shares, tax and nets for one installment."""
        consultant_gross = quantize_money(gross_base * rates.consultant / HUNDRED)
        manager_gross = quantize_money(gross_base * rates.manager / HUNDRED)
        angel_gross = quantize_money(gross_base * rates.angel / HUNDRED)
        gross_total = consultant_gross + manager_gross + angel_gross

        if gross_total == 0:
            return InstallmentLedgerEntry(
                installment_number=number,
                gross_base=gross_base,
                consultant_gross=ZERO,
                manager_gross=ZERO,
                angel_gross=ZERO,
                tax_deduction=ZERO,
                consultant_net=ZERO,
                manager_net=ZERO,
                angel_net=ZERO,
                rule_gap=rates.gap,
            )

        tax_deduction = quantize_money(gross_total * tax_rate_percent / HUNDRED)
        consultant_net, manager_net, angel_net = self._apportion_tax(
            consultant_gross, manager_gross, angel_gross, tax_deduction
        )

        return InstallmentLedgerEntry(
            installment_number=number,
            gross_base=gross_base,
            consultant_gross=consultant_gross,
            manager_gross=manager_gross,
            angel_gross=angel_gross,
            tax_deduction=tax_deduction,
            consultant_net=consultant_net,
            manager_net=manager_net,
            angel_net=angel_net,
            rule_gap=rates.gap,
        )

    def _apportion_tax(
        self,
        consultant_gross: Decimal,
        manager_gross: Decimal,
        angel_gross: Decimal,
        tax_deduction: Decimal,
    ) -> tuple[Decimal, Decimal, Decimal]:
        """
        Split the tax across recipients in proportion to their gross share.

        Each net is rounded independently; the residual cent(s) needed to make
        the nets sum to gross_total - tax_deduction go to the consultant, or to
        the largest other share when the consultant earns nothing on this
        installment.
        """
        grosses = [consultant_gross, manager_gross, angel_gross]
        gross_total = sum(grosses)
        nets = [quantize_money(g - tax_deduction * g / gross_total) for g in grosses]

        residual = (gross_total - tax_deduction) - sum(nets)
        if residual:
            if consultant_gross > 0:
                target = 0
            else:
                target = 1 if manager_gross >= angel_gross else 2
            nets[target] += residual

        return nets[0], nets[1], nets[2]


def build_ledger(terms: CommissionTerms) -> list[InstallmentLedgerEntry]:
    """Module-level convenience wrapper around LedgerBuilder."""
    return LedgerBuilder().build(terms)
