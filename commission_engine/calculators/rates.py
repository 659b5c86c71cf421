"""
Rate Resolver

Determines the consultant/manager/angel percentages owed on one installment.
"""

from decimal import Decimal

from ..models import CommissionTerms, ResolvedRates

ZERO_RATES = ResolvedRates(
    consultant=Decimal("0"),
    manager=Decimal("0"),
    angel=Decimal("0"),
    gap=True,
)


class RateResolver:
    """Resolves the applicable rates for an installment number."""

    def resolve(self, installment_number: int, terms: CommissionTerms) -> ResolvedRates:
        """
        Resolve rates for one installment.

        Default schedule:
        - The three default rates apply to every installment

        Custom rules:
        - Rules are scanned in authoring order
        - Among rules covering the installment, the last one wins
        - No covering rule means all rates are 0 and the entry is flagged as a gap
        """
        if not terms.use_custom_rules:
            return ResolvedRates(
                consultant=terms.default_consultant_rate,
                manager=terms.default_manager_rate,
                angel=terms.default_angel_rate,
            )

        matched = None
        for rule in terms.custom_rules:
            if rule.covers(installment_number):
                matched = rule

        if matched is None:
            return ZERO_RATES

        return ResolvedRates(
            consultant=matched.consultant_rate,
            manager=matched.manager_rate,
            angel=matched.angel_rate,
        )


def resolve_rates(installment_number: int, terms: CommissionTerms) -> ResolvedRates:
    """Module-level convenience wrapper around RateResolver."""
    return RateResolver().resolve(installment_number, terms)
