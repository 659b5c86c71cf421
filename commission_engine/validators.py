"""
Input Validation for the Installment Commission Engine

Validates terms, recipients and cutoff periods before any state is touched.
Raises ValidationError with the offending field for any constraint violation;
nothing is ever clamped or corrected.
"""

from decimal import Decimal

from .calculators.ledger import split_installments
from .config import REJECT_OVERLAPS
from .errors import ValidationError
from .models import SALE_TYPES, CommissionTerms, CutoffPeriod, Recipients, SaleIdentity

HUNDRED = Decimal("100")
CENT = Decimal("0.01")


class TermsValidator:
    """Validates commission terms according to business rules."""

    def __init__(self, overlap_policy: str = "last_wins"):
        self.overlap_policy = overlap_policy

    def validate(self, terms: CommissionTerms, recipients: Recipients | None = None) -> None:
        """
        Run all validations. Raises ValidationError if any check fails.
        """
        self._validate_amounts(terms)
        self._validate_rate("tax_rate_percent", terms.tax_rate_percent)
        self._validate_rate("default_consultant_rate", terms.default_consultant_rate)
        self._validate_rate("default_manager_rate", terms.default_manager_rate)
        self._validate_rate("default_angel_rate", terms.default_angel_rate)
        self._validate_rules(terms)
        if recipients is not None:
            self._validate_recipients(terms, recipients)

    def validate_sale(self, sale: SaleIdentity) -> None:
        if not sale.client_name:
            raise ValidationError("client_name is required", field="client_name")
        if sale.sale_type not in SALE_TYPES:
            raise ValidationError(
                f"Invalid sale_type: {sale.sale_type}. Must be one of {', '.join(SALE_TYPES)}",
                field="sale_type",
            )

    def _validate_amounts(self, terms: CommissionTerms) -> None:
        if not terms.sale_value.is_finite() or terms.sale_value <= 0:
            raise ValidationError(f"sale_value must be positive, got: {terms.sale_value}", field="sale_value")

        if terms.sale_value != terms.sale_value.quantize(CENT):
            raise ValidationError(
                f"sale_value must have at most 2 decimal places, got: {terms.sale_value}",
                field="sale_value",
            )

        if terms.total_installments < 1:
            raise ValidationError(
                f"total_installments must be at least 1, got: {terms.total_installments}",
                field="total_installments",
            )

        if split_installments(terms.sale_value, terms.total_installments)[-1] < 0:
            raise ValidationError(
                f"sale_value {terms.sale_value} is too small to spread across "
                f"{terms.total_installments} installments",
                field="sale_value",
            )

    def _validate_rate(self, name: str, rate: Decimal, rule_id: str | None = None) -> None:
        if not rate.is_finite() or not (0 <= rate <= HUNDRED):
            where = f" in rule {rule_id}" if rule_id else ""
            raise ValidationError(f"{name}{where} must be between 0 and 100, got: {rate}", field=name)

    def _validate_rules(self, terms: CommissionTerms) -> None:
        seen_ids = set()
        for rule in terms.custom_rules:
            if rule.id in seen_ids:
                raise ValidationError(f"Duplicate rule id: {rule.id}", field="custom_rules")
            seen_ids.add(rule.id)

            if rule.start_installment < 1:
                raise ValidationError(
                    f"Rule {rule.id} start_installment must be at least 1, got: {rule.start_installment}",
                    field="start_installment",
                )
            if rule.start_installment > rule.end_installment:
                raise ValidationError(
                    f"Rule {rule.id} start_installment ({rule.start_installment}) "
                    f"exceeds end_installment ({rule.end_installment})",
                    field="end_installment",
                )
            self._validate_rate("consultant_rate", rule.consultant_rate, rule.id)
            self._validate_rate("manager_rate", rule.manager_rate, rule.id)
            self._validate_rate("angel_rate", rule.angel_rate, rule.id)

        if terms.use_custom_rules and self.overlap_policy == REJECT_OVERLAPS:
            rules = terms.custom_rules
            for i, rule in enumerate(rules):
                for other in rules[i + 1:]:
                    if rule.overlaps(other):
                        raise ValidationError(
                            f"Rules {rule.id} and {other.id} cover overlapping installments",
                            field="custom_rules",
                        )

    def _validate_recipients(self, terms: CommissionTerms, recipients: Recipients) -> None:
        """A share cannot be configured for a recipient the sale does not have."""
        if not recipients.consultant_name:
            raise ValidationError("consultant_name is required", field="consultant_name")

        if terms.use_custom_rules:
            manager_rates = [rule.manager_rate for rule in terms.custom_rules]
            angel_rates = [rule.angel_rate for rule in terms.custom_rules]
        else:
            manager_rates = [terms.default_manager_rate]
            angel_rates = [terms.default_angel_rate]

        if recipients.manager_name is None and any(rate > 0 for rate in manager_rates):
            raise ValidationError("manager rates require a manager_name", field="manager_name")
        if recipients.angel_name is None and any(rate > 0 for rate in angel_rates):
            raise ValidationError("angel rates require an angel_name", field="angel_name")


class CutoffPeriodValidator:
    """Validates operator-defined cutoff periods."""

    def validate(self, period: CutoffPeriod, existing: list[CutoffPeriod]) -> None:
        if not period.name:
            raise ValidationError("name is required", field="name")

        if period.start_date > period.end_date:
            raise ValidationError(
                f"start_date ({period.start_date}) cannot be after end_date ({period.end_date})",
                field="start_date",
            )

        month_start = f"{period.competence_month}-01"
        if month_start <= period.end_date.isoformat():
            raise ValidationError(
                f"competence_month {period.competence_month} must begin after end_date ({period.end_date})",
                field="competence_month",
            )

        for other in existing:
            if other.id == period.id:
                continue
            if period.start_date <= other.end_date and other.start_date <= period.end_date:
                raise ValidationError(
                    f"Period overlaps existing period {other.name} ({other.start_date} to {other.end_date})",
                    field="start_date",
                )
