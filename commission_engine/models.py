"""
Domain Models for the Installment Commission Engine

These dataclasses provide type-safe representations of sales, commission
terms, the derived ledger and per-installment payment state.
All monetary values and rates use Decimal for precision.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from .errors import ValidationError

# =============================================================================
# STATUS VOCABULARY
# =============================================================================

PENDING = "Pendente"
PAID = "Pago"
OVERDUE = "Atraso"
CANCELLED = "Cancelado"

INSTALLMENT_STATUSES = (PENDING, PAID, OVERDUE, CANCELLED)

IN_PROGRESS = "Em Andamento"
DELAYED = "Atraso"
COMPLETED = "Concluído"
RECORD_CANCELLED = "Cancelado"

SALE_TYPES = ("Imóvel", "Veículo")


def to_decimal(value, field_name: str) -> Decimal:
    """Parse a JSON number or string into Decimal without a float detour."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a number, got: {value!r}", field=field_name)
    try:
        return Decimal(str(value).strip().replace(",", "."))
    except InvalidOperation:
        raise ValidationError(f"{field_name} must be a number, got: {value!r}", field=field_name)


def to_int(value, field_name: str) -> int:
    """Parse a whole number; anything that would need truncating is rejected."""
    if isinstance(value, bool) or value is None or isinstance(value, float):
        raise ValidationError(f"{field_name} must be a whole number, got: {value!r}", field=field_name)
    if isinstance(value, int):
        return value
    try:
        parsed = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field_name} must be a whole number, got: {value!r}", field=field_name)
    if not parsed.is_finite() or parsed != parsed.to_integral_value():
        raise ValidationError(f"{field_name} must be a whole number, got: {value!r}", field=field_name)
    return int(parsed)


def to_bool(value, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{field_name} must be true or false, got: {value!r}", field=field_name)
    return value


def parse_date(value, field_name: str) -> date:
    """Parse an ISO `YYYY-MM-DD` date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value), "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(f"{field_name} must be a YYYY-MM-DD date, got: {value!r}", field=field_name)


def parse_month(value, field_name: str) -> str:
    """Validate a `YYYY-MM` competence month and return it normalized."""
    try:
        return datetime.strptime(str(value), "%Y-%m").strftime("%Y-%m")
    except ValueError:
        raise ValidationError(f"{field_name} must be a YYYY-MM month, got: {value!r}", field=field_name)


def _optional_name(value) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


# =============================================================================
# TERMS
# =============================================================================


@dataclass(frozen=True)
class CommissionRule:
    """Rates owed for installments in [start_installment, end_installment]."""

    id: str
    start_installment: int
    end_installment: int
    consultant_rate: Decimal
    manager_rate: Decimal
    angel_rate: Decimal

    def covers(self, installment_number: int) -> bool:
        return self.start_installment <= installment_number <= self.end_installment

    def overlaps(self, other: "CommissionRule") -> bool:
        return self.start_installment <= other.end_installment and other.start_installment <= self.end_installment

    @classmethod
    def from_dict(cls, data: dict, position: int = 0) -> "CommissionRule":
        return cls(
            id=str(data.get("id") or f"rule-{position + 1}"),
            start_installment=to_int(data["start_installment"], "start_installment"),
            end_installment=to_int(data["end_installment"], "end_installment"),
            consultant_rate=to_decimal(data.get("consultant_rate", 0), "consultant_rate"),
            manager_rate=to_decimal(data.get("manager_rate", 0), "manager_rate"),
            angel_rate=to_decimal(data.get("angel_rate", 0), "angel_rate"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "start_installment": self.start_installment,
            "end_installment": self.end_installment,
            "consultant_rate": str(self.consultant_rate),
            "manager_rate": str(self.manager_rate),
            "angel_rate": str(self.angel_rate),
        }


@dataclass(frozen=True)
class CommissionTerms:
    """Immutable snapshot of the financial terms a ledger is built from."""

    sale_value: Decimal
    total_installments: int
    tax_rate_percent: Decimal
    default_consultant_rate: Decimal = Decimal("0")
    default_manager_rate: Decimal = Decimal("0")
    default_angel_rate: Decimal = Decimal("0")
    use_custom_rules: bool = False
    custom_rules: tuple[CommissionRule, ...] = ()

    @property
    def installment_base(self) -> Decimal:
        """Unrounded per-installment share of the sale value."""
        return self.sale_value / Decimal(self.total_installments)

    @classmethod
    def from_dict(cls, data: dict) -> "CommissionTerms":
        rules = tuple(
            CommissionRule.from_dict(rule, position)
            for position, rule in enumerate(data.get("custom_rules") or [])
        )
        return cls(
            sale_value=to_decimal(data["sale_value"], "sale_value"),
            total_installments=to_int(data["total_installments"], "total_installments"),
            tax_rate_percent=to_decimal(data.get("tax_rate_percent", 0), "tax_rate_percent"),
            default_consultant_rate=to_decimal(data.get("default_consultant_rate", 0), "default_consultant_rate"),
            default_manager_rate=to_decimal(data.get("default_manager_rate", 0), "default_manager_rate"),
            default_angel_rate=to_decimal(data.get("default_angel_rate", 0), "default_angel_rate"),
            use_custom_rules=to_bool(data.get("use_custom_rules", False), "use_custom_rules"),
            custom_rules=rules,
        )

    def to_dict(self) -> dict:
        return {
            "sale_value": str(self.sale_value),
            "total_installments": self.total_installments,
            "tax_rate_percent": str(self.tax_rate_percent),
            "default_consultant_rate": str(self.default_consultant_rate),
            "default_manager_rate": str(self.default_manager_rate),
            "default_angel_rate": str(self.default_angel_rate),
            "use_custom_rules": self.use_custom_rules,
            "custom_rules": [rule.to_dict() for rule in self.custom_rules],
        }


@dataclass(frozen=True)
class SaleIdentity:
    """Who bought what, and when the sale was registered."""

    client_name: str
    sale_date: date
    sale_type: str
    group: str = ""
    quota: str = ""
    point_of_sale: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "SaleIdentity":
        return cls(
            client_name=str(data["client_name"]).strip(),
            sale_date=parse_date(data["sale_date"], "sale_date"),
            sale_type=str(data["sale_type"]),
            group=str(data.get("group", "")),
            quota=str(data.get("quota", "")),
            point_of_sale=_optional_name(data.get("point_of_sale")),
        )

    def to_dict(self) -> dict:
        return {
            "client_name": self.client_name,
            "sale_date": self.sale_date.isoformat(),
            "sale_type": self.sale_type,
            "group": self.group,
            "quota": self.quota,
            "point_of_sale": self.point_of_sale,
        }


@dataclass(frozen=True)
class Recipients:
    """Display names of the parties sharing each installment's commission."""

    consultant_name: str
    manager_name: str | None = None
    angel_name: str | None = None

    def roles_of(self, name: str) -> set[str]:
        """Roles held by `name` on this sale."""
        roles = set()
        if self.consultant_name == name:
            roles.add("consultant")
        if self.manager_name == name:
            roles.add("manager")
        if self.angel_name == name:
            roles.add("angel")
        return roles

    @classmethod
    def from_dict(cls, data: dict) -> "Recipients":
        return cls(
            consultant_name=str(data["consultant_name"]).strip(),
            manager_name=_optional_name(data.get("manager_name")),
            angel_name=_optional_name(data.get("angel_name")),
        )

    def to_dict(self) -> dict:
        return {
            "consultant_name": self.consultant_name,
            "manager_name": self.manager_name,
            "angel_name": self.angel_name,
        }


# =============================================================================
# DERIVED LEDGER
# =============================================================================


@dataclass(frozen=True)
class ResolvedRates:
    """Rates applicable to one installment."""

    consultant: Decimal
    manager: Decimal
    angel: Decimal
    gap: bool = False


@dataclass(frozen=True)
class RuleGapWarning:
    """An installment no custom rule covers; it earns nothing."""

    installment_number: int

    @property
    def message(self) -> str:
        return f"Installment {self.installment_number} matches no custom rule; all rates resolve to 0"


@dataclass(frozen=True)
class InstallmentLedgerEntry:
    """Gross and net payouts for one installment."""

    installment_number: int
    gross_base: Decimal
    consultant_gross: Decimal
    manager_gross: Decimal
    angel_gross: Decimal
    tax_deduction: Decimal
    consultant_net: Decimal
    manager_net: Decimal
    angel_net: Decimal
    rule_gap: bool = False

    @property
    def gross_total(self) -> Decimal:
        return self.consultant_gross + self.manager_gross + self.angel_gross

    @property
    def net_total(self) -> Decimal:
        return self.consultant_net + self.manager_net + self.angel_net


# =============================================================================
# MUTABLE STATE
# =============================================================================


@dataclass
class InstallmentState:
    """Payment status of one installment."""

    installment_number: int
    status: str = PENDING
    paid_date: date | None = None
    competence_month: str | None = None
    backdated: bool = False

    @classmethod
    def from_dict(cls, installment_number: int, data: dict) -> "InstallmentState":
        paid = data.get("paid_date")
        return cls(
            installment_number=installment_number,
            status=data.get("status", PENDING),
            paid_date=parse_date(paid, "paid_date") if paid else None,
            competence_month=data.get("competence_month"),
            backdated=bool(data.get("backdated", False)),
        )

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "paid_date": self.paid_date.isoformat() if self.paid_date else None,
            "competence_month": self.competence_month,
            "backdated": self.backdated,
        }


@dataclass(frozen=True)
class CutoffPeriod:
    """Payments made between start_date and end_date belong to competence_month."""

    id: str
    name: str
    start_date: date
    end_date: date
    competence_month: str

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    @classmethod
    def from_dict(cls, data: dict) -> "CutoffPeriod":
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or "").strip(),
            start_date=parse_date(data.get("start_date"), "start_date"),
            end_date=parse_date(data.get("end_date"), "end_date"),
            competence_month=parse_month(data.get("competence_month"), "competence_month"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "competence_month": self.competence_month,
        }


@dataclass
class CommissionRecord:
    """
    Aggregate root binding a sale, its terms, the derived ledger and the
    per-installment payment states.
    """

    id: str
    sale: SaleIdentity
    recipients: Recipients
    terms: CommissionTerms
    ledger: list[InstallmentLedgerEntry] = field(default_factory=list)
    states: dict[int, InstallmentState] = field(default_factory=dict)
    version: int = 0
    created_at: datetime | None = None

    @property
    def overall_status(self) -> str:
        statuses = [state.status for state in self.states.values()]
        if statuses and all(s == CANCELLED for s in statuses):
            return RECORD_CANCELLED
        if any(s == OVERDUE for s in statuses):
            return DELAYED
        if any(s == PAID for s in statuses) and all(s in (PAID, CANCELLED) for s in statuses):
            return COMPLETED
        return IN_PROGRESS

    @property
    def rule_gaps(self) -> list[RuleGapWarning]:
        return [RuleGapWarning(entry.installment_number) for entry in self.ledger if entry.rule_gap]

    @property
    def paid_count(self) -> int:
        return sum(1 for state in self.states.values() if state.status == PAID)

    def ledger_entry(self, installment_number: int) -> InstallmentLedgerEntry:
        return self.ledger[installment_number - 1]


# =============================================================================
# REPORTING
# =============================================================================


@dataclass(frozen=True)
class CompetenceFilter:
    """Selection criteria for competence reports and record listings."""

    competence_month: str | None = None
    recipient: str | None = None
    consultant_name: str | None = None
    manager_name: str | None = None
    angel_name: str | None = None
    sale_type: str | None = None
    point_of_sale: str | None = None
    paid_from: date | None = None
    paid_to: date | None = None
    sale_from: date | None = None
    sale_to: date | None = None
    status: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "CompetenceFilter":
        def _date(key):
            return parse_date(data[key], key) if data.get(key) else None

        month = data.get("competence_month")
        return cls(
            competence_month=parse_month(month, "competence_month") if month else None,
            recipient=_optional_name(data.get("recipient")),
            consultant_name=_optional_name(data.get("consultant_name")),
            manager_name=_optional_name(data.get("manager_name")),
            angel_name=_optional_name(data.get("angel_name")),
            sale_type=_optional_name(data.get("sale_type")),
            point_of_sale=_optional_name(data.get("point_of_sale")),
            paid_from=_date("paid_from"),
            paid_to=_date("paid_to"),
            sale_from=_date("sale_from"),
            sale_to=_date("sale_to"),
            status=_optional_name(data.get("status")),
        )

    def matches_record(self, record: CommissionRecord) -> bool:
        """Sale-level criteria shared by listings and reports."""
        sale = record.sale
        recipients = record.recipients
        if self.recipient and not recipients.roles_of(self.recipient):
            return False
        if self.consultant_name and recipients.consultant_name != self.consultant_name:
            return False
        if self.manager_name and recipients.manager_name != self.manager_name:
            return False
        if self.angel_name and recipients.angel_name != self.angel_name:
            return False
        if self.sale_type and sale.sale_type != self.sale_type:
            return False
        if self.point_of_sale and sale.point_of_sale != self.point_of_sale:
            return False
        if self.sale_from and sale.sale_date < self.sale_from:
            return False
        if self.sale_to and sale.sale_date > self.sale_to:
            return False
        if self.status and record.overall_status != self.status:
            return False
        return True


@dataclass
class RecipientTotals:
    """Net commission per recipient role."""

    consultant: Decimal = Decimal("0")
    manager: Decimal = Decimal("0")
    angel: Decimal = Decimal("0")

    @property
    def total(self) -> Decimal:
        return self.consultant + self.manager + self.angel


@dataclass
class MonthTotals:
    month: str
    total_sold: Decimal = Decimal("0")
    totals: RecipientTotals = field(default_factory=RecipientTotals)


@dataclass(frozen=True)
class ReportLine:
    """One paid installment contributing to a competence report."""

    record_id: str
    client_name: str
    group: str
    quota: str
    sale_type: str
    installment_number: int
    competence_month: str
    paid_date: date
    gross_base: Decimal
    consultant_net: Decimal
    manager_net: Decimal
    angel_net: Decimal


@dataclass
class CompetenceReport:
    """Paid commission rolled up by competence month and recipient role."""

    total_sold: Decimal = Decimal("0")
    totals: RecipientTotals = field(default_factory=RecipientTotals)
    per_month: list[MonthTotals] = field(default_factory=list)
    lines: list[ReportLine] = field(default_factory=list)


@dataclass
class RecordSummary:
    """Counts by overall status and total sold value over a listing."""

    in_progress: int = 0
    delayed: int = 0
    completed: int = 0
    cancelled: int = 0
    total_value: Decimal = Decimal("0")
