"""
Error Taxonomy for the Installment Commission Engine

Every failure the engine reports carries enough context (record id,
installment number, offending field) for a consumer to point at the exact
problem. HTTP layers use `status_code` and `to_dict()` to build responses.
"""

from typing import Any, Dict, Optional


class CommissionEngineError(Exception):
    """Base class for all engine errors."""

    status_code = 500
    status = "failed"

    def __init__(
        self,
        message: str,
        record_id: Optional[str] = None,
        installment_number: Optional[int] = None,
        field: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.record_id = record_id
        self.installment_number = installment_number
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "error": self.message,
            "error_type": type(self).__name__,
            "status": self.status,
        }
        if self.record_id is not None:
            body["record_id"] = self.record_id
        if self.installment_number is not None:
            body["installment_number"] = self.installment_number
        if self.field is not None:
            body["field"] = self.field
        return body


class ValidationError(CommissionEngineError, ValueError):
    """Malformed terms, rules, recipients or cutoff periods."""

    status_code = 400
    status = "validation_failed"


class InvalidTransitionError(CommissionEngineError):
    """Disallowed installment state move."""

    status_code = 409
    status = "invalid_transition"


class InvalidDateError(CommissionEngineError):
    """Paid date earlier than the sale registration date."""

    status_code = 400
    status = "invalid_date"


class ConcurrentModificationError(CommissionEngineError):
    """Optimistic version mismatch; reload and retry."""

    status_code = 409
    status = "conflict"


class RecordNotFoundError(CommissionEngineError):
    status_code = 404
    status = "not_found"


class AggregationCancelledError(CommissionEngineError):
    """A report scan hit its deadline or was cancelled before completing."""

    status_code = 503
    status = "cancelled"
