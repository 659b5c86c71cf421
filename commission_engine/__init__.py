"""
INSTALLMENT COMMISSION ENGINE
Commission split & installment lifecycle for financed sales
"""

from .config import EngineSettings
from .models import CommissionRecord, CommissionTerms, CompetenceFilter, Recipients, SaleIdentity
from .processor import CommissionService

__all__ = [
    "CommissionService",
    "EngineSettings",
    "CommissionRecord",
    "CommissionTerms",
    "CompetenceFilter",
    "Recipients",
    "SaleIdentity",
]
