"""
Calculators Package

Pure, I/O-free components: rate resolution, ledger building, competence
derivation and reporting.
"""

from .aggregator import CompetenceAggregator, Deadline
from .competence import CompetenceCalculator
from .ledger import LedgerBuilder, build_ledger, quantize_money, split_installments
from .rates import RateResolver, resolve_rates

__all__ = [
    "RateResolver",
    "LedgerBuilder",
    "CompetenceCalculator",
    "CompetenceAggregator",
    "Deadline",
    "build_ledger",
    "resolve_rates",
    "quantize_money",
    "split_installments",
]
