"""
Mandate batch reconciliation module.
"""

from .pipeline import ReconciliationEngine
from .readers import MandateFileReader, MandateRecordParser

__all__ = [
    "ReconciliationEngine",
    "MandateFileReader",
    "MandateRecordParser",
]
