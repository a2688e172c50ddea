"""
Core data models for mandate reconciliation.

All models use Pydantic for runtime validation and type safety.
"""

from .audit_record import AuditRecord, ChangeType, FieldChange
from .mandate_record import MandateRecord
from .party import Creditor, Debtor, derive_debtor_id
from .run_summary import BatchResult, RunSummary
from .stored_mandate import StoredMandate

__all__ = [
    "MandateRecord",
    "StoredMandate",
    "Creditor",
    "Debtor",
    "derive_debtor_id",
    "FieldChange",
    "AuditRecord",
    "ChangeType",
    "BatchResult",
    "RunSummary",
]
