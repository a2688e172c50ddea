"""
StoredMandate model representing the persisted state of a mandate.
"""

from datetime import datetime

from pydantic import Field

from .mandate_record import MandateRecord


class StoredMandate(MandateRecord):
    """
    Persisted mandate: every MandateRecord attribute plus system-owned fields.

    Attributes:
        created_at: Set on first insert, never overwritten
        version: Optimistic concurrency marker, incremented on each update
    """

    created_at: datetime | None = None
    version: int | None = Field(None, ge=1)

    @classmethod
    def from_record(cls, record: MandateRecord, created_at: datetime) -> "StoredMandate":
        """Build the first stored version of a newly seen mandate."""
        return cls(**record.model_dump(), created_at=created_at, version=1)
