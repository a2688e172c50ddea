"""
AuditRecord model representing one immutable entry of the mandate audit trail.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"


class FieldChange(BaseModel):
    """
    A single field-level difference, rendered as strings.

    Only used as an audit artifact; never parsed back into a typed record.
    """

    field_name: str
    old_value: str | None = None
    new_value: str | None = None


class AuditRecord(BaseModel):
    """
    Append-only audit entry for an insert or an effective update.

    Attributes:
        audit_id: Auto-increment primary key (assigned by the store)
        mandate_id: Which mandate changed
        change_type: INSERT or UPDATE
        change_timestamp: When the change was processed
        source_file: Name of the file that carried the change
        previous_update_date: Stored last_update_date before the change (updates only)
        new_update_date: last_update_date carried by the file
        field_changes: Ordered change-set (empty for inserts)
        processed_by: Actor identity of the run
        batch_id: Correlation id shared by all entries of one run
    """

    audit_id: int | None = None
    mandate_id: str = Field(..., min_length=1)
    change_type: ChangeType
    change_timestamp: datetime
    source_file: str
    previous_update_date: datetime | None = None
    new_update_date: datetime | None = None
    field_changes: list[FieldChange] = Field(default_factory=list)
    processed_by: str
    batch_id: str

    class Config:
        json_schema_extra = {
            "example": {
                "audit_id": 1,
                "mandate_id": "MND-0000000042",
                "change_type": "UPDATE",
                "change_timestamp": "2025-11-17T02:00:13",
                "source_file": "mandates_2025-11-17_02-00-00_10.0K.txt",
                "previous_update_date": "2025-10-01T08:15:00",
                "new_update_date": "2025-11-16T17:42:09",
                "field_changes": [
                    {"field_name": "status", "old_value": "ACTIVE", "new_value": "SUSPENDED"}
                ],
                "processed_by": "batch-runner",
                "batch_id": "8a3c0f5e-4f8e-4c35-9d5b-2b7f1d0b8e21"
            }
        }
