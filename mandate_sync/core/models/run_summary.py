"""
Per-batch and per-run reconciliation outcome counters.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class BatchResult(BaseModel):
    """
    Outcome of reconciling one batch (ephemeral).

    Attributes:
        processed: Records handed to the engine for this batch
        inserted: New mandates persisted
        updated: Existing mandates replaced with a non-empty change-set
        skipped_by_timestamp: Unchanged per the timestamp pre-pass
        skipped_by_diff: Re-stamped records with an empty change-set
        superseded: Earlier in-batch duplicates replaced by a later line
        errored: Records whose write failed or whose stored copy vanished
        audit_failures: Audit rows that could not be written
        new_creditors: Creditor parties materialized
        new_debtors: Debtor parties materialized
    """

    processed: int = 0
    inserted: int = 0
    updated: int = 0
    skipped_by_timestamp: int = 0
    skipped_by_diff: int = 0
    superseded: int = 0
    errored: int = 0
    audit_failures: int = 0
    new_creditors: int = 0
    new_debtors: int = 0

    @property
    def skipped(self) -> int:
        return self.skipped_by_timestamp + self.skipped_by_diff


class RunSummary(BaseModel):
    """
    Totals for one reconciliation run, rendered by the CLI and logged.
    """

    batch_id: str
    source_file: str
    started_at: datetime
    total_processed: int = 0
    inserted: int = 0
    updated: int = 0
    skipped_by_timestamp: int = 0
    skipped_by_diff: int = 0
    superseded: int = 0
    errored: int = 0
    parse_errors: int = 0
    audit_failures: int = 0
    new_creditors: int = 0
    new_debtors: int = 0
    batches: int = 0
    duration_seconds: float = Field(0.0, ge=0.0)
    parse_error_samples: list[str] = Field(default_factory=list)

    @property
    def skipped(self) -> int:
        """Unchanged records, whether detected by timestamp or by diff."""
        return self.skipped_by_timestamp + self.skipped_by_diff

    @property
    def succeeded(self) -> int:
        return self.inserted + self.updated + self.skipped

    @property
    def total_errors(self) -> int:
        return self.errored + self.parse_errors

    @property
    def throughput(self) -> float:
        """Records per second, 0 when the run took no measurable time."""
        if self.duration_seconds <= 0:
            return 0.0
        return self.total_processed / self.duration_seconds

    def add_batch(self, result: BatchResult) -> None:
        self.batches += 1
        self.total_processed += result.processed
        self.inserted += result.inserted
        self.updated += result.updated
        self.skipped_by_timestamp += result.skipped_by_timestamp
        self.skipped_by_diff += result.skipped_by_diff
        self.superseded += result.superseded
        self.errored += result.errored
        self.audit_failures += result.audit_failures
        self.new_creditors += result.new_creditors
        self.new_debtors += result.new_debtors
