"""
Mandate reconciliation pipeline orchestration.

Coordinates the flow: read → deduplicate → classify → diff → write → audit
"""

import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from mandate_sync.batch.readers import MandateFileReader
from mandate_sync.config import ReconciliationConfig
from mandate_sync.core.diff import apply_changes, diff, instants_equal
from mandate_sync.core.errors import (
    BulkWriteFailure,
    ClassificationLookupFailure,
    StoreError,
)
from mandate_sync.core.models import (
    AuditRecord,
    BatchResult,
    ChangeType,
    Creditor,
    Debtor,
    MandateRecord,
    RunSummary,
    StoredMandate,
)
from mandate_sync.observability.logger import get_logger, log_operation, log_run_summary
from mandate_sync.observability.metrics import MetricsCollector
from mandate_sync.warehouse.gateway import MandateStore

logger = get_logger(__name__)


class ReconciliationEngine:
    """
    Reconciles a mandate file against the mandate store.

    Flow per batch:
    1. Drop earlier in-batch duplicates (last occurrence wins)
    2. Classify with one covering timestamp lookup: new, unchanged, ambiguous
    3. Fetch and diff ambiguous records; empty change-sets are skipped
    4. Insert new mandates with their new parties in one transaction
    5. Replace changed mandates in one unordered bulk write
    6. Append audit records for every successful insert and update

    Only a failed classification lookup aborts the run; every other store
    failure is counted against the affected records and the run continues.
    """

    def __init__(
        self,
        store: MandateStore,
        config: Optional[ReconciliationConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        Initialize reconciliation engine.

        Args:
            store: Store gateway
            config: Run settings (defaults apply if None)
            clock: Source of processing timestamps (defaults to datetime.now)
            metrics: Prometheus metrics collector
        """
        self.store = store
        self.config = config or ReconciliationConfig()
        self.clock = clock or datetime.now
        self.metrics = metrics or MetricsCollector()

    def process_file(self, file_path: str | Path, batch_id: Optional[str] = None) -> RunSummary:
        """
        Reconcile a whole file, one batch at a time.

        Args:
            file_path: Path to the delimited mandate file
            batch_id: Run correlation id (a new UUID if None)

        Returns:
            RunSummary with the run totals

        Raises:
            FileNotFoundError: If the file does not exist
            HeaderMismatchError: If the header does not match the field layout
            ClassificationLookupFailure: If the store cannot be read during classification
        """
        path = Path(file_path)
        batch_id = batch_id or str(uuid.uuid4())
        summary = RunSummary(batch_id=batch_id, source_file=path.name, started_at=self.clock())
        interval = self.config.progress_log_interval
        next_progress = interval
        start = time.perf_counter()

        with log_operation(f"Reconciling {path.name}", logger=logger, batch_id=batch_id):
            with MandateFileReader(
                path,
                delimiter=self.config.delimiter,
                max_error_samples=self.config.max_error_samples,
            ) as reader:
                for records in reader.iter_batches(self.config.batch_size):
                    result = self.process_batch(records, path.name, batch_id)
                    summary.add_batch(result)

                    if summary.total_processed >= next_progress:
                        elapsed = time.perf_counter() - start
                        logger.info(
                            f"Progress: {summary.total_processed} records processed "
                            f"({summary.total_processed / max(elapsed, 1e-9):.0f} records/sec)",
                            extra={"batch_id": batch_id, "records": summary.total_processed},
                        )
                        while next_progress <= summary.total_processed:
                            next_progress += interval

                summary.parse_errors = reader.parse_errors
                summary.parse_error_samples = [str(e) for e in reader.error_samples]

        summary.duration_seconds = time.perf_counter() - start
        self.metrics.record_run(summary)
        log_run_summary(summary, logger)
        return summary

    def process_batch(
        self,
        records: list[MandateRecord],
        source_file: str,
        batch_id: str,
    ) -> BatchResult:
        """
        Reconcile one batch of parsed records.

        Args:
            records: Parsed records in file order
            source_file: File name recorded on audit entries
            batch_id: Run correlation id recorded on audit entries

        Returns:
            BatchResult with the batch counters

        Raises:
            ClassificationLookupFailure: If the store cannot be read during classification
        """
        batch_start = time.perf_counter()
        result = BatchResult(processed=len(records))
        candidates = self._deduplicate(records, result)

        try:
            known_dates = self.store.get_update_dates(list(candidates))
        except StoreError as e:
            raise ClassificationLookupFailure(f"Timestamp lookup failed: {e}") from e

        new_records: list[MandateRecord] = []
        ambiguous: list[MandateRecord] = []
        for mandate_id, record in candidates.items():
            stored_date = known_dates.get(mandate_id)
            if stored_date is None:
                new_records.append(record)
            elif instants_equal(stored_date, record.last_update_date):
                result.skipped_by_timestamp += 1
            else:
                ambiguous.append(record)

        now = self.clock()
        updates = self._diff_ambiguous(ambiguous, source_file, batch_id, now, result)

        audits = self._write_inserts(new_records, source_file, batch_id, now, result)
        audits.extend(self._write_updates(updates, result))
        self._write_audits(audits, result)

        duration = time.perf_counter() - batch_start
        self.metrics.record_batch(result, duration)
        logger.debug(
            f"Batch reconciled: {result.inserted} inserted, {result.updated} updated, "
            f"{result.skipped} skipped, {result.errored} errored",
            extra={"batch_id": batch_id, "duration_seconds": round(duration, 3)},
        )
        return result

    def _deduplicate(
        self,
        records: list[MandateRecord],
        result: BatchResult,
    ) -> dict[str, MandateRecord]:
        """
        Keep the last occurrence of each mandate_id, preserving file order.

        Returns:
            mandate_id -> record
        """
        candidates: dict[str, MandateRecord] = {}
        for record in records:
            if record.mandate_id in candidates:
                del candidates[record.mandate_id]
                result.superseded += 1
                logger.info(
                    f"Mandate {record.mandate_id} appears more than once in batch; "
                    "later line supersedes earlier",
                    extra={"mandate_id": record.mandate_id},
                )
            candidates[record.mandate_id] = record
        return candidates

    def _diff_ambiguous(
        self,
        ambiguous: list[MandateRecord],
        source_file: str,
        batch_id: str,
        now: datetime,
        result: BatchResult,
    ) -> list[tuple[StoredMandate, AuditRecord]]:
        """
        Fetch and diff records whose timestamp moved.

        Returns:
            (merged mandate, UPDATE audit) for every non-empty change-set
        """
        if not ambiguous:
            return []

        try:
            stored = self.store.get_mandates([r.mandate_id for r in ambiguous])
        except StoreError as e:
            raise ClassificationLookupFailure(f"Mandate fetch failed: {e}") from e

        updates = []
        for record in ambiguous:
            existing = stored.get(record.mandate_id)
            if existing is None:
                result.errored += 1
                self.metrics.record_error("missing_stored")
                logger.warning(
                    f"Mandate {record.mandate_id} disappeared between lookup and fetch",
                    extra={"mandate_id": record.mandate_id},
                )
                continue

            changes = diff(existing, record)
            if not changes:
                result.skipped_by_diff += 1
                continue

            merged = apply_changes(existing, record).model_copy(
                update={"version": (existing.version or 0) + 1}
            )
            audit = AuditRecord(
                mandate_id=record.mandate_id,
                change_type=ChangeType.UPDATE,
                change_timestamp=now,
                source_file=source_file,
                previous_update_date=existing.last_update_date,
                new_update_date=record.last_update_date,
                field_changes=changes,
                processed_by=self.config.actor,
                batch_id=batch_id,
            )
            updates.append((merged, audit))

        return updates

    def _new_parties(
        self,
        records: list[MandateRecord],
        now: datetime,
    ) -> tuple[list[Creditor], list[Debtor]]:
        """
        Parties referenced by new mandates that the store does not hold yet.

        Raises:
            StoreError: If the existence lookup fails
        """
        creditors: dict[str, Creditor] = {}
        debtors: dict[str, Debtor] = {}

        for record in records:
            if record.creditor_id and record.creditor_id not in creditors:
                creditors[record.creditor_id] = Creditor(
                    creditor_id=record.creditor_id,
                    creditor_name=record.creditor_name,
                    account_number=record.creditor_account_number,
                    sort_code=record.creditor_sort_code,
                    iban=record.creditor_iban,
                    bic=record.creditor_bic,
                    created_at=now,
                    updated_at=now,
                )

            debtor_id = record.debtor_id
            if debtor_id and debtor_id not in debtors:
                debtors[debtor_id] = Debtor(
                    debtor_id=debtor_id,
                    name=record.debtor_name,
                    account_number=record.debtor_account_number,
                    sort_code=record.debtor_sort_code,
                    iban=record.debtor_iban,
                    bic=record.debtor_bic,
                    email=record.debtor_email,
                    phone=record.debtor_phone,
                    created_at=now,
                    updated_at=now,
                )

        known_creditors = self.store.get_existing_creditor_ids(list(creditors)) if creditors else set()
        known_debtors = self.store.get_existing_debtor_ids(list(debtors)) if debtors else set()

        return (
            [c for key, c in creditors.items() if key not in known_creditors],
            [d for key, d in debtors.items() if key not in known_debtors],
        )

    def _write_inserts(
        self,
        records: list[MandateRecord],
        source_file: str,
        batch_id: str,
        now: datetime,
        result: BatchResult,
    ) -> list[AuditRecord]:
        """
        Insert new mandates and their parties atomically.

        Returns:
            INSERT audits, empty if the transaction failed
        """
        if not records:
            return []

        mandates = [StoredMandate.from_record(r, created_at=now) for r in records]
        try:
            creditors, debtors = self._new_parties(records, now)
            with self.store.transaction() as session:
                self.store.insert_creditors(creditors, session)
                self.store.insert_debtors(debtors, session)
                self.store.insert_mandates(mandates, session)
        except StoreError as e:
            result.errored += len(records)
            self.metrics.record_error("transaction", len(records))
            logger.error(
                f"Insert of {len(records)} new mandates failed, nothing persisted: {e}",
                extra={"batch_id": batch_id, "error_type": type(e).__name__},
            )
            return []

        result.inserted += len(mandates)
        result.new_creditors += len(creditors)
        result.new_debtors += len(debtors)

        return [
            AuditRecord(
                mandate_id=m.mandate_id,
                change_type=ChangeType.INSERT,
                change_timestamp=now,
                source_file=source_file,
                new_update_date=m.last_update_date,
                processed_by=self.config.actor,
                batch_id=batch_id,
            )
            for m in mandates
        ]

    def _write_updates(
        self,
        updates: list[tuple[StoredMandate, AuditRecord]],
        result: BatchResult,
    ) -> list[AuditRecord]:
        """
        Replace changed mandates; failed rows are counted, successes kept.

        Returns:
            UPDATE audits of the mandates actually written
        """
        if not updates:
            return []

        mandates = [mandate for mandate, _ in updates]
        try:
            self.store.replace_mandates(mandates)
            written = {m.mandate_id for m in mandates}
        except BulkWriteFailure as e:
            written = set(e.succeeded)
            self.metrics.record_error("bulk_write", len(e.failures))
            for mandate_id, message in e.failures.items():
                logger.error(
                    f"Update of mandate {mandate_id} failed: {message}",
                    extra={"mandate_id": mandate_id},
                )
        except StoreError as e:
            written = set()
            self.metrics.record_error("bulk_write", len(mandates))
            logger.error(f"Update of {len(mandates)} mandates failed: {e}")

        result.updated += len(written)
        result.errored += len(mandates) - len(written)
        return [audit for mandate, audit in updates if mandate.mandate_id in written]

    def _write_audits(self, audits: list[AuditRecord], result: BatchResult) -> None:
        """Append audit records; a failure never undoes the primary write."""
        if not audits:
            return
        try:
            self.store.insert_audit_records(audits)
        except StoreError as e:
            result.audit_failures += len(audits)
            self.metrics.record_error("audit_write", len(audits))
            logger.warning(
                f"Data quality: {len(audits)} audit records not written, "
                f"mandate changes are persisted without audit trail: {e}",
                extra={
                    "batch_id": audits[0].batch_id,
                    "mandate_ids": [a.mandate_id for a in audits[:10]],
                },
            )
