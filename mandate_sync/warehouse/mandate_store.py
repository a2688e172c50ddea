"""
PostgreSQL implementation of the mandate store gateway.

Reads use array lookups (= ANY) so one round-trip covers a whole batch.
Inserts use executemany inside a caller-owned transaction. The update path
runs one savepoint per row so a failing row does not block the others.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Iterator

import psycopg
from psycopg.types.json import Jsonb

from mandate_sync.core.errors import (
    AuditWriteFailure,
    BulkWriteFailure,
    StoreError,
    TransactionFailure,
)
from mandate_sync.core.models import AuditRecord, Creditor, Debtor, StoredMandate
from mandate_sync.observability.logger import get_logger
from mandate_sync.observability.metrics import (
    store_operation_duration_seconds,
    track_duration,
)

from .connection import DatabaseConnectionPool
from .gateway import MandateStore

logger = get_logger(__name__)

MANDATE_COLUMNS: tuple[str, ...] = tuple(StoredMandate.model_fields)
# debtor_id is derived on every write and never read back into the model
MANDATE_WRITE_COLUMNS: tuple[str, ...] = MANDATE_COLUMNS + ("debtor_id",)
CREDITOR_COLUMNS: tuple[str, ...] = tuple(Creditor.model_fields)
DEBTOR_COLUMNS: tuple[str, ...] = tuple(Debtor.model_fields)
AUDIT_COLUMNS: tuple[str, ...] = tuple(
    name for name in AuditRecord.model_fields if name != "audit_id"
)


def _insert_sql(table: str, columns: tuple[str, ...]) -> str:
    names = ", ".join(columns)
    placeholders = ", ".join(f"%({c})s" for c in columns)
    return f"INSERT INTO {table} ({names}) VALUES ({placeholders})"


INSERT_MANDATE_SQL = _insert_sql("mandates", MANDATE_WRITE_COLUMNS)
INSERT_CREDITOR_SQL = _insert_sql("creditors", CREDITOR_COLUMNS)
INSERT_DEBTOR_SQL = _insert_sql("debtors", DEBTOR_COLUMNS)
INSERT_AUDIT_SQL = _insert_sql("mandate_audits", AUDIT_COLUMNS)

# created_at is never overwritten on replace
REPLACE_MANDATE_SQL = (
    "UPDATE mandates SET "
    + ", ".join(
        f"{c} = %({c})s" for c in MANDATE_WRITE_COLUMNS if c not in ("mandate_id", "created_at")
    )
    + " WHERE mandate_id = %(mandate_id)s"
)

SELECT_MANDATES_SQL = (
    f"SELECT {', '.join(MANDATE_COLUMNS)} FROM mandates WHERE mandate_id = ANY(%s)"
)


def _mandate_params(mandate: StoredMandate) -> dict:
    params = mandate.model_dump()
    params["debtor_id"] = mandate.debtor_id
    return params


def _audit_params(audit: AuditRecord) -> dict:
    params = audit.model_dump(exclude={"audit_id", "field_changes"})
    params["change_type"] = audit.change_type.value
    params["field_changes"] = Jsonb([fc.model_dump() for fc in audit.field_changes])
    return params


class PostgresMandateStore(MandateStore):
    """
    Mandate store backed by PostgreSQL tables created by SchemaManager.

    Usage:
        with DatabaseConnectionPool.from_settings(settings) as pool:
            store = PostgresMandateStore(pool)
            engine = ReconciliationEngine(store, config)
    """

    def __init__(self, pool: DatabaseConnectionPool):
        """
        Initialize store.

        Args:
            pool: Open database connection pool
        """
        self.pool = pool

    # =======================
    # READS
    # =======================

    def _lookup(self, operation: str, query: str, ids: Iterable[str]) -> list[dict]:
        unique_ids = list(dict.fromkeys(ids))
        if not unique_ids:
            return []
        try:
            with track_duration(store_operation_duration_seconds, operation=operation):
                return self.pool.execute_query(query, (unique_ids,))
        except psycopg.Error as e:
            logger.error(f"Store lookup {operation} failed: {e}")
            raise StoreError(f"{operation} failed: {e}") from e

    def get_update_dates(self, mandate_ids: Iterable[str]) -> dict[str, datetime]:
        rows = self._lookup(
            "get_update_dates",
            "SELECT mandate_id, last_update_date FROM mandates WHERE mandate_id = ANY(%s)",
            mandate_ids,
        )
        return {row["mandate_id"]: row["last_update_date"] for row in rows}

    def get_mandates(self, mandate_ids: Iterable[str]) -> dict[str, StoredMandate]:
        rows = self._lookup("get_mandates", SELECT_MANDATES_SQL, mandate_ids)
        return {row["mandate_id"]: StoredMandate(**row) for row in rows}

    def get_existing_creditor_ids(self, creditor_ids: Iterable[str]) -> set[str]:
        rows = self._lookup(
            "get_existing_creditor_ids",
            "SELECT creditor_id FROM creditors WHERE creditor_id = ANY(%s)",
            creditor_ids,
        )
        return {row["creditor_id"] for row in rows}

    def get_existing_debtor_ids(self, debtor_ids: Iterable[str]) -> set[str]:
        rows = self._lookup(
            "get_existing_debtor_ids",
            "SELECT debtor_id FROM debtors WHERE debtor_id = ANY(%s)",
            debtor_ids,
        )
        return {row["debtor_id"] for row in rows}

    # =======================
    # ATOMIC INSERT SCOPE
    # =======================

    @contextmanager
    def transaction(self) -> Iterator[psycopg.Connection]:
        """
        Open a transaction on a pooled connection.

        Yields:
            The connection, used as the session for insert_* calls

        Raises:
            TransactionFailure: If any store operation in the block fails;
                nothing written in the block is persisted
        """
        try:
            with track_duration(store_operation_duration_seconds, operation="insert_transaction"):
                with self.pool.get_connection() as conn:
                    with conn.transaction():
                        yield conn
        except (psycopg.Error, StoreError) as e:
            logger.error(f"Insert transaction aborted: {e}")
            raise TransactionFailure(f"Insert transaction aborted: {e}") from e

    def insert_mandates(self, mandates: list[StoredMandate], session: psycopg.Connection) -> int:
        if not mandates:
            return 0
        with session.cursor() as cur:
            cur.executemany(INSERT_MANDATE_SQL, [_mandate_params(m) for m in mandates])
        return len(mandates)

    def insert_creditors(self, creditors: list[Creditor], session: psycopg.Connection) -> int:
        if not creditors:
            return 0
        with session.cursor() as cur:
            cur.executemany(INSERT_CREDITOR_SQL, [c.model_dump() for c in creditors])
        return len(creditors)

    def insert_debtors(self, debtors: list[Debtor], session: psycopg.Connection) -> int:
        if not debtors:
            return 0
        with session.cursor() as cur:
            cur.executemany(INSERT_DEBTOR_SQL, [d.model_dump() for d in debtors])
        return len(debtors)

    # =======================
    # UNORDERED BULK WRITES
    # =======================

    def replace_mandates(self, mandates: list[StoredMandate]) -> int:
        """
        Replace each mandate by mandate_id, isolating rows with savepoints.

        Args:
            mandates: Merged records carrying their new version

        Returns:
            Number of mandates replaced

        Raises:
            BulkWriteFailure: If at least one row failed or was not found
        """
        if not mandates:
            return 0

        succeeded: list[str] = []
        failures: dict[str, str] = {}

        try:
            with track_duration(store_operation_duration_seconds, operation="replace_mandates"):
                with self.pool.get_connection() as conn:
                    with conn.transaction():
                        for mandate in mandates:
                            try:
                                with conn.transaction():
                                    cur = conn.execute(REPLACE_MANDATE_SQL, _mandate_params(mandate))
                            except psycopg.Error as e:
                                failures[mandate.mandate_id] = str(e)
                                continue
                            if cur.rowcount == 0:
                                failures[mandate.mandate_id] = "mandate not found"
                            else:
                                succeeded.append(mandate.mandate_id)
        except psycopg.Error as e:
            # Commit or connection failure: nothing from this call is persisted
            logger.error(f"Bulk replace failed: {e}")
            raise BulkWriteFailure(
                succeeded=[],
                failures={m.mandate_id: str(e) for m in mandates},
            ) from e

        if failures:
            raise BulkWriteFailure(succeeded=succeeded, failures=failures)
        return len(succeeded)

    def insert_audit_records(self, audits: list[AuditRecord]) -> int:
        """
        Append audit records in one bulk insert.

        Raises:
            AuditWriteFailure: If the insert fails; no audit of the call is kept
        """
        if not audits:
            return 0
        try:
            with track_duration(store_operation_duration_seconds, operation="insert_audit_records"):
                with self.pool.get_connection() as conn:
                    with conn.cursor() as cur:
                        cur.executemany(INSERT_AUDIT_SQL, [_audit_params(a) for a in audits])
        except psycopg.Error as e:
            raise AuditWriteFailure(f"Failed to insert {len(audits)} audit records: {e}") from e

        logger.debug(f"Inserted {len(audits)} audit records")
        return len(audits)
