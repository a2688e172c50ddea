"""
Audit trail queries for mandate changes.

Audit rows are written by PostgresMandateStore during reconciliation; this
module reads them back for operators (the `audit` CLI command) and tests.
"""

from typing import Any

import psycopg

from mandate_sync.core.models import AuditRecord
from mandate_sync.observability.logger import get_logger
from mandate_sync.warehouse.connection import DatabaseConnectionPool

logger = get_logger(__name__)

AUDIT_SELECT = """
    SELECT
        audit_id,
        mandate_id,
        change_type,
        change_timestamp,
        source_file,
        previous_update_date,
        new_update_date,
        field_changes,
        processed_by,
        batch_id
    FROM mandate_audits
"""


def query_audits_by_mandate(
    pool: DatabaseConnectionPool,
    mandate_id: str,
    limit: int = 100
) -> list[AuditRecord]:
    """
    Query the audit history of one mandate, oldest first.

    Args:
        pool: Database connection pool
        mandate_id: Mandate to query
        limit: Maximum number of entries to return

    Returns:
        List of AuditRecord

    Raises:
        psycopg.DatabaseError: If query fails
    """
    query_sql = AUDIT_SELECT + """
        WHERE mandate_id = %(mandate_id)s
        ORDER BY change_timestamp, audit_id
        LIMIT %(limit)s;
    """

    try:
        rows = pool.execute_query(query_sql, {"mandate_id": mandate_id, "limit": limit})
    except psycopg.DatabaseError as e:
        logger.error(f"Failed to query audits by mandate: {e}")
        raise

    logger.debug(f"Found {len(rows)} audit entries for mandate_id={mandate_id}")
    return [AuditRecord(**row) for row in rows]


def query_audits_by_batch(
    pool: DatabaseConnectionPool,
    batch_id: str,
    limit: int = 1000
) -> list[AuditRecord]:
    """
    Query every audit entry written by one run.

    Args:
        pool: Database connection pool
        batch_id: Run correlation id
        limit: Maximum number of entries to return

    Returns:
        List of AuditRecord in write order

    Raises:
        psycopg.DatabaseError: If query fails
    """
    query_sql = AUDIT_SELECT + """
        WHERE batch_id = %(batch_id)s
        ORDER BY audit_id
        LIMIT %(limit)s;
    """

    try:
        rows = pool.execute_query(query_sql, {"batch_id": batch_id, "limit": limit})
    except psycopg.DatabaseError as e:
        logger.error(f"Failed to query audits by batch: {e}")
        raise

    logger.debug(f"Found {len(rows)} audit entries for batch_id={batch_id}")
    return [AuditRecord(**row) for row in rows]


def get_audit_summary(
    pool: DatabaseConnectionPool,
    batch_id: str | None = None
) -> dict[str, Any]:
    """
    Get summary statistics from the audit trail.

    Args:
        pool: Database connection pool
        batch_id: Optional run correlation id to filter

    Returns:
        Dictionary with summary statistics:
        - total_changes
        - changes_by_type
        - unique_mandates

    Raises:
        psycopg.DatabaseError: If query fails
    """
    where = " WHERE batch_id = %(batch_id)s" if batch_id else ""
    by_type_sql = (
        "SELECT change_type, COUNT(*) AS type_count FROM mandate_audits"
        + where
        + " GROUP BY change_type"
    )
    unique_sql = "SELECT COUNT(DISTINCT mandate_id) AS unique_mandates FROM mandate_audits" + where
    params = {"batch_id": batch_id} if batch_id else {}

    try:
        with pool.get_cursor() as cur:
            cur.execute(by_type_sql, params)
            by_type = {r["change_type"]: r["type_count"] for r in cur.fetchall()}
            cur.execute(unique_sql, params)
            unique_mandates = cur.fetchone()["unique_mandates"]
    except psycopg.DatabaseError as e:
        logger.error(f"Failed to get audit summary: {e}")
        raise

    summary = {
        "total_changes": sum(by_type.values()),
        "changes_by_type": by_type,
        "unique_mandates": unique_mandates,
    }
    logger.info(f"Audit summary: {summary}")
    return summary
