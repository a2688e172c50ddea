"""
Schema management operations for the mandate store.

Creates the mandate, party and audit tables and their indexes. All DDL is
idempotent so init can be re-run against an existing database.
"""

from psycopg import sql

from mandate_sync.observability.logger import get_logger

from .connection import DatabaseConnectionPool

logger = get_logger(__name__)

MANDATES_TABLE = "mandates"
AUDITS_TABLE = "mandate_audits"
CREDITORS_TABLE = "creditors"
DEBTORS_TABLE = "debtors"

ALL_TABLES = (MANDATES_TABLE, AUDITS_TABLE, CREDITORS_TABLE, DEBTORS_TABLE)

CREATE_MANDATES = """
    CREATE TABLE IF NOT EXISTS mandates (
        mandate_id TEXT PRIMARY KEY,
        last_update_date TIMESTAMP NOT NULL,
        creditor_id TEXT,
        debtor_id TEXT,
        creditor_name TEXT,
        creditor_account_number TEXT,
        creditor_sort_code TEXT,
        creditor_iban TEXT,
        creditor_bic TEXT,
        debtor_name TEXT,
        debtor_account_number TEXT,
        debtor_sort_code TEXT,
        debtor_iban TEXT,
        debtor_bic TEXT,
        debtor_email TEXT,
        debtor_phone TEXT,
        mandate_reference TEXT,
        mandate_type TEXT,
        frequency TEXT,
        status TEXT,
        signature_date DATE,
        effective_date DATE,
        expiry_date DATE,
        max_amount_per_transaction NUMERIC,
        max_amount_per_month NUMERIC,
        max_transactions_per_month INTEGER,
        currency TEXT,
        description TEXT,
        scheme_type TEXT,
        created_at TIMESTAMP,
        version INTEGER CHECK (version >= 1)
    )
"""

CREATE_AUDITS = """
    CREATE TABLE IF NOT EXISTS mandate_audits (
        audit_id BIGSERIAL PRIMARY KEY,
        mandate_id TEXT NOT NULL,
        change_type TEXT NOT NULL CHECK (change_type IN ('INSERT', 'UPDATE')),
        change_timestamp TIMESTAMP NOT NULL,
        source_file TEXT NOT NULL,
        previous_update_date TIMESTAMP,
        new_update_date TIMESTAMP,
        field_changes JSONB NOT NULL DEFAULT '[]'::jsonb,
        processed_by TEXT NOT NULL,
        batch_id TEXT NOT NULL
    )
"""

CREATE_CREDITORS = """
    CREATE TABLE IF NOT EXISTS creditors (
        creditor_id TEXT PRIMARY KEY,
        creditor_name TEXT,
        account_number TEXT,
        sort_code TEXT,
        iban TEXT,
        bic TEXT,
        created_at TIMESTAMP,
        updated_at TIMESTAMP
    )
"""

CREATE_DEBTORS = """
    CREATE TABLE IF NOT EXISTS debtors (
        debtor_id TEXT PRIMARY KEY,
        name TEXT,
        account_number TEXT,
        sort_code TEXT,
        iban TEXT,
        bic TEXT,
        email TEXT,
        phone TEXT,
        created_at TIMESTAMP,
        updated_at TIMESTAMP
    )
"""

# name -> DDL
INDEXES = {
    # Covering index for the timestamp pre-pass
    "idx_mandate_lookup": (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_mandate_lookup "
        "ON mandates (mandate_id, last_update_date)"
    ),
    # Joins from party rows back to their mandates
    "idx_mandate_creditor_id": (
        "CREATE INDEX IF NOT EXISTS idx_mandate_creditor_id ON mandates (creditor_id)"
    ),
    "idx_mandate_debtor_id": (
        "CREATE INDEX IF NOT EXISTS idx_mandate_debtor_id ON mandates (debtor_id)"
    ),
    "idx_audit_mandate_id": (
        "CREATE INDEX IF NOT EXISTS idx_audit_mandate_id ON mandate_audits (mandate_id)"
    ),
    "idx_audit_timestamp": (
        "CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON mandate_audits (change_timestamp)"
    ),
    "idx_audit_mandate_time": (
        "CREATE INDEX IF NOT EXISTS idx_audit_mandate_time "
        "ON mandate_audits (mandate_id, change_timestamp)"
    ),
    "idx_audit_batch_id": (
        "CREATE INDEX IF NOT EXISTS idx_audit_batch_id ON mandate_audits (batch_id)"
    ),
}


class SchemaManager:
    """
    Manages the mandate store schema.

    Handles:
    - Creating tables and indexes
    - Inspecting which tables and indexes exist
    - Reporting row counts per table
    """

    def __init__(self, pool: DatabaseConnectionPool):
        """
        Initialize schema manager.

        Args:
            pool: Database connection pool
        """
        self.pool = pool

    def ensure_schema(self) -> None:
        """Create all tables and indexes that do not exist yet, in one transaction."""
        with self.pool.get_connection() as conn:
            with conn.transaction():
                for ddl in (CREATE_MANDATES, CREATE_AUDITS, CREATE_CREDITORS, CREATE_DEBTORS):
                    conn.execute(ddl)
                for ddl in INDEXES.values():
                    conn.execute(ddl)

        logger.info(
            f"Schema ready: {len(ALL_TABLES)} tables, {len(INDEXES)} indexes",
            extra={"tables": list(ALL_TABLES)},
        )

    def existing_tables(self) -> set[str]:
        """Names of the mandate store tables present in the current schema."""
        rows = self.pool.execute_query(
            """
            SELECT table_name FROM information_schema.tables
            WHERE table_schema = current_schema() AND table_name = ANY(%s)
            """,
            (list(ALL_TABLES),),
        )
        return {row["table_name"] for row in rows}

    def existing_indexes(self) -> set[str]:
        """Names of the managed indexes present in the current schema."""
        rows = self.pool.execute_query(
            """
            SELECT indexname FROM pg_indexes
            WHERE schemaname = current_schema() AND indexname = ANY(%s)
            """,
            (list(INDEXES),),
        )
        return {row["indexname"] for row in rows}

    def row_counts(self) -> dict[str, int]:
        """
        Count rows in every mandate store table.

        Returns:
            Dictionary mapping table name to row count
        """
        counts = {}
        with self.pool.get_cursor() as cur:
            for table in ALL_TABLES:
                cur.execute(
                    sql.SQL("SELECT COUNT(*) AS n FROM {}").format(sql.Identifier(table))
                )
                counts[table] = cur.fetchone()["n"]
        return counts
