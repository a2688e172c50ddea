"""
Pytest configuration and fixtures for mandate-sync tests

This module provides shared fixtures for unit, integration, and E2E tests.
"""
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Generator, Iterable

import pytest
from testcontainers.postgres import PostgresContainer

from mandate_sync.batch.pipeline import ReconciliationEngine
from mandate_sync.batch.readers.record_parser import FIELD_LAYOUT, MandateRecordParser
from mandate_sync.config import ReconciliationConfig
from mandate_sync.core.errors import (
    AuditWriteFailure,
    BulkWriteFailure,
    StoreError,
    TransactionFailure,
)
from mandate_sync.core.models import (
    AuditRecord,
    Creditor,
    Debtor,
    MandateRecord,
    StoredMandate,
)
from mandate_sync.warehouse.connection import DatabaseConnectionPool
from mandate_sync.warehouse.gateway import MandateStore
from mandate_sync.warehouse.schema_mgmt import ALL_TABLES, SchemaManager


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that test the full pipeline"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

TEST_DB_NAME = "test_mandates"
TEST_DB_USER = "test_mandate_sync"
TEST_DB_PASSWORD = "test_password"


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL container for integration tests

    Skips the requesting tests when Docker is not available.

    Yields:
        Running PostgresContainer instance
    """
    container = PostgresContainer(
        image="postgres:16.2-alpine",
        username=TEST_DB_USER,
        password=TEST_DB_PASSWORD,
        dbname=TEST_DB_NAME,
    )
    try:
        container.start()
    except Exception as e:  # docker daemon missing or unreachable
        pytest.skip(f"Docker is not available: {e}")

    try:
        yield container
    finally:
        container.stop()


@pytest.fixture(scope="session")
def db_pool(postgres_container) -> Generator[DatabaseConnectionPool, None, None]:
    """
    Open a connection pool against the container and create the schema

    Yields:
        Open DatabaseConnectionPool
    """
    pool = DatabaseConnectionPool(
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        database=TEST_DB_NAME,
        user=TEST_DB_USER,
        password=TEST_DB_PASSWORD,
        min_size=1,
        max_size=4,
    )
    pool.open()
    SchemaManager(pool).ensure_schema()

    yield pool

    pool.close()


@pytest.fixture(scope="function")
def clean_db(db_pool) -> DatabaseConnectionPool:
    """
    Provide a clean database by truncating all tables before each test

    Returns:
        Open DatabaseConnectionPool over empty tables
    """
    db_pool.execute_command(f"TRUNCATE TABLE {', '.join(ALL_TABLES)} RESTART IDENTITY")
    return db_pool


# =======================
# IN-MEMORY STORE
# =======================

class InMemoryMandateStore(MandateStore):
    """
    Dictionary-backed MandateStore with switchable failure modes.

    Failure switches:
        fail_lookup: get_update_dates raises StoreError
        fail_fetch: get_mandates raises StoreError
        fail_transaction: the insert session aborts at commit
        fail_replace_ids: replace_mandates fails these mandate ids
        fail_audits: insert_audit_records raises AuditWriteFailure
        vanished_ids: ids visible to get_update_dates but not to get_mandates
    """

    def __init__(self):
        self.mandates: dict[str, StoredMandate] = {}
        self.creditors: dict[str, Creditor] = {}
        self.debtors: dict[str, Debtor] = {}
        self.audits: list[AuditRecord] = []
        self.calls: list[str] = []

        self.fail_lookup = False
        self.fail_fetch = False
        self.fail_transaction = False
        self.fail_replace_ids: set[str] = set()
        self.fail_audits = False
        self.vanished_ids: set[str] = set()

    def get_update_dates(self, mandate_ids: Iterable[str]) -> dict[str, datetime]:
        self.calls.append("get_update_dates")
        if self.fail_lookup:
            raise StoreError("lookup unavailable")
        return {
            i: self.mandates[i].last_update_date for i in mandate_ids if i in self.mandates
        }

    def get_mandates(self, mandate_ids: Iterable[str]) -> dict[str, StoredMandate]:
        self.calls.append("get_mandates")
        if self.fail_fetch:
            raise StoreError("fetch unavailable")
        return {
            i: self.mandates[i].model_copy(deep=True)
            for i in mandate_ids
            if i in self.mandates and i not in self.vanished_ids
        }

    def get_existing_creditor_ids(self, creditor_ids: Iterable[str]) -> set[str]:
        self.calls.append("get_existing_creditor_ids")
        return {i for i in creditor_ids if i in self.creditors}

    def get_existing_debtor_ids(self, debtor_ids: Iterable[str]) -> set[str]:
        self.calls.append("get_existing_debtor_ids")
        return {i for i in debtor_ids if i in self.debtors}

    @contextmanager
    def transaction(self):
        self.calls.append("transaction")
        session = {"mandates": [], "creditors": [], "debtors": []}
        try:
            yield session
            if self.fail_transaction:
                raise StoreError("commit aborted")
        except StoreError as e:
            raise TransactionFailure(f"Insert transaction aborted: {e}") from e

        for creditor in session["creditors"]:
            self.creditors[creditor.creditor_id] = creditor
        for debtor in session["debtors"]:
            self.debtors[debtor.debtor_id] = debtor
        for mandate in session["mandates"]:
            self.mandates[mandate.mandate_id] = mandate

    def insert_mandates(self, mandates, session) -> int:
        self.calls.append("insert_mandates")
        for mandate in mandates:
            if mandate.mandate_id in self.mandates:
                raise StoreError(f"duplicate key {mandate.mandate_id}")
        session["mandates"].extend(m.model_copy(deep=True) for m in mandates)
        return len(mandates)

    def insert_creditors(self, creditors, session) -> int:
        self.calls.append("insert_creditors")
        session["creditors"].extend(creditors)
        return len(creditors)

    def insert_debtors(self, debtors, session) -> int:
        self.calls.append("insert_debtors")
        session["debtors"].extend(debtors)
        return len(debtors)

    def replace_mandates(self, mandates) -> int:
        self.calls.append("replace_mandates")
        succeeded, failures = [], {}
        for mandate in mandates:
            if mandate.mandate_id in self.fail_replace_ids:
                failures[mandate.mandate_id] = "simulated write error"
            elif mandate.mandate_id not in self.mandates:
                failures[mandate.mandate_id] = "mandate not found"
            else:
                self.mandates[mandate.mandate_id] = mandate.model_copy(deep=True)
                succeeded.append(mandate.mandate_id)
        if failures:
            raise BulkWriteFailure(succeeded=succeeded, failures=failures)
        return len(succeeded)

    def insert_audit_records(self, audits) -> int:
        self.calls.append("insert_audit_records")
        if self.fail_audits:
            raise AuditWriteFailure("audit collection unavailable")
        self.audits.extend(audits)
        return len(audits)


@pytest.fixture
def memory_store() -> InMemoryMandateStore:
    """Empty in-memory mandate store"""
    return InMemoryMandateStore()


# =======================
# ENGINE FIXTURES
# =======================

FIXED_NOW = datetime(2025, 11, 17, 2, 0, 0)


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    """Clock that always returns FIXED_NOW"""
    return lambda: FIXED_NOW


@pytest.fixture
def test_config() -> ReconciliationConfig:
    """Small batches and a fixed actor"""
    return ReconciliationConfig(batch_size=50, actor="test-runner", progress_log_interval=100)


@pytest.fixture
def engine(memory_store, test_config, fixed_clock) -> ReconciliationEngine:
    """Engine over the in-memory store"""
    return ReconciliationEngine(memory_store, test_config, clock=fixed_clock)


# =======================
# FILE FIXTURES
# =======================

BASE_VALUES = {
    "mandate_id": "MND-0000000001",
    "last_update_date": "2025-01-15 10:30:00",
    "creditor_id": "CRED000001",
    "creditor_name": "Thames Water Utilities",
    "creditor_account_number": "12345678",
    "creditor_sort_code": "20-00-00",
    "creditor_iban": "GB29NWBK20000012345678",
    "creditor_bic": "NWBKGB2L",
    "debtor_name": "Jane Smith",
    "debtor_account_number": "87654321",
    "debtor_sort_code": "40-11-22",
    "debtor_iban": "GB82NWBK40112287654321",
    "debtor_bic": "BARCGB22",
    "debtor_email": "jane.smith@gmail.com",
    "debtor_phone": "+447700123456",
    "mandate_reference": "REF-THAM-000123",
    "mandate_type": "RECURRING",
    "frequency": "MONTHLY",
    "status": "ACTIVE",
    "signature_date": "2024-12-01",
    "effective_date": "2024-12-15",
    "expiry_date": "2027-12-15",
    "max_amount_per_transaction": "100.00",
    "max_amount_per_month": "300.00",
    "max_transactions_per_month": "3",
    "currency": "GBP",
    "description": "Water rates",
    "scheme_type": "BACS",
}

HEADER = "|".join(name for name, _ in FIELD_LAYOUT)


@pytest.fixture
def mandate_line() -> Callable[..., str]:
    """
    Build a valid record line, overriding fields by name

    Usage:
        mandate_line(mandate_id="MND-0000000002", status="SUSPENDED")
    """
    def build(**overrides) -> str:
        unknown = set(overrides) - set(BASE_VALUES)
        if unknown:
            raise KeyError(f"Unknown fields: {sorted(unknown)}")
        values = {**BASE_VALUES, **overrides}
        return "|".join("" if values[name] is None else values[name] for name, _ in FIELD_LAYOUT)

    return build


@pytest.fixture
def make_record(mandate_line) -> Callable[..., MandateRecord]:
    """Build a parsed MandateRecord, overriding fields by name"""
    parser = MandateRecordParser()

    def build(**overrides) -> MandateRecord:
        return parser.parse_line(mandate_line(**overrides))

    return build


@pytest.fixture
def mandate_file(tmp_path) -> Callable[..., Path]:
    """
    Write a mandate file from record lines

    Usage:
        path = mandate_file([line1, line2], name="night1.txt")
    """
    def write(lines: list[str], name: str = "mandates.txt", header: str = HEADER) -> Path:
        path = tmp_path / name
        path.write_text("\n".join([header, *lines]) + "\n", encoding="utf-8")
        return path

    return write
