"""
Unit tests for database connection pool

Tests the PostgreSQL connection pool functionality using testcontainers.
"""
import psycopg
import pytest

from mandate_sync.config import DatabaseSettings
from mandate_sync.warehouse.connection import DatabaseConnectionPool


def container_pool(db_pool, **kwargs) -> DatabaseConnectionPool:
    """A second pool against the same container as the session pool"""
    return DatabaseConnectionPool(
        host=db_pool.host,
        port=db_pool.port,
        database=db_pool.database,
        user=db_pool.user,
        password=db_pool.password,
        **kwargs,
    )


@pytest.mark.unit
def test_password_required():
    """Test that a pool cannot be built without a password"""
    with pytest.raises(ValueError) as exc_info:
        DatabaseConnectionPool(host="localhost")
    assert "password" in str(exc_info.value).lower()


@pytest.mark.unit
def test_from_settings():
    """Test building a pool from resolved settings without opening it"""
    settings = DatabaseSettings(
        host="db.internal", port=6543, database="mandates", user="sync",
        password="secret", max_pool_size=8,
    )
    pool = DatabaseConnectionPool.from_settings(settings)

    assert pool.max_size == 8
    assert "host=db.internal" in pool.conninfo
    assert "port=6543" in pool.conninfo
    assert not pool.is_open


@pytest.mark.unit
def test_connection_requires_open_pool():
    """Test that using a pool before open() raises RuntimeError"""
    pool = DatabaseConnectionPool(password="secret")
    with pytest.raises(RuntimeError):
        pool.execute_query("SELECT 1")


@pytest.mark.integration
def test_connection_pool_initialization(db_pool):
    """Test that connection pool initializes correctly"""
    pool = container_pool(db_pool, min_size=2, max_size=5)

    pool.open()

    assert pool.is_open
    assert pool._pool.min_size == 2
    assert pool._pool.max_size == 5

    pool.close()
    assert not pool.is_open


@pytest.mark.integration
def test_get_connection(db_pool):
    """Test getting a connection from the pool"""
    with container_pool(db_pool) as pool:
        with pool.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1 as test")
                result = cur.fetchone()
                assert result["test"] == 1


@pytest.mark.integration
def test_execute_query(db_pool):
    """Test executing a query using the pool"""
    with container_pool(db_pool) as pool:
        result = pool.execute_query("SELECT %s::int as answer", (42,))
        assert len(result) == 1
        assert result[0]["answer"] == 42


@pytest.mark.integration
def test_execute_command(clean_db):
    """Test executing INSERT/UPDATE commands"""
    rowcount = clean_db.execute_command(
        """
        INSERT INTO creditors (creditor_id, creditor_name)
        VALUES (%s, %s)
        """,
        ("CRED000001", "Thames Water Utilities"),
    )

    assert rowcount == 1

    result = clean_db.execute_query(
        "SELECT creditor_name FROM creditors WHERE creditor_id = %(id)s",
        {"id": "CRED000001"},
    )
    assert result[0]["creditor_name"] == "Thames Water Utilities"


@pytest.mark.integration
def test_context_manager(db_pool):
    """Test using pool as context manager"""
    with container_pool(db_pool) as pool:
        result = pool.execute_query("SELECT 1 as test")
        assert result[0]["test"] == 1

    # Pool should be closed after context
    with pytest.raises(RuntimeError):
        pool.execute_query("SELECT 1")


@pytest.mark.integration
@pytest.mark.slow
def test_open_gives_up_after_retries(db_pool):
    """Test that a wrong password fails after the configured attempts"""
    pool = DatabaseConnectionPool(
        host=db_pool.host,
        port=db_pool.port,
        database=db_pool.database,
        user=db_pool.user,
        password="wrong_password",
        timeout=2.0,
    )

    with pytest.raises(psycopg.OperationalError) as exc_info:
        pool.open(max_retries=2, retry_delay=0.1)

    assert "after 2 attempts" in str(exc_info.value)
    assert not pool.is_open
