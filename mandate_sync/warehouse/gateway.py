"""
Store gateway contract used by the reconciliation engine.

The engine depends only on this interface; PostgresMandateStore is the
production implementation and tests use an in-memory one.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any, Iterable

from mandate_sync.core.models import AuditRecord, Creditor, Debtor, StoredMandate


class MandateStore(ABC):
    """
    Batched access to mandates, parties and the audit trail.

    All methods are keyed by business identifiers. Lookups raise StoreError,
    the insert session raises TransactionFailure, replace_mandates raises
    BulkWriteFailure on partial failure and insert_audit_records raises
    AuditWriteFailure.
    """

    # Reads

    @abstractmethod
    def get_update_dates(self, mandate_ids: Iterable[str]) -> dict[str, datetime]:
        """
        Covering lookup of last_update_date for each known mandate id.

        Unknown ids are absent from the result.
        """

    @abstractmethod
    def get_mandates(self, mandate_ids: Iterable[str]) -> dict[str, StoredMandate]:
        """Full records for each known mandate id."""

    @abstractmethod
    def get_existing_creditor_ids(self, creditor_ids: Iterable[str]) -> set[str]:
        """Subset of creditor_ids already materialized."""

    @abstractmethod
    def get_existing_debtor_ids(self, debtor_ids: Iterable[str]) -> set[str]:
        """Subset of debtor_ids already materialized."""

    # Atomic insert scope

    @abstractmethod
    def transaction(self) -> AbstractContextManager[Any]:
        """
        Open an atomic write scope.

        The yielded session is passed to the insert_* methods. Leaving the
        block normally commits; an exception aborts and is re-raised as
        TransactionFailure.
        """

    @abstractmethod
    def insert_mandates(self, mandates: list[StoredMandate], session: Any) -> int:
        """Bulk insert new mandates inside a session."""

    @abstractmethod
    def insert_creditors(self, creditors: list[Creditor], session: Any) -> int:
        """Bulk insert new creditors inside a session."""

    @abstractmethod
    def insert_debtors(self, debtors: list[Debtor], session: Any) -> int:
        """Bulk insert new debtors inside a session."""

    # Non-transactional bulk writes

    @abstractmethod
    def replace_mandates(self, mandates: list[StoredMandate]) -> int:
        """
        Unordered bulk replace keyed by mandate_id.

        Every record is attempted even if earlier ones fail.

        Returns:
            Number of mandates replaced

        Raises:
            BulkWriteFailure: If at least one record failed
        """

    @abstractmethod
    def insert_audit_records(self, audits: list[AuditRecord]) -> int:
        """Bulk insert audit records. Returns the number written."""
