"""
MandateRecord model representing one parsed line of a mandate extract (ephemeral).
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from .party import derive_debtor_id


class MandateRecord(BaseModel):
    """
    One direct debit mandate as supplied by the source system.

    Field declaration order matches the positional column order of the
    source file. Absent values are None.

    Attributes:
        mandate_id: Natural business key, stable across files
        last_update_date: Source-system change marker
        creditor_*: Creditor (payee) details
        debtor_*: Debtor (payer) details
        mandate_reference .. expiry_date: Mandate terms
        max_amount_per_transaction .. currency: Monetary limits
        description, scheme_type: Descriptive metadata
    """

    mandate_id: str = Field(..., min_length=1)
    last_update_date: datetime

    creditor_id: str | None = None
    creditor_name: str | None = None
    creditor_account_number: str | None = None
    creditor_sort_code: str | None = None
    creditor_iban: str | None = None
    creditor_bic: str | None = None

    debtor_name: str | None = None
    debtor_account_number: str | None = None
    debtor_sort_code: str | None = None
    debtor_iban: str | None = None
    debtor_bic: str | None = None
    debtor_email: str | None = None
    debtor_phone: str | None = None

    mandate_reference: str | None = None
    mandate_type: str | None = None
    frequency: str | None = None
    status: str | None = None
    signature_date: date | None = None
    effective_date: date | None = None
    expiry_date: date | None = None

    max_amount_per_transaction: Decimal | None = None
    max_amount_per_month: Decimal | None = None
    max_transactions_per_month: int | None = None
    currency: str | None = None

    description: str | None = None
    scheme_type: str | None = None

    @property
    def debtor_id(self) -> str | None:
        """Derived debtor identity, recomputed on every access."""
        return derive_debtor_id(self.debtor_sort_code, self.debtor_account_number)

    class Config:
        json_schema_extra = {
            "example": {
                "mandate_id": "MND-0000000001",
                "last_update_date": "2025-03-14T09:26:53",
                "creditor_id": "CRED000417",
                "creditor_name": "Thames Water Utilities",
                "debtor_name": "Olivia Patel",
                "debtor_account_number": "12345678",
                "debtor_sort_code": "20-00-00",
                "mandate_type": "RECURRING",
                "frequency": "MONTHLY",
                "status": "ACTIVE",
                "signature_date": "2024-01-10",
                "max_amount_per_transaction": "250.00",
                "max_transactions_per_month": 1,
                "currency": "GBP",
                "scheme_type": "BACS"
            }
        }
