"""
Creditor and Debtor party models materialized from mandate records.
"""

from datetime import datetime

from pydantic import BaseModel, Field


def derive_debtor_id(sort_code: str | None, account_number: str | None) -> str | None:
    """
    Derive a debtor identity key from its bank account details.

    The key is a pure function of (sort code, account number); it is never
    cached so a change to either input yields a different key.

    Returns:
        "DBT-<sort code without dashes>-<account number>", or None when
        either input is absent
    """
    if not sort_code or not account_number:
        return None
    return f"DBT-{sort_code.replace('-', '')}-{account_number}"


class Creditor(BaseModel):
    """Payee party, keyed by the creditor_id supplied in the file."""

    creditor_id: str = Field(..., min_length=1)
    creditor_name: str | None = None
    account_number: str | None = None
    sort_code: str | None = None
    iban: str | None = None
    bic: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Debtor(BaseModel):
    """Payer party, keyed by the derived debtor id."""

    debtor_id: str = Field(..., min_length=1)
    name: str | None = None
    account_number: str | None = None
    sort_code: str | None = None
    iban: str | None = None
    bic: str | None = None
    email: str | None = None
    phone: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
