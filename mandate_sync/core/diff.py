"""
Field-level diffing of mandates.

Comparison is driven by an explicit comparator table rather than attribute
discovery: a field is compared if and only if it is listed in
MANDATE_FIELD_COMPARATORS. System-owned fields are simply not in the table.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from operator import attrgetter
from typing import Any, Callable

from .models import FieldChange, MandateRecord, StoredMandate

# Identity, change marker and system-owned fields: never diffed
NON_ATTRIBUTE_FIELDS = frozenset({"mandate_id", "last_update_date", "created_at", "version"})


def values_equal(a: Any, b: Any) -> bool:
    """Exact equality with absent == absent."""
    if a is None and b is None:
        return True
    if a is None or b is None:
        return False
    return a == b


def decimals_equal(a: Decimal | None, b: Decimal | None) -> bool:
    """Numeric equality, ignoring scale (100.00 == 100.0)."""
    if a is None or b is None:
        return a is None and b is None
    return Decimal(a).compare(Decimal(b)) == 0


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def instants_equal(a: date | datetime | None, b: date | datetime | None) -> bool:
    """Dates compare by day, date-times by instant (naive taken as UTC)."""
    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, datetime) and isinstance(b, datetime):
        return _as_utc(a) == _as_utc(b)
    return a == b


def render_value(value: Any) -> str | None:
    """Render a typed value for the audit trail."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


@dataclass(frozen=True)
class FieldComparator:
    field_name: str
    accessor: Callable[[MandateRecord], Any]
    equals: Callable[[Any, Any], bool] = values_equal
    render: Callable[[Any], str | None] = render_value


def _text(name: str) -> FieldComparator:
    return FieldComparator(name, attrgetter(name))


def _amount(name: str) -> FieldComparator:
    return FieldComparator(name, attrgetter(name), decimals_equal)


def _temporal(name: str) -> FieldComparator:
    return FieldComparator(name, attrgetter(name), instants_equal)


MANDATE_FIELD_COMPARATORS: tuple[FieldComparator, ...] = (
    _text("creditor_id"),
    _text("creditor_name"),
    _text("creditor_account_number"),
    _text("creditor_sort_code"),
    _text("creditor_iban"),
    _text("creditor_bic"),
    _text("debtor_name"),
    _text("debtor_account_number"),
    _text("debtor_sort_code"),
    _text("debtor_iban"),
    _text("debtor_bic"),
    _text("debtor_email"),
    _text("debtor_phone"),
    _text("mandate_reference"),
    _text("mandate_type"),
    _text("frequency"),
    _text("status"),
    _temporal("signature_date"),
    _temporal("effective_date"),
    _temporal("expiry_date"),
    _amount("max_amount_per_transaction"),
    _amount("max_amount_per_month"),
    _text("max_transactions_per_month"),
    _text("currency"),
    _text("description"),
    _text("scheme_type"),
)


def _check_coverage() -> None:
    expected = [
        name for name in StoredMandate.model_fields
        if name not in NON_ATTRIBUTE_FIELDS
    ]
    listed = [c.field_name for c in MANDATE_FIELD_COMPARATORS]
    if listed != expected:
        missing = sorted(set(expected) - set(listed))
        unknown = sorted(set(listed) - set(expected))
        raise RuntimeError(
            "Mandate comparator table out of sync with model: "
            f"missing={missing}, unknown={unknown}, or order differs"
        )


_check_coverage()


def diff(existing: MandateRecord, candidate: MandateRecord) -> list[FieldChange]:
    """
    Compare two versions of a mandate.

    Args:
        existing: Stored version
        candidate: Version read from the file

    Returns:
        FieldChanges in declaration order; empty if the attributes are equal
    """
    changes = []
    for comparator in MANDATE_FIELD_COMPARATORS:
        old = comparator.accessor(existing)
        new = comparator.accessor(candidate)
        if not comparator.equals(old, new):
            changes.append(FieldChange(
                field_name=comparator.field_name,
                old_value=comparator.render(old),
                new_value=comparator.render(new),
            ))
    return changes


def apply_changes(existing: StoredMandate, candidate: MandateRecord) -> StoredMandate:
    """
    Merge a candidate into a stored mandate.

    Returns the candidate's attribute values with the stored identity,
    created_at and version spliced back in. Version is not incremented here.
    """
    merged = candidate.model_dump(exclude={"created_at", "version"})
    merged["mandate_id"] = existing.mandate_id
    return StoredMandate(**merged, created_at=existing.created_at, version=existing.version)
