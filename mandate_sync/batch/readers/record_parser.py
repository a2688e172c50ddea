"""
Positional decoding of delimited mandate lines into MandateRecord models.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

from mandate_sync.core.errors import (
    FieldCountMismatch,
    HeaderMismatchError,
    MalformedField,
    MissingRequiredField,
)
from mandate_sync.core.models import MandateRecord

DATE_FORMAT = "%Y-%m-%d"
DATE_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

_DECIMAL_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")
_INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")


def _parse_str(value: str) -> str:
    return value


def _parse_date(value: str) -> date:
    if len(value) != 10:
        raise ValueError(value)
    return datetime.strptime(value, DATE_FORMAT).date()


def _parse_datetime(value: str) -> datetime:
    if len(value) != 19:
        raise ValueError(value)
    return datetime.strptime(value, DATE_TIME_FORMAT)


def _parse_decimal(value: str) -> Decimal:
    if not _DECIMAL_PATTERN.match(value):
        raise ValueError(value)
    try:
        return Decimal(value)
    except InvalidOperation as e:
        raise ValueError(value) from e


def _parse_int(value: str) -> int:
    if not _INTEGER_PATTERN.match(value):
        raise ValueError(value)
    return int(value)


# kind -> (parser, human-readable format for error messages)
FIELD_TYPES: dict[str, tuple[Callable[[str], Any], str]] = {
    "string": (_parse_str, "string"),
    "date": (_parse_date, f"date ({DATE_FORMAT})"),
    "datetime": (_parse_datetime, f"date-time ({DATE_TIME_FORMAT})"),
    "decimal": (_parse_decimal, "decimal"),
    "integer": (_parse_int, "integer"),
}

# Column order of the source file
FIELD_LAYOUT: tuple[tuple[str, str], ...] = (
    ("mandate_id", "string"),
    ("last_update_date", "datetime"),
    ("creditor_id", "string"),
    ("creditor_name", "string"),
    ("creditor_account_number", "string"),
    ("creditor_sort_code", "string"),
    ("creditor_iban", "string"),
    ("creditor_bic", "string"),
    ("debtor_name", "string"),
    ("debtor_account_number", "string"),
    ("debtor_sort_code", "string"),
    ("debtor_iban", "string"),
    ("debtor_bic", "string"),
    ("debtor_email", "string"),
    ("debtor_phone", "string"),
    ("mandate_reference", "string"),
    ("mandate_type", "string"),
    ("frequency", "string"),
    ("status", "string"),
    ("signature_date", "date"),
    ("effective_date", "date"),
    ("expiry_date", "date"),
    ("max_amount_per_transaction", "decimal"),
    ("max_amount_per_month", "decimal"),
    ("max_transactions_per_month", "integer"),
    ("currency", "string"),
    ("description", "string"),
    ("scheme_type", "string"),
)

REQUIRED_FIELDS = ("mandate_id", "last_update_date")


def normalize_column_name(name: str) -> str:
    """Header comparison key: mandateId and mandate_id both become mandateid."""
    return name.strip().replace("_", "").lower()


class MandateRecordParser:
    """
    Decodes one delimited line into a MandateRecord.

    Fields are split on a single-character delimiter with trailing empty
    fields preserved, trimmed, and empty strings mapped to None. Decoding is
    positional, so the header must be checked with check_header() before
    any record line is trusted.
    """

    def __init__(self, delimiter: str = "|"):
        """
        Initialize parser.

        Args:
            delimiter: Single-character field separator
        """
        if len(delimiter) != 1:
            raise ValueError(f"delimiter must be a single character, got {delimiter!r}")
        self.delimiter = delimiter
        self.layout = FIELD_LAYOUT

    @property
    def expected_field_count(self) -> int:
        return len(self.layout)

    @property
    def column_names(self) -> list[str]:
        return [name for name, _ in self.layout]

    def split(self, line: str) -> list[str | None]:
        """Split a line into trimmed values, empty strings becoming None."""
        values = line.rstrip("\r\n").split(self.delimiter)
        return [value.strip() or None for value in values]

    def check_header(self, header_line: str) -> list[str]:
        """
        Verify that a header line matches the positional layout.

        Args:
            header_line: First line of the file

        Returns:
            The header column names as read

        Raises:
            HeaderMismatchError: If the column count or names differ from the layout
        """
        columns = [c or "" for c in self.split(header_line)]
        expected = self.column_names

        if len(columns) != len(expected):
            raise HeaderMismatchError(
                f"Header has {len(columns)} columns, expected {len(expected)}",
                expected=expected,
                actual=columns,
            )

        mismatched = [
            f"{i}: {actual!r} != {wanted!r}"
            for i, (actual, wanted) in enumerate(zip(columns, expected))
            if normalize_column_name(actual) != normalize_column_name(wanted)
        ]
        if mismatched:
            raise HeaderMismatchError(
                "Header column names do not match the expected order: "
                + ", ".join(mismatched[:5]),
                expected=expected,
                actual=columns,
            )

        return columns

    def parse_line(self, line: str, line_number: int | None = None) -> MandateRecord:
        """
        Parse one record line.

        Args:
            line: Raw line text
            line_number: 1-based line number, used in error messages

        Returns:
            MandateRecord

        Raises:
            FieldCountMismatch: If the line has the wrong number of fields
            MalformedField: If a typed field does not parse
            MissingRequiredField: If mandate_id or last_update_date is absent
        """
        values = self.split(line)
        if len(values) != self.expected_field_count:
            raise FieldCountMismatch(self.expected_field_count, len(values), line_number)

        parsed: dict[str, Any] = {}
        for (field_name, kind), raw in zip(self.layout, values):
            if raw is None:
                parsed[field_name] = None
                continue
            parser, expected_format = FIELD_TYPES[kind]
            try:
                parsed[field_name] = parser(raw)
            except ValueError:
                raise MalformedField(field_name, raw, expected_format, line_number) from None

        for field_name in REQUIRED_FIELDS:
            if parsed[field_name] is None:
                raise MissingRequiredField(field_name, line_number)

        return MandateRecord(**parsed)
