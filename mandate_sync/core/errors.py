"""
Error taxonomy for mandate reconciliation.

Line-level errors (ParseError and subclasses) are contained by the file reader.
Store errors are contained per batch by the reconciliation engine, except
ClassificationLookupFailure which aborts the run.
"""


class ReconciliationError(Exception):
    """Base class for all reconciliation errors."""


# =======================
# PARSE ERRORS
# =======================

class ParseError(ReconciliationError):
    """Raised when a single line of the source file cannot be decoded."""

    def __init__(self, message: str, line_number: int | None = None):
        self.message = message
        self.line_number = line_number
        location = f"line {line_number}: " if line_number is not None else ""
        super().__init__(f"{location}{message}")


class FieldCountMismatch(ParseError):
    """The line does not split into the expected number of fields."""

    def __init__(self, expected: int, actual: int, line_number: int | None = None):
        self.expected = expected
        self.actual = actual
        super().__init__(f"expected {expected} fields, got {actual}", line_number)


class MalformedField(ParseError):
    """A typed field failed to parse in its expected format."""

    def __init__(
        self,
        field_name: str,
        value: str,
        expected_format: str,
        line_number: int | None = None,
    ):
        self.field_name = field_name
        self.value = value
        self.expected_format = expected_format
        super().__init__(
            f"field '{field_name}' value {value!r} is not a valid {expected_format}",
            line_number,
        )


class MissingRequiredField(ParseError):
    """A field required for classification (mandate_id, last_update_date) is absent."""

    def __init__(self, field_name: str, line_number: int | None = None):
        self.field_name = field_name
        super().__init__(f"required field '{field_name}' is missing", line_number)


class MalformedEncoding(ParseError):
    """The raw bytes of the line are not valid in the file encoding."""

    def __init__(self, encoding: str, position: int, reason: str, line_number: int | None = None):
        self.encoding = encoding
        self.position = position
        super().__init__(f"invalid {encoding} at byte {position}: {reason}", line_number)


class HeaderMismatchError(ReconciliationError):
    """The header line does not match the positional field layout."""

    def __init__(self, message: str, expected: list[str], actual: list[str]):
        self.expected = expected
        self.actual = actual
        super().__init__(message)


# =======================
# STORE ERRORS
# =======================

class StoreError(ReconciliationError):
    """Generic failure reported by the store gateway."""


class ClassificationLookupFailure(ReconciliationError):
    """The store could not be read while classifying a batch. Fatal for the run."""


class TransactionFailure(StoreError):
    """The atomic insert transaction for a batch was aborted."""


class BulkWriteFailure(StoreError):
    """
    Some records of an unordered bulk write failed.

    Attributes:
        succeeded: mandate ids that were written
        failures: mandate id -> error message for every failed record
    """

    def __init__(self, succeeded: list[str], failures: dict[str, str]):
        self.succeeded = succeeded
        self.failures = failures
        super().__init__(
            f"{len(failures)} of {len(succeeded) + len(failures)} records failed to write"
        )


class AuditWriteFailure(StoreError):
    """Audit records could not be persisted after a successful primary write."""
