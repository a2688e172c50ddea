"""
Input validation utilities for the mandate-sync CLI.

Provides reusable validation functions for operator-supplied values like
mandate IDs, run IDs, file paths and percentages so bad input is rejected
before any store connection is opened.
"""

import re
from pathlib import PurePath


class ValidationError(ValueError):
    """Raised when input validation fails."""
    pass


_IDENTIFIER_PATTERN = re.compile(r'^[a-zA-Z0-9_\-\.]+$')


def validate_mandate_id(mandate_id: str, field_name: str = "mandate_id") -> str:
    """
    Validate a mandate ID.

    Mandate IDs must be non-empty strings containing only alphanumeric
    characters, hyphens, underscores, and dots.

    Args:
        mandate_id: The mandate ID to validate
        field_name: Name of the field (for error messages)

    Returns:
        The validated mandate ID (stripped of whitespace)

    Raises:
        ValidationError: If validation fails

    Examples:
        >>> validate_mandate_id("MND-0000000042")
        'MND-0000000042'
        >>> validate_mandate_id("invalid id!")  # doctest: +SKIP
        ValidationError: mandate_id contains invalid characters
    """
    if not mandate_id or not isinstance(mandate_id, str):
        raise ValidationError(f"{field_name} must be a non-empty string")

    mandate_id = mandate_id.strip()

    if not mandate_id:
        raise ValidationError(f"{field_name} cannot be empty or whitespace-only")

    if not _IDENTIFIER_PATTERN.match(mandate_id):
        raise ValidationError(
            f"{field_name} contains invalid characters. "
            "Only alphanumeric, hyphens, underscores, and dots are allowed."
        )

    # Prevent excessively long IDs (DOS protection)
    if len(mandate_id) > 255:
        raise ValidationError(f"{field_name} exceeds maximum length of 255 characters")

    return mandate_id


def validate_batch_id(batch_id: str, field_name: str = "batch_id") -> str:
    """
    Validate a run correlation ID.

    Batch IDs follow the same rules as mandate IDs (UUIDs pass).
    """
    return validate_mandate_id(batch_id, field_name)


def validate_limit(limit: int, field_name: str = "limit", max_limit: int = 10000) -> int:
    """
    Validate a limit parameter for queries.

    Args:
        limit: The limit value to validate
        field_name: Name of the field (for error messages)
        max_limit: Maximum allowed limit value

    Returns:
        The validated limit value

    Raises:
        ValidationError: If validation fails

    Examples:
        >>> validate_limit(100)
        100
        >>> validate_limit(0)  # doctest: +SKIP
        ValidationError: limit must be a positive integer
    """
    if not isinstance(limit, int) or isinstance(limit, bool):
        raise ValidationError(f"{field_name} must be an integer, got {type(limit).__name__}")

    if limit <= 0:
        raise ValidationError(f"{field_name} must be a positive integer, got {limit}")

    if limit > max_limit:
        raise ValidationError(f"{field_name} exceeds maximum of {max_limit}")

    return limit


def validate_percentage(value: float, field_name: str = "percentage") -> float:
    """
    Validate a percentage between 0 and 100 inclusive.

    Raises:
        ValidationError: If the value is outside 0-100
    """
    if value < 0 or value > 100:
        raise ValidationError(f"{field_name} must be between 0 and 100, got {value}")
    return value


def validate_file_path(file_path: str, field_name: str = "file_path") -> str:
    """
    Validate a file path for security.

    Prevents path traversal and ensures the path is reasonable.

    Args:
        file_path: The file path to validate
        field_name: Name of the field (for error messages)

    Returns:
        The validated file path (stripped of whitespace)

    Raises:
        ValidationError: If validation fails

    Examples:
        >>> validate_file_path("/data/mandates.txt")
        '/data/mandates.txt'
        >>> validate_file_path("../../../etc/passwd")  # doctest: +SKIP
        ValidationError: file_path contains path traversal components
    """
    if not file_path or not isinstance(file_path, str):
        raise ValidationError(f"{field_name} must be a non-empty string")

    file_path = file_path.strip()

    if not file_path:
        raise ValidationError(f"{field_name} cannot be empty or whitespace-only")

    # Check for null bytes (security)
    if "\x00" in file_path:
        raise ValidationError(f"{field_name} contains null bytes")

    # Prevent path traversal
    if ".." in PurePath(file_path).parts:
        raise ValidationError(f"{field_name} contains path traversal components (..)")

    # Prevent excessively long paths
    if len(file_path) > 4096:  # Linux PATH_MAX
        raise ValidationError(f"{field_name} exceeds maximum length of 4096 characters")

    return file_path
