"""
Unit tests for CLI input validation
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from mandate_sync.utils.validation import (
    ValidationError,
    validate_batch_id,
    validate_file_path,
    validate_limit,
    validate_mandate_id,
    validate_percentage,
)


@pytest.mark.unit
class TestValidateMandateId:
    """Tests for validate_mandate_id"""

    def test_valid_id_is_stripped(self):
        assert validate_mandate_id("  MND-0000000042 ") == "MND-0000000042"

    @pytest.mark.parametrize("value", ["", "   ", "MND 42", "MND;DROP", "a" * 256])
    def test_rejected(self, value):
        with pytest.raises(ValidationError):
            validate_mandate_id(value)

    def test_uuid_batch_id(self):
        """Test run ids generated as UUIDs pass"""
        batch_id = "8a3c0f5e-4f8e-4c35-9d5b-2b7f1d0b8e21"
        assert validate_batch_id(batch_id) == batch_id

    def test_is_value_error(self):
        """Test ValidationError can be caught as ValueError"""
        with pytest.raises(ValueError):
            validate_batch_id("not valid!")

    @given(st.from_regex(r"[a-zA-Z0-9_\-.]{1,255}", fullmatch=True))
    def test_any_identifier_accepted(self, value):
        """Property: identifiers built from the allowed alphabet pass unchanged"""
        assert validate_mandate_id(value) == value


@pytest.mark.unit
class TestValidateLimit:
    """Tests for validate_limit"""

    def test_valid(self):
        assert validate_limit(100) == 100

    @pytest.mark.parametrize("value", [0, -1, 10001, True, "10"])
    def test_rejected(self, value):
        with pytest.raises(ValidationError):
            validate_limit(value)


@pytest.mark.unit
class TestValidatePercentage:
    """Tests for validate_percentage"""

    @pytest.mark.parametrize("value", [0, 10.5, 100])
    def test_valid(self, value):
        assert validate_percentage(value) == value

    @pytest.mark.parametrize("value", [-0.1, 100.1])
    def test_rejected(self, value):
        with pytest.raises(ValidationError):
            validate_percentage(value)


@pytest.mark.unit
class TestValidateFilePath:
    """Tests for validate_file_path"""

    def test_valid(self):
        assert validate_file_path(" /data/mandates.txt ") == "/data/mandates.txt"

    @pytest.mark.parametrize(
        "value", ["", "   ", "../../etc/passwd", "data/../secret.txt", "bad\x00name", "a" * 4097]
    )
    def test_rejected(self, value):
        with pytest.raises(ValidationError):
            validate_file_path(value)

    def test_dots_inside_names_allowed(self):
        """Test file names containing '..' as text are not traversal"""
        assert validate_file_path("mandates..txt") == "mandates..txt"
