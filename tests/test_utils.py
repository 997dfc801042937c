"""
Tests for validation helpers, credential masking and the error hierarchy.
"""

import pytest

from bookmark_enricher.utils.api_key_validator import APIKeyValidator
from bookmark_enricher.utils.error_handler import (
    APIClientError,
    AuthenticationError,
    ConfigurationError,
    RateLimitError,
    ResponseFormatError,
    StorageError,
    is_fatal_error,
)
from bookmark_enricher.utils.validation import (
    ValidationError,
    validate_batch_size,
    validate_config_file,
    validate_input_file,
    validate_output_path,
)
from tests.conftest import VALID_GEMINI_KEY


class TestAPIKeyValidator:
    """Test credential format checks and masking."""

    def test_valid_gemini_key(self):
        assert APIKeyValidator.validate_format("gemini", VALID_GEMINI_KEY) == (True, None)

    @pytest.mark.parametrize(
        "key,message",
        [
            ("", "empty"),
            ("AIza123", "too short"),
            ("BIza" + "x" * 35, "should start with"),
            ("AIza" + "!" * 35, "format is invalid"),
        ],
    )
    def test_invalid_gemini_keys(self, key, message):
        valid, error = APIKeyValidator.validate_format("gemini", key)

        assert not valid
        assert message in error

    def test_notion_token(self):
        assert APIKeyValidator.validate_format("notion", "secret_" + "a" * 30)[0]
        assert APIKeyValidator.validate_format("notion", "ntn_" + "b" * 30)[0]

    def test_unknown_provider(self):
        assert APIKeyValidator.validate_format("openai", "sk-123") == (
            False,
            "Unknown provider: openai",
        )

    def test_sanitize_for_logging(self):
        assert APIKeyValidator.sanitize_for_logging(VALID_GEMINI_KEY) == "AIzaxx...xxx"
        assert APIKeyValidator.sanitize_for_logging("short") == "***"

    def test_mask_in_error_message(self):
        message = f"request with key={VALID_GEMINI_KEY} failed"

        masked = APIKeyValidator.mask_in_error_message(message, [VALID_GEMINI_KEY, None])

        assert VALID_GEMINI_KEY not in masked
        assert "AIzaxx...xxx" in masked


class TestErrors:
    """Test the exception hierarchy."""

    def test_api_errors_carry_status(self):
        error = RateLimitError("slow down", 429)

        assert isinstance(error, APIClientError)
        assert error.status_code == 429
        assert str(error) == "slow down"

    @pytest.mark.parametrize(
        "error,fatal",
        [
            (ConfigurationError("no key"), True),
            (AuthenticationError("bad key", 401), True),
            (RateLimitError("quota", 429), False),
            (ResponseFormatError("not json"), False),
            (StorageError("disk"), False),
        ],
    )
    def test_is_fatal_error(self, error, fatal):
        assert is_fatal_error(error) is fatal


class TestValidation:
    """Test command-line input validation."""

    def test_input_file(self, tmp_path):
        path = tmp_path / "urls.txt"
        path.write_text("https://example.com\n", encoding="utf-8")

        assert validate_input_file(path) == path.absolute()

    def test_input_file_missing(self, tmp_path):
        with pytest.raises(ValidationError, match="does not exist"):
            validate_input_file(tmp_path / "missing.txt")

    def test_input_path_is_directory(self, tmp_path):
        with pytest.raises(ValidationError, match="not a file"):
            validate_input_file(tmp_path)

    def test_output_path_creates_parent(self, tmp_path):
        target = tmp_path / "a" / "b" / "out.html"

        assert validate_output_path(target) == target.absolute()
        assert target.parent.is_dir()

    def test_output_directory_accepted(self, tmp_path):
        assert validate_output_path(tmp_path) == tmp_path.absolute()

    def test_config_file(self, tmp_path):
        assert validate_config_file(None) is None

        good = tmp_path / "config.toml"
        good.write_text("", encoding="utf-8")
        assert validate_config_file(good) == good.absolute()

        bad = tmp_path / "config.ini"
        bad.write_text("", encoding="utf-8")
        with pytest.raises(ValidationError, match=".toml or .json"):
            validate_config_file(bad)

    @pytest.mark.parametrize("size", [1, 5, 50])
    def test_batch_size_valid(self, size):
        assert validate_batch_size(size) == size

    @pytest.mark.parametrize("size", [0, -1, 51])
    def test_batch_size_invalid(self, size):
        with pytest.raises(ValidationError):
            validate_batch_size(size)
