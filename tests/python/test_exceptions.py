"""
Tests for the snapwarden exception hierarchy.

Verifies:
- Error code assignment and ranges
- Message formatting with context
- Factory method behavior
- Serialization to dict for logging
"""

import pytest

from snapwarden.exceptions import (
    ConfigurationError,
    CreateError,
    DeleteError,
    ErrorCode,
    ProviderCallError,
    ProviderEnvironmentError,
    ResolutionError,
    SnapwardenError,
)


class TestErrorCode:
    """Tests for ErrorCode enum."""

    def test_error_codes_are_strings(self) -> None:
        """Error codes should be string values."""
        assert isinstance(ErrorCode.CONFIG_INVALID.value, str)
        assert ErrorCode.CONFIG_INVALID.value == "SNAPWARDEN_1001"

    def test_error_code_ranges(self) -> None:
        """Error codes should follow the defined ranges."""
        assert ErrorCode.CONFIG_RETENTION_INVALID.value.startswith("SNAPWARDEN_1")
        assert ErrorCode.RESOLVE_TARGET_NOT_FOUND.value.startswith("SNAPWARDEN_2")
        assert ErrorCode.CREATE_INCREMENTAL_FAILED.value.startswith("SNAPWARDEN_3")
        assert ErrorCode.DELETE_FAILED.value.startswith("SNAPWARDEN_4")
        assert ErrorCode.ENV_SDK_MISSING.value.startswith("SNAPWARDEN_5")
        assert ErrorCode.UNKNOWN.value == "SNAPWARDEN_9999"


class TestSnapwardenError:
    """Tests for the base exception."""

    def test_str_includes_code_and_context(self) -> None:
        """String form carries the code, message and context."""
        error = SnapwardenError(message="boom", context={"target": "vm-1"})

        assert str(error) == "[SNAPWARDEN_9999] boom (target=vm-1)"

    def test_str_without_context(self) -> None:
        error = SnapwardenError(message="boom")
        assert str(error) == "[SNAPWARDEN_9999] boom"

    def test_is_an_exception(self) -> None:
        with pytest.raises(SnapwardenError, match="boom"):
            raise SnapwardenError(message="boom")

    def test_to_dict(self) -> None:
        """to_dict produces a logging-friendly mapping."""
        cause = RuntimeError("root cause")
        error = SnapwardenError(message="boom", cause=cause)

        data = error.to_dict()

        assert data["error_type"] == "SnapwardenError"
        assert data["error_code"] == "SNAPWARDEN_9999"
        assert data["message"] == "boom"
        assert data["cause"] == "root cause"
        assert data["is_retryable"] is False

    def test_repr(self) -> None:
        error = ConfigurationError(message="bad")
        assert repr(error).startswith("ConfigurationError(message='bad'")


class TestConfigurationError:
    """Tests for configuration and entry validation errors."""

    def test_invalid_retention_days(self) -> None:
        error = ConfigurationError.invalid_retention_days("abc", "vm-1")

        assert error.error_code == ErrorCode.CONFIG_RETENTION_INVALID
        assert error.context == {"value": "abc", "target": "vm-1"}
        assert "abc" in error.message

    def test_invalid_scope(self) -> None:
        error = ConfigurationError.invalid_scope("Everything", "vm-1")

        assert error.error_code == ErrorCode.CONFIG_SCOPE_INVALID
        assert "OS|Data|Both" in error.message

    def test_incomplete_entry_truncates_long_lines(self) -> None:
        error = ConfigurationError.incomplete_entry("x" * 500, 7)

        assert error.error_code == ErrorCode.CONFIG_ENTRY_INCOMPLETE
        assert error.context["line_number"] == 7
        assert len(error.context["line"]) == 203

    def test_missing_file(self) -> None:
        error = ConfigurationError.missing_file("/nope.txt")
        assert error.error_code == ErrorCode.CONFIG_MISSING
        assert error.context["path"] == "/nope.txt"

    def test_not_retryable(self) -> None:
        assert ConfigurationError(message="x").is_retryable is False


class TestResolutionError:
    """Tests for resolution errors."""

    def test_target_not_found(self) -> None:
        error = ResolutionError.target_not_found("vm-x", "rg-prod")

        assert error.error_code == ErrorCode.RESOLVE_TARGET_NOT_FOUND
        assert error.context == {"target": "vm-x", "scope": "rg-prod"}

    def test_root_volume_unknown(self) -> None:
        error = ResolutionError.root_volume_unknown("vm-x", "rg-prod")
        assert error.error_code == ErrorCode.RESOLVE_ROOT_UNKNOWN

    def test_no_eligible_disks(self) -> None:
        error = ResolutionError.no_eligible_disks("vm-x", "data")

        assert error.error_code == ErrorCode.RESOLVE_NO_ELIGIBLE_DISKS
        assert error.context["selector"] == "data"


class TestProviderCallErrors:
    """Tests for create / delete / generic provider call errors."""

    def test_call_errors_are_retryable(self) -> None:
        assert ProviderCallError.call_failed("aws", "describe", "throttled").is_retryable is True
        assert DeleteError.delete_failed("snap-1", "nope").is_retryable is True

    def test_create_failed_code_depends_on_strategy(self) -> None:
        """An incremental create failure has its own code."""
        incremental = CreateError.create_failed("disk-1", "n", True, "sku mismatch")
        full = CreateError.create_failed("disk-1", "n", False, "quota")

        assert incremental.error_code == ErrorCode.CREATE_INCREMENTAL_FAILED
        assert full.error_code == ErrorCode.CREATE_FAILED
        assert isinstance(incremental, ProviderCallError)

    def test_create_failed_keeps_cause(self) -> None:
        cause = ValueError("sdk")
        error = CreateError.create_failed("disk-1", "n", False, "sdk", cause=cause)
        assert error.cause is cause

    def test_delete_failed(self) -> None:
        error = DeleteError.delete_failed("snap-1", "locked")

        assert error.error_code == ErrorCode.DELETE_FAILED
        assert error.context == {"snapshot_id": "snap-1"}


class TestProviderEnvironmentError:
    """Tests for fatal environment errors."""

    def test_sdk_missing(self) -> None:
        error = ProviderEnvironmentError.sdk_missing("aws", "boto3")

        assert error.error_code == ErrorCode.ENV_SDK_MISSING
        assert "pip install boto3" in error.message
        assert error.is_retryable is False

    def test_credentials_missing(self) -> None:
        error = ProviderEnvironmentError.credentials_missing("azure", "expired token")

        assert error.error_code == ErrorCode.ENV_AUTH_FAILED
        assert error.context["reason"] == "expired token"

    def test_unsupported_provider(self) -> None:
        error = ProviderEnvironmentError.unsupported_provider("gcp")
        assert error.error_code == ErrorCode.ENV_UNSUPPORTED_PROVIDER

    def test_not_a_provider_call_error(self) -> None:
        """Environment errors must not be caught as per-call failures."""
        assert not isinstance(ProviderEnvironmentError(message="x"), ProviderCallError)
