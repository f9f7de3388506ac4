"""
Custom exception hierarchy for the snapshot lifecycle engine.

The hierarchy mirrors how each failure is recovered:
- SnapwardenError: Base exception for all snapwarden-specific errors
- ConfigurationError: Malformed entry (retention days, scope selector, type)
- ResolutionError: Target not found or no disks matching the requested scope
- ProviderCallError: A provider call failed (CreateError, DeleteError)
- ProviderEnvironmentError: Provider capability unreachable or unauthenticated

Only ProviderEnvironmentError aborts a run. Every other class is recovered at
the entry or disk boundary and reported as an event.

Each exception includes:
- error_code: Machine-readable error identifier
- context: Additional structured data for debugging
- is_retryable: Whether the operation can be retried
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Machine-readable error codes for categorization and monitoring."""

    # Configuration errors (1xxx)
    CONFIG_INVALID = "SNAPWARDEN_1001"
    CONFIG_MISSING = "SNAPWARDEN_1002"
    CONFIG_VALIDATION = "SNAPWARDEN_1003"
    CONFIG_RETENTION_INVALID = "SNAPWARDEN_1004"
    CONFIG_SCOPE_INVALID = "SNAPWARDEN_1005"
    CONFIG_ENTRY_INCOMPLETE = "SNAPWARDEN_1006"

    # Resolution errors (2xxx)
    RESOLVE_TARGET_NOT_FOUND = "SNAPWARDEN_2001"
    RESOLVE_ROOT_UNKNOWN = "SNAPWARDEN_2002"
    RESOLVE_NO_ELIGIBLE_DISKS = "SNAPWARDEN_2003"

    # Creation errors (3xxx)
    CREATE_FAILED = "SNAPWARDEN_3001"
    CREATE_INCREMENTAL_FAILED = "SNAPWARDEN_3002"

    # Deletion errors (4xxx)
    DELETE_FAILED = "SNAPWARDEN_4001"

    # Provider / environment errors (5xxx)
    PROVIDER_CALL_FAILED = "SNAPWARDEN_5001"
    ENV_SDK_MISSING = "SNAPWARDEN_5002"
    ENV_AUTH_FAILED = "SNAPWARDEN_5003"
    ENV_UNSUPPORTED_PROVIDER = "SNAPWARDEN_5004"

    # General errors (9xxx)
    UNKNOWN = "SNAPWARDEN_9999"


@dataclass
class SnapwardenError(Exception):
    """
    Base exception for all snapwarden errors.

    Provides structured error information for logging and monitoring.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable error identifier
        context: Additional structured data for debugging
        is_retryable: Whether the operation can be safely retried
        cause: Original exception that caused this error
    """

    message: str
    error_code: ErrorCode = ErrorCode.UNKNOWN
    context: dict[str, Any] = field(default_factory=dict)
    is_retryable: bool = False
    cause: Exception | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [f"[{self.error_code.value}] {self.message}"]
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f" ({context_str})")
        return "".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"context={self.context!r}, "
            f"is_retryable={self.is_retryable})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value,
            "message": self.message,
            "context": self.context,
            "is_retryable": self.is_retryable,
            "cause": str(self.cause) if self.cause else None,
        }


@dataclass
class ConfigurationError(SnapwardenError):
    """Raised when configuration or a server-list entry is invalid."""

    error_code: ErrorCode = ErrorCode.CONFIG_INVALID

    @classmethod
    def missing_file(cls, path: str) -> ConfigurationError:
        """Create error for missing configuration file."""
        return cls(
            message=f"Configuration file not found: {path}",
            error_code=ErrorCode.CONFIG_MISSING,
            context={"path": path},
        )

    @classmethod
    def validation_failed(cls, field: str, value: Any, reason: str) -> ConfigurationError:
        """Create error for validation failure."""
        return cls(
            message=f"Configuration validation failed for '{field}': {reason}",
            error_code=ErrorCode.CONFIG_VALIDATION,
            context={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def invalid_retention_days(cls, value: Any, target: str = "") -> ConfigurationError:
        """Create error for a retention value that is not a non-negative integer."""
        return cls(
            message=f"Invalid RetentionDays '{value}'",
            error_code=ErrorCode.CONFIG_RETENTION_INVALID,
            context={"value": str(value), "target": target},
        )

    @classmethod
    def invalid_scope(cls, value: Any, target: str = "") -> ConfigurationError:
        """Create error for an unknown scope selector."""
        return cls(
            message=f"Invalid snapshot scope '{value}', expected OS|Data|Both",
            error_code=ErrorCode.CONFIG_SCOPE_INVALID,
            context={"value": str(value), "target": target},
        )

    @classmethod
    def incomplete_entry(cls, line: str, line_number: int) -> ConfigurationError:
        """Create error for a server-list line with missing required fields."""
        truncated = line[:200] + "..." if len(line) > 200 else line
        return cls(
            message=f"Missing required fields on line {line_number}",
            error_code=ErrorCode.CONFIG_ENTRY_INCOMPLETE,
            context={"line": truncated, "line_number": line_number},
        )


@dataclass
class ResolutionError(SnapwardenError):
    """Raised when a target cannot be turned into a set of disks."""

    error_code: ErrorCode = ErrorCode.RESOLVE_TARGET_NOT_FOUND

    @classmethod
    def target_not_found(cls, identifier: str, scope: str) -> ResolutionError:
        """Create error for a target that is neither an instance nor a volume."""
        return cls(
            message=f"Target '{identifier}' not found as instance or volume in {scope}",
            error_code=ErrorCode.RESOLVE_TARGET_NOT_FOUND,
            context={"target": identifier, "scope": scope},
        )

    @classmethod
    def root_volume_unknown(cls, identifier: str, scope: str) -> ResolutionError:
        """Create error for an instance whose root volume cannot be determined."""
        return cls(
            message=f"Could not determine root volume for instance '{identifier}'",
            error_code=ErrorCode.RESOLVE_ROOT_UNKNOWN,
            context={"target": identifier, "scope": scope},
        )

    @classmethod
    def no_eligible_disks(cls, identifier: str, selector: str) -> ResolutionError:
        """Create error for a scope selection that matched no disks."""
        return cls(
            message=f"No volumes selected for '{identifier}' with scope={selector}",
            error_code=ErrorCode.RESOLVE_NO_ELIGIBLE_DISKS,
            context={"target": identifier, "selector": selector},
        )


@dataclass
class ProviderCallError(SnapwardenError):
    """Raised when a single provider call fails."""

    error_code: ErrorCode = ErrorCode.PROVIDER_CALL_FAILED
    is_retryable: bool = True

    @classmethod
    def call_failed(cls, provider: str, operation: str, reason: str) -> ProviderCallError:
        """Create error for a generic provider call failure."""
        return cls(
            message=f"Provider '{provider}' call '{operation}' failed: {reason}",
            error_code=ErrorCode.PROVIDER_CALL_FAILED,
            context={"provider": provider, "operation": operation, "reason": reason},
        )


@dataclass
class CreateError(ProviderCallError):
    """Raised when a snapshot create call fails."""

    error_code: ErrorCode = ErrorCode.CREATE_FAILED

    @classmethod
    def create_failed(
        cls,
        volume_id: str,
        name: str,
        incremental: bool,
        reason: str,
        cause: Exception | None = None,
    ) -> CreateError:
        """Create error for a failed create call."""
        return cls(
            message=f"Snapshot create failed for '{name}': {reason}",
            error_code=(
                ErrorCode.CREATE_INCREMENTAL_FAILED if incremental else ErrorCode.CREATE_FAILED
            ),
            context={"volume_id": volume_id, "name": name, "incremental": incremental},
            cause=cause,
        )


@dataclass
class DeleteError(ProviderCallError):
    """Raised when a snapshot delete call fails."""

    error_code: ErrorCode = ErrorCode.DELETE_FAILED

    @classmethod
    def delete_failed(
        cls, snapshot_id: str, reason: str, cause: Exception | None = None
    ) -> DeleteError:
        """Create error for a failed delete call."""
        return cls(
            message=f"Snapshot delete failed for '{snapshot_id}': {reason}",
            error_code=ErrorCode.DELETE_FAILED,
            context={"snapshot_id": snapshot_id},
            cause=cause,
        )


@dataclass
class ProviderEnvironmentError(SnapwardenError):
    """Raised when the provider capability itself is unusable. Always fatal."""

    error_code: ErrorCode = ErrorCode.ENV_AUTH_FAILED
    is_retryable: bool = False

    @classmethod
    def sdk_missing(cls, provider: str, package: str) -> ProviderEnvironmentError:
        """Create error for a provider SDK that is not installed."""
        return cls(
            message=f"{package} not installed. Run: pip install {package}",
            error_code=ErrorCode.ENV_SDK_MISSING,
            context={"provider": provider, "package": package},
        )

    @classmethod
    def credentials_missing(
        cls, provider: str, reason: str, cause: Exception | None = None
    ) -> ProviderEnvironmentError:
        """Create error for missing or rejected credentials."""
        return cls(
            message=f"Provider '{provider}' credentials unavailable: {reason}",
            error_code=ErrorCode.ENV_AUTH_FAILED,
            context={"provider": provider, "reason": reason},
            cause=cause,
        )

    @classmethod
    def unsupported_provider(cls, provider: str) -> ProviderEnvironmentError:
        """Create error for an unknown provider name."""
        return cls(
            message=f"Unsupported provider '{provider}'",
            error_code=ErrorCode.ENV_UNSUPPORTED_PROVIDER,
            context={"provider": provider},
        )
