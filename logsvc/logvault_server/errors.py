"""
Error types for LogVault.

- LogVaultError: Base exception
- ValidationError: Malformed or missing input (caller's fault)
- NotFoundError: No record matches the lookup
- ForbiddenError: Deletion denied by the severity policy
- StorageError: Backend failure
- RequestTimeoutError: Storage call exceeded the request deadline
- SchemaProvisioningError: A provisioning step failed

Invariants:
    - All errors inherit from LogVaultError
    - ValidationError is always raised before any storage call
    - ForbiddenError and NotFoundError are distinct kinds
"""

from __future__ import annotations

from typing import Any


class LogVaultError(Exception):
    """Base exception for all LogVault errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "LOGVAULT_ERROR"
        self.details = details or {}


class ValidationError(LogVaultError):
    """Request input failed validation.

    Raised when:
    - Message is empty
    - Flag is not one of the canonical severities
    - Identifier or timestamp cannot be parsed
    """

    def __init__(self, message: str, field_name: str | None = None) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name},
        )
        self.field_name = field_name


class NotFoundError(LogVaultError):
    """No log record matches the lookup."""

    def __init__(self, message: str, lookup: str | None = None) -> None:
        super().__init__(message, code="NOT_FOUND", details={"lookup": lookup})
        self.lookup = lookup


class ForbiddenError(LogVaultError):
    """Deletion denied because the record's flag is protected."""

    def __init__(self, record_id: str, flag: str) -> None:
        super().__init__(
            f"Log {record_id} has flag '{flag}' and cannot be deleted",
            code="FORBIDDEN",
            details={"record_id": record_id, "flag": flag},
        )
        self.record_id = record_id
        self.flag = flag


class StorageError(LogVaultError):
    """The storage backend failed. Not retried."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code=code or "STORAGE_ERROR", details=details)


class RequestTimeoutError(StorageError):
    """A storage call did not finish within the request deadline."""

    def __init__(self, operation: str, timeout: float) -> None:
        super().__init__(
            f"{operation} timed out after {timeout:g}s",
            code="TIMEOUT",
            details={"operation": operation, "timeout": timeout},
        )
        self.operation = operation
        self.timeout = timeout


class SchemaProvisioningError(StorageError):
    """A schema provisioning step failed."""

    def __init__(self, message: str, step: str) -> None:
        super().__init__(message, code="PROVISIONING_ERROR", details={"step": step})
        self.step = step
