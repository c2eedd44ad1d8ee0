"""Base exception classes for domain-level errors."""

from __future__ import annotations

from enum import Enum


class DomainError(Exception):
    """Base exception for all domain-level errors."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__


class InvalidOperationError(DomainError):
    """Raised when an operation is invalid in the current state."""

    def __init__(self, operation: str, current_state: str, message: str | None = None) -> None:
        msg = message or f"Cannot perform '{operation}' in state '{current_state}'"
        super().__init__(msg, code="INVALID_OPERATION")
        self.operation = operation
        self.current_state = current_state


class ResolutionFailure(Enum):
    """Why a query or stream could not be resolved."""

    NO_RESULTS = "no_results"
    PROVIDER_FAILURE = "provider_failure"


class ResolutionError(DomainError):
    """Raised when a resolver cannot turn a query or track into playable media.

    ``NO_RESULTS`` is a graceful, user-facing outcome; ``PROVIDER_FAILURE`` is
    retryable and reported.
    """

    def __init__(self, reason: ResolutionFailure, message: str) -> None:
        super().__init__(message, code=f"RESOLUTION_{reason.name}")
        self.reason = reason

    @property
    def is_retryable(self) -> bool:
        return self.reason == ResolutionFailure.PROVIDER_FAILURE

    @classmethod
    def no_results(cls, query: str) -> ResolutionError:
        return cls(ResolutionFailure.NO_RESULTS, f"No results found for '{query}'")

    @classmethod
    def provider_failure(cls, provider: str, detail: object) -> ResolutionError:
        return cls(ResolutionFailure.PROVIDER_FAILURE, f"{provider} failed: {detail}")


class PersistenceError(DomainError):
    """Raised when a session snapshot cannot be written or removed."""

    def __init__(self, tenant_id: int, message: str | None = None) -> None:
        msg = message or f"Failed to persist session for tenant {tenant_id}"
        super().__init__(msg, code="PERSISTENCE_ERROR")
        self.tenant_id = tenant_id


class RestoreError(DomainError):
    """Raised when a persisted session cannot be restored for one tenant."""

    def __init__(self, tenant_id: int, message: str) -> None:
        super().__init__(message, code="RESTORE_ERROR")
        self.tenant_id = tenant_id


class ConnectionSeverity(Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class VoiceConnectionError(DomainError):
    """Raised by the voice transport when joining or moving fails.

    Transient failures are worth another attempt on the next membership event;
    permanent ones (missing channel, missing permissions) are not.
    """

    def __init__(
        self,
        channel_id: int,
        severity: ConnectionSeverity,
        message: str | None = None,
    ) -> None:
        msg = message or f"Voice connection to channel {channel_id} failed ({severity.value})"
        super().__init__(msg, code=f"VOICE_{severity.name}")
        self.channel_id = channel_id
        self.severity = severity

    @property
    def is_permanent(self) -> bool:
        return self.severity == ConnectionSeverity.PERMANENT

    @classmethod
    def transient(cls, channel_id: int, message: str | None = None) -> VoiceConnectionError:
        return cls(channel_id, ConnectionSeverity.TRANSIENT, message)

    @classmethod
    def permanent(cls, channel_id: int, message: str | None = None) -> VoiceConnectionError:
        return cls(channel_id, ConnectionSeverity.PERMANENT, message)
