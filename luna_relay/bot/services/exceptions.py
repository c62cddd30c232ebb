"""Service-specific exceptions for the relay bot.

Errors fall into two groups: failures while talking to Discord (recovered
locally by the caller) and failures while talking to the LUNA API (propagated
to the message dispatcher). ``LoginError`` is the only fatal error.
"""

from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    """Base exception for all service layer errors.

    Carries an error code and context data for debugging.
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        context: dict[str, Any] | None = None
    ):
        """Initialize service error.

        Args:
            message: Technical error message for logging
            error_code: Unique error code for categorization
            context: Additional context data for debugging
        """
        super().__init__(message)
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}


class APIError(ServiceError):
    """Exception for LUNA API communication errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
        **kwargs
    ):
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response_body: Response body content
            **kwargs: Additional arguments passed to parent
        """
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.response_body = response_body


class NetworkError(APIError):
    """Raised on timeouts, connection failures and other transport problems."""


class WorkflowAPIError(APIError):
    """Base exception for failed workflow session operations."""

    operation = "workflow request"

    @classmethod
    def from_error(cls, error: APIError, **kwargs) -> WorkflowAPIError:
        """Wrap a lower-level API error, keeping its status and body."""
        return cls(
            f"Failed to {cls.operation}: {error}",
            status_code=error.status_code,
            response_body=error.response_body,
            **kwargs
        )


class SessionCreationError(WorkflowAPIError):
    """Raised when the LUNA API does not create a session."""

    operation = "create session"


class MessageSendError(WorkflowAPIError):
    """Raised when a message cannot be posted to a session."""

    operation = "send message"


class SessionStateError(WorkflowAPIError):
    """Raised when the state of a session cannot be read."""

    operation = "get session state"


class NoActiveSessionError(ServiceError):
    """Raised when no session is cached for a channel."""

    def __init__(self, channel_id: str, **kwargs):
        super().__init__(
            "No active session for this channel",
            error_code="NO_ACTIVE_SESSION",
            context={"channel_id": channel_id},
            **kwargs
        )
        self.channel_id = channel_id


class ValidationError(ServiceError):
    """Exception for data validation errors."""

    def __init__(self, field: str, message: str, **kwargs):
        """Initialize validation error.

        Args:
            field: Field name that failed validation
            message: Validation error message
            **kwargs: Additional arguments passed to parent
        """
        super().__init__(
            f"Validation failed for {field}: {message}",
            error_code="VALIDATION_FAILED",
            context={"field": field},
            **kwargs
        )
        self.field = field


class FetchError(ServiceError):
    """Exception for Discord fetch failures.

    Raised when a referenced or recent message cannot be fetched
    (deleted, missing permissions, network failure or timeout).
    """

    def __init__(self, channel_id: str, message_id: str | None = None, **kwargs):
        """Initialize fetch error.

        Args:
            channel_id: Channel the fetch targeted
            message_id: Message that was requested, if any
            **kwargs: Additional arguments passed to parent
        """
        target = f"message {message_id}" if message_id else "recent messages"
        super().__init__(
            f"Failed to fetch {target} in channel {channel_id}",
            error_code="FETCH_FAILED",
            context={"channel_id": channel_id, "message_id": message_id},
            **kwargs
        )
        self.channel_id = channel_id
        self.message_id = message_id


class LoginError(ServiceError):
    """Raised when the bot cannot log in to Discord."""

    def __init__(self, message: str = "Failed to log in to Discord", **kwargs):
        super().__init__(message, error_code="LOGIN_FAILED", **kwargs)


class ConfigurationError(ServiceError):
    """Exception for configuration-related errors."""

    def __init__(self, setting: str, message: str | None = None, **kwargs):
        """Initialize configuration error.

        Args:
            setting: Configuration setting that caused the error
            message: Optional detail about the problem
            **kwargs: Additional arguments passed to parent
        """
        detail = f"Configuration error: {setting}"
        if message:
            detail = f"{detail} ({message})"
        super().__init__(
            detail,
            error_code="CONFIG_ERROR",
            **kwargs
        )
        self.setting = setting
