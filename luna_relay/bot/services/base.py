"""Base service classes and interfaces for the relay bot services.

Concrete services inherit from BaseService for consistent lifecycle
handling and logging, and depend on APIClientProtocol rather than the
concrete httpx client so they can be tested with mocks.
"""

from __future__ import annotations

import logging
from abc import ABC
from typing import Any, Dict, Optional, Protocol

from luna_relay.bot.services.exceptions import ConfigurationError
from luna_relay.bot.services.exceptions import ServiceError

logger = logging.getLogger(__name__)


class APIClientProtocol(Protocol):
    """Protocol defining the interface for API clients."""

    async def get(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None
    ) -> Any:
        """Execute GET request.

        Returns:
            Response object with status_code and json() method

        Raises:
            APIError: On API communication failures
        """
        ...

    async def post(
        self,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None
    ) -> Any:
        """Execute POST request.

        Returns:
            Response object with status_code and json() method

        Raises:
            APIError: On API communication failures
        """
        ...

    async def close(self) -> None:
        """Close the API client and cleanup resources."""
        ...


class BaseService(ABC):
    """Abstract base class for bot services.

    Provides dependency injection for the API client, lifecycle
    management and structured logging helpers.
    """

    def __init__(
        self,
        api_client: APIClientProtocol,
        service_name: Optional[str] = None
    ):
        """Initialize base service.

        Args:
            api_client: API client implementation
            service_name: Name of the service for logging
        """
        self._api_client = api_client
        self._service_name = service_name or self.__class__.__name__
        self._logger = logging.getLogger(f"{__name__}.{self._service_name}")
        self._is_initialized = False

    @property
    def service_name(self) -> str:
        """Get the service name."""
        return self._service_name

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    async def initialize(self) -> None:
        """Initialize the service.

        Raises:
            ServiceError: If initialization fails
        """
        try:
            await self._validate_configuration()
            self._is_initialized = True
            self._logger.info(f"Service {self._service_name} initialized successfully")
        except Exception as e:
            self._logger.error(f"Failed to initialize service {self._service_name}: {e}")
            raise ServiceError(
                f"Service initialization failed: {e}",
                error_code="INIT_FAILED"
            ) from e

    async def cleanup(self) -> None:
        """Close the API client and mark the service as uninitialized."""
        try:
            if self._api_client:
                await self._api_client.close()
            self._logger.info(f"Service {self._service_name} cleaned up successfully")
        except Exception as e:
            self._logger.error(f"Error during service cleanup: {e}")
        finally:
            self._is_initialized = False

    async def _validate_configuration(self) -> None:
        """Validate service configuration.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not self._api_client:
            raise ConfigurationError("api_client", "API client is required")

    def _log_operation(
        self,
        operation: str,
        **context: Any
    ) -> None:
        """Log a service operation with context."""
        self._logger.info(
            f"Service operation: {operation}",
            extra={
                "service": self._service_name,
                "operation": operation,
                **context
            }
        )

    def _log_error(
        self,
        operation: str,
        error: Exception,
        **context: Any
    ) -> None:
        """Log a service error with context."""
        self._logger.error(
            f"Service operation failed: {operation} - {error}",
            extra={
                "service": self._service_name,
                "operation": operation,
                "error_type": type(error).__name__,
                "error_message": str(error),
                **context
            }
        )
