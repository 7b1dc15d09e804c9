"""
Throttling Exceptions

Domain-specific exceptions for throttle configuration and store access.
Follows project standards for error handling without fallbacks.
"""

from typing import Optional, Any, Dict


class ThrottleException(Exception):
    """Base exception for throttling errors.

    A throttled request is a result, never an exception. Everything that
    derives from this class means a decision could not be made.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(ThrottleException):
    """Raised when a rule or counter is built with invalid parameters."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key
        if config_value is not None:
            details["config_value"] = str(config_value)

        super().__init__(
            message=message,
            error_code="THROTTLE_CONFIGURATION_ERROR",
            details=details,
        )


class StoreUnavailable(ThrottleException):
    """Raised when the shared store cannot complete an atomic unit."""

    def __init__(
        self,
        message: str = "Throttle store unavailable",
        key: Optional[str] = None,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if key:
            details["key"] = key
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(
            message=message, error_code="THROTTLE_STORE_UNAVAILABLE", details=details
        )
        # Preserve exception context for debugging (exception chaining)
        if original_error:
            self.__cause__ = original_error
