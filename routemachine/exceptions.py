"""
Custom exceptions for the router.

Everything here is a setup error: raised while routes, middlewares and
error handlers are being registered, and never retried. Dispatch outcomes
(404, 405, CSRF failures, 500) are status codes, not exceptions.
"""
from typing import Any, Dict, List


class RouterError(Exception):
    """Base exception for router setup errors."""

    pass


class RouterConfigurationError(RouterError):
    """Raised when router options are unknown or have the wrong type."""

    def __init__(self, message="Invalid router options", errors=None):
        self.message = message
        self.validation_errors: List[Dict[str, Any]] = list(errors or [])
        super().__init__(self.message)

    def errors(self) -> List[Dict[str, Any]]:
        """Return the underlying validation errors in pydantic format."""
        return self.validation_errors


class InvalidHandlerTypeError(RouterError):
    """Raised when a route is registered with an unknown handler type."""

    pass


class HandlerNotFoundError(RouterError):
    """Raised when a handler file, controller or method cannot be resolved."""

    pass


class InvalidPatternError(RouterError):
    """Raised when a route pattern cannot be compiled."""

    pass


class InvalidMethodError(RouterError):
    """Raised when a route is registered for an unknown HTTP method."""

    pass


class InvalidStatusCodeError(RouterError):
    """Raised when an error handler is registered for an unsupported status code."""

    pass


class InvalidErrorHandlerError(RouterError):
    """Raised when an error handler is neither a callable nor a file path."""

    pass


class RouterFrozenError(RouterError):
    """Raised when registering on a router that already serves requests."""

    pass


class DependencyResolutionError(RouterError):
    """Raised when a handler parameter cannot be supplied."""

    pass
