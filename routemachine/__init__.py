"""
A pattern based HTTP router with nested route groups, named middlewares,
CSRF protection and status-coded error handlers.

Requests flow through a webmachine-style dispatch state machine: match the
route, check the method, run the middlewares, validate the CSRF token, call
the handler, and hand failing status codes to the error handlers.
"""

from .config import RouterOptions
from .csrf import CsrfCheck, CsrfState, CsrfValidator, csrf_field
from .drivers import Driver, WsgiDriver
from .errors import RECOGNIZED_STATUS_CODES, ErrorDispatcher
from .exceptions import (
    DependencyResolutionError,
    HandlerNotFoundError,
    InvalidErrorHandlerError,
    InvalidHandlerTypeError,
    InvalidMethodError,
    InvalidPatternError,
    InvalidStatusCodeError,
    RouterConfigurationError,
    RouterError,
    RouterFrozenError,
)
from .handlers import ControllerRegistry, HandlerType
from .models import Cookie, HTTPMethod, MatchResult, Request, Response, Route
from .patterns import RoutePattern
from .router import Router

__version__ = "0.1.0"
__author__ = "Routemachine Contributors"
__license__ = "MIT"

__all__ = [
    "Router",
    "RouterOptions",
    "Request",
    "Response",
    "Cookie",
    "HTTPMethod",
    "Route",
    "RoutePattern",
    "MatchResult",
    "HandlerType",
    "ControllerRegistry",
    "ErrorDispatcher",
    "RECOGNIZED_STATUS_CODES",
    "CsrfValidator",
    "CsrfCheck",
    "CsrfState",
    "csrf_field",
    "Driver",
    "WsgiDriver",
    "RouterError",
    "RouterConfigurationError",
    "InvalidHandlerTypeError",
    "HandlerNotFoundError",
    "InvalidPatternError",
    "InvalidMethodError",
    "InvalidStatusCodeError",
    "InvalidErrorHandlerError",
    "RouterFrozenError",
    "DependencyResolutionError",
]
