"""
Status-coded error handlers.

Every dispatch outcome that is not a success ends here: no matching route
(404), wrong method (405), a CSRF rejection (434-437), an application level
denial returned by a handler or middleware (401, 403) and unexpected
exceptions (500).
"""

import logging
import os
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Union

from .dependencies import call_with_injection
from .exceptions import HandlerNotFoundError, InvalidErrorHandlerError, InvalidStatusCodeError
from .handlers import file_response, to_response
from .models import Request, Response, reason_phrase

logger = logging.getLogger(__name__)

RECOGNIZED_STATUS_CODES = frozenset({401, 403, 404, 405, 434, 435, 436, 437, 500})

ErrorHandler = Union[Callable[..., Any], Path]


def default_error_response(status_code: int) -> Response:
    """Built-in plain text response for a status code.

    Codes outside of RECOGNIZED_STATUS_CODES are answered as 500.
    """
    if status_code not in RECOGNIZED_STATUS_CODES:
        status_code = 500
    reason = reason_phrase(status_code)
    return Response(status_code, f"{status_code} {reason}", content_type="text/plain", reason=reason)


class ErrorDispatcher:
    """Maps failing status codes to registered or built-in handlers."""

    def __init__(self):
        self._handlers: Dict[int, ErrorHandler] = {}

    @property
    def handlers(self) -> Mapping[int, ErrorHandler]:
        return MappingProxyType(self._handlers)

    def add_error_handler(self, status_code: int, handler: Union[Callable[..., Any], str, os.PathLike]) -> None:
        """Register a handler for one status code.

        Args:
            status_code: One of RECOGNIZED_STATUS_CODES
            handler: A callable (called with injected ``request``, ``status_code``,
                ``allowed_methods`` and ``params``) or the path of a file to serve

        Raises:
            InvalidStatusCodeError: If the status code is not supported
            HandlerNotFoundError: If a file handler does not exist
            InvalidErrorHandlerError: If the handler is neither callable nor a path
        """
        if isinstance(status_code, bool) or status_code not in RECOGNIZED_STATUS_CODES:
            raise InvalidStatusCodeError(
                f"Cannot register an error handler for status {status_code!r}; "
                f"supported codes are {sorted(RECOGNIZED_STATUS_CODES)}"
            )

        if callable(handler):
            self._handlers[status_code] = handler
        elif isinstance(handler, (str, os.PathLike)):
            path = Path(handler)
            if not path.is_file():
                raise HandlerNotFoundError(f"Error handler file '{path}' not found")
            self._handlers[status_code] = path
        else:
            raise InvalidErrorHandlerError(
                f"Error handler for {status_code} must be a callable or a file path, "
                f"got {type(handler).__name__}"
            )
        logger.debug(f"Registered error handler for {status_code}")

    def handle(
        self,
        status_code: int,
        request: Optional[Request],
        params: Optional[Mapping[str, str]] = None,
        **extra: Any,
    ) -> Response:
        """Produce the response for a failing status code.

        A custom handler that returns None, or raises, yields the built-in
        response instead.
        """
        handler = self._handlers.get(status_code)
        if handler is None:
            return default_error_response(status_code)

        extra.setdefault("allowed_methods", ())
        try:
            if isinstance(handler, Path):
                return file_response(handler, status_code, reason=reason_phrase(status_code) or None)
            result = call_with_injection(handler, request, params, status_code=status_code, **extra)
            if result is None:
                return default_error_response(status_code)
            return to_response(result, status_code)
        except Exception as e:
            # If custom handler fails, log and fall back to default
            logger.error(f"Error in custom error handler for {status_code}: {e}", exc_info=True)
            return default_error_response(status_code)
