"""
Driver interface for serving a Router from different front ends.
"""

import logging
from abc import ABC, abstractmethod
from http.cookies import CookieError, SimpleCookie
from typing import Any, Callable, Dict, Iterable, List, MutableMapping, Optional, Tuple
from urllib.parse import parse_qsl

from .models import HTTPMethod, Request, Response

logger = logging.getLogger(__name__)

DEFAULT_SESSION_KEY = "routemachine.session"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

_KNOWN_METHODS = frozenset(method.value for method in HTTPMethod)


class Driver(ABC):
    """Abstract base class for drivers that convert external events to router requests."""

    def __init__(self, router):
        """
        Initialize the driver with a Router instance.

        Args:
            router: The Router to dispatch requests to
        """
        self.router = router

    @abstractmethod
    def handle_event(self, event: Any, context: Optional[Any] = None) -> Any:
        """
        Handle an external event and return the appropriate response format.

        Args:
            event: The external event (e.g., a WSGI environ)
            context: Optional context (e.g., the WSGI start_response callable)

        Returns:
            Response in the format expected by the external system
        """
        pass

    @abstractmethod
    def convert_to_request(self, event: Any, context: Optional[Any] = None) -> Request:
        """
        Convert an external event to a Request object.

        Args:
            event: The external event
            context: Optional context

        Returns:
            Request object that can be dispatched by the router
        """
        pass

    @abstractmethod
    def convert_from_response(self, response: Response, event: Any, context: Optional[Any] = None) -> Any:
        """
        Convert a Response object to the format expected by the external system.

        Args:
            response: Response from the router
            event: Original external event
            context: Optional context

        Returns:
            Response in the format expected by the external system
        """
        pass


def parse_cookie_header(header: Optional[str]) -> Dict[str, str]:
    """Parse a ``Cookie`` request header into a name to value mapping."""
    if not header:
        return {}
    jar: SimpleCookie = SimpleCookie()
    try:
        jar.load(header)
    except CookieError as e:
        logger.warning(f"Ignoring malformed Cookie header: {e}")
        return {}
    return {name: morsel.value for name, morsel in jar.items()}


def _wsgi_str(value: str) -> str:
    # WSGI hands over native strings decoded as latin-1
    return value.encode("latin-1").decode("utf-8", "replace")


class WsgiDriver(Driver):
    """WSGI application serving a Router.

    The session is taken from ``environ[session_key]``; a session middleware
    placed in front of this application is expected to put a mutable mapping
    there. Without one, a fresh dict is stored in the environ for the duration
    of the request.
    """

    def __init__(self, router, session_key: str = DEFAULT_SESSION_KEY):
        super().__init__(router)
        self.session_key = session_key

    def __call__(self, environ: Dict[str, Any], start_response: Callable) -> Iterable[bytes]:
        return self.handle_event(environ, start_response)

    def handle_event(self, event: Dict[str, Any], context: Optional[Callable] = None) -> List[bytes]:
        """
        Handle a WSGI request.

        Args:
            event: WSGI environ dictionary
            context: WSGI start_response callable

        Returns:
            The response body as a list of byte strings
        """
        method = event.get("REQUEST_METHOD", "GET").upper()
        if method not in _KNOWN_METHODS:
            logger.debug(f"Unsupported request method {method}")
            response = Response(501, "501 Not Implemented", content_type="text/plain")
        else:
            request = self.convert_to_request(event, context)
            response = self.router.dispatch(request)

        status, headers, body = self.convert_from_response(response, event, context)
        if context is not None:
            context(status, headers)
        return body

    def convert_to_request(self, event: Dict[str, Any], context: Optional[Any] = None) -> Request:
        """
        Convert a WSGI environ to a Request object.

        Args:
            event: WSGI environ dictionary
            context: Unused

        Returns:
            Request object
        """
        path = _wsgi_str(event.get("PATH_INFO") or "/")
        query = event.get("QUERY_STRING", "")
        if query:
            path = f"{path}?{query}"

        headers = {}
        for key, value in event.items():
            if key.startswith("HTTP_"):
                headers[key[5:].replace("_", "-").title()] = value
        if event.get("CONTENT_TYPE"):
            headers["Content-Type"] = event["CONTENT_TYPE"]
        if event.get("CONTENT_LENGTH"):
            headers["Content-Length"] = event["CONTENT_LENGTH"]

        body = self._read_body(event)

        form: Dict[str, str] = {}
        content_type = headers.get("Content-Type", "")
        if body and content_type.split(";")[0].strip().lower() == FORM_CONTENT_TYPE:
            form = dict(parse_qsl(body, keep_blank_values=True))

        session: Optional[MutableMapping[str, Any]] = event.get(self.session_key)
        if session is None:
            session = {}
            event[self.session_key] = session

        return Request(
            method=HTTPMethod(event.get("REQUEST_METHOD", "GET").upper()),
            path=path,
            headers=headers,
            body=body,
            form=form,
            cookies=parse_cookie_header(event.get("HTTP_COOKIE")),
            session=session,
        )

    def convert_from_response(
        self, response: Response, event: Dict[str, Any], context: Optional[Any] = None
    ) -> Tuple[str, List[Tuple[str, str]], List[bytes]]:
        """
        Convert a Response object to WSGI status, headers and body.

        Args:
            response: Response from the router
            event: Original WSGI environ
            context: Unused

        Returns:
            Tuple of (status line, header list, body chunks)
        """
        body = response.body_bytes()
        if event.get("REQUEST_METHOD", "GET").upper() == "HEAD":
            body = b""
        return response.status_line, response.header_items(), [body]

    def _read_body(self, event: Dict[str, Any]) -> Optional[str]:
        try:
            length = int(event.get("CONTENT_LENGTH") or 0)
        except ValueError:
            length = 0
        stream = event.get("wsgi.input")
        if length <= 0 or stream is None:
            return None
        return stream.read(length).decode("utf-8", "replace")
