"""
Driver implementations for different execution environments.

This is the third layer in Dave Farley's 4-layer testing architecture.
Drivers know how to translate DSL requests into actual system calls.
"""

import io
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

from routemachine import Request as RouterRequest
from routemachine import Response as RouterResponse
from routemachine import Router, WsgiDriver
from .dsl import HttpRequest, HttpResponse


def _full_path(request: HttpRequest) -> str:
    if not request.query_params:
        return request.path
    separator = "&" if "?" in request.path else "?"
    return f"{request.path}{separator}{urlencode(request.query_params)}"


def _session_for(request: HttpRequest) -> Any:
    return request.session if request.session is not None else {}


class DriverInterface(ABC):
    """Abstract interface for all drivers."""

    @abstractmethod
    def execute(self, request: HttpRequest) -> HttpResponse:
        """Execute an HTTP request and return the response."""
        pass


class DirectDriver(DriverInterface):
    """
    Driver that dispatches requests directly on the Router.

    This is the most direct way to test the library without any intermediate layers.
    """

    def __init__(self, router: Router):
        """Initialize with a Router instance."""
        self.router = router

    def execute(self, request: HttpRequest) -> HttpResponse:
        """Execute request directly through Router.dispatch."""
        router_request = self._convert_to_router_request(request)
        router_response = self.router.dispatch(router_request)
        return self._convert_from_router_response(router_response)

    def _convert_to_router_request(self, request: HttpRequest) -> RouterRequest:
        """Convert DSL HttpRequest to a router Request."""
        body = urlencode(request.form) if request.form else None
        return RouterRequest(
            method=request.method.upper(),
            path=_full_path(request),
            headers=request.headers.copy(),
            body=body,
            form=request.form.copy(),
            cookies=request.cookies.copy(),
            session=_session_for(request),
        )

    def _convert_from_router_response(self, response: RouterResponse) -> HttpResponse:
        """Convert a router Response to DSL HttpResponse."""
        return HttpResponse(
            status_code=response.status_code,
            headers=dict(response.headers or {}),
            body=response.body,
            content_type=(response.headers or {}).get("Content-Type"),
            set_cookies=[cookie.to_header() for cookie in response.cookies],
        )


class WsgiTestDriver(DriverInterface):
    """
    Driver that executes requests through the WSGI adapter.

    This tests the library as a WSGI server would call it.
    """

    def __init__(self, router: Router, session_key: str = "routemachine.session"):
        self.session_key = session_key
        self.application = WsgiDriver(router, session_key=session_key)
        self.last_environ: Optional[Dict[str, Any]] = None

    def execute(self, request: HttpRequest) -> HttpResponse:
        """Execute request through the WSGI application."""
        environ = self._build_environ(request)
        self.last_environ = environ

        captured: Dict[str, Any] = {}

        def start_response(status: str, headers: List[Tuple[str, str]], exc_info=None):
            captured["status"] = status
            captured["headers"] = headers

        chunks = self.application(environ, start_response)
        return self._convert_from_wsgi(captured["status"], captured["headers"], b"".join(chunks))

    def _build_environ(self, request: HttpRequest) -> Dict[str, Any]:
        path, _, query = _full_path(request).partition("?")
        body = urlencode(request.form).encode("utf-8") if request.form else b""

        environ: Dict[str, Any] = {
            "REQUEST_METHOD": request.method.upper(),
            "SCRIPT_NAME": "",
            "PATH_INFO": path.encode("utf-8").decode("latin-1"),
            "QUERY_STRING": query,
            "SERVER_NAME": "testserver",
            "SERVER_PORT": "80",
            "SERVER_PROTOCOL": "HTTP/1.1",
            "wsgi.version": (1, 0),
            "wsgi.url_scheme": "http",
            "wsgi.input": io.BytesIO(body),
            "wsgi.errors": io.StringIO(),
            "wsgi.multithread": False,
            "wsgi.multiprocess": False,
            "wsgi.run_once": False,
        }
        if body:
            environ["CONTENT_LENGTH"] = str(len(body))

        for name, value in request.headers.items():
            key = name.upper().replace("-", "_")
            if key in ("CONTENT_TYPE", "CONTENT_LENGTH"):
                environ[key] = value
            else:
                environ[f"HTTP_{key}"] = value

        if request.cookies:
            environ["HTTP_COOKIE"] = "; ".join(f"{name}={value}" for name, value in request.cookies.items())

        environ[self.session_key] = _session_for(request)
        return environ

    def _convert_from_wsgi(self, status: str, headers: List[Tuple[str, str]], body: bytes) -> HttpResponse:
        header_map: Dict[str, str] = {}
        set_cookies: List[str] = []
        for name, value in headers:
            if name.lower() == "set-cookie":
                set_cookies.append(value)
            else:
                header_map[name] = value

        content_type = header_map.get("Content-Type")
        decoded: Any = body
        if content_type is None or not content_type.startswith("application/octet-stream"):
            decoded = body.decode("utf-8") if body else None

        return HttpResponse(
            status_code=int(status.split(" ", 1)[0]),
            headers=header_map,
            body=decoded,
            content_type=content_type,
            set_cookies=set_cookies,
        )
