"""
Core data models for the router.
"""

from dataclasses import dataclass, field
from email.utils import formatdate
from enum import Enum
from http import HTTPStatus
from http.cookies import SimpleCookie
from types import MappingProxyType
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    FrozenSet,
    List,
    Mapping,
    MutableMapping,
    Optional,
    Tuple,
    Union,
)
from urllib.parse import parse_qsl

if TYPE_CHECKING:
    from .handlers import Handler
    from .patterns import RoutePattern


class HTTPMethod(Enum):
    """Enumeration of supported HTTP methods."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"


# Status codes the router defines on top of the registered HTTP ones.
CUSTOM_REASONS: Dict[int, str] = {
    434: "CSRF Token Invalid",
    435: "CSRF Token Expired",
    436: "CSRF Token Cookie Invalid",
    437: "CSRF Token Referer Invalid",
}


def reason_phrase(status_code: int) -> str:
    """Return the status line reason for a code, or an empty string."""
    if status_code in CUSTOM_REASONS:
        return CUSTOM_REASONS[status_code]
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return ""


@dataclass(frozen=True)
class Cookie:
    """A cookie to be sent back with a ``Set-Cookie`` header."""

    name: str
    value: str
    expires: Optional[float] = None
    path: str = "/"
    domain: Optional[str] = None
    secure: bool = False
    httponly: bool = False
    samesite: Optional[str] = None

    def to_header(self) -> str:
        """Render the ``Set-Cookie`` header value."""
        jar: SimpleCookie = SimpleCookie()
        jar[self.name] = self.value
        morsel = jar[self.name]
        morsel["path"] = self.path
        if self.expires is not None:
            morsel["expires"] = formatdate(self.expires, usegmt=True)
        if self.domain:
            morsel["domain"] = self.domain
        if self.secure:
            morsel["secure"] = True
        if self.httponly:
            morsel["httponly"] = True
        if self.samesite:
            morsel["samesite"] = self.samesite
        return morsel.OutputString()


@dataclass
class Request:
    """Represents an HTTP request.

    ``form``, ``cookies`` and ``session`` stand in for the request globals of
    the hosting application. ``session`` is a mutable mapping owned by the
    host; the CSRF validator reads and writes it.
    """

    method: HTTPMethod
    path: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    query_params: Optional[Dict[str, str]] = None
    form: Dict[str, str] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)
    session: MutableMapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.method, HTTPMethod):
            self.method = HTTPMethod(str(self.method).upper())

        if self.query_params is None and "?" in self.path:
            query = self.path.partition("?")[2].partition("#")[0]
            self.query_params = dict(parse_qsl(query, keep_blank_values=True))

    @property
    def route_path(self) -> str:
        """The request path without query string or fragment."""
        path = self.path.partition("?")[0].partition("#")[0]
        return path or "/"

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get a header value using a case-insensitive name lookup."""
        if name in self.headers:
            return self.headers[name]
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default

    def get_referer(self) -> Optional[str]:
        """Get the Referer header."""
        return self.get_header("Referer")


@dataclass
class Response:
    """Represents an HTTP response."""

    status_code: int
    body: Optional[Union[str, bytes]] = None
    headers: Optional[Dict[str, str]] = None
    content_type: Optional[str] = None
    reason: Optional[str] = None
    cookies: List[Cookie] = field(default_factory=list)

    def __post_init__(self):
        self.status_code = int(self.status_code)

        if self.headers is None:
            self.headers = {}

        if self.content_type:
            self.headers["Content-Type"] = self.content_type

        # 204 responses never carry a body
        if self.status_code != 204:
            if self.body is not None:
                body_bytes = self.body.encode("utf-8") if isinstance(self.body, str) else self.body
                content_length = len(body_bytes)
            else:
                content_length = 0
            self.headers["Content-Length"] = str(content_length)

    @property
    def status_line(self) -> str:
        """Status code followed by its reason, e.g. ``"404 Not Found"``."""
        reason = self.reason or reason_phrase(self.status_code)
        return f"{self.status_code} {reason}".rstrip()

    def set_cookie(self, cookie: Cookie) -> None:
        """Queue a cookie to be sent with this response."""
        self.cookies.append(cookie)

    def header_items(self) -> List[Tuple[str, str]]:
        """All headers as (name, value) pairs, one ``Set-Cookie`` per cookie."""
        items = list((self.headers or {}).items())
        items.extend(("Set-Cookie", cookie.to_header()) for cookie in self.cookies)
        return items

    def body_bytes(self) -> bytes:
        """Encode the body for the wire."""
        if self.body is None:
            return b""
        if isinstance(self.body, bytes):
            return self.body
        return self.body.encode("utf-8")


@dataclass(frozen=True)
class MatchResult:
    """Outcome of matching one route pattern against one request path."""

    matched: bool
    parameters: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def __bool__(self) -> bool:
        return self.matched


@dataclass(frozen=True)
class Route:
    """A registered route. Immutable once registered."""

    methods: FrozenSet[HTTPMethod]
    pattern: "RoutePattern"
    handler: "Handler"
    middlewares: Tuple[Callable, ...] = ()
    middleware_names: Tuple[str, ...] = ()
    csrf_protected: bool = False
    name: Optional[str] = None
    any_method: bool = False

    @property
    def uri_pattern(self) -> str:
        return self.pattern.text

    def allows(self, method: HTTPMethod) -> bool:
        """Check whether this route accepts the given request method."""
        return self.any_method or method in self.methods

    def match(self, path: str) -> MatchResult:
        return self.pattern.match(path)
