"""CSRF token lifecycle and validation.

The token lives in three places: the session (with its expiration time), a
secure HTTP-only cookie, and the submitted form. A protected request passes
when, in order:

1. the submitted token equals the session token (else 434); the token is
   then rotated whatever happens next,
2. the previous session token had not expired (else 435),
3. the cookie token equals the submitted token (else 436),
4. the Referer host is on the allow-list (else 437).

Forms embed the current token with ``csrf_field``::

    state, cookie = router.csrf.issue(request)
    response = Response(200, f"<form method='post'>{csrf_field(state.token)}...</form>")
    response.set_cookie(cookie)
"""

import hmac
import html
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Any, Callable, MutableMapping, Optional, Tuple
from urllib.parse import urlsplit

from .config import RouterOptions
from .models import Cookie, Request

logger = logging.getLogger(__name__)

SESSION_TOKEN_KEY = "csrf_token"
SESSION_EXPIRATION_KEY = "csrf_token_expiration"
TOKEN_BYTES = 32

CSRF_TOKEN_INVALID = 434
CSRF_TOKEN_EXPIRED = 435
CSRF_COOKIE_INVALID = 436
CSRF_REFERER_INVALID = 437


@dataclass(frozen=True)
class CsrfState:
    """A CSRF token and its expiration time (epoch seconds)."""

    token: str
    expires_at: float


@dataclass(frozen=True)
class CsrfCheck:
    """Result of validating one protected request.

    ``status`` is None when every check passed. ``state`` and ``cookie`` are
    set whenever the token was rotated; the cookie must reach the client
    even when a later check failed.
    """

    status: Optional[int] = None
    state: Optional[CsrfState] = None
    cookie: Optional[Cookie] = None

    @property
    def passed(self) -> bool:
        return self.status is None

    @property
    def rotated(self) -> bool:
        return self.state is not None


def tokens_equal(first: Any, second: Any) -> bool:
    """Constant-time comparison of two tokens; non-strings never match."""
    if not isinstance(first, str) or not isinstance(second, str) or not first or not second:
        return False
    return hmac.compare_digest(first.encode("utf-8"), second.encode("utf-8"))


def csrf_field(token: str, field_name: str = "csrf_token") -> str:
    """Render the hidden form input carrying a CSRF token."""
    return (
        f'<input type="hidden" name="{html.escape(field_name, quote=True)}" '
        f'value="{html.escape(token, quote=True)}">'
    )


class CsrfValidator:
    """Generates, rotates and validates CSRF tokens."""

    def __init__(self, options: RouterOptions, clock: Callable[[], float] = time.time):
        self.options = options
        self.clock = clock

    def generate_token(self) -> str:
        return secrets.token_hex(TOKEN_BYTES)

    def make_cookie(self, state: CsrfState) -> Cookie:
        return Cookie(
            name=self.options.csrf_cookie_name,
            value=state.token,
            expires=state.expires_at,
            path="/",
            secure=self.options.csrf_cookie_secure,
            httponly=True,
        )

    def rotate(self, session: MutableMapping[str, Any]) -> Tuple[CsrfState, Cookie]:
        """Store a new token with a fresh expiration in the session."""
        state = CsrfState(
            token=self.generate_token(),
            expires_at=self.clock() + self.options.csrf_token_expire_time,
        )
        session[SESSION_TOKEN_KEY] = state.token
        session[SESSION_EXPIRATION_KEY] = state.expires_at
        return state, self.make_cookie(state)

    def issue(self, request: Request) -> Tuple[CsrfState, Cookie]:
        """Return the current token for rendering a form, rotating if needed."""
        token = request.session.get(SESSION_TOKEN_KEY)
        expires_at = request.session.get(SESSION_EXPIRATION_KEY)
        if isinstance(token, str) and token and not self._is_expired(expires_at):
            if expires_at is None:
                expires_at = self.clock() + self.options.csrf_token_expire_time
                request.session[SESSION_EXPIRATION_KEY] = expires_at
            state = CsrfState(token, float(expires_at))
            return state, self.make_cookie(state)
        return self.rotate(request.session)

    def validate(self, request: Request) -> CsrfCheck:
        """Run the CSRF checks for one request; the first failure wins."""
        submitted = request.form.get(self.options.csrf_field_name)
        stored = request.session.get(SESSION_TOKEN_KEY)

        if not tokens_equal(submitted, stored):
            logger.warning(f"CSRF token missing or invalid for {request.method.value} {request.route_path}")
            return CsrfCheck(status=CSRF_TOKEN_INVALID)

        previous_expiration = request.session.get(SESSION_EXPIRATION_KEY)
        state, cookie = self.rotate(request.session)

        if self._is_expired(previous_expiration):
            logger.warning(f"CSRF token expired for {request.method.value} {request.route_path}")
            return CsrfCheck(status=CSRF_TOKEN_EXPIRED, state=state, cookie=cookie)

        if not tokens_equal(request.cookies.get(self.options.csrf_cookie_name), submitted):
            logger.warning(f"CSRF cookie mismatch for {request.method.value} {request.route_path}")
            return CsrfCheck(status=CSRF_COOKIE_INVALID, state=state, cookie=cookie)

        referer = request.get_referer()
        referer_host = urlsplit(referer).hostname if referer else None
        if not referer_host or referer_host not in self.options.csrf_allowed_referers:
            logger.warning(f"CSRF referer {referer!r} rejected for {request.method.value} {request.route_path}")
            return CsrfCheck(status=CSRF_REFERER_INVALID, state=state, cookie=cookie)

        return CsrfCheck(state=state, cookie=cookie)

    def _is_expired(self, expires_at: Any) -> bool:
        if expires_at is None:
            return False
        try:
            return self.clock() > float(expires_at)
        except (TypeError, ValueError):
            logger.warning(f"Unreadable CSRF token expiration {expires_at!r}")
            return True
