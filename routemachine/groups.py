"""Group context tracking for nested route registration."""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Sequence, Tuple

logger = logging.getLogger(__name__)


def normalize_path(prefix: str, path: str) -> str:
    """Combine a group prefix and a route path without doubling slashes.

    Args:
        prefix: The prefix path (e.g., "", "/", "/api")
        path: The route path (e.g., "/", "/list", "/[id]")

    Returns:
        The combined path

    Examples:
        normalize_path("", "/users") -> "/users"
        normalize_path("/api", "/users") -> "/api/users"
        normalize_path("/api", "users") -> "/api/users"
        normalize_path("/api/", "/users") -> "/api/users"
        normalize_path("/api", "") -> "/api"
    """
    if not prefix:
        return path

    # Ensure prefix starts with /
    if not prefix.startswith("/"):
        prefix = "/" + prefix

    # Remove trailing slash from prefix unless it's just "/"
    if prefix != "/" and prefix.endswith("/"):
        prefix = prefix.rstrip("/")

    if not path:
        return prefix

    if not path.startswith("/"):
        path = "/" + path

    if prefix == "/":
        return path

    return prefix + path


@dataclass(frozen=True)
class GroupContext:
    """Prefix and middleware names accumulated by the enclosing route groups."""

    prefix: str = ""
    middleware_names: Tuple[str, ...] = ()


_ROOT = GroupContext()


class GroupContextStack:
    """Stack of group contexts, one level per ``add_group`` call in progress.

    Each level is popped when its registration callback returns or raises,
    so sibling groups never see each other's prefix or middlewares.
    """

    def __init__(self):
        self._stack: List[GroupContext] = []

    @property
    def current(self) -> GroupContext:
        """The innermost active context, or the empty root context."""
        return self._stack[-1] if self._stack else _ROOT

    @property
    def depth(self) -> int:
        return len(self._stack)

    def is_empty(self) -> bool:
        return not self._stack

    @contextmanager
    def nested(self, prefix: str = "", middleware_names: Sequence[str] = ()) -> Iterator[GroupContext]:
        """Activate a child context for the duration of the ``with`` block.

        Args:
            prefix: Prefix appended to the parent's prefix
            middleware_names: Already expanded middleware names appended to the parent's
        """
        parent = self.current
        context = GroupContext(
            prefix=normalize_path(parent.prefix, prefix),
            middleware_names=parent.middleware_names + tuple(middleware_names),
        )
        self._stack.append(context)
        logger.debug(f"Entering route group {context.prefix or '/'} (depth {len(self._stack)})")
        try:
            yield context
        finally:
            self._stack.pop()
            logger.debug(f"Leaving route group {context.prefix or '/'} (depth {len(self._stack)})")
