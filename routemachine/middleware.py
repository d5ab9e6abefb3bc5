"""Named middlewares, middleware groups and per-route chain resolution."""

import logging
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Tuple, Union

logger = logging.getLogger(__name__)


def _as_names(names: Union[str, Iterable[str]]) -> Tuple[str, ...]:
    if isinstance(names, str):
        return (names,)
    return tuple(names)


class MiddlewareRegistry:
    """Registry of middleware callables and middleware groups.

    A middleware is called before the route handler with injected arguments
    (``request``, ``params`` or individual path parameters). Returning a
    ``Response`` short-circuits the request; returning ``None`` continues.
    """

    def __init__(self):
        self._middlewares: Dict[str, Callable] = {}
        self._groups: Dict[str, Tuple[str, ...]] = {}

    @property
    def middlewares(self) -> Mapping[str, Callable]:
        return MappingProxyType(self._middlewares)

    @property
    def groups(self) -> Mapping[str, Tuple[str, ...]]:
        return MappingProxyType(self._groups)

    def add_middleware(self, name: str, func: Callable) -> None:
        if not callable(func):
            raise TypeError(f"Middleware '{name}' must be callable, got {type(func).__name__}")
        self._middlewares[name] = func

    def add_group(self, name: str, names: Union[str, Iterable[str]]) -> None:
        self._groups[name] = _as_names(names)

    def expand(self, names: Union[str, Iterable[str]]) -> Tuple[str, ...]:
        """Replace group names by their members, one level deep.

        Members that are themselves group names are kept as written and are
        not expanded again.
        """
        expanded: List[str] = []
        for name in _as_names(names):
            if name in self._groups:
                expanded.extend(self._groups[name])
            else:
                expanded.append(name)
        return tuple(expanded)

    def resolve(
        self,
        requested: Union[str, Iterable[str]],
        active: Iterable[str] = (),
    ) -> Tuple[Tuple[str, ...], Tuple[Callable, ...]]:
        """Resolve the middleware chain of a single route.

        Args:
            requested: Middleware or group names given for the route
            active: Already expanded names inherited from enclosing groups

        Returns:
            Tuple of (resolved names, callables) in chain order. The route's own
            middlewares come first, followed by the inherited ones. Unknown names
            are skipped.
        """
        names: List[str] = []
        chain: List[Callable] = []
        for name in self.expand(requested) + tuple(active):
            func = self._middlewares.get(name)
            if func is None:
                logger.debug(f"Ignoring unknown middleware '{name}'")
                continue
            names.append(name)
            chain.append(func)
        return tuple(names), tuple(chain)
