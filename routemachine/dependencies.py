"""
Parameter injection for handlers, middlewares and error handlers.

Callables declare what they need by parameter name:

- ``request``: the current Request
- ``params``: the mapping of matched path parameters
- any path parameter name, e.g. ``id`` for ``/users/[id]``
- extra names supplied by the caller (``status_code``, ``allowed_methods``)

A ``**kwargs`` parameter receives every path parameter not bound otherwise.
"""

import inspect
from typing import Any, Callable, Dict, List, Mapping, Optional

from .exceptions import DependencyResolutionError
from .models import Request


def _callable_name(func: Callable) -> str:
    return getattr(func, "__qualname__", None) or getattr(func, "__name__", None) or repr(func)


def call_with_injection(
    func: Callable,
    request: Optional[Request],
    params: Optional[Mapping[str, str]] = None,
    **extra: Any,
) -> Any:
    """Call ``func`` with the arguments its signature asks for.

    Args:
        func: The handler, middleware or error handler
        request: The current request (may be None outside of dispatch)
        params: Matched path parameters
        **extra: Additional injectable values

    Raises:
        DependencyResolutionError: If a required parameter cannot be supplied
    """
    params = dict(params or {})
    available: Dict[str, Any] = dict(params)
    available.update(extra)
    available["request"] = request
    available["params"] = params

    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        # Builtins without introspectable signatures get no arguments
        return func()

    args: List[Any] = []
    kwargs: Dict[str, Any] = {}
    accepts_var_keyword = False

    for name, param in sig.parameters.items():
        if param.kind == inspect.Parameter.VAR_KEYWORD:
            accepts_var_keyword = True
            continue
        if param.kind == inspect.Parameter.VAR_POSITIONAL:
            continue

        if name in available:
            value = available[name]
        elif param.default is not inspect.Parameter.empty:
            # Positional-only slots must stay aligned
            if param.kind == inspect.Parameter.POSITIONAL_ONLY:
                args.append(param.default)
            continue
        else:
            raise DependencyResolutionError(
                f"Cannot supply parameter '{name}' to {_callable_name(func)}"
            )

        if param.kind == inspect.Parameter.POSITIONAL_ONLY:
            args.append(value)
        else:
            kwargs[name] = value

    if accepts_var_keyword:
        for name, value in params.items():
            kwargs.setdefault(name, value)

    return func(*args, **kwargs)
