"""Invoke helpers — call sync or async data functions uniformly.

Loaders, actions and revalidation predicates can be ``def`` or
``async def``. Any code that calls a user-provided function must handle
both cases. This module keeps the sync/async check and the keyword
resolution in exactly one place.

Usage::

    from wayfinder._internal.invoke import invoke, resolve_kwargs

    kwargs = resolve_kwargs(loader, available, params)
    result = await invoke(loader, **kwargs)
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Mapping
from typing import Any

from wayfinder.routing.params import coerce_param


async def invoke(handler: Any, *args: Any, **kwargs: Any) -> Any:
    """Call a handler and await the result if it's awaitable.

    Works with both sync and async callables::

        # sync: returns immediately
        def load_settings(params):
            return SETTINGS[params["section"]]

        # async: the coroutine is awaited
        async def load_user(user_id: int, signal):
            return await api.get_user(user_id)
    """
    result = handler(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


def resolve_kwargs(
    handler: Callable[..., Any],
    available: Mapping[str, Any],
    params: Mapping[str, str],
    *,
    args_object: Any = None,
) -> dict[str, Any]:
    """Build keyword arguments for a data function from its signature.

    Resolution priority for each parameter:

    1. ``args`` — the whole argument object (by name or exact annotation)
    2. Named values from *available* (``params``, ``signal``, ``location``...)
    3. Path parameters — by name, coerced through the annotation
    4. ``**kwargs`` — receives every entry of *available*

    Parameters that cannot be resolved are left out so their defaults apply.
    """
    sig = inspect.signature(handler, eval_str=True)
    kwargs: dict[str, Any] = {}

    for name, param in sig.parameters.items():
        if param.kind is inspect.Parameter.VAR_KEYWORD:
            for key, value in available.items():
                kwargs.setdefault(key, value)
            continue
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.POSITIONAL_ONLY):
            continue

        if args_object is not None and (name == "args" or param.annotation is type(args_object)):
            kwargs[name] = args_object
        elif name in available:
            kwargs[name] = available[name]
        elif name in params:
            kwargs[name] = coerce_param(params[name], param.annotation)

    return kwargs
