"""
Coroutine variants of the blocking handle API.

Handle methods block while an operation or a predicate wait is in
progress.  Subclasses of :class:`AsyncMixin` also get an ``a``-prefixed
coroutine for every public method, which runs the blocking call in a
worker thread so several servers can be driven from one event loop::

    await asyncio.gather(web.astop(async_=False), db.astop(async_=False))
    await web.await_for(lambda s: s.stopped)
"""

from __future__ import annotations

import asyncio
import functools
import inspect
from typing import Any, Callable, Coroutine, TypeVar

T = TypeVar("T")


def async_wrap(fn: Callable[..., T]) -> Callable[..., Coroutine[Any, Any, T]]:
    """Coroutine function that runs *fn* via :func:`asyncio.to_thread`.

    Name, docstring and signature are copied from *fn*.
    """

    async def _in_thread(*args: Any, **kwargs: Any) -> T:
        return await asyncio.to_thread(fn, *args, **kwargs)

    return functools.update_wrapper(_in_thread, fn)


def _blocking_methods(cls: type) -> dict[str, Callable[..., Any]]:
    methods = {}
    for name, attr in vars(cls).items():
        if name.startswith("_") or isinstance(attr, (property, staticmethod, classmethod)):
            continue
        if callable(attr) and not inspect.iscoroutinefunction(attr):
            methods[name] = attr
    return methods


class AsyncMixin:
    """Adds ``a<method>`` coroutines to server and disk handles.

    Only methods defined on the subclass itself are considered; properties
    such as ``status`` stay synchronous since they read the cached
    snapshot.  An explicitly defined ``a<method>`` is left alone.
    """

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        for name, method in _blocking_methods(cls).items():
            if not hasattr(cls, f"a{name}"):
                setattr(cls, f"a{name}", async_wrap(method))
