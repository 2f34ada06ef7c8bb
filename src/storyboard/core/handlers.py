"""Transition handler wrapping and the named-handler registry.

A raw handler is called as ``fn(context, *args)``. What it returns decides
how the transition completes:

- ``False``: the transition fails immediately.
- an :class:`Outcome`: the transition completes when that Outcome settles.
- an awaitable: it is scheduled on the running asyncio loop; the transition
  fails if it returns ``False`` or raises.
- anything else (including ``None``): the transition succeeds immediately.

``wrap_handler`` turns a raw handler into ``wrapped(context, args) -> Outcome``.

The registry lets declarative definitions refer to handlers by name::

    registry.register("show_intro", show_intro)
    registry.register("show_intro", show_intro_v2, domain="onboarding")

    registry.get("show_intro", domain="onboarding")  # show_intro_v2
    registry.get("show_intro", domain="checkout")    # falls back to show_intro
"""
from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from typing import Any, Callable, Dict, Optional, Sequence, Set

from .exceptions import HandlerError, HandlerFailedError, SceneDefinitionError
from .outcome import Outcome

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]
WrappedHandler = Callable[[Any, Sequence[Any]], Outcome]

WRAPPED_MARKER = "__storyboard_wrapped__"
PRIVATE_PREFIX = "_"

# Strong references to scheduled handler tasks until they finish.
_pending_tasks: Set["asyncio.Future[Any]"] = set()


def noop(context: Any, *args: Any) -> bool:
    """Default handler: always succeeds."""
    return True


def is_wrapped(func: Any) -> bool:
    return bool(getattr(func, WRAPPED_MARKER, False))


def wrap_handler(func: Any, name: str = "") -> Any:
    """Wrap ``func`` into the uniform ``(context, args) -> Outcome`` contract.

    Non-callables, already wrapped functions and names starting with ``_``
    are returned unchanged.
    """
    if not callable(func):
        return func
    if name.startswith(PRIVATE_PREFIX):
        return func
    if is_wrapped(func):
        return func

    @functools.wraps(func)
    def wrapped(context: Any, args: Sequence[Any] = ()) -> Outcome:
        outcome = Outcome()
        try:
            result = func(context, *args)
        except Exception as exc:
            logger.exception("Handler %r raised", name or getattr(func, "__name__", func))
            error = HandlerError(
                f"Handler {name!r} raised {exc.__class__.__name__}: {exc}",
                scene=name or None,
            )
            error.__cause__ = exc
            outcome.reject(error)
            return outcome
        _settle_from_result(result, outcome, name)
        return outcome

    setattr(wrapped, WRAPPED_MARKER, True)
    return wrapped


def _settle_from_result(result: Any, outcome: Outcome, name: str) -> None:
    if isinstance(result, Outcome):
        result.done(lambda _: outcome.resolve())
        result.fail(
            lambda settled: outcome.reject(
                settled.reason
                or HandlerFailedError(f"Handler {name!r} signalled failure", scene=name or None)
            )
        )
        return

    if inspect.isawaitable(result):
        _schedule_awaitable(result, outcome, name)
        return

    if result is False:
        outcome.reject(HandlerFailedError(f"Handler {name!r} returned False", scene=name or None))
    else:
        outcome.resolve()


def _schedule_awaitable(awaitable: Any, outcome: Outcome, name: str) -> None:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        outcome.reject(
            HandlerError(
                f"Handler {name!r} returned an awaitable but no event loop is running",
                scene=name or None,
            )
        )
        return

    future = asyncio.ensure_future(awaitable)
    _pending_tasks.add(future)

    def _finish(fut: "asyncio.Future[Any]") -> None:
        _pending_tasks.discard(fut)
        if fut.cancelled():
            outcome.reject(HandlerError(f"Handler {name!r} task was cancelled", scene=name or None))
            return
        exc = fut.exception()
        if exc is not None:
            logger.error("Async handler %r raised %s: %s", name, exc.__class__.__name__, exc)
            error = HandlerError(
                f"Handler {name!r} raised {exc.__class__.__name__}: {exc}",
                scene=name or None,
            )
            error.__cause__ = exc
            outcome.reject(error)
            return
        _settle_from_result(fut.result(), outcome, name)

    future.add_done_callback(_finish)


class HandlerRegistry:
    """Registry of raw handler functions keyed by name, with domain fallback.

    Handlers registered without a domain are shared. A lookup with a domain
    tries ``"<domain>:<name>"`` first and falls back to the shared handler.
    """

    SHARED_DOMAIN = "shared"

    def __init__(self, *, preload_defaults: bool = True) -> None:
        self._handlers: Dict[str, Handler] = {}
        if preload_defaults:
            self.register_defaults()

    def _make_key(self, name: str, domain: str = SHARED_DOMAIN) -> str:
        if domain == self.SHARED_DOMAIN:
            return name
        return f"{domain}:{name}"

    def register(self, name: str, handler: Handler, domain: str = SHARED_DOMAIN) -> None:
        """Register a handler function."""
        if not callable(handler):
            raise TypeError("handler must be callable")
        self._handlers[self._make_key(name, domain)] = handler

    def handler(self, name: Optional[str] = None, *, domain: str = SHARED_DOMAIN):
        """Decorator form of :meth:`register`; defaults to the function name."""

        def decorator(fn: Handler) -> Handler:
            self.register(name or fn.__name__, fn, domain)
            return fn

        return decorator

    def get(self, name: str, domain: str = SHARED_DOMAIN) -> Optional[Handler]:
        if domain != self.SHARED_DOMAIN:
            key = self._make_key(name, domain)
            if key in self._handlers:
                return self._handlers[key]
        return self._handlers.get(name)

    def has(self, name: str, domain: str = SHARED_DOMAIN) -> bool:
        return self.get(name, domain) is not None

    def resolve(self, name: str, domain: str = SHARED_DOMAIN) -> Handler:
        """Like :meth:`get` but raises when the handler is unknown."""
        handler = self.get(name, domain)
        if handler is None:
            raise SceneDefinitionError(
                f"Unknown handler '{name}'",
                context={"handler": name, "domain": domain},
            )
        return handler

    def list_handlers(self, domain: Optional[str] = None) -> Dict[str, Handler]:
        """List handlers, optionally as seen from ``domain``."""
        if domain is None:
            return dict(self._handlers)

        result: Dict[str, Handler] = {}
        prefix = f"{domain}:"
        for key, handler in self._handlers.items():
            if key.startswith(prefix):
                result[key[len(prefix):]] = handler
            elif ":" not in key and key not in result:
                result[key] = handler
        return result

    def reset(self) -> None:
        """Clear all handlers and reload defaults."""
        self._handlers.clear()
        self.register_defaults()

    def register_defaults(self) -> None:
        self.register("noop", noop)
        self.register("fail", lambda context, *args: False)


# Global registry instance
registry = HandlerRegistry()

__all__ = [
    "Handler",
    "WrappedHandler",
    "HandlerRegistry",
    "registry",
    "noop",
    "is_wrapped",
    "wrap_handler",
]
