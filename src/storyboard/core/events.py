"""Priority-ordered publish/subscribe bus owned by every storyboard node.

Subscribers for one event name are kept sorted by non-increasing priority.
Subscribers sharing a priority fire in the order they subscribed.
Dispatch is synchronous: ``publish`` returns after every subscriber ran.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

from .config import get_settings
from .ids import unique_id

logger = logging.getLogger(__name__)

Callback = Callable[..., Any]


@dataclass
class Subscription:
    callback: Callback
    priority: int = 0
    token: str = ""
    context: Any = None
    # The caller's callback when ``callback`` is an internal wrapper (subscribe_once).
    original: Optional[Callback] = None

    def matches(self, fn: Callback) -> bool:
        return self.callback is fn or self.original is fn


class EventBus:
    """In-memory event bus.

    A subscription registered with a ``context`` is invoked as
    ``callback(context, *args)``; without one, as ``callback(*args)``.
    """

    def __init__(self) -> None:
        self._events: Dict[str, List[Subscription]] = {}

    def publish(self, name: str, *args: Any) -> None:
        """Invoke every subscriber of ``name`` in priority order."""
        subscriptions = self._events.get(name)
        if not subscriptions:
            return
        # Snapshot: subscribers may subscribe/unsubscribe while we dispatch.
        for subscription in list(subscriptions):
            if subscription.context is not None:
                subscription.callback(subscription.context, *args)
            else:
                subscription.callback(*args)

    def subscribe(
        self,
        name: str,
        callback: Callback,
        *,
        priority: int = 0,
        context: Any = None,
        token: Optional[str] = None,
    ) -> str:
        """Register ``callback`` for ``name`` and return its token."""
        if not callable(callback):
            raise TypeError("callback must be callable")
        subscription = Subscription(
            callback=callback,
            priority=priority or 0,
            token=token or unique_id(get_settings().token_prefix),
            context=context,
        )
        self._insert(name, subscription)
        return subscription.token

    def subscribe_once(
        self,
        name: str,
        callback: Callback,
        *,
        priority: int = 0,
        context: Any = None,
    ) -> str:
        """Register ``callback`` to run on the next ``name`` event only."""
        if not callable(callback):
            raise TypeError("callback must be callable")
        token = unique_id(get_settings().token_prefix)
        fired = False

        def _once(*args: Any) -> Any:
            nonlocal fired
            # A nested publish of the same event may reach us from an outer snapshot.
            if fired:
                return None
            fired = True
            self.unsubscribe(name, token)
            return callback(*args)

        subscription = Subscription(
            callback=_once,
            priority=priority or 0,
            token=token,
            context=context,
            original=callback,
        )
        self._insert(name, subscription)
        return token

    def unsubscribe(self, name: str, identifier: Union[Callback, str, None] = None) -> int:
        """Remove subscriptions to ``name`` and return how many were removed.

        ``identifier`` may be a callback (matched by identity), a token, or
        ``None`` to drop every subscription for ``name``.
        """
        subscriptions = self._events.get(name)
        if subscriptions is None:
            return 0

        if identifier is None:
            kept: List[Subscription] = []
        elif isinstance(identifier, str):
            kept = [s for s in subscriptions if s.token != identifier]
        elif callable(identifier):
            kept = [s for s in subscriptions if not s.matches(identifier)]
        else:
            raise TypeError("identifier must be a callback, a token string, or None")

        removed = len(subscriptions) - len(kept)
        self._events[name] = kept
        if removed:
            logger.debug("Removed %d subscription(s) from %r", removed, name)
        return removed

    def subscriptions(self, name: str) -> List[Subscription]:
        """Return a copy of the ordered subscriptions for ``name``."""
        return list(self._events.get(name, ()))

    def has_subscribers(self, name: str) -> bool:
        return bool(self._events.get(name))

    def _insert(self, name: str, subscription: Subscription) -> None:
        subscriptions = self._events.setdefault(name, [])
        position = len(subscriptions)
        for index, existing in enumerate(subscriptions):
            if existing.priority < subscription.priority:
                position = index
                break
        subscriptions.insert(position, subscription)
        logger.debug(
            "Subscribed %r to %r (priority=%s, position=%d)",
            subscription.token,
            name,
            subscription.priority,
            position,
        )


__all__ = ["EventBus", "Subscription"]
