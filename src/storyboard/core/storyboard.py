"""Hierarchical storyboard nodes and the transition engine.

A storyboard is a tree. Composite nodes own named child scenes and move
between them; leaf nodes only own ``enter``/``exit`` handlers. Moving a
composite node to a scene exits the active child, enters the target child
(its ``initial`` scene, or ``enter``) and settles an :class:`Outcome`.

Example:
    >>> board = Storyboard(
    ...     initial="idle",
    ...     scenes={
    ...         "idle": {"exit": lambda ctx: True},
    ...         "running": {"enter": lambda ctx: True},
    ...     },
    ... )
    >>> board.start().succeeded
    True
    >>> board.transition_to("running").succeeded
    True
    >>> board.current_state_name()
    'running'
"""
from __future__ import annotations

import functools
import logging
import weakref
from dataclasses import replace
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

from .config import get_settings
from .events import EventBus
from .exceptions import (
    ReentrantTransitionError,
    SceneDefinitionError,
    TransitionCancelledError,
    TransitionError,
    UnknownSceneError,
)
from .handlers import WrappedHandler, wrap_handler
from .ids import unique_id
from .outcome import Outcome
from .scenes import HANDLERS, SceneSpec, clone_spec, normalize_definition

logger = logging.getLogger(__name__)

# Instance attributes a definition helper may not shadow.
_PROTECTED = frozenset(
    {"id", "name", "parent", "context", "scenes", "handlers", "initial", "events", "is_composite"}
)


class Storyboard:
    """A storyboard node; composite when built with ``scenes``, leaf otherwise."""

    def __init__(self, definition: Union[Mapping[str, Any], SceneSpec, Callable[..., Any], None] = None, **options: Any) -> None:
        if definition is None:
            definition = options
        elif options:
            if not isinstance(definition, Mapping):
                raise TypeError("keyword options can only be combined with a mapping definition")
            definition = {**definition, **options}

        spec = normalize_definition(definition)
        self._definition = spec

        self.id = unique_id(get_settings().scene_prefix)
        self.name: Optional[str] = None
        self._parent_ref: Optional[weakref.ReferenceType[Storyboard]] = None

        # None means "use the node itself".
        self._context: Any = spec.context
        self._own_context = spec.context is not None

        self.events = EventBus()

        self._current: Any = None
        self._transitioning = False
        self._complete: Optional[Outcome] = None
        self._abort: Optional[Callable[[TransitionError], None]] = None
        # Children the in-flight transition is waiting on.
        self._awaiting: Tuple[Storyboard, ...] = ()

        self.scenes: Optional[Dict[str, Storyboard]] = None
        self.handlers: Optional[Dict[str, WrappedHandler]] = None
        self.initial: Optional[str] = spec.initial

        if spec.is_composite:
            self._build_scenes(spec.scenes or {})
        else:
            self.handlers = {action: wrap_handler(getattr(spec, action), action) for action in HANDLERS}

        self._install_extras(spec)

    # ------------------------------------------------------------------
    # Tree
    # ------------------------------------------------------------------
    @property
    def is_composite(self) -> bool:
        return self.scenes is not None

    @property
    def parent(self) -> Optional["Storyboard"]:
        return self._parent_ref() if self._parent_ref is not None else None

    @property
    def context(self) -> Any:
        return self._context if self._context is not None else self

    def attach(self, name: str, parent: "Storyboard") -> "Storyboard":
        """Attach this node to ``parent`` as the scene called ``name``."""
        self.name = name
        self._parent_ref = weakref.ref(parent)
        if parent._context is not None and not self._own_context:
            self._inherit_context(parent._context)
        return self

    def set_context(self, context: Any) -> None:
        """Change the receiver handlers and helpers are called with.

        Descendants without their own explicit context follow along.
        """
        self._context = context
        self._own_context = context is not None
        for child in (self.scenes or {}).values():
            if not child._own_context:
                child._inherit_context(context)

    def clone(self) -> "Storyboard":
        """Build an independent copy of this storyboard in its initial state."""
        spec = clone_spec(self._definition)
        if self._own_context:
            spec = replace(spec, context=self._context)
        return type(self)(spec)

    def _inherit_context(self, context: Any) -> None:
        self._context = context
        for child in (self.scenes or {}).values():
            if not child._own_context:
                child._inherit_context(context)

    def _build_scenes(self, scenes: Mapping[str, Any]) -> None:
        self.scenes = {}
        for name, entry in scenes.items():
            child = entry if isinstance(entry, Storyboard) else type(self)(entry)
            self.scenes[name] = child.attach(name, self)

    def _install_extras(self, spec: SceneSpec) -> None:
        for attr in (*spec.helpers, *spec.attributes):
            if attr in _PROTECTED or attr.startswith("_") or hasattr(type(self), attr):
                raise SceneDefinitionError(
                    f"Definition key '{attr}' would shadow a Storyboard attribute",
                    context={"attribute": attr},
                )
        for attr, fn in spec.helpers.items():
            setattr(self, attr, self._passthrough(fn))
        for attr, value in spec.attributes.items():
            setattr(self, attr, value)

    def _passthrough(self, fn: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(fn)
        def helper(*args: Any, **kwargs: Any) -> Any:
            return fn(self.context, *args, **kwargs)

        return helper

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------
    def current_state_name(self) -> Optional[str]:
        if self._current is None:
            return None
        if self.is_composite:
            return self._current.name
        return self._current

    def is_currently(self, name: str) -> bool:
        return self._current is not None and self.current_state_name() == name

    def is_transitioning(self) -> bool:
        return self._transitioning

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def start(self) -> Outcome:
        """Enter the initial scene; a no-op once the node has started."""
        if self._current is not None:
            return Outcome.resolved()
        return self.transition_to(self.initial or "enter")

    def transition_to(self, scene_name: str, *args: Any) -> Outcome:
        """Move to ``scene_name``, forwarding ``args`` to every handler run.

        Raises:
            UnknownSceneError: ``scene_name`` is not a scene (or, for a leaf,
                not ``enter``/``exit``). No state is changed.
        """
        if self.is_composite:
            return self._transition_children(scene_name, args)
        return self._transition_leaf(scene_name, args)

    def cancel_transition(self) -> bool:
        """Fail the in-flight transition without interrupting running handlers.

        Returns False when nothing was in flight.
        """
        complete = self._complete
        if complete is None or complete.settled:
            self._transitioning = False
            return False

        logger.warning("Cancelling transition on %s", self._label())
        for child in self._awaiting:
            if child.is_transitioning():
                child.cancel_transition()

        if not complete.settled and self._abort is not None:
            self._abort(TransitionCancelledError("Transition cancelled", node_id=self.id))
        self._transitioning = False
        return True

    def _reject_reentrant(self, scene_name: str) -> Outcome:
        logger.warning(
            "Rejected transition of %s to %r: another transition is in flight",
            self._label(),
            scene_name,
        )
        return Outcome.rejected(
            ReentrantTransitionError(
                f"{self._label()} is already transitioning",
                scene=scene_name,
                node_id=self.id,
            )
        )

    def _transition_leaf(self, state_name: str, args: tuple) -> Outcome:
        handlers = self.handlers or {}
        handler = handlers.get(state_name)
        if handler is None:
            raise UnknownSceneError(
                f"Scene \"{state_name}\" not found!",
                context={"node_id": self.id, "scene": state_name, "available": sorted(handlers)},
            )
        if self._transitioning:
            return self._reject_reentrant(state_name)

        complete = self._complete = Outcome()
        self._transitioning = True

        def succeeded(_: Outcome) -> None:
            if complete.settled:
                return
            self._transitioning = False
            self._current = state_name
            logger.debug("%s is now %r", self._label(), state_name)
            complete.resolve()

        def failed(reason: Optional[BaseException]) -> None:
            if complete.settled:
                return
            self._transitioning = False
            logger.debug("%s failed to %s: %s", self._label(), state_name, reason)
            complete.reject(reason)

        self._abort = failed
        logger.debug("%s running %r", self._label(), state_name)
        handler(self.context, args).then(succeeded, lambda settled: failed(settled.reason))
        return complete

    def _transition_children(self, scene_name: str, args: tuple) -> Outcome:
        scenes = self.scenes or {}
        to_node = scenes.get(scene_name)
        if to_node is None:
            raise UnknownSceneError(
                f"Scene \"{scene_name}\" not found!",
                context={"node_id": self.id, "scene": scene_name, "available": sorted(scenes)},
            )
        if self._transitioning:
            return self._reject_reentrant(scene_name)

        from_node: Optional[Storyboard] = self._current
        complete = self._complete = Outcome()
        namespaced = get_settings().namespaced_events

        def publish(event: str, is_exit: bool = False) -> None:
            # A raising subscriber must not leave the node half-transitioned.
            try:
                self.publish(event, from_node, to_node)
                if event in namespaced:
                    scene = from_node if is_exit else to_node
                    self.publish(f"{scene.name if scene is not None else ''}:{event}")
            except Exception:
                logger.exception("Subscriber to %r on %s raised", event, self._label())

        def bailout(reason: Optional[BaseException]) -> None:
            if complete.settled:
                return
            self._transitioning = False
            self._current = from_node
            self._awaiting = ()
            logger.debug("%s failed to move to %r: %s", self._label(), scene_name, reason)
            publish("fail")
            complete.reject(reason)

        def entered(_: Outcome) -> None:
            if complete.settled:
                return
            publish("enter")
            self._transitioning = False
            self._current = to_node
            self._awaiting = ()
            logger.debug("%s is now in scene %r", self._label(), scene_name)
            publish("end")
            complete.resolve()

        def enter() -> None:
            if complete.settled:
                return
            to_node.transition_to(to_node.initial or "enter", *args).then(
                entered, lambda settled: bailout(settled.reason)
            )

        def exited(_: Outcome) -> None:
            if complete.settled:
                return
            publish("exit", True)
            enter()

        self._abort = bailout
        self._awaiting = tuple(node for node in (from_node, to_node) if node is not None)
        logger.debug(
            "%s moving %r -> %r",
            self._label(),
            from_node.name if from_node is not None else None,
            scene_name,
        )
        publish("start")
        self._transitioning = True

        if from_node is not None:
            from_node.transition_to("exit", *args).then(exited, lambda settled: bailout(settled.reason))
        else:
            enter()
        return complete

    # ------------------------------------------------------------------
    # Event bus delegation
    # ------------------------------------------------------------------
    def publish(self, name: str, *args: Any) -> None:
        self.events.publish(name, *args)

    def subscribe(
        self,
        name: str,
        callback: Callable[..., Any],
        *,
        priority: int = 0,
        context: Any = None,
        token: Optional[str] = None,
    ) -> str:
        return self.events.subscribe(name, callback, priority=priority, context=context, token=token)

    def subscribe_once(
        self,
        name: str,
        callback: Callable[..., Any],
        *,
        priority: int = 0,
        context: Any = None,
    ) -> str:
        return self.events.subscribe_once(name, callback, priority=priority, context=context)

    def unsubscribe(self, name: str, identifier: Union[Callable[..., Any], str, None] = None) -> int:
        return self.events.unsubscribe(name, identifier)

    # ------------------------------------------------------------------
    def _label(self) -> str:
        return f"{self.name or 'storyboard'}[{self.id}]"

    def __repr__(self) -> str:
        kind = "composite" if self.is_composite else "leaf"
        return f"<Storyboard {self._label()} {kind} current={self.current_state_name()!r}>"


__all__ = ["Storyboard"]
