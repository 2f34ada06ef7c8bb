from __future__ import annotations

from typing import Any, Dict, Mapping


class StoryboardError(Exception):
    """Base exception for the storyboard package."""

    context: Dict[str, Any]

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        if context is not None:
            # Store a shallow copy to avoid accidental mutation.
            self.context = dict(context)
        else:
            self.context = {}

    def to_json_error(self) -> Dict[str, Any]:
        """Return a JSON-serializable error payload."""
        return {
            "message": str(self),
            "code": self.__class__.__name__,
            "context": self.context,
        }


class UnknownSceneError(StoryboardError, KeyError):
    """Raised when a transition targets a scene the node does not have."""

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        StoryboardError.__init__(self, message, context=context)
        KeyError.__init__(self, message)

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""


class SceneDefinitionError(StoryboardError, ValueError):
    """Raised when a storyboard definition cannot be turned into nodes."""

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        StoryboardError.__init__(self, message, context=context)
        ValueError.__init__(self, message)


class ConfigError(StoryboardError, ValueError):
    """Raised when storyboard configuration is malformed."""

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        StoryboardError.__init__(self, message, context=context)
        ValueError.__init__(self, message)


class TransitionError(StoryboardError):
    """Reason attached to a failed transition Outcome.

    These are never raised by ``transition_to``; callers read them from
    ``Outcome.reason``.
    """

    def __init__(
        self,
        message: str = "",
        *,
        scene: str | None = None,
        node_id: str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        ctx = dict(context or {})
        if scene is not None:
            ctx["scene"] = scene
        if node_id is not None:
            ctx["node_id"] = node_id
        super().__init__(message, context=ctx)


class ReentrantTransitionError(TransitionError):
    """A transition was requested while another one was in flight."""


class HandlerFailedError(TransitionError):
    """A handler reported failure (returned or signalled ``False``)."""


class HandlerError(TransitionError):
    """A handler raised, or returned a result that could not be awaited."""


class TransitionCancelledError(TransitionError):
    """The in-flight transition was cancelled."""


__all__ = [
    "StoryboardError",
    "UnknownSceneError",
    "SceneDefinitionError",
    "ConfigError",
    "TransitionError",
    "ReentrantTransitionError",
    "HandlerFailedError",
    "HandlerError",
    "TransitionCancelledError",
]
