"""Normalisation of storyboard definitions into fixed-shape ``SceneSpec`` records.

Accepted definition shapes:

- a bare callable: shorthand for ``{"enter": fn}``
- a mapping ``{context?, initial?, scenes?, enter?, exit?, **helpers}``
- a ``SceneSpec``
- an existing ``Storyboard`` (only as a scene entry; reused as-is)
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Union

from .exceptions import SceneDefinitionError
from .handlers import Handler, noop

if TYPE_CHECKING:
    from .storyboard import Storyboard

HANDLERS = ("enter", "exit")
RESERVED = frozenset({"id", "initial", "scenes", "enter", "exit", "context", "current"})

SceneEntry = Union["SceneSpec", "Storyboard"]


@dataclass
class SceneSpec:
    enter: Handler = noop
    exit: Handler = noop
    # None for leaf scenes.
    scenes: Optional[Dict[str, SceneEntry]] = None
    initial: Optional[str] = None
    context: Any = None
    helpers: Dict[str, Handler] = field(default_factory=dict)
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_composite(self) -> bool:
        return self.scenes is not None


def _is_storyboard(value: Any) -> bool:
    from .storyboard import Storyboard

    return isinstance(value, Storyboard)


def _handler(value: Any, action: str, owner: str) -> Handler:
    if value is None:
        return noop
    if not callable(value):
        raise SceneDefinitionError(
            f"'{action}' of {owner} must be callable, got {type(value).__name__}",
            context={"scene": owner, "handler": action},
        )
    return value


def normalize_definition(definition: Any, *, owner: str = "storyboard") -> SceneSpec:
    """Turn a top-level definition into a ``SceneSpec``."""
    if isinstance(definition, SceneSpec):
        return definition
    if _is_storyboard(definition):
        raise SceneDefinitionError(
            f"{owner} is already a Storyboard; use it as a scene or call clone()",
            context={"scene": owner},
        )
    if callable(definition):
        return SceneSpec(enter=definition)
    if definition is None:
        definition = {}
    if not isinstance(definition, Mapping):
        raise SceneDefinitionError(
            f"Definition of {owner} must be a mapping or a callable, got {type(definition).__name__}",
            context={"scene": owner},
        )

    enter = _handler(definition.get("enter"), "enter", owner)
    exit_ = _handler(definition.get("exit"), "exit", owner)

    scenes: Optional[Dict[str, SceneEntry]] = None
    raw_scenes = definition.get("scenes")
    if raw_scenes is not None:
        if not isinstance(raw_scenes, Mapping):
            raise SceneDefinitionError(
                f"'scenes' of {owner} must be a mapping",
                context={"scene": owner},
            )
        scenes = {str(name): normalize_scene(entry, owner=str(name)) for name, entry in raw_scenes.items()}
        # A composite's own enter/exit become its implicit enter/exit scenes.
        for action, handler in (("enter", enter), ("exit", exit_)):
            if action not in scenes:
                scenes[action] = SceneSpec(enter=handler)

    initial = definition.get("initial")
    if initial is not None:
        initial = str(initial)
        if scenes is None:
            raise SceneDefinitionError(
                f"{owner} declares initial scene '{initial}' but has no scenes",
                context={"scene": owner, "initial": initial},
            )
        if initial not in scenes:
            raise SceneDefinitionError(
                f"Initial scene '{initial}' of {owner} is not one of its scenes",
                context={"scene": owner, "initial": initial, "scenes": sorted(scenes)},
            )

    helpers: Dict[str, Handler] = {}
    attributes: Dict[str, Any] = {}
    for key, value in definition.items():
        if key in RESERVED:
            continue
        if callable(value):
            helpers[str(key)] = value
        else:
            attributes[str(key)] = value

    return SceneSpec(
        enter=enter,
        exit=exit_,
        scenes=scenes,
        initial=initial,
        context=definition.get("context"),
        helpers=helpers,
        attributes=attributes,
    )


def normalize_scene(entry: Any, *, owner: str) -> SceneEntry:
    """Normalise one entry of a ``scenes`` mapping."""
    if _is_storyboard(entry):
        return entry
    return normalize_definition(entry, owner=f"scene '{owner}'")


def clone_spec(spec: SceneSpec) -> SceneSpec:
    """Copy ``spec`` so a node built from it shares no mutable state with the source.

    Nested storyboards are cloned; ``context`` is shared on purpose.
    """
    scenes: Optional[Dict[str, SceneEntry]] = None
    if spec.scenes is not None:
        scenes = {}
        for name, entry in spec.scenes.items():
            if isinstance(entry, SceneSpec):
                scenes[name] = clone_spec(entry)
            else:
                scenes[name] = entry.clone()
    return replace(
        spec,
        scenes=scenes,
        helpers=dict(spec.helpers),
        attributes=copy.deepcopy(spec.attributes),
    )


__all__ = [
    "HANDLERS",
    "RESERVED",
    "SceneSpec",
    "normalize_definition",
    "normalize_scene",
    "clone_spec",
]
