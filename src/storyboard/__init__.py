"""
Storyboard - hierarchical asynchronous state machines

A storyboard is a tree of scenes. Each scene has enter/exit handlers that
may finish immediately or later, and every node carries its own
priority-ordered event bus.
"""

from storyboard.core import (
    EventBus,
    HandlerRegistry,
    Outcome,
    Storyboard,
    StoryboardError,
    TransitionError,
    UnknownSceneError,
    build_storyboard,
    configure,
    handler_registry,
    load_storyboard,
)

__version__ = "1.0.0"
__all__ = [
    "__version__",
    "Storyboard",
    "Outcome",
    "EventBus",
    "HandlerRegistry",
    "handler_registry",
    "build_storyboard",
    "load_storyboard",
    "configure",
    "StoryboardError",
    "TransitionError",
    "UnknownSceneError",
]
