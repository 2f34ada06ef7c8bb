from .exceptions import (
    ConfigError,
    HandlerError,
    HandlerFailedError,
    ReentrantTransitionError,
    SceneDefinitionError,
    StoryboardError,
    TransitionCancelledError,
    TransitionError,
    UnknownSceneError,
)
from .config import StoryboardSettings, configure, get_settings, load_config, reset_settings
from .events import EventBus, Subscription
from .outcome import Outcome
from .handlers import HandlerRegistry, noop, registry as handler_registry, wrap_handler
from .scenes import SceneSpec, normalize_definition
from .storyboard import Storyboard
from .loader import build_storyboard, load_storyboard, validate_definition
from .stdlib_logging import configure_from_settings, configure_stdlib_logging

__all__ = [
    # Engine
    "Storyboard",
    "Outcome",
    "EventBus",
    "Subscription",
    "SceneSpec",
    "normalize_definition",
    # Handlers
    "HandlerRegistry",
    "handler_registry",
    "wrap_handler",
    "noop",
    # Declarative definitions
    "build_storyboard",
    "load_storyboard",
    "validate_definition",
    # Configuration / logging
    "StoryboardSettings",
    "configure",
    "get_settings",
    "load_config",
    "reset_settings",
    "configure_stdlib_logging",
    "configure_from_settings",
    # Errors
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
