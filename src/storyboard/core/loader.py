"""Build storyboards from declarative (YAML) definitions.

Handlers are referenced by name and resolved through a
:class:`~storyboard.core.handlers.HandlerRegistry`::

    # intro.yaml
    initial: idle
    scenes:
      idle:
        exit: confirm_leave
      playing:
        initial: level1
        scenes:
          level1: load_level
          level2: load_level
    helpers:
      describe: describe_board
    attributes:
      title: Intro

Definitions are validated against ``schemas/storyboard.schema.yaml`` before
anything is built.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import jsonschema
import yaml
from jsonschema import Draft202012Validator
from jsonschema.exceptions import best_match

from storyboard.data import read_yaml
from .exceptions import SceneDefinitionError
from .handlers import HandlerRegistry, registry as default_registry
from .storyboard import Storyboard

logger = logging.getLogger(__name__)

SCHEMA_FILE = "storyboard.schema.yaml"


def load_schema() -> Dict[str, Any]:
    schema = read_yaml("schemas", SCHEMA_FILE)
    if not isinstance(schema, dict):
        raise ValueError(f"Schema must be a YAML mapping, got {type(schema).__name__}")
    return schema


def validate_definition_safe(definition: Any) -> List[str]:
    """Validate ``definition`` and return error messages (empty if valid)."""
    validator = Draft202012Validator(load_schema())
    found = []
    for error in validator.iter_errors(definition):
        # A scene failing both oneOf branches: report the closer miss.
        if error.context:
            error = best_match(error.context)
        found.append(error)

    errors: List[str] = []
    for error in sorted(found, key=lambda e: [str(part) for part in e.absolute_path]):
        location = "/".join(str(part) for part in error.absolute_path) or "<root>"
        errors.append(f"{location}: {error.message}")
    return errors


def validate_definition(definition: Any) -> None:
    """Raise :class:`SceneDefinitionError` if ``definition`` fails the schema."""
    try:
        errors = validate_definition_safe(definition)
    except jsonschema.SchemaError as exc:  # pragma: no cover - bundled schema is static
        raise SceneDefinitionError(f"Invalid storyboard schema: {exc.message}") from exc
    if errors:
        raise SceneDefinitionError(
            "Invalid storyboard definition:\n" + "\n".join(f"- {e}" for e in errors),
            context={"errors": errors},
        )


def _resolve(entry: Any, registry: HandlerRegistry, domain: str) -> Any:
    """Translate one declarative entry into the callable-based definition form."""
    if isinstance(entry, str):
        return registry.resolve(entry, domain)

    resolved: Dict[str, Any] = {}
    for action in ("enter", "exit"):
        if entry.get(action) is not None:
            resolved[action] = registry.resolve(entry[action], domain)
    if entry.get("initial") is not None:
        resolved["initial"] = entry["initial"]
    if entry.get("scenes") is not None:
        resolved["scenes"] = {
            name: _resolve(scene, registry, domain) for name, scene in entry["scenes"].items()
        }
    for name, handler_name in (entry.get("helpers") or {}).items():
        resolved[name] = registry.resolve(handler_name, domain)
    for name, value in (entry.get("attributes") or {}).items():
        if name in resolved:
            raise SceneDefinitionError(
                f"Attribute '{name}' clashes with a helper of the same name",
                context={"attribute": name},
            )
        resolved[name] = value
    return resolved


def build_storyboard(
    definition: Mapping[str, Any],
    *,
    registry: Optional[HandlerRegistry] = None,
    domain: str = HandlerRegistry.SHARED_DOMAIN,
    context: Any = None,
    validate: bool = True,
) -> Storyboard:
    """Build a :class:`Storyboard` from a declarative mapping."""
    if validate:
        validate_definition(definition)
    if not isinstance(definition, Mapping):
        raise SceneDefinitionError("A storyboard definition must be a mapping at the top level")

    resolved = _resolve(definition, registry or default_registry, domain)
    if context is not None:
        resolved["context"] = context
    board = Storyboard(resolved)
    logger.debug("Built storyboard %s from declarative definition", board.id)
    return board


def load_storyboard(
    path: Path,
    *,
    registry: Optional[HandlerRegistry] = None,
    domain: str = HandlerRegistry.SHARED_DOMAIN,
    context: Any = None,
) -> Storyboard:
    """Read a YAML definition from ``path`` and build it.

    Raises:
        FileNotFoundError: ``path`` does not exist.
        SceneDefinitionError: The YAML is malformed or fails validation.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Storyboard definition not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise SceneDefinitionError(
            f"Invalid YAML in {path}: {exc}",
            context={"path": str(path)},
        ) from exc
    if data is None:
        raise SceneDefinitionError(f"Storyboard definition is empty: {path}", context={"path": str(path)})

    logger.info("Loading storyboard definition from %s", path)
    return build_storyboard(data, registry=registry, domain=domain, context=context)


__all__ = [
    "load_schema",
    "validate_definition",
    "validate_definition_safe",
    "build_storyboard",
    "load_storyboard",
]
