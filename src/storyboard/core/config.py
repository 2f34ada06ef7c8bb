"""
Storyboard configuration (YAML-only).

Configuration sources (highest to lowest priority):
1. Environment variables: STORYBOARD_<section>__<key>
2. User config file: explicit path, or the file named by STORYBOARD_CONFIG
3. Bundled defaults: storyboard.data/config/defaults.yaml
"""
from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from storyboard.data import read_yaml
from .exceptions import ConfigError
from .utils.merge import deep_merge

logger = logging.getLogger(__name__)

ENV_PREFIX = "STORYBOARD_"
CONFIG_PATH_ENV = "STORYBOARD_CONFIG"

LIFECYCLE_EVENTS = ("start", "exit", "enter", "end", "fail")


@dataclass(frozen=True)
class StoryboardSettings:
    """Resolved settings consumed by the engine."""

    scene_prefix: str = "scene"
    token_prefix: str = "t"
    namespaced_events: Tuple[str, ...] = ("exit", "enter", "fail")
    log_level: str = "INFO"
    log_path: Optional[Path] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "StoryboardSettings":
        ids = data.get("ids") or {}
        events = data.get("events") or {}
        log_cfg = data.get("logging") or {}

        namespaced = events.get("namespaced") or []
        if isinstance(namespaced, str):
            namespaced = [part.strip() for part in namespaced.split(",") if part.strip()]
        if not isinstance(namespaced, list):
            raise ConfigError(
                "events.namespaced must be a list of lifecycle event names",
                context={"value": namespaced},
            )
        unknown = [name for name in namespaced if name not in LIFECYCLE_EVENTS]
        if unknown:
            raise ConfigError(
                f"Unknown lifecycle events in events.namespaced: {', '.join(map(str, unknown))}",
                context={"allowed": list(LIFECYCLE_EVENTS)},
            )

        log_path = log_cfg.get("path")
        return cls(
            scene_prefix=str(ids.get("scene_prefix") or "scene"),
            token_prefix=str(ids.get("token_prefix") or "t"),
            namespaced_events=tuple(namespaced),
            log_level=str(log_cfg.get("level") or "INFO").upper(),
            log_path=Path(log_path).expanduser() if log_path else None,
            raw=data,
        )


def _as_bool(value: str) -> Optional[bool]:
    lowered = value.strip().lower()
    if lowered in {"true", "yes", "on"}:
        return True
    if lowered in {"false", "no", "off"}:
        return False
    return None


def _as_int(value: str) -> Optional[int]:
    try:
        return int(value.strip())
    except ValueError:
        return None


def _as_float(value: str) -> Optional[float]:
    try:
        return float(value.strip())
    except ValueError:
        return None


def _as_json(value: str) -> Any:
    stripped = value.strip()
    if not stripped or stripped[0] not in "[{\"":
        return None
    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        return None


def _coerce_type(value: str) -> Any:
    for caster in (_as_bool, _as_int, _as_float, _as_json):
        result = caster(value)
        if result is not None:
            return result
    return value.strip()


def _iter_env_overrides(environ: Dict[str, str]):
    for key in sorted(environ.keys()):
        if not key.startswith(ENV_PREFIX) or key == CONFIG_PATH_ENV:
            continue
        raw = key[len(ENV_PREFIX):]
        segs = raw.split("__")
        if not raw or any(seg == "" for seg in segs):
            raise ConfigError(f"Malformed {ENV_PREFIX}* key: '{key}'")
        yield [seg.lower() for seg in segs], _coerce_type(environ[key])


def _set_nested(root: Dict[str, Any], path: List[str], value: Any) -> None:
    cur = root
    for part in path[:-1]:
        nxt = cur.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            cur[part] = nxt
        cur = nxt
    cur[path[-1]] = value


def _read_user_config(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}", context={"path": str(path)})
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}", context={"path": str(path)}) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Config file must contain a mapping, got {type(data).__name__}",
            context={"path": str(path)},
        )
    return data


def load_config(
    path: Optional[Path] = None,
    *,
    environ: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Load and merge configuration as a plain dict."""
    env = dict(os.environ if environ is None else environ)

    # Copy: the bundled defaults are cached and must not be mutated.
    cfg: Dict[str, Any] = copy.deepcopy(read_yaml("config", "defaults.yaml") or {})

    if path is None and env.get(CONFIG_PATH_ENV):
        path = Path(env[CONFIG_PATH_ENV])
    if path is not None:
        cfg = deep_merge(cfg, _read_user_config(Path(path).expanduser()))
        logger.debug("Merged storyboard config from %s", path)

    for key_path, value in _iter_env_overrides(env):
        _set_nested(cfg, key_path, value)

    return cfg


_SETTINGS: Optional[StoryboardSettings] = None

_OVERRIDE_PATHS = {
    "scene_prefix": ("ids", "scene_prefix"),
    "token_prefix": ("ids", "token_prefix"),
    "namespaced_events": ("events", "namespaced"),
    "log_level": ("logging", "level"),
    "log_path": ("logging", "path"),
}


def get_settings() -> StoryboardSettings:
    """Return process-wide settings, loading them on first use."""
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = StoryboardSettings.from_mapping(load_config())
    return _SETTINGS


def configure(path: Optional[Path] = None, **overrides: Any) -> StoryboardSettings:
    """Load settings from ``path`` (plus env) and install them process-wide.

    Keyword overrides use the dataclass field names, e.g.
    ``configure(namespaced_events=("exit", "enter", "fail", "start", "end"))``.
    """
    global _SETTINGS
    cfg = load_config(path)
    unknown = set(overrides) - set(_OVERRIDE_PATHS)
    if unknown:
        raise ConfigError(f"Unknown settings: {', '.join(sorted(unknown))}")
    for name, value in overrides.items():
        if name == "namespaced_events":
            value = list(value)
        elif name == "log_path" and value is not None:
            value = str(value)
        _set_nested(cfg, list(_OVERRIDE_PATHS[name]), value)
    _SETTINGS = StoryboardSettings.from_mapping(cfg)
    return _SETTINGS


def reset_settings() -> None:
    """Test-only: drop cached settings so the next access reloads them."""
    global _SETTINGS
    _SETTINGS = None


__all__ = [
    "StoryboardSettings",
    "LIFECYCLE_EVENTS",
    "load_config",
    "get_settings",
    "configure",
    "reset_settings",
]
