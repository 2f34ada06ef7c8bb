"""Process-unique identifiers for nodes and subscription tokens."""
from __future__ import annotations

import itertools
import threading

_lock = threading.Lock()
_counter = itertools.count(1)


def unique_id(prefix: str = "") -> str:
    """Return ``prefix`` followed by the next value of a process-wide counter."""
    with _lock:
        value = next(_counter)
    return f"{prefix}{value}"


def reset_ids_for_tests() -> None:
    """Test-only: restart the counter."""
    global _counter
    with _lock:
        _counter = itertools.count(1)


__all__ = ["unique_id", "reset_ids_for_tests"]
