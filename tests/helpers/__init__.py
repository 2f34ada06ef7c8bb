"""Test helper modules for the storyboard test suite.

- recording: Recorder, handler/listener factories that log call order
- io_utils: write YAML and text fixtures to disk
- cache_utils: reset process-wide caches between tests
"""
from __future__ import annotations

from helpers.cache_utils import reset_storyboard_caches
from helpers.io_utils import write_text, write_yaml
from helpers.recording import Recorder

__all__ = [
    "Recorder",
    "write_yaml",
    "write_text",
    "reset_storyboard_caches",
]
