import os
import sys
from pathlib import Path

import pytest

# Keep the repository free of Python bytecode and __pycache__ artifacts during tests.
sys.dont_write_bytecode = True

TESTS_ROOT = Path(__file__).resolve().parent
REPO_ROOT = TESTS_ROOT.parent
SRC_ROOT = REPO_ROOT / "src"

# Make src/ importable as 'storyboard' and tests/ as 'helpers'
for p in (SRC_ROOT, TESTS_ROOT):
    if str(p) not in sys.path:
        sys.path.insert(0, str(p))


from helpers.cache_utils import reset_storyboard_caches

ENV_PREFIX = "STORYBOARD_"


@pytest.fixture(autouse=True)
def _isolate_storyboard_state(monkeypatch):
    """Give every test bundled-default settings and fresh global caches.

    A developer shell exporting STORYBOARD_* variables would otherwise change
    id prefixes and namespaced events under the tests.
    """
    for key in list(os.environ):
        if key.startswith(ENV_PREFIX):
            monkeypatch.delenv(key, raising=False)
    reset_storyboard_caches()
    yield
    reset_storyboard_caches()


@pytest.fixture(scope="session")
def repo_root() -> Path:
    """Get repository root path for tests."""
    return REPO_ROOT
