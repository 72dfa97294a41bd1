"""Test configuration ensuring the project source tree is importable."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
TESTS = ROOT / "tests"

for path in (str(ROOT), str(TESTS)):
    if path in sys.path:
        sys.path.remove(path)
sys.path.insert(0, str(ROOT))
sys.path.insert(1, str(TESTS))

from bytecode_builders import sample_tree  # noqa: E402


@pytest.fixture
def tree():
    return sample_tree()


@pytest.fixture(scope="session")
def lua53():
    """Return the ``lupa.lua53`` module, skipping when it is unavailable."""

    return pytest.importorskip("lupa.lua53")
