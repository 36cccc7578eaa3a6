"""
Root pytest configuration.

Puts ``src`` on the path before collection (pyproject's ``pythonpath`` covers
pytest runs; this covers IDE runners that ignore it) and isolates the
process-wide event bus between tests.
"""

import sys
from pathlib import Path

import pytest

SRC = str((Path(__file__).parent / "src").absolute())
if SRC not in sys.path:
    sys.path.insert(0, SRC)


@pytest.fixture(autouse=True)
def _reset_event_bus():
    """Fresh global event bus per test."""
    from domain.event_bus import reset_event_bus

    reset_event_bus()
    yield
    reset_event_bus()
