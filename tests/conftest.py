"""Shared fixtures for bandcoach tests."""

from datetime import date
from pathlib import Path

import pytest

from bandcoach.catalog import load_catalog
from bandcoach.equipment import ResistanceModel
from bandcoach.knowledge import KnowledgeBase
from bandcoach.models import SessionContext
from bandcoach.planning import ProgressionEngine, SafetyFilter, SessionPlanner

CONFIG_DIR = Path(__file__).parent.parent / "src" / "bandcoach" / "config"


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep tests away from the user's .env, data dir and database."""
    monkeypatch.setenv("BANDCOACH_STORE", "json")
    monkeypatch.setenv("BANDCOACH_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("BANDCOACH_KNOWLEDGE", str(CONFIG_DIR / "knowledge.yaml"))
    monkeypatch.setenv("BANDCOACH_CATALOG", str(CONFIG_DIR / "catalog.yaml"))


@pytest.fixture
def knowledge() -> KnowledgeBase:
    return KnowledgeBase()


@pytest.fixture
def progression(knowledge) -> ProgressionEngine:
    return ProgressionEngine(knowledge)


@pytest.fixture
def safety(knowledge) -> SafetyFilter:
    return SafetyFilter(knowledge)


@pytest.fixture
def catalog():
    """The shipped catalog."""
    return load_catalog(str(CONFIG_DIR / "catalog.yaml"))


@pytest.fixture
def small_catalog():
    """Minimal catalog: one or two candidates per slot and block."""
    return [
        {"id": "jacks", "name": "Jumping jacks", "phase": "warmup"},
        {"id": "cat-cow", "name": "Cat-cow", "phase": "warmup"},
        {"id": "pelvic-tilts", "name": "Pelvic tilts", "phase": "mobility"},
        {"id": "open-book", "name": "Thoracic open book", "phase": "mobility"},
        {"id": "row", "name": "Bent-over band row", "phase": "strength", "equipment": ["band"]},
        {"id": "floor-press", "name": "Band floor press", "phase": "strength", "equipment": ["band"]},
        {"id": "rdl", "name": "Band Romanian deadlift", "phase": "strength", "equipment": ["band"]},
        {"id": "bridge", "name": "Glute bridge with mini-loop", "phase": "strength", "equipment": ["miniloop"]},
        {"id": "plank", "name": "Front plank", "phase": "core"},
        {"id": "childs-pose", "name": "Child's pose breathing", "phase": "cooldown"},
        {"id": "box-breathing", "name": "Box breathing", "phase": "cooldown"},
    ]


@pytest.fixture
def planner(knowledge, catalog) -> SessionPlanner:
    return SessionPlanner(knowledge, catalog, ResistanceModel())


@pytest.fixture
def make_context(knowledge):
    """Factory for session contexts with sensible defaults."""
    def _make(day="2024-03-04", minutes=30, **kwargs) -> SessionContext:
        return SessionContext.build(
            day=day,
            duration_minutes=minutes,
            supported_durations=knowledge.supported_durations,
            **kwargs,
        )
    return _make


@pytest.fixture
def monday() -> date:
    return date(2024, 3, 4)
