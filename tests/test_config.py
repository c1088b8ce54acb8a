"""Tests for the knowledge base, movement catalog and equipment model."""

import logging
from pathlib import Path

import pytest

import bandcoach
from bandcoach.biomechanics import MovementPattern
from bandcoach.catalog import DEFAULT_CATALOG_PATH, PHASES, load_catalog, normalize_movement, slugify
from bandcoach.equipment import Inventory, ResistanceModel, nearest_available, progressed_load
from bandcoach.errors import CatalogError
from bandcoach.knowledge import (
    DEFAULT_KNOWLEDGE_PATH,
    DEFAULT_TEMPLATES,
    KnowledgeBase,
    ProgressionConfig,
    TimingConfig,
)
from bandcoach.models import Resistance

CONFIG_DIR = Path(__file__).parent.parent / "src" / "bandcoach" / "config"


# =============================================================================
# Knowledge base
# =============================================================================

def test_knowledge_defaults(knowledge):
    assert knowledge.rep_menu == (8, 10, 12, 14, 16, 18, 20)
    assert knowledge.resistance_levels == (15, 25, 35)
    assert knowledge.supported_durations == (25, 30, 35)
    assert knowledge.tempo.rep_seconds == 5
    assert knowledge.middle_rep_index == 3
    assert knowledge.progression.posterior_to_pull_cap == 1.2
    assert knowledge.timing.tolerance_seconds == 90


def test_shipped_yaml_matches_defaults():
    kb = KnowledgeBase.from_yaml(str(CONFIG_DIR / "knowledge.yaml"))
    assert kb.progression == ProgressionConfig()
    assert kb.timing == TimingConfig()
    assert kb.templates == DEFAULT_TEMPLATES
    assert kb.rep_menu == KnowledgeBase().rep_menu


def test_partial_yaml_falls_back_to_defaults(tmp_path):
    path = tmp_path / "knowledge.yaml"
    path.write_text("tempo:\n  down: 3\nprogression:\n  max_sets: 5\n")

    kb = KnowledgeBase.from_yaml(str(path))

    assert kb.tempo.down == 3
    assert kb.tempo.rep_seconds == 6
    assert kb.progression.max_sets == 5
    assert kb.progression.min_sets == 1
    assert kb.timing == TimingConfig()
    assert kb.universal_cues == KnowledgeBase().universal_cues


def test_missing_file_gives_defaults(tmp_path):
    assert KnowledgeBase.from_yaml(str(tmp_path / "nope.yaml")) == KnowledgeBase()


def test_env_var_selects_file(tmp_path, monkeypatch):
    path = tmp_path / "kb.yaml"
    path.write_text("version: '9.9'\nmenus:\n  rep_menu: [10, 8, 12]\n")
    monkeypatch.setenv("BANDCOACH_KNOWLEDGE", str(path))

    kb = KnowledgeBase.from_yaml()
    assert kb.version == "9.9"
    assert kb.rep_menu == (8, 10, 12)
    assert kb.middle_rep_index == 1


def test_unknown_keys_are_ignored_with_warning(caplog):
    with caplog.at_level(logging.WARNING):
        kb = KnowledgeBase.from_dict({"timing": {"tolerance_seconds": 60, "bogus": 1}})
    assert kb.timing.tolerance_seconds == 60
    assert "bogus" in caplog.text


def test_template_override_keeps_other_templates():
    kb = KnowledgeBase.from_dict({"templates": {"warmup": {"base_items": 3}}})
    assert kb.template("warmup").base_items == 3
    assert kb.template("cooldown") == DEFAULT_TEMPLATES["cooldown"]


@pytest.mark.parametrize("minutes, seconds", [(25, 180), (30, 240), (35, 300)])
def test_block_budget_interpolates(knowledge, minutes, seconds):
    assert knowledge.block_budget_seconds("warmup", minutes) == seconds


# =============================================================================
# Catalog
# =============================================================================

def test_shipped_catalog_loads(catalog):
    assert len(catalog) >= 30
    ids = [m["id"] for m in catalog]
    assert len(ids) == len(set(ids))
    assert {m["phase"] for m in catalog} == set(PHASES)


def test_normalize_movement_defaults():
    m = normalize_movement({"name": "Band Pull-Apart", "phase": "Warm-up", "equipment": "band"})
    assert m["id"] == "band-pull-apart"
    assert m["phase"] == "warmup"
    assert m["equipment"] == ["band"]
    assert m["pattern"] is None
    assert m["requires_anchor"] is None


def test_normalize_unknown_phase_is_strength():
    assert normalize_movement({"name": "Thing", "phase": "mystery"})["phase"] == "strength"
    assert normalize_movement({"name": "Thing"})["equipment"] == ["bodyweight"]


def test_slugify():
    assert slugify("Child's pose breathing") == "child-s-pose-breathing"
    assert slugify("!!!") == "movement"


def test_load_catalog_accepts_plain_list(tmp_path):
    path = tmp_path / "catalog.yaml"
    path.write_text("- name: Push-up\n- name: Dead bug\n  phase: core\n- not a record\n")
    movements = load_catalog(str(path))
    assert [m["id"] for m in movements] == ["push-up", "dead-bug"]


def test_load_catalog_missing_file(tmp_path):
    with pytest.raises(CatalogError):
        load_catalog(str(tmp_path / "missing.yaml"))


# =============================================================================
# Equipment
# =============================================================================

def test_nearest_available_prefers_lower_on_ties():
    assert nearest_available(20, (15, 25, 35)) == 15
    assert nearest_available(27, (15, 25, 35)) == 25
    assert nearest_available(99, (15, 25, 35)) == 35


def test_load_rises_every_two_weeks():
    assert progressed_load(15, 10, 1) == 15
    assert progressed_load(15, 10, 2) == 15
    assert progressed_load(15, 10, 3) == 25


@pytest.mark.parametrize("pattern, week, expected", [
    (MovementPattern.PULL, 1, Resistance("long_band", 15)),
    (MovementPattern.PULL, 3, Resistance("long_band", 25)),
    (MovementPattern.HINGE, 20, Resistance("long_band", 35)),
    (MovementPattern.GENERAL, 1, Resistance("clip_band", 9.1)),
    (MovementPattern.GENERAL, 3, Resistance("clip_band", 13.6)),
    (MovementPattern.TIBIALIS, 1, Resistance("clip_band", 4.5)),
    (MovementPattern.GLUTE_BRIDGE, 1, Resistance("mini_loop", 2, "medium")),
    (MovementPattern.CARDIO, 1, Resistance("bodyweight")),
])
def test_load_for_pattern(pattern, week, expected):
    assert ResistanceModel().load_for(pattern, week=week) == expected


def test_preferred_band_wins_for_long_bands():
    model = ResistanceModel()
    assert model.load_for(MovementPattern.PUSH, week=1, preferred=35).value == 35
    assert model.load_for(MovementPattern.PUSH, week=1, preferred=30).value == 25


def test_bodyweight_when_movement_uses_no_matching_gear():
    model = ResistanceModel()
    assert model.load_for(MovementPattern.PUSH, equipment=["bodyweight"]).kind == "bodyweight"
    assert model.load_for(MovementPattern.GLUTE_BRIDGE, equipment=["band"]).kind == "bodyweight"


def test_step_down():
    model = ResistanceModel()
    assert model.step_down(Resistance("long_band", 25)) == Resistance("long_band", 15)
    assert model.step_down(Resistance("long_band", 15)) == Resistance("long_band", 15)
    assert model.step_down(Resistance("clip_band", 9.1)) == Resistance("clip_band", 4.5)
    assert model.step_down(Resistance("mini_loop", 2, "medium")) == Resistance("mini_loop", 1, "light")
    assert model.step_down(Resistance("bodyweight")) == Resistance("bodyweight")


def test_custom_inventory():
    model = ResistanceModel(Inventory(long_bands_kg=(10, 20)))
    assert model.load_for(MovementPattern.PULL, week=5).value == 20
    assert model.describe_inventory()["long_bands_kg"] == [10, 20]


def test_resistance_describe():
    assert Resistance("long_band", 25).describe() == "long band 25 kg"
    assert Resistance("mini_loop", 2, "medium").describe() == "mini loop (medium)"
    assert Resistance("bodyweight").describe() == "bodyweight"


def test_config_files_ship_inside_the_package(monkeypatch):
    package_dir = Path(bandcoach.__file__).parent
    assert DEFAULT_CATALOG_PATH == package_dir / "config" / "catalog.yaml"
    assert DEFAULT_KNOWLEDGE_PATH == package_dir / "config" / "knowledge.yaml"

    monkeypatch.delenv("BANDCOACH_CATALOG")
    monkeypatch.delenv("BANDCOACH_KNOWLEDGE")
    assert len(load_catalog()) >= 30
    assert KnowledgeBase.from_yaml().templates == DEFAULT_TEMPLATES
