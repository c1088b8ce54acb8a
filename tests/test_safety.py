"""Tests for the safety classifier and filter."""

import pytest

from bandcoach.biomechanics import BodyFamily, DoseType, MovementPattern
from bandcoach.models import (
    Block,
    PlanMeta,
    PrescribedItem,
    Resistance,
    SessionPlan,
)


# =============================================================================
# Classification
# =============================================================================

@pytest.mark.parametrize("name, pattern", [
    ("Pallof press", MovementPattern.ANTI_ROTATION),
    ("Side plank", MovementPattern.ANTI_ROTATION),
    ("Front plank", MovementPattern.ANTI_EXTENSION),
    ("Band Romanian deadlift", MovementPattern.HINGE),
    ("Jumping jacks", MovementPattern.CARDIO),
    ("Plyo push-up", MovementPattern.PLYOMETRIC),
    ("Band tibialis raise", MovementPattern.TIBIALIS),
    ("Glute bridge", MovementPattern.GLUTE_BRIDGE),
    ("Split squat", MovementPattern.SQUAT),
    ("Band floor press", MovementPattern.PUSH),
    ("Bent-over band row", MovementPattern.PULL),
    ("Cat-cow", MovementPattern.GENERAL),
])
def test_classify_precedence(safety, name, pattern):
    assert safety.classify({"name": name}).pattern == pattern


def test_explicit_fields_override_inference(safety):
    profile = safety.classify({
        "name": "Prone band hamstring curl",
        "pattern": "general",
        "family": "posterior",
        "dose_type": "mixed",
        "requires_anchor": True,
        "allowed_max_resistance": 13.6,
    })
    assert profile.pattern == MovementPattern.GENERAL
    assert profile.family == BodyFamily.POSTERIOR
    assert profile.slot_family == "posterior"
    assert profile.dose_type == DoseType.MIXED
    assert profile.requires_anchor
    assert profile.allowed_max_resistance == 13.6


def test_load_table_and_lumbar_risk(safety):
    hinge = safety.classify({"name": "Band good morning"})
    assert (hinge.compressive_load, hinge.shear_load, hinge.lumbar_risk) == (2, 2, 3)

    plank = safety.classify({"name": "Front plank"})
    assert (plank.compressive_load, plank.shear_load, plank.lumbar_risk) == (0, 1, 0)
    assert plank.dose_type == DoseType.SECONDS
    assert plank.is_isometric

    row = safety.classify({"name": "Bent-over band row"})
    assert row.lumbar_risk == 1


def test_resistance_ceiling_defaults(safety):
    assert safety.classify({"name": "Band Romanian deadlift"}).allowed_max_resistance == 25
    assert safety.classify({"name": "Glute bridge"}).allowed_max_resistance == 25
    assert safety.classify({"name": "Band floor press"}).allowed_max_resistance == 35


def test_anchor_inferred_from_name(safety):
    assert safety.classify({"name": "Door-anchored seated row"}).requires_anchor
    assert safety.classify({"name": "Kneeling band pulldown"}).requires_anchor
    assert not safety.classify({"name": "Bent-over band row"}).requires_anchor


def test_classify_is_deterministic(safety):
    raw = {"name": "High-anchored face pull", "tags": ["shoulders"]}
    assert safety.classify(raw) == safety.classify(dict(raw))


# =============================================================================
# Validate
# =============================================================================

def test_run_day_rejects_hinge(safety, make_context):
    rdl = safety.classify({"name": "Band Romanian deadlift"})
    assert safety.validate(rdl, make_context()).accepted

    verdict = safety.validate(rdl, make_context(run_day=True))
    assert not verdict.accepted
    assert "hinge" in verdict.reason.lower()


def test_fasting_rejects_compressive_load(safety, make_context):
    squat = safety.classify({"name": "Band squat"})
    row = safety.classify({"name": "Bent-over band row"})
    assert not safety.validate(squat, make_context(fasting=True)).accepted
    assert safety.validate(row, make_context(fasting=True)).accepted


def test_deload_rejects_plyometrics(safety, make_context):
    hops = safety.classify({"name": "Pogo hops"})
    assert safety.validate(hops, make_context()).accepted
    assert not safety.validate(hops, make_context(), deload=True).accepted


def test_resistance_ceiling(safety, make_context):
    rdl = safety.classify({"name": "Band Romanian deadlift"})
    assert safety.validate(rdl, make_context(), resistance=Resistance("long_band", 25)).accepted
    assert not safety.validate(rdl, make_context(), resistance=Resistance("long_band", 35)).accepted
    # mini-loop tiers are not kilograms
    bridge = safety.classify({"name": "Glute bridge"})
    assert safety.validate(bridge, make_context(), resistance=Resistance("mini_loop", 5, "xxhard")).accepted


def test_every_failing_rule_is_reported(safety, make_context):
    rdl = safety.classify({"name": "Band Romanian deadlift"})
    verdict = safety.validate(
        rdl, make_context(run_day=True, fasting=True), resistance=Resistance("long_band", 35)
    )
    assert len(verdict.reasons) == 3


# =============================================================================
# No-anchor adaptation
# =============================================================================

def test_adapt_uses_declared_substitute(safety):
    pool = safety.classify_all([
        {"id": "row", "name": "Bent-over band row"},
        {"id": "pull-apart", "name": "Band pull-apart"},
        {"id": "seated", "name": "Door-anchored seated row", "adapted_id": "pull-apart"},
    ])
    assert safety.adapt_for_no_anchor(pool[2], pool).movement_id == "pull-apart"


def test_adapt_uses_inline_version(safety):
    profile = safety.classify({
        "id": "chest",
        "name": "Anchored chest press",
        "phase": "strength",
        "adapted_version": {"name": "Chest press, band behind back", "pattern": "push"},
    })
    adapted = safety.adapt_for_no_anchor(profile, [profile])
    assert adapted is not None
    assert not adapted.requires_anchor
    assert adapted.pattern == MovementPattern.PUSH
    assert adapted.phase == "strength"


def test_adapt_falls_back_to_same_pattern_then_family(safety):
    pool = safety.classify_all([
        {"id": "press", "name": "Band floor press"},
        {"id": "row", "name": "Bent-over band row"},
        {"id": "face-pull", "name": "High-anchored face pull"},
        {"id": "pallof", "name": "Anchored Pallof press"},
        {"id": "dead-bug", "name": "Dead bug"},
        {"id": "plank", "name": "Front plank"},
    ])
    assert safety.adapt_for_no_anchor(pool[2], pool).movement_id == "row"
    # no anchor-free anti-rotation: lowest-risk core movement, catalog order on ties
    assert safety.adapt_for_no_anchor(pool[3], pool).movement_id == "dead-bug"


def test_adapt_unavailable(safety):
    pool = safety.classify_all([{"name": "Door-anchored seated row"}])
    assert safety.adapt_for_no_anchor(pool[0], pool) is None


def test_anchor_free_movement_is_unchanged(safety):
    row = safety.classify({"name": "Bent-over band row"})
    assert safety.adapt_for_no_anchor(row, [row]) is row


# =============================================================================
# Cues, warnings, session checks
# =============================================================================

def test_cues_are_deduplicated_and_capped(safety, knowledge):
    cues = safety.cues_for(safety.classify({"name": "Band good morning"}))
    assert cues[:len(knowledge.universal_cues)] == knowledge.universal_cues
    assert "Hips back, shins near vertical." in cues
    assert len(cues) == len(set(cues)) <= 8


def test_warnings_for_hinge_and_run_day_plyometrics(safety, make_context):
    hinge = safety.classify({"name": "Band good morning"})
    warnings = safety.warnings_for(hinge, make_context())
    assert len(warnings) == 2  # range of motion + lumbar stress

    hops = safety.classify({"name": "Pogo hops"})
    assert safety.warnings_for(hops, make_context(run_day=True))
    assert not safety.warnings_for(safety.classify({"name": "Dead bug"}), make_context())


def _item(family, pattern, sets):
    return PrescribedItem(
        movement_id=f"{family}-{pattern}-{sets}", name=pattern, family=family, pattern=pattern,
        dose_type="reps", sets=sets, reps=12, seconds=None, rest_seconds=35, rep_seconds=5,
        resistance=None, estimated_seconds=0,
    )


def _plan(strength, other=()):
    meta = PlanMeta(
        day_key="2024-03-04", duration_minutes=30, week=1, deload=False, effort="moderate",
        run_day=False, fasting=False, no_anchor=True, seed="s", volume_multiplier=1.0,
        block_seconds={}, total_seconds=0, target_seconds=1800, time_delta_seconds=0,
        time_closed=True, repair_iterations=0,
    )
    return SessionPlan(
        blocks=(
            Block("warmup", "Warm-up", tuple(other), 0),
            Block("strength", "Strength", tuple(strength), 0),
        ),
        meta=meta,
    )


def test_validate_session_clean(safety):
    plan = _plan([_item("pull", "pull", 3), _item("posterior", "hinge", 3)])
    assert safety.validate_session(plan) == []


def test_validate_session_flags_posterior_volume(safety):
    plan = _plan([_item("pull", "pull", 2), _item("posterior", "glute_bridge", 3)])
    warnings = safety.validate_session(plan)
    assert len(warnings) == 1
    assert "Posterior" in warnings[0]


def test_validate_session_flags_hinge_count(safety):
    hinges = [_item(None, "hinge", 1), _item(None, "hinge", 1)]
    plan = _plan([_item("pull", "pull", 3), _item("posterior", "hinge", 3)], other=hinges)
    warnings = safety.validate_session(plan)
    assert any("hinge" in w for w in warnings)


def test_posterior_ceiling(safety):
    assert safety.posterior_ceiling(5) == 6
    assert safety.posterior_ceiling(1) == 1
