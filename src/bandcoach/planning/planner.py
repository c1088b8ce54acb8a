"""
Session Planner

Turns (progression state, session context) into a deterministic, time-closed,
safety-filtered session plan.

Steps:
1. Seed a private RNG from the context
2. Read targets from the progression engine
3. Classify the catalog and drop unavailable equipment
4. Select strength movements (pull, push, posterior)
5. Size and re-validate each prescription with its resistance
6. Build the templated blocks (warm-up, mobility, core, cooldown)
7. Close the time gap
8. Attach session-level warnings
9. Freeze
"""

import hashlib
import logging
import random
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

from ..biomechanics import DoseType
from ..equipment import ResistanceModel
from ..knowledge import KnowledgeBase
from ..models import (
    REP_FAMILIES,
    AthleteProgressionState,
    PlanMeta,
    SessionContext,
    SessionPlan,
    TargetSet,
)
from .progression import ProgressionEngine
from .safety import MovementProfile, SafetyFilter
from .timing import TimeCloser, WorkingItem, WorkingPlan

logger = logging.getLogger(__name__)

TEMPLATED_BLOCKS = ("warmup", "mobility", "core", "cooldown")


def seeded_rng(seed_key: str) -> random.Random:
    """Private generator derived from the seed key only."""
    digest = hashlib.sha256(seed_key.encode("utf-8")).hexdigest()
    return random.Random(int(digest[:16], 16))


class SessionPlanner:
    """
    Generates complete session plans.

    Integrates:
    - Progression (sets/reps/holds/rest)
    - Safety filter (context gates, no-anchor adaptation)
    - Resistance model (concrete band / loop choice)
    - Time closure (fit the requested duration)
    """

    def __init__(
        self,
        knowledge: KnowledgeBase,
        catalog: Sequence[Dict],
        equipment: Optional[ResistanceModel] = None,
        safety: Optional[SafetyFilter] = None,
        progression: Optional[ProgressionEngine] = None,
    ):
        """
        Initialize session planner.

        Args:
            knowledge: Shared knowledge base
            catalog: Movement catalog records (read-only)
            equipment: Resistance model (default inventory when None)
            safety: Safety filter (built from knowledge when None)
            progression: Progression engine (built from knowledge when None)
        """
        self.knowledge = knowledge
        self.catalog = list(catalog)
        self.equipment = equipment or ResistanceModel()
        self.safety = safety or SafetyFilter(knowledge)
        self.progression = progression or ProgressionEngine(knowledge)
        self.closer = TimeCloser(knowledge.timing, knowledge.progression)

    # =========================================================================
    # Entry point
    # =========================================================================

    def plan(self, state: AthleteProgressionState, context: SessionContext) -> SessionPlan:
        """
        Plan one session. Pure: the same state and context give the same plan.

        Args:
            state: Current progression state (not mutated)
            context: Today's context

        Returns:
            Frozen SessionPlan

        Raises:
            InvalidContextError: If the context duration is unsupported
        """
        # 1. Seed
        seed_key = context.seed_key()
        rng = seeded_rng(seed_key)
        logger.info(f"Planning session {seed_key}")

        # 2. Targets
        targets = self.progression.get_targets(state, context)

        # 3. Classify
        profiles = [p for p in self.safety.classify_all(self.catalog) if self._has_equipment(p, context)]

        warnings: List[str] = []
        omitted: List[str] = []
        working = WorkingPlan(transition_seconds=self.knowledge.timing.transition_seconds)
        used = set()

        # 4-5. Strength selection and sizing
        strength_pool = [p for p in profiles if p.phase == "strength"]
        for slot in REP_FAMILIES:
            item = self._fill_strength_slot(slot, strength_pool, context, targets, rng, used, warnings)
            if item is None:
                omitted.append(slot)
                continue
            working.add(item)

        # 6. Templated blocks
        for phase in TEMPLATED_BLOCKS:
            pool = [p for p in profiles if p.phase == phase]
            self._fill_templated_block(phase, pool, context, targets, rng, used, working)

        # 7. Time closure
        target_seconds = context.duration_minutes * 60
        closure = self.closer.close(working, target_seconds)
        if not closure.closed:
            warnings.append(f"Could not fit {context.duration_minutes} min: off by {closure.delta_seconds:+d}s")

        blocks = working.freeze_blocks(self.knowledge.block_instructions)
        block_seconds = {b.phase: b.estimated_seconds for b in blocks}
        total = sum(block_seconds.values())

        meta = PlanMeta(
            day_key=context.day_key.isoformat(),
            duration_minutes=context.duration_minutes,
            week=targets.week,
            deload=targets.deload,
            effort=context.effort.label,
            run_day=context.run_day,
            fasting=context.fasting,
            no_anchor=context.no_anchor,
            seed=seed_key,
            volume_multiplier=targets.multiplier,
            block_seconds=block_seconds,
            total_seconds=total,
            target_seconds=target_seconds,
            time_delta_seconds=total - target_seconds,
            time_closed=closure.closed,
            repair_iterations=closure.iterations,
        )
        plan = SessionPlan(blocks=blocks, meta=meta)

        # 8. Session-level warnings
        warnings.extend(self.safety.validate_session(plan))
        plan = replace(plan, meta=replace(
            meta, warnings=tuple(dict.fromkeys(warnings)), omitted_slots=tuple(omitted)
        ))

        logger.info(
            f"Planned {total}s for target {target_seconds}s "
            f"(delta {total - target_seconds:+d}s, {closure.iterations} repairs)"
        )
        # 9. Frozen
        return plan

    # =========================================================================
    # Selection helpers
    # =========================================================================

    @staticmethod
    def _has_equipment(profile: MovementProfile, context: SessionContext) -> bool:
        available = set(context.equipment) | {"bodyweight"}
        return all(e in available for e in profile.equipment)

    def _candidates(
        self,
        pool: List[MovementProfile],
        context: SessionContext,
        deload: bool,
        used: set,
    ) -> List[MovementProfile]:
        """Context-valid, anchor-resolved, unused candidates in catalog order."""
        valid = [p for p in pool if self.safety.validate(p, context, deload).accepted]

        out: List[MovementProfile] = []
        seen = set(used)
        for p in valid:
            if context.no_anchor and p.requires_anchor:
                adapted = self.safety.adapt_for_no_anchor(p, valid)
                if adapted is None:
                    continue
                if adapted is not p and not (
                    self._has_equipment(adapted, context)
                    and self.safety.validate(adapted, context, deload).accepted
                ):
                    continue
                p = adapted
            if p.movement_id in seen:
                continue
            seen.add(p.movement_id)
            out.append(p)
        return out

    def _fill_strength_slot(
        self,
        slot: str,
        pool: List[MovementProfile],
        context: SessionContext,
        targets: TargetSet,
        rng: random.Random,
        used: set,
        warnings: List[str],
    ) -> Optional[WorkingItem]:
        slot_pool = [p for p in pool if p.slot_family == slot]
        candidates = [
            p for p in self._candidates(slot_pool, context, targets.deload, used)
            if p.slot_family == slot
        ]

        if slot == "posterior" and context.run_day:
            gentle = [p for p in candidates if p.lumbar_risk <= 1]
            if gentle:
                candidates = gentle

        if not candidates:
            logger.warning(f"No safe candidate for {slot} slot")
            warnings.append(f"No safe {slot} movement available today: slot omitted")
            return None

        profile = rng.choice(candidates)
        used.add(profile.movement_id)

        item = self._size_strength_item(slot, profile, context, targets)
        verdict = self.safety.validate(profile, context, targets.deload, item.resistance)
        if not verdict.accepted:
            # One step down in resistance and one set fewer, then re-check once
            item.resistance = self.equipment.step_down(item.resistance)
            item.sets = max(self.knowledge.progression.min_sets, item.sets - 1)
            verdict = self.safety.validate(profile, context, targets.deload, item.resistance)
            if not verdict.accepted:
                logger.warning(f"Omitting {profile.name}: {verdict.reason}")
                warnings.append(f"{profile.name} omitted: {verdict.reason}")
                return None
            logger.debug(f"Stepped {profile.name} down to {item.resistance.describe()}")
            warnings.append(f"{profile.name}: resistance reduced to {item.resistance.describe()}")

        return item

    def _size_strength_item(
        self,
        slot: str,
        profile: MovementProfile,
        context: SessionContext,
        targets: TargetSet,
    ) -> WorkingItem:
        target = targets.families[slot]
        tempo = self.knowledge.tempo

        reps: Optional[int] = target.reps
        seconds: Optional[int] = None
        if profile.dose_type == DoseType.SECONDS:
            reps, seconds = None, targets.hold.seconds

        resistance = self.equipment.load_for(
            profile.pattern, week=targets.week, preferred=target.band, equipment=profile.equipment
        )

        return WorkingItem(
            profile=profile,
            phase="strength",
            family=slot,
            sets=target.sets,
            reps=reps,
            seconds=seconds,
            rest_seconds=targets.rest_seconds,
            rep_seconds=tempo.rep_seconds,
            pause_seconds=tempo.mixed_pause_seconds if profile.dose_type == DoseType.MIXED else 0,
            resistance=resistance,
            cues=self.safety.cues_for(profile),
            warnings=self.safety.warnings_for(profile, context),
        )

    def _fill_templated_block(
        self,
        phase: str,
        pool: List[MovementProfile],
        context: SessionContext,
        targets: TargetSet,
        rng: random.Random,
        used: set,
        working: WorkingPlan,
    ) -> None:
        """Base items first, then extras while the block is under its budget."""
        template = self.knowledge.template(phase)
        budget = self.knowledge.block_budget_seconds(phase, context.duration_minutes)
        candidates = self._candidates(pool, context, targets.deload, used)

        count = 0
        while candidates and count < template.base_items + template.max_extras:
            extra = count >= template.base_items
            if extra and working.block_seconds(phase) >= budget:
                break
            profile = rng.choice(candidates)
            candidates.remove(profile)
            used.add(profile.movement_id)
            working.add(self._size_templated_item(phase, profile, context, targets, extra))
            count += 1

        if count < template.base_items:
            logger.debug(f"{phase}: only {count} of {template.base_items} base items available")

    def _size_templated_item(
        self,
        phase: str,
        profile: MovementProfile,
        context: SessionContext,
        targets: TargetSet,
        extra: bool,
    ) -> WorkingItem:
        template = self.knowledge.template(phase)
        sets = template.sets
        seconds = template.seconds
        if phase == "core":
            sets, seconds = targets.hold.sets, targets.hold.seconds

        timed = profile.dose_type == DoseType.SECONDS
        return WorkingItem(
            profile=profile,
            phase=phase,
            family=profile.slot_family if phase == "core" else None,
            sets=sets,
            reps=None if timed else template.reps,
            seconds=seconds if timed else None,
            rest_seconds=template.rest_seconds,
            rep_seconds=template.rep_seconds,
            pause_seconds=self.knowledge.tempo.mixed_pause_seconds if profile.dose_type == DoseType.MIXED else 0,
            cues=self.safety.cues_for(profile) if phase == "core" else (),
            warnings=self.safety.warnings_for(profile, context),
            extra=extra,
        )


# =============================================================================
# Rendering
# =============================================================================

def _format_dose(item) -> str:
    if item.seconds is not None:
        return f"{item.sets} x {item.seconds}s"
    return f"{item.sets} x {item.reps} reps"


def format_plan_text(plan: SessionPlan) -> str:
    """
    Format a session plan as readable text.

    Args:
        plan: Session plan

    Returns:
        Formatted text string
    """
    meta = plan.meta
    lines = []

    lines.append("=" * 60)
    lines.append(f"Session Plan: {meta.day_key}")
    lines.append("=" * 60)
    lines.append(f"\nDuration: {meta.duration_minutes} min (estimated {meta.total_seconds // 60}m {meta.total_seconds % 60:02d}s)")
    lines.append(f"Week: {meta.week}{' (deload)' if meta.deload else ''}")
    lines.append(f"Effort: {meta.effort.title()}")
    flags = [name for name, on in (("run day", meta.run_day), ("fasting", meta.fasting), ("no anchor", meta.no_anchor)) if on]
    if flags:
        lines.append(f"Flags: {', '.join(flags)}")
    lines.append(f"Volume: {int(round(meta.volume_multiplier * 100))}% of baseline")

    for block in plan.blocks:
        if not block.items:
            continue
        lines.append(f"\n{'─' * 60}")
        lines.append(f"{block.name.upper()} (~{block.estimated_seconds // 60} min)")
        lines.append('─' * 60)
        for text in block.instructions:
            lines.append(f"  {text}")

        for i, item in enumerate(block.items, 1):
            lines.append(f"\n{i}. {item.name}{' (extra)' if item.extra else ''}")
            lines.append(f"   {_format_dose(item)}, rest {item.rest_seconds}s")
            if item.resistance is not None and item.resistance.kind != "bodyweight":
                lines.append(f"   Resistance: {item.resistance.describe()}")
            for cue in item.cues[:3]:
                lines.append(f"   - {cue}")
            for warning in item.warnings:
                lines.append(f"   ⚠️  {warning}")

    if meta.warnings:
        lines.append(f"\n{'─' * 60}")
        lines.append("WARNINGS")
        lines.append('─' * 60)
        for warning in meta.warnings:
            lines.append(f"  ⚠️  {warning}")

    lines.append("\n" + "=" * 60)
    return "\n".join(lines)
