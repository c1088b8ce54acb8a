"""
Session timing: per-item duration estimates and the time-closure loop.

The planner assembles a mutable WorkingPlan, closes the gap between its
estimated duration and the requested session length with one small repair per
iteration, then freezes it into an immutable SessionPlan.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..biomechanics import DoseType
from ..knowledge import ProgressionConfig, TimingConfig
from ..models import (
    BLOCK_ORDER,
    BLOCK_TITLES,
    Block,
    PrescribedItem,
    Resistance,
    posterior_cap,
)
from .safety import MovementProfile

logger = logging.getLogger(__name__)

SHRINK_SET_ORDER = ("posterior", "push", "pull")
GROW_SET_ORDER = ("pull", "push", "posterior")
DROPPABLE_BLOCKS = ("warmup", "mobility")


def estimate_item_seconds(
    dose_type: DoseType,
    sets: int,
    reps: Optional[int],
    seconds: Optional[int],
    rep_seconds: int,
    rest_seconds: int,
    transition_seconds: int,
    pause_seconds: int = 0,
) -> int:
    """
    Estimated wall-clock time for one prescribed item.

    time = sets * unit + (sets - 1) * rest + transition, where unit is
    reps * tempo, the hold length, or reps * (tempo + pause) for mixed dosing.
    """
    if dose_type == DoseType.SECONDS:
        unit = seconds or 0
    elif dose_type == DoseType.MIXED:
        unit = (reps or 0) * (rep_seconds + pause_seconds)
    else:
        unit = (reps or 0) * rep_seconds
    return sets * unit + max(0, sets - 1) * rest_seconds + transition_seconds


# =============================================================================
# Working plan (mutable while repairing)
# =============================================================================

@dataclass
class WorkingItem:
    """Mutable prescription used during assembly and time closure."""
    profile: MovementProfile
    phase: str
    family: Optional[str]
    sets: int
    reps: Optional[int]
    seconds: Optional[int]
    rest_seconds: int
    rep_seconds: int
    pause_seconds: int = 0
    resistance: Optional[Resistance] = None
    cues: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    extra: bool = False
    order: int = 0

    def estimate(self, transition_seconds: int) -> int:
        return estimate_item_seconds(
            self.profile.dose_type,
            self.sets,
            self.reps,
            self.seconds,
            self.rep_seconds,
            self.rest_seconds,
            transition_seconds,
            self.pause_seconds,
        )

    def freeze(self, transition_seconds: int) -> PrescribedItem:
        return PrescribedItem(
            movement_id=self.profile.movement_id,
            name=self.profile.name,
            family=self.family,
            pattern=self.profile.pattern.value,
            dose_type=self.profile.dose_type.value,
            sets=self.sets,
            reps=self.reps,
            seconds=self.seconds,
            rest_seconds=self.rest_seconds,
            rep_seconds=self.rep_seconds + self.pause_seconds,
            resistance=self.resistance,
            estimated_seconds=self.estimate(transition_seconds),
            cues=self.cues,
            warnings=self.warnings,
            extra=self.extra,
        )


@dataclass
class WorkingPlan:
    """Blocks of WorkingItems in session order."""
    transition_seconds: int = 15
    blocks: Dict[str, List[WorkingItem]] = field(
        default_factory=lambda: {phase: [] for phase in BLOCK_ORDER}
    )
    _counter: int = 0

    def add(self, item: WorkingItem) -> WorkingItem:
        self._counter += 1
        item.order = self._counter
        self.blocks.setdefault(item.phase, []).append(item)
        return item

    def block_seconds(self, phase: str) -> int:
        return sum(i.estimate(self.transition_seconds) for i in self.blocks.get(phase, []))

    def total_seconds(self) -> int:
        return sum(self.block_seconds(phase) for phase in self.blocks)

    def strength_item(self, family: str) -> Optional[WorkingItem]:
        for item in self.blocks.get("strength", []):
            if item.family == family:
                return item
        return None

    def freeze_blocks(self, instructions: Dict[str, Tuple[str, ...]]) -> Tuple[Block, ...]:
        blocks = []
        for phase in BLOCK_ORDER:
            items = tuple(i.freeze(self.transition_seconds) for i in self.blocks.get(phase, []))
            blocks.append(Block(
                phase=phase,
                name=BLOCK_TITLES[phase],
                items=items,
                estimated_seconds=sum(i.estimated_seconds for i in items),
                instructions=tuple(instructions.get(phase, ())),
            ))
        return tuple(blocks)


# =============================================================================
# Time closure
# =============================================================================

@dataclass(frozen=True)
class ClosureResult:
    """Outcome of the time-closure loop."""
    iterations: int
    delta_seconds: int
    closed: bool


class TimeCloser:
    """Bounded greedy repair loop: one repair per iteration, never a search."""

    def __init__(self, timing: TimingConfig, progression: ProgressionConfig):
        self.timing = timing
        self.progression = progression

    # -------------------------------------------------------------------------
    # Shrink repairs
    # -------------------------------------------------------------------------

    def _remove_set(self, plan: WorkingPlan) -> bool:
        for family in SHRINK_SET_ORDER:
            item = plan.strength_item(family)
            if item and item.sets > self.progression.min_sets:
                item.sets -= 1
                logger.debug(f"Repair: {family} sets -> {item.sets}")
                return True
        return False

    def _drop_extra(self, plan: WorkingPlan) -> bool:
        extras = [i for phase in DROPPABLE_BLOCKS for i in plan.blocks.get(phase, []) if i.extra]
        if not extras:
            return False
        earliest = min(extras, key=lambda i: i.order)
        plan.blocks[earliest.phase].remove(earliest)
        logger.debug(f"Repair: dropped extra {earliest.phase} item {earliest.profile.name}")
        return True

    def _shave_rest(self, plan: WorkingPlan) -> bool:
        floor = self.timing.rest_floor_seconds
        changed = False
        for item in plan.blocks.get("strength", []):
            if item.rest_seconds > floor:
                item.rest_seconds = max(floor, item.rest_seconds - self.timing.rest_step_seconds)
                changed = True
        if changed:
            logger.debug("Repair: shaved strength rest")
        return changed

    # -------------------------------------------------------------------------
    # Grow repairs
    # -------------------------------------------------------------------------

    def _add_set(self, plan: WorkingPlan) -> bool:
        max_sets = self.progression.max_sets
        pull = plan.strength_item("pull")
        for family in GROW_SET_ORDER:
            item = plan.strength_item(family)
            if item is None:
                continue
            ceiling = max_sets
            if family == "posterior":
                pull_sets = pull.sets if pull else self.progression.min_sets
                ceiling = min(max_sets, posterior_cap(pull_sets, self.progression.posterior_to_pull_cap))
            if item.sets < ceiling:
                item.sets += 1
                logger.debug(f"Repair: {family} sets -> {item.sets}")
                return True
        return False

    def close(self, plan: WorkingPlan, target_seconds: int) -> ClosureResult:
        """
        Repair the plan in place until it is within tolerance of the target.

        Args:
            plan: Working plan (mutated)
            target_seconds: Requested session length in seconds

        Returns:
            ClosureResult with the final delta (positive means too long)
        """
        tolerance = self.timing.tolerance_seconds
        iterations = 0
        delta = plan.total_seconds() - target_seconds

        while abs(delta) > tolerance and iterations < self.timing.max_iterations:
            if delta > 0:
                repaired = self._remove_set(plan) or self._drop_extra(plan) or self._shave_rest(plan)
            else:
                repaired = self._add_set(plan)
            if not repaired:
                logger.debug(f"No repair applies with delta {delta:+d}s")
                break
            iterations += 1
            delta = plan.total_seconds() - target_seconds

        closed = abs(delta) <= tolerance
        if not closed:
            logger.warning(f"Time gap not closed after {iterations} repairs: {delta:+d}s")
        return ClosureResult(iterations=iterations, delta_seconds=delta, closed=closed)
