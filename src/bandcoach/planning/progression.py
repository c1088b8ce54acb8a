"""
Progression State Machine

Owns per-family targets (rep index, resistance level, base sets, hold time)
and the athlete-level streak / fatigue / deload counters. Every transition is
value-in, value-out: the input state is never mutated.
"""

import logging
import math
from dataclasses import dataclass, replace
from datetime import date
from typing import Dict, List, Optional, Tuple

from ..errors import InvalidContextError
from ..knowledge import KnowledgeBase
from ..models import (
    BASELINE_FAMILIES,
    HOLD_FAMILY,
    REP_FAMILIES,
    AthleteProgressionState,
    Effort,
    FamilyProgress,
    FamilyTarget,
    HoldTarget,
    SessionContext,
    SessionResult,
    TargetSet,
    posterior_cap,
)

logger = logging.getLogger(__name__)

DEFAULT_HOLD_SECONDS = BASELINE_FAMILIES[HOLD_FAMILY].hold_seconds


def round_half_up(value: float) -> int:
    """Round .5 away from zero (Python's round() is banker's rounding)."""
    return int(math.floor(value + 0.5))


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


@dataclass(frozen=True)
class WeekProjection:
    """One week of a projected macrocycle."""
    week: int
    load_factor: float
    deload: bool


class ProgressionEngine:
    """
    Progression state machine for one athlete.

    - get_targets: read-only, today's sets/reps/holds/rest
    - apply_result: fold a completed session into a new state
    """

    def __init__(self, knowledge: Optional[KnowledgeBase] = None):
        """
        Initialize progression engine.

        Args:
            knowledge: Injected knowledge base (defaults to built-in values)
        """
        self.knowledge = knowledge or KnowledgeBase()
        self.config = self.knowledge.progression

    # =========================================================================
    # State
    # =========================================================================

    def initial_state(self) -> AthleteProgressionState:
        """Neutral baseline for a new athlete."""
        return AthleteProgressionState()

    def load_state(self, raw: Optional[Dict]) -> AthleteProgressionState:
        """Rebuild a state from a persisted blob using this knowledge base's menus."""
        return AthleteProgressionState.from_dict(
            raw,
            rep_menu_size=len(self.knowledge.rep_menu),
            resistance_levels=len(self.knowledge.resistance_levels),
            sessions_per_week=self.config.sessions_per_week,
            cap_ratio=self.config.posterior_to_pull_cap,
        )

    # =========================================================================
    # Volume
    # =========================================================================

    def s_curve_factor(self, week: int) -> float:
        """
        Load factor for a week of the macrocycle: slow ramp, plateau, taper.

        Args:
            week: Absolute training week (1-based); wraps every macrocycle

        Returns:
            Factor in roughly [floor, floor + span]
        """
        cfg = self.config
        total = max(2, cfg.macrocycle_weeks)
        week_in_cycle = ((max(1, week) - 1) % total) + 1
        x = (week_in_cycle - 1) / (total - 1)
        logistic = 1.0 / (1.0 + math.exp(-cfg.s_curve_k * (x - cfg.s_curve_mid)))
        factor = cfg.s_curve_floor + cfg.s_curve_span * logistic
        if week_in_cycle > total - cfg.taper_weeks:
            factor *= cfg.taper_multiplier
        return factor

    def is_deload(self, state: AthleteProgressionState) -> bool:
        """Deload when armed, or on the first session of every Nth week."""
        week_boundary = (
            state.week % self.config.deload_every_weeks == 0
            and state.sessions_completed_in_week == 0
        )
        return state.deload_armed or week_boundary

    def volume_multiplier(self, state: AthleteProgressionState, context: SessionContext) -> Tuple[float, bool]:
        """
        Single scalar volume multiplier for today.

        Returns:
            (multiplier, deload)
        """
        cfg = self.config
        deload = self.is_deload(state)

        multiplier = self.s_curve_factor(state.week)
        multiplier *= cfg.duration_adjustment.get(context.duration_minutes, 1.0)
        if context.run_day:
            multiplier *= cfg.run_day_multiplier
        if context.fasting:
            multiplier *= cfg.fasting_multiplier
        multiplier *= cfg.effort_multiplier.get(context.effort.label, 1.0)
        if deload:
            multiplier *= cfg.deload_multiplier

        return multiplier, deload

    # =========================================================================
    # Targets
    # =========================================================================

    def get_targets(self, state: AthleteProgressionState, context: SessionContext) -> TargetSet:
        """
        Compute today's targets. No mutation.

        Args:
            state: Current progression state
            context: Today's session context

        Returns:
            TargetSet for the planner

        Raises:
            InvalidContextError: If the duration is not supported
        """
        if context.duration_minutes not in self.knowledge.supported_durations:
            raise InvalidContextError(f"Unsupported session duration: {context.duration_minutes}")

        cfg = self.config
        menu = self.knowledge.rep_menu
        levels = self.knowledge.resistance_levels
        multiplier, deload = self.volume_multiplier(state, context)

        families: Dict[str, FamilyTarget] = {}
        for name in REP_FAMILIES:
            fp = state.family(name)
            rep_index = clamp(fp.rep_index, 0, len(menu) - 1)
            level = clamp(fp.resistance_level, 0, len(levels) - 1)
            families[name] = FamilyTarget(
                family=name,
                sets=clamp(round_half_up(fp.base_sets * multiplier), cfg.min_sets, cfg.max_sets),
                reps=menu[rep_index],
                rep_index=rep_index,
                resistance_level=level,
                band=levels[level],
            )

        # Spine-safety cap on today's sets
        cap = posterior_cap(families["pull"].sets, cfg.posterior_to_pull_cap)
        if families["posterior"].sets > cap:
            families["posterior"] = replace(families["posterior"], sets=cap)

        core = state.family(HOLD_FAMILY)
        hold = core.hold_seconds if core.hold_seconds is not None else DEFAULT_HOLD_SECONDS
        hold *= cfg.deload_hold_multiplier if deload else 1.0
        hold *= cfg.fasting_hold_multiplier if context.fasting else 1.0

        if deload:
            rest = cfg.deload_rest_seconds
        else:
            rest = cfg.rest_by_effort.get(context.effort.label, 35)

        return TargetSet(
            week=state.week,
            deload=deload,
            multiplier=round(multiplier, 4),
            rest_seconds=rest,
            families=families,
            hold=HoldTarget(
                sets=clamp(round_half_up(core.base_sets * multiplier), cfg.min_sets, cfg.max_sets),
                seconds=clamp(round_half_up(hold), cfg.hold_min_seconds, cfg.hold_max_seconds),
            ),
        )

    # =========================================================================
    # Transitions
    # =========================================================================

    def _next_streak(self, state: AthleteProgressionState, day: Optional[date]) -> Tuple[int, Optional[date]]:
        last = state.last_completed_day
        if day is None:
            # Undated result: same-day resubmission
            return state.streak, last
        if last is None:
            return 1, day
        gap = (day - last).days
        if gap == 0:
            return state.streak, last
        if gap == 1:
            return state.streak + 1, day
        if gap > 1:
            return 1, day
        # Back-dated submission: keep the newer day
        return state.streak, last

    def _advance_rep_family(self, fp: FamilyProgress, completed: int, hard: bool) -> FamilyProgress:
        """Apply the success / failure / ambiguous rule to one rep family."""
        cfg = self.config
        menu = self.knowledge.rep_menu
        top_rep = len(menu) - 1
        top_level = len(self.knowledge.resistance_levels) - 1

        target = menu[clamp(fp.rep_index, 0, top_rep)]
        success = completed >= target and not hard
        failure = completed < max(cfg.failure_floor_reps, target - cfg.failure_margin_reps) or hard

        if success:
            if fp.rep_index < top_rep:
                return replace(fp, rep_index=fp.rep_index + 1)
            if fp.resistance_level < top_level:
                return replace(
                    fp,
                    resistance_level=fp.resistance_level + 1,
                    rep_index=self.knowledge.middle_rep_index,
                )
            return replace(fp, base_sets=min(cfg.max_base_sets, fp.base_sets + 1))

        if failure:
            return replace(fp, rep_index=max(0, fp.rep_index - 1))

        return fp

    def apply_result(self, state: AthleteProgressionState, result: SessionResult) -> AthleteProgressionState:
        """
        Fold a completed session into a new progression state.

        Never fails on well-formed input; families missing from the result are
        left untouched.

        Args:
            state: State the session was planned from
            result: Reported performance

        Returns:
            New AthleteProgressionState
        """
        cfg = self.config
        hard = result.effort is Effort.HARD
        deload_on_entry = state.deload_armed

        # 1. Streak
        streak, last_day = self._next_streak(state, result.day_key)

        # 2. Effort row
        hard_in_row = state.hard_sessions_in_row + 1 if hard else 0

        # 3. Rep families
        families = {**BASELINE_FAMILIES, **state.families}
        for name in REP_FAMILIES:
            fp = state.family(name)
            if deload_on_entry:
                families[name] = replace(fp, rep_index=max(0, fp.rep_index - 1))
                continue
            if name not in result.performance:
                continue
            families[name] = self._advance_rep_family(fp, result.performance[name], hard)

        # 4. Hold family
        core = state.family(HOLD_FAMILY)
        hold = core.hold_seconds if core.hold_seconds is not None else DEFAULT_HOLD_SECONDS
        hold = hold - cfg.hold_step_seconds if hard else hold + cfg.hold_step_seconds
        families[HOLD_FAMILY] = replace(
            core, hold_seconds=clamp(hold, cfg.hold_min_seconds, cfg.hold_max_seconds)
        )

        # 5. Spine-safety cap
        pull, posterior = families["pull"], families["posterior"]
        cap = posterior_cap(pull.base_sets, cfg.posterior_to_pull_cap)
        if posterior.base_sets > cap:
            logger.info(f"Posterior base sets clamped {posterior.base_sets} -> {cap}")
            families["posterior"] = replace(posterior, base_sets=cap)

        # 6. Week advancement
        completed = (state.sessions_completed_in_week + 1) % cfg.sessions_per_week
        week = state.week + 1 if completed == 0 else state.week

        # 7. Deload consumption / arming
        if deload_on_entry:
            deload_armed = False
        else:
            deload_armed = hard_in_row >= cfg.hard_sessions_to_arm
            if deload_armed:
                logger.info(f"{hard_in_row} hard sessions in a row: deload armed for next session")

        return AthleteProgressionState(
            week=week,
            sessions_completed_in_week=completed,
            streak=streak,
            last_completed_day=last_day,
            hard_sessions_in_row=hard_in_row,
            deload_armed=deload_armed,
            families=families,
        )

    # =========================================================================
    # Reporting
    # =========================================================================

    def project_macrocycle(self, weeks: Optional[int] = None) -> List[WeekProjection]:
        """
        Project the load factor for each week of a macrocycle.

        Args:
            weeks: Number of weeks (default: macrocycle length)

        Returns:
            List of WeekProjection
        """
        weeks = weeks or self.config.macrocycle_weeks
        out = []
        for w in range(1, weeks + 1):
            factor = self.s_curve_factor(w)
            deload = w % self.config.deload_every_weeks == 0 or w == weeks
            if deload:
                factor = max(0.75, factor - 0.15)
            out.append(WeekProjection(week=w, load_factor=round(factor, 3), deload=deload))
        return out

    def summary(self, state: AthleteProgressionState) -> Dict:
        """Dashboard view of the current state."""
        menu = self.knowledge.rep_menu
        levels = self.knowledge.resistance_levels
        families = {}
        for name in REP_FAMILIES:
            fp = state.family(name)
            families[name] = {
                "reps": menu[clamp(fp.rep_index, 0, len(menu) - 1)],
                "band": levels[clamp(fp.resistance_level, 0, len(levels) - 1)],
                "base_sets": fp.base_sets,
            }
        core = state.family(HOLD_FAMILY)
        families[HOLD_FAMILY] = {"hold_seconds": core.hold_seconds, "base_sets": core.base_sets}

        return {
            "week": state.week,
            "session_in_week": state.sessions_completed_in_week + 1,
            "streak": state.streak,
            "last_completed_day": state.last_completed_day.isoformat() if state.last_completed_day else None,
            "hard_sessions_in_row": state.hard_sessions_in_row,
            "deload_next": self.is_deload(state),
            "families": families,
        }
