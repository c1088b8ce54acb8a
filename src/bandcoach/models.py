"""
Planning Core - Type Definitions

Dataclasses for the session context, athlete progression state, per-session
targets, the emitted session plan and the reported session result.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field, asdict
from datetime import date
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from .errors import InvalidContextError


REP_FAMILIES: Tuple[str, ...] = ("pull", "push", "posterior")
HOLD_FAMILY = "core"
FAMILIES: Tuple[str, ...] = REP_FAMILIES + (HOLD_FAMILY,)

DEFAULT_EQUIPMENT: FrozenSet[str] = frozenset({"bodyweight", "band", "clip_band", "miniloop", "stick", "rope"})

BLOCK_ORDER: Tuple[str, ...] = ("warmup", "mobility", "strength", "core", "cooldown")
BLOCK_TITLES: Dict[str, str] = {
    "warmup": "Warm-up",
    "mobility": "Mobility",
    "strength": "Strength",
    "core": "Core / Control",
    "cooldown": "Cooldown",
}


def parse_day(value) -> date:
    """Parse a calendar day key (date or ISO string)."""
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise InvalidContextError(f"Invalid day key: {value!r}")


def posterior_cap(pull_sets: int, ratio: float = 1.2) -> int:
    """Largest posterior set count allowed for a given pull set count."""
    return max(1, int(math.floor(pull_sets * ratio + 1e-9)))


# =============================================================================
# Context
# =============================================================================

class Effort(Enum):
    """3-level effort / RPE signal."""
    EASY = 1
    MODERATE = 2
    HARD = 3

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value) -> 'Effort':
        """
        Parse an effort level from an Effort, 1-3, or a label.

        Raises:
            InvalidContextError: If the value is out of range
        """
        if isinstance(value, Effort):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            if key.isdigit():
                value = int(key)
            else:
                aliases = {"easy": cls.EASY, "moderate": cls.MODERATE, "medium": cls.MODERATE, "hard": cls.HARD}
                if key in aliases:
                    return aliases[key]
                raise InvalidContextError(f"Unknown effort level: {value!r}")
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            raise InvalidContextError(f"Effort level out of range: {value!r}")


@dataclass(frozen=True)
class SessionContext:
    """Daily context flags for one planning call. Immutable once built."""
    day_key: date
    duration_minutes: int
    run_day: bool = False
    fasting: bool = False
    effort: Effort = Effort.MODERATE
    no_anchor: bool = True
    equipment: FrozenSet[str] = DEFAULT_EQUIPMENT

    @classmethod
    def build(
        cls,
        day,
        duration_minutes: int,
        run_day: bool = False,
        fasting: bool = False,
        effort=Effort.MODERATE,
        no_anchor: bool = True,
        equipment: Optional[Iterable[str]] = None,
        supported_durations: Tuple[int, ...] = (25, 30, 35),
    ) -> 'SessionContext':
        """
        Validate caller input and build a context.

        Raises:
            InvalidContextError: Unsupported duration or effort level
        """
        try:
            minutes = int(duration_minutes)
        except (TypeError, ValueError):
            raise InvalidContextError(f"Invalid session duration: {duration_minutes!r}")
        if minutes not in supported_durations:
            raise InvalidContextError(
                f"Unsupported session duration {minutes} min (supported: {list(supported_durations)})"
            )

        gear = frozenset(str(e).lower() for e in equipment) if equipment is not None else DEFAULT_EQUIPMENT
        gear = gear | {"bodyweight"}

        return cls(
            day_key=parse_day(day),
            duration_minutes=minutes,
            run_day=bool(run_day),
            fasting=bool(fasting),
            effort=Effort.parse(effort),
            no_anchor=bool(no_anchor),
            equipment=gear,
        )

    def seed_key(self) -> str:
        """Reproducibility key: same day + same flags -> same plan."""
        return "|".join([
            self.day_key.isoformat(),
            str(self.duration_minutes),
            "run" if self.run_day else "norun",
            "fast" if self.fasting else "fed",
            self.effort.label,
            "noanchor" if self.no_anchor else "anchorok",
        ])


# =============================================================================
# Progression State
# =============================================================================

@dataclass(frozen=True)
class FamilyProgress:
    """Progression record for one family. Hold families use hold_seconds only."""
    base_sets: int
    rep_index: int = 0
    resistance_level: int = 0
    hold_seconds: Optional[int] = None

    @property
    def is_hold(self) -> bool:
        return self.hold_seconds is not None


BASELINE_FAMILIES: Dict[str, FamilyProgress] = {
    "pull": FamilyProgress(base_sets=3, rep_index=2, resistance_level=0),
    "push": FamilyProgress(base_sets=3, rep_index=2, resistance_level=0),
    "posterior": FamilyProgress(base_sets=3, rep_index=2, resistance_level=0),
    "core": FamilyProgress(base_sets=2, hold_seconds=30),
}


def _as_int(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class AthleteProgressionState:
    """Persistent progression state for one athlete."""
    week: int = 1
    sessions_completed_in_week: int = 0
    streak: int = 0
    last_completed_day: Optional[date] = None
    hard_sessions_in_row: int = 0
    deload_armed: bool = False
    families: Dict[str, FamilyProgress] = field(default_factory=lambda: dict(BASELINE_FAMILIES))

    def family(self, name: str) -> FamilyProgress:
        return self.families.get(name, BASELINE_FAMILIES[name])

    def to_dict(self) -> Dict[str, Any]:
        """Serializable blob for the persistence boundary."""
        families = {}
        for name, fp in sorted(self.families.items()):
            if fp.is_hold:
                families[name] = {"hold_seconds": fp.hold_seconds, "base_sets": fp.base_sets}
            else:
                families[name] = {
                    "rep_index": fp.rep_index,
                    "resistance_level": fp.resistance_level,
                    "base_sets": fp.base_sets,
                }
        return {
            "week": self.week,
            "sessions_completed_in_week": self.sessions_completed_in_week,
            "streak": self.streak,
            "last_completed_day": self.last_completed_day.isoformat() if self.last_completed_day else None,
            "hard_sessions_in_row": self.hard_sessions_in_row,
            "deload_armed": self.deload_armed,
            "families": families,
        }

    @classmethod
    def from_dict(
        cls,
        raw: Optional[Dict[str, Any]],
        rep_menu_size: int = 7,
        resistance_levels: int = 3,
        sessions_per_week: int = 3,
        cap_ratio: float = 1.2,
    ) -> 'AthleteProgressionState':
        """
        Rebuild state from a persisted blob.

        Missing or malformed fields fall back to the neutral baseline instead of
        failing, and the spine-safety cap is re-clamped on load.
        """
        raw = raw if isinstance(raw, dict) else {}
        baseline = cls()

        last_day = raw.get("last_completed_day")
        try:
            last_day = parse_day(last_day) if last_day else None
        except InvalidContextError:
            last_day = None

        families: Dict[str, FamilyProgress] = {}
        raw_families = raw.get("families") if isinstance(raw.get("families"), dict) else {}
        for name, default in BASELINE_FAMILIES.items():
            entry = raw_families.get(name) if isinstance(raw_families.get(name), dict) else {}
            base_sets = max(1, _as_int(entry.get("base_sets"), default.base_sets))
            if default.is_hold:
                families[name] = FamilyProgress(
                    base_sets=base_sets,
                    hold_seconds=_as_int(entry.get("hold_seconds"), default.hold_seconds),
                )
            else:
                families[name] = FamilyProgress(
                    base_sets=base_sets,
                    rep_index=min(max(0, _as_int(entry.get("rep_index"), default.rep_index)), rep_menu_size - 1),
                    resistance_level=min(
                        max(0, _as_int(entry.get("resistance_level"), default.resistance_level)),
                        resistance_levels - 1,
                    ),
                )

        cap = posterior_cap(families["pull"].base_sets, cap_ratio)
        if families["posterior"].base_sets > cap:
            p = families["posterior"]
            families["posterior"] = FamilyProgress(
                base_sets=cap, rep_index=p.rep_index, resistance_level=p.resistance_level
            )

        return cls(
            week=max(1, _as_int(raw.get("week"), baseline.week)),
            sessions_completed_in_week=_as_int(raw.get("sessions_completed_in_week"), 0) % max(1, sessions_per_week),
            streak=max(0, _as_int(raw.get("streak"), 0)),
            last_completed_day=last_day,
            hard_sessions_in_row=max(0, _as_int(raw.get("hard_sessions_in_row"), 0)),
            deload_armed=bool(raw.get("deload_armed", False)),
            families=families,
        )


# =============================================================================
# Targets
# =============================================================================

@dataclass(frozen=True)
class FamilyTarget:
    """Today's prescription target for a rep-based family."""
    family: str
    sets: int
    reps: int
    rep_index: int
    resistance_level: int
    band: int


@dataclass(frozen=True)
class HoldTarget:
    """Today's prescription target for the hold family."""
    sets: int
    seconds: int


@dataclass(frozen=True)
class TargetSet:
    """Output of get_targets: everything the planner needs to size items."""
    week: int
    deload: bool
    multiplier: float
    rest_seconds: int
    families: Dict[str, FamilyTarget]
    hold: HoldTarget


# =============================================================================
# Plan
# =============================================================================

@dataclass(frozen=True)
class Resistance:
    """Concrete external resistance. value is kg for bands, a tier index for mini-loops."""
    kind: str
    value: float = 0.0
    label: Optional[str] = None

    def describe(self) -> str:
        if self.kind == "bodyweight":
            return "bodyweight"
        if self.label:
            return f"{self.kind.replace('_', ' ')} ({self.label})"
        return f"{self.kind.replace('_', ' ')} {self.value:g} kg"


@dataclass(frozen=True)
class PrescribedItem:
    """One movement with its dose inside a block."""
    movement_id: str
    name: str
    family: Optional[str]
    pattern: str
    dose_type: str
    sets: int
    reps: Optional[int]
    seconds: Optional[int]
    rest_seconds: int
    rep_seconds: int
    resistance: Optional[Resistance]
    estimated_seconds: int
    cues: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    extra: bool = False


@dataclass(frozen=True)
class Block:
    """Named block of the session."""
    phase: str
    name: str
    items: Tuple[PrescribedItem, ...]
    estimated_seconds: int
    instructions: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PlanMeta:
    """Plan-level metadata: timing closure, safety warnings, reproducibility seed."""
    day_key: str
    duration_minutes: int
    week: int
    deload: bool
    effort: str
    run_day: bool
    fasting: bool
    no_anchor: bool
    seed: str
    volume_multiplier: float
    block_seconds: Dict[str, int]
    total_seconds: int
    target_seconds: int
    time_delta_seconds: int
    time_closed: bool
    repair_iterations: int
    warnings: Tuple[str, ...] = ()
    omitted_slots: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SessionPlan:
    """Immutable session plan returned to the caller."""
    blocks: Tuple[Block, ...]
    meta: PlanMeta

    def block(self, phase: str) -> Optional[Block]:
        for b in self.blocks:
            if b.phase == phase:
                return b
        return None

    @property
    def strength_items(self) -> Tuple[PrescribedItem, ...]:
        b = self.block("strength")
        return b.items if b else ()

    def all_items(self) -> List[PrescribedItem]:
        return [item for b in self.blocks for item in b.items]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =============================================================================
# Results & History
# =============================================================================

@dataclass(frozen=True)
class SessionResult:
    """Reported performance for one completed session. Consumed once.

    A result without a usable day key (``day_key=None``) is folded in like a
    same-day resubmission: the streak and last completed day stay put.
    """
    day_key: Optional[date]
    effort: Effort
    performance: Dict[str, int] = field(default_factory=dict)
    technique_flags: Tuple[str, ...] = ()
    notes: str = ""
    plan_seed: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any], default_day: Optional[date] = None) -> 'SessionResult':
        """
        Build from caller input.

        Missing or malformed fields are defaulted rather than rejected: an
        unreadable day key becomes ``default_day``, a non-mapping performance
        becomes empty, and unknown families or non-numeric counts are dropped
        or zeroed. An out-of-range effort still raises.

        Args:
            raw: Caller-supplied result fields
            default_day: Day to use when the day key is missing or invalid

        Returns:
            SessionResult

        Raises:
            InvalidContextError: If the effort is not easy/moderate/hard
        """
        raw = raw if isinstance(raw, dict) else {}

        try:
            day = parse_day(raw["day_key"]) if raw.get("day_key") else default_day
        except InvalidContextError:
            day = default_day

        reported = raw.get("performance")
        performance = {}
        if isinstance(reported, dict):
            for name, value in reported.items():
                if name in FAMILIES and value is not None:
                    performance[name] = max(0, _as_int(value, 0))

        effort = raw.get("effort")
        flags = raw.get("technique_flags") or ()
        if isinstance(flags, str):
            flags = (flags,)

        return cls(
            day_key=day,
            effort=Effort.parse(effort if effort is not None else Effort.MODERATE),
            performance=performance,
            technique_flags=tuple(str(f) for f in flags),
            notes=str(raw.get("notes") or ""),
            plan_seed=raw.get("plan_seed"),
        )


@dataclass(frozen=True)
class HistoryRecord:
    """Immutable record appended to history after each completion."""
    day_key: str
    seed: Optional[str]
    week: int
    effort: str
    deload_applied: bool
    performance: Dict[str, int]
    technique_flags: Tuple[str, ...]
    notes: str
    recorded_at: str

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["technique_flags"] = list(self.technique_flags)
        return d

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'HistoryRecord':
        return cls(
            day_key=str(raw.get("day_key", "")),
            seed=raw.get("seed"),
            week=_as_int(raw.get("week"), 1),
            effort=str(raw.get("effort", "moderate")),
            deload_applied=bool(raw.get("deload_applied", False)),
            performance=dict(raw.get("performance") or {}),
            technique_flags=tuple(raw.get("technique_flags") or ()),
            notes=str(raw.get("notes") or ""),
            recorded_at=str(raw.get("recorded_at", "")),
        )
