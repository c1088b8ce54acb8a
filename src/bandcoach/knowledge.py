"""
Knowledge Base

Tempo constants, menus, progression parameters, block templates and cue text.
Loaded once from config/knowledge.yaml and injected into every component;
any section or field missing from the YAML falls back to the defaults below.
"""
from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_KNOWLEDGE_PATH = Path(__file__).parent / 'config' / 'knowledge.yaml'


# =============================================================================
# Configuration Sections
# =============================================================================

@dataclass(frozen=True)
class TempoConfig:
    """Seconds per phase of a repetition (default 2-1-2)."""
    down: int = 2
    hold: int = 1
    up: int = 2
    mixed_pause_seconds: int = 2  # extra end-range hold for mixed dosing

    @property
    def rep_seconds(self) -> int:
        return self.down + self.hold + self.up


@dataclass(frozen=True)
class ProgressionConfig:
    """Parameters for the progression state machine."""

    sessions_per_week: int = 3
    macrocycle_weeks: int = 12

    # S-curve (logistic) over the macrocycle
    s_curve_k: float = 8.0
    s_curve_mid: float = 0.5
    s_curve_floor: float = 0.85
    s_curve_span: float = 0.30
    taper_weeks: int = 1
    taper_multiplier: float = 0.90

    # Deload
    deload_every_weeks: int = 4
    deload_multiplier: float = 0.70
    deload_hold_multiplier: float = 0.85
    hard_sessions_to_arm: int = 2

    # Context modifiers
    duration_adjustment: Dict[int, float] = field(default_factory=lambda: {25: 0.90, 30: 1.00, 35: 1.10})
    run_day_multiplier: float = 0.90
    fasting_multiplier: float = 0.85
    fasting_hold_multiplier: float = 0.95
    effort_multiplier: Dict[str, float] = field(default_factory=lambda: {"easy": 1.0, "moderate": 1.0, "hard": 0.90})

    # Rest lookup
    rest_by_effort: Dict[str, int] = field(default_factory=lambda: {"easy": 25, "moderate": 35, "hard": 45})
    deload_rest_seconds: int = 25

    # Bounds
    min_sets: int = 1
    max_sets: int = 6
    max_base_sets: int = 5
    hold_min_seconds: int = 15
    hold_max_seconds: int = 60
    hold_step_seconds: int = 5

    # Advancement thresholds
    failure_floor_reps: int = 6
    failure_margin_reps: int = 4

    # Spine safety cap: posterior sets <= floor(pull sets * cap)
    posterior_to_pull_cap: float = 1.2


@dataclass(frozen=True)
class TimingConfig:
    """Parameters for duration estimation and the time-closure loop."""
    tolerance_seconds: int = 90
    max_iterations: int = 50
    transition_seconds: int = 15
    rest_floor_seconds: int = 15
    rest_step_seconds: int = 5


@dataclass(frozen=True)
class BlockTemplate:
    """Fixed template for a non-strength block, scaled by session length."""
    minutes_short: float = 3.0   # budget for the shortest supported session
    minutes_long: float = 5.0    # budget for the longest supported session
    base_items: int = 2
    max_extras: int = 2
    sets: int = 1
    reps: int = 10
    seconds: int = 30
    rest_seconds: int = 10
    rep_seconds: int = 2


DEFAULT_TEMPLATES: Dict[str, BlockTemplate] = {
    "warmup": BlockTemplate(minutes_short=3, minutes_long=5, base_items=2, max_extras=2,
                            sets=1, reps=12, seconds=45, rest_seconds=10, rep_seconds=2),
    "mobility": BlockTemplate(minutes_short=2, minutes_long=3, base_items=2, max_extras=1,
                              sets=2, reps=10, seconds=30, rest_seconds=10, rep_seconds=4),
    "core": BlockTemplate(minutes_short=2, minutes_long=3, base_items=1, max_extras=1,
                          sets=2, reps=8, seconds=30, rest_seconds=20, rep_seconds=4),
    "cooldown": BlockTemplate(minutes_short=2, minutes_long=3, base_items=2, max_extras=1,
                              sets=1, reps=8, seconds=40, rest_seconds=5, rep_seconds=4),
}


DEFAULT_UNIVERSAL_CUES: Tuple[str, ...] = (
    "Neutral neck, chin slightly tucked.",
    "Ribs down, abdomen braced.",
    "Exhale through the effort, never hold your breath.",
)

DEFAULT_PATTERN_CUES: Dict[str, Tuple[str, ...]] = {
    "hinge": ("Hips back, shins near vertical.", "Keep the band close; stop if the low back takes over."),
    "pull": ("Shoulders away from the ears.", "Drive with the elbows, not the neck."),
    "push": ("Ribs down, glutes on.", "Elbows at 30-45 degrees."),
    "anti_extension": ("Slight posterior pelvic tilt, abdomen braced.",),
    "anti_rotation": ("Hips square, resist the twist.",),
    "plyometric": ("Land softly, knees tracking over toes.",),
}

DEFAULT_INSTRUCTIONS: Dict[str, Tuple[str, ...]] = {
    "warmup": ("Progressive warm-up: moderate intensity, steady breathing.",),
    "mobility": ("Controlled range of motion, pain-free, no bouncing.",),
    "strength": ("Complete all sets of one exercise before moving on.", "Rep tempo: 2s down / 1s pause / 2s up."),
    "core": ("Quality over quantity: neutral spine, keep breathing.",),
    "cooldown": ("Down-regulate: relax into each stretch, slow diaphragmatic breathing.",),
}


# =============================================================================
# Knowledge Base
# =============================================================================

def _build_section(cls, raw: Optional[Dict[str, Any]]):
    """Build a frozen section from a YAML mapping, ignoring unknown keys."""
    if not raw:
        return cls()
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = set(raw) - known
    if unknown:
        logger.warning(f"Ignoring unknown {cls.__name__} keys: {sorted(unknown)}")
    return cls(**{k: v for k, v in raw.items() if k in known})


@dataclass(frozen=True)
class KnowledgeBase:
    """
    Versioned, swappable configuration consulted by every planning component.

    Immutable once built; pass the same instance to the progression engine,
    safety filter and planner.
    """

    version: str = "2.0.0"
    rep_menu: Tuple[int, ...] = (8, 10, 12, 14, 16, 18, 20)
    resistance_levels: Tuple[int, ...] = (15, 25, 35)
    supported_durations: Tuple[int, ...] = (25, 30, 35)
    tempo: TempoConfig = field(default_factory=TempoConfig)
    progression: ProgressionConfig = field(default_factory=ProgressionConfig)
    timing: TimingConfig = field(default_factory=TimingConfig)
    templates: Dict[str, BlockTemplate] = field(default_factory=lambda: dict(DEFAULT_TEMPLATES))
    universal_cues: Tuple[str, ...] = DEFAULT_UNIVERSAL_CUES
    pattern_cues: Dict[str, Tuple[str, ...]] = field(default_factory=lambda: dict(DEFAULT_PATTERN_CUES))
    block_instructions: Dict[str, Tuple[str, ...]] = field(default_factory=lambda: dict(DEFAULT_INSTRUCTIONS))

    @classmethod
    def from_yaml(cls, path: Optional[str] = None) -> 'KnowledgeBase':
        """
        Load the knowledge base from YAML.

        Args:
            path: YAML file. Defaults to $BANDCOACH_KNOWLEDGE, then the bundled config/knowledge.yaml.

        Returns:
            KnowledgeBase with defaults for anything the file does not define
        """
        load_dotenv()

        if path is None:
            path = os.getenv("BANDCOACH_KNOWLEDGE", str(DEFAULT_KNOWLEDGE_PATH))

        config_path = Path(path)
        if not config_path.exists():
            logger.info(f"No knowledge file at {config_path}, using defaults")
            return cls()

        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

        return cls.from_dict(raw)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'KnowledgeBase':
        """Build from an already-parsed mapping."""
        kwargs: Dict[str, Any] = {}

        if 'version' in raw:
            kwargs['version'] = str(raw['version'])

        menus = raw.get('menus', {})
        if 'rep_menu' in menus:
            kwargs['rep_menu'] = tuple(sorted(int(r) for r in menus['rep_menu']))
        if 'resistance_levels' in menus:
            kwargs['resistance_levels'] = tuple(sorted(int(r) for r in menus['resistance_levels']))
        if 'supported_durations' in raw:
            kwargs['supported_durations'] = tuple(int(d) for d in raw['supported_durations'])

        if 'tempo' in raw:
            kwargs['tempo'] = _build_section(TempoConfig, raw['tempo'])
        if 'progression' in raw:
            kwargs['progression'] = _build_section(ProgressionConfig, raw['progression'])
        if 'timing' in raw:
            kwargs['timing'] = _build_section(TimingConfig, raw['timing'])

        if 'templates' in raw:
            templates = dict(DEFAULT_TEMPLATES)
            for name, section in (raw['templates'] or {}).items():
                templates[name] = _build_section(BlockTemplate, section)
            kwargs['templates'] = templates

        cues = raw.get('cues', {})
        if 'universal' in cues:
            kwargs['universal_cues'] = tuple(cues['universal'])
        if 'by_pattern' in cues:
            kwargs['pattern_cues'] = {k: tuple(v) for k, v in cues['by_pattern'].items()}

        if 'instructions' in raw:
            instructions = dict(DEFAULT_INSTRUCTIONS)
            instructions.update({k: tuple(v) for k, v in raw['instructions'].items()})
            kwargs['block_instructions'] = instructions

        return cls(**kwargs)

    def template(self, block: str) -> BlockTemplate:
        """Template for a block, falling back to the built-in default."""
        return self.templates.get(block) or DEFAULT_TEMPLATES.get(block, BlockTemplate())

    def block_budget_seconds(self, block: str, duration_minutes: int) -> int:
        """
        Time budget for a templated block, linearly interpolated by session length.

        Args:
            block: Block name (warmup, mobility, core, cooldown)
            duration_minutes: Requested session length

        Returns:
            Budget in seconds
        """
        t = self.template(block)
        shortest = min(self.supported_durations)
        longest = max(self.supported_durations)
        if longest == shortest:
            minutes = t.minutes_short
        else:
            frac = (duration_minutes - shortest) / (longest - shortest)
            frac = min(1.0, max(0.0, frac))
            minutes = t.minutes_short + frac * (t.minutes_long - t.minutes_short)
        return int(round(minutes * 60))

    @property
    def middle_rep_index(self) -> int:
        return len(self.rep_menu) // 2
