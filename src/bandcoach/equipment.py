"""
Equipment / resistance model.

Maps a movement pattern and training week to a concrete resistance snapped to
the nearest physically available increment.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

from .biomechanics import MovementPattern
from .models import Resistance


@dataclass(frozen=True)
class Inventory:
    """Equipment actually available to the athlete."""
    long_bands_kg: Tuple[float, ...] = (15, 25, 35)
    clip_bands_kg: Tuple[float, ...] = (4.5, 9.1, 13.6, 18.1, 22.6)
    mini_loops: Tuple[str, ...] = ("light", "medium", "hard", "xhard", "xxhard")


@dataclass(frozen=True)
class LoadRule:
    """How a pattern is loaded: equipment kind, starting load and weekly step."""
    kind: str
    start: float = 0.0
    step: float = 0.0
    level: Optional[str] = None


PATTERN_LOAD_MODEL: Dict[MovementPattern, LoadRule] = {
    MovementPattern.PULL: LoadRule("long_band", start=15, step=10),
    MovementPattern.PUSH: LoadRule("long_band", start=15, step=10),
    MovementPattern.HINGE: LoadRule("long_band", start=15, step=10),
    MovementPattern.SQUAT: LoadRule("long_band", start=15, step=10),
    MovementPattern.GENERAL: LoadRule("clip_band", start=9.1, step=4.5),
    MovementPattern.TIBIALIS: LoadRule("clip_band", start=4.5, step=4.5),
    MovementPattern.GLUTE_BRIDGE: LoadRule("mini_loop", level="medium"),
}

# Equipment tags that satisfy each load kind
KIND_EQUIPMENT = {
    "long_band": {"band"},
    "clip_band": {"clip_band", "band"},
    "mini_loop": {"miniloop"},
}

BODYWEIGHT = Resistance(kind="bodyweight")


def nearest_available(value: float, options: Iterable[float]) -> float:
    """Snap a raw load to the closest available increment (lower wins ties)."""
    return min(options, key=lambda o: (abs(o - value), o))


def progressed_load(start: float, step: float, week: int) -> float:
    """Load rises one step every 2 weeks."""
    return start + ((max(1, week) - 1) // 2) * step


class ResistanceModel:
    """
    Read-only resistance lookup used by the planner's sizing step.
    """

    def __init__(self, inventory: Optional[Inventory] = None):
        self.inventory = inventory or Inventory()

    def load_for(
        self,
        pattern: MovementPattern,
        week: int = 1,
        preferred: Optional[float] = None,
        equipment: Optional[Iterable[str]] = None,
    ) -> Resistance:
        """
        Resolve the concrete resistance for a movement.

        Args:
            pattern: Movement pattern
            week: Current training week
            preferred: Band value earned through progression (long bands only)
            equipment: Equipment the movement uses; bodyweight if it uses no
                gear matching the pattern's load kind

        Returns:
            Resistance snapped to the inventory
        """
        rule = PATTERN_LOAD_MODEL.get(pattern)
        if rule is None:
            return BODYWEIGHT

        if equipment is not None:
            gear = set(equipment)
            if not gear & KIND_EQUIPMENT.get(rule.kind, set()):
                return BODYWEIGHT

        if rule.kind == "mini_loop":
            level = rule.level or self.inventory.mini_loops[0]
            return Resistance(kind="mini_loop", value=self.inventory.mini_loops.index(level) + 1, label=level)

        if rule.kind == "long_band":
            raw = preferred if preferred is not None else progressed_load(rule.start, rule.step, week)
            return Resistance(kind="long_band", value=nearest_available(raw, self.inventory.long_bands_kg))

        raw = progressed_load(rule.start, rule.step, week)
        return Resistance(kind="clip_band", value=nearest_available(raw, self.inventory.clip_bands_kg))

    def step_down(self, resistance: Resistance) -> Resistance:
        """Next lower inventory level; the lowest level stays where it is."""
        if resistance.kind == "long_band":
            options = self.inventory.long_bands_kg
        elif resistance.kind == "clip_band":
            options = self.inventory.clip_bands_kg
        elif resistance.kind == "mini_loop":
            idx = max(0, int(resistance.value) - 2)
            level = self.inventory.mini_loops[idx]
            return Resistance(kind="mini_loop", value=idx + 1, label=level)
        else:
            return resistance

        lower = [o for o in options if o < resistance.value]
        return Resistance(kind=resistance.kind, value=max(lower) if lower else min(options))

    def describe_inventory(self) -> Dict[str, list]:
        return {
            "long_bands_kg": list(self.inventory.long_bands_kg),
            "clip_bands_kg": list(self.inventory.clip_bands_kg),
            "mini_loops": list(self.inventory.mini_loops),
        }
