"""
Biomechanical Data Model

Defines movement patterns, body families, dose types and the spinal load
table used to score movements for lumbar risk.
"""

from typing import Dict, List, Optional, Tuple
from enum import Enum


class MovementPattern(Enum):
    """Biomechanical movement patterns."""
    ANTI_ROTATION = "anti_rotation"
    ANTI_EXTENSION = "anti_extension"
    HINGE = "hinge"
    CARDIO = "cardio"
    PLYOMETRIC = "plyometric"
    TIBIALIS = "tibialis"
    GLUTE_BRIDGE = "glute_bridge"
    SQUAT = "squat"
    PUSH = "push"
    PULL = "pull"
    GENERAL = "general"


class BodyFamily(Enum):
    """Coarse body region a movement loads."""
    UPPER = "upper"
    POSTERIOR = "posterior"
    CORE = "core"
    CONDITIONING = "conditioning"
    LEGS = "legs"


class DoseType(Enum):
    """How a movement is dosed."""
    REPS = "reps"
    SECONDS = "seconds"
    MIXED = "mixed"      # reps with a paused hold at end range


ISOMETRIC_PATTERNS = {MovementPattern.ANTI_ROTATION, MovementPattern.ANTI_EXTENSION}


# Keyword precedence: checked top to bottom, first match wins.
# Isometrics come before push so "pallof press" is not a press, cardio comes
# before plyometric so "jumping jack" is not a jump, and plyometric comes
# before push so "plyo push-up" is gated as a plyometric.
PATTERN_KEYWORDS: List[Tuple[MovementPattern, List[str]]] = [
    (MovementPattern.ANTI_ROTATION, ["side plank", "pallof", "anti-rotation", "anti rotation", "bird dog"]),
    (MovementPattern.ANTI_EXTENSION, ["plank", "hollow", "dead bug", "anti-extension", "anti extension"]),
    (MovementPattern.HINGE, ["rdl", "deadlift", "good morning", "hip hinge", "hinge"]),
    (MovementPattern.CARDIO, ["jumping jack", "mountain climber", "burpee", "skipping", "jump rope"]),
    (MovementPattern.PLYOMETRIC, ["jump", "plyo", "bound", "hops"]),
    (MovementPattern.TIBIALIS, ["tibialis", "toe raise"]),
    (MovementPattern.GLUTE_BRIDGE, ["bridge", "hip thrust"]),
    (MovementPattern.SQUAT, ["squat", "lunge", "split stance"]),
    (MovementPattern.PUSH, ["push", "press", "dip", "fly"]),
    (MovementPattern.PULL, ["row", "pull", "face pull", "pulldown", "curl"]),
]


PATTERN_FAMILY: Dict[MovementPattern, BodyFamily] = {
    MovementPattern.ANTI_ROTATION: BodyFamily.CORE,
    MovementPattern.ANTI_EXTENSION: BodyFamily.CORE,
    MovementPattern.HINGE: BodyFamily.POSTERIOR,
    MovementPattern.CARDIO: BodyFamily.CONDITIONING,
    MovementPattern.PLYOMETRIC: BodyFamily.CONDITIONING,
    MovementPattern.TIBIALIS: BodyFamily.POSTERIOR,
    MovementPattern.GLUTE_BRIDGE: BodyFamily.POSTERIOR,
    MovementPattern.SQUAT: BodyFamily.LEGS,
    MovementPattern.PUSH: BodyFamily.UPPER,
    MovementPattern.PULL: BodyFamily.UPPER,
    MovementPattern.GENERAL: BodyFamily.UPPER,
}


# (compressive, shear) estimates on a 0..2 scale
SPINAL_LOAD: Dict[MovementPattern, Tuple[int, int]] = {
    MovementPattern.HINGE: (2, 2),
    MovementPattern.PLYOMETRIC: (2, 1),
    MovementPattern.SQUAT: (2, 1),
    MovementPattern.GLUTE_BRIDGE: (1, 1),
    MovementPattern.PUSH: (1, 1),
    MovementPattern.PULL: (1, 0),
    MovementPattern.CARDIO: (1, 1),
    MovementPattern.TIBIALIS: (0, 0),
    MovementPattern.ANTI_EXTENSION: (0, 1),
    MovementPattern.ANTI_ROTATION: (0, 0),
    MovementPattern.GENERAL: (1, 1),
}


SECONDS_KEYWORDS = [
    "plank", "hollow", "hold", "isometric", "wall sit", "dead hang", "stretch", "breathing",
]
MIXED_KEYWORDS = ["pause", "paused", "tempo hold"]

ANCHOR_KEYWORDS = ["anchor", "door", "high-anchored", "low-anchored", "lat machine", "pulldown", "pull-up bar"]


def match_pattern(text: str) -> MovementPattern:
    """
    Infer a movement pattern from free text using the precedence table.

    Args:
        text: Lower-cased name plus tags

    Returns:
        First matching MovementPattern, GENERAL if none match
    """
    for pattern, keywords in PATTERN_KEYWORDS:
        if any(k in text for k in keywords):
            return pattern
    return MovementPattern.GENERAL


def infer_dose_type(text: str, pattern: MovementPattern) -> DoseType:
    """Infer dose type; isometric patterns are always time-based."""
    if pattern in ISOMETRIC_PATTERNS:
        return DoseType.SECONDS
    if any(k in text for k in SECONDS_KEYWORDS):
        return DoseType.SECONDS
    if any(k in text for k in MIXED_KEYWORDS):
        return DoseType.MIXED
    return DoseType.REPS


def parse_enum(enum_cls, value) -> Optional[Enum]:
    """Parse an explicit catalog value into an enum member, None if unknown."""
    if value is None:
        return None
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower().replace("-", "_").replace(" ", "_"))
    except ValueError:
        return None
