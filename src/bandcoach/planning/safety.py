"""
Safety Classifier & Filter

Classifies catalog movements into biomechanical profiles and gates them
against the day's context. These are conservative heuristic gates, not a
medical model: any single failing rule rejects the movement.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..biomechanics import (
    ANCHOR_KEYWORDS,
    ISOMETRIC_PATTERNS,
    PATTERN_FAMILY,
    SPINAL_LOAD,
    BodyFamily,
    DoseType,
    MovementPattern,
    infer_dose_type,
    match_pattern,
    parse_enum,
)
from ..catalog import normalize_movement
from ..knowledge import KnowledgeBase
from ..models import FAMILIES, HOLD_FAMILY, Resistance, SessionContext, SessionPlan, posterior_cap

logger = logging.getLogger(__name__)

# Default resistance ceilings (kg) when the catalog does not declare one
POSTERIOR_MAX_RESISTANCE = 25.0
UPPER_MAX_RESISTANCE = 35.0

MAX_HINGE_ITEMS = 2
BAND_KINDS = {"long_band", "clip_band"}


@dataclass(frozen=True)
class MovementProfile:
    """Classified view of one catalog entry. Recomputed every planning call."""
    movement_id: str
    name: str
    phase: str
    pattern: MovementPattern
    family: BodyFamily
    slot_family: Optional[str]
    dose_type: DoseType
    compressive_load: int
    shear_load: int
    lumbar_risk: int
    requires_anchor: bool
    allowed_max_resistance: float
    equipment: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()
    adapted_id: Optional[str] = None
    adapted_version: Optional[Dict[str, Any]] = field(default=None, compare=False, hash=False)
    catalog_index: int = 0

    @property
    def is_isometric(self) -> bool:
        return self.pattern in ISOMETRIC_PATTERNS


@dataclass(frozen=True)
class Verdict:
    """Outcome of the per-item gate. Rejected when any reason is present."""
    reasons: Tuple[str, ...] = ()

    @property
    def accepted(self) -> bool:
        return not self.reasons

    @property
    def reason(self) -> Optional[str]:
        return self.reasons[0] if self.reasons else None


ACCEPT = Verdict()


def _slot_family(pattern: MovementPattern, family: BodyFamily, explicit: Optional[str]) -> Optional[str]:
    """Progression family a movement can fill, if any."""
    if explicit in FAMILIES:
        return explicit
    if pattern == MovementPattern.PULL:
        return "pull"
    if pattern == MovementPattern.PUSH:
        return "push"
    if family == BodyFamily.POSTERIOR:
        return "posterior"
    if family == BodyFamily.CORE:
        return HOLD_FAMILY
    return None


class SafetyFilter:
    """
    Biomechanical classifier and context gate.

    Enforces:
    - No hinge on run days
    - No high compressive load while fasting
    - No plyometrics during a deload
    - Resistance within the movement's ceiling
    """

    def __init__(self, knowledge: Optional[KnowledgeBase] = None):
        self.knowledge = knowledge or KnowledgeBase()

    # =========================================================================
    # Classification
    # =========================================================================

    def classify(self, raw: Dict[str, Any], catalog_index: int = 0) -> MovementProfile:
        """
        Classify a raw catalog record. Pure and deterministic.

        Explicit catalog fields win; keyword inference fills the rest.

        Args:
            raw: Catalog record (normalized or not)
            catalog_index: Position in the catalog, used for stable ordering

        Returns:
            MovementProfile
        """
        ex = normalize_movement(raw)
        text = " ".join([ex["name"].lower()] + ex["tags"])

        pattern = parse_enum(MovementPattern, ex["pattern"]) or match_pattern(text)

        explicit_family = str(ex["family"]).lower() if ex["family"] else None
        family = parse_enum(BodyFamily, explicit_family) or PATTERN_FAMILY[pattern]
        if explicit_family in ("pull", "push"):
            family = BodyFamily.UPPER
        elif explicit_family == HOLD_FAMILY:
            family = BodyFamily.CORE

        dose_type = parse_enum(DoseType, ex["dose_type"]) or infer_dose_type(text, pattern)

        compressive, shear = SPINAL_LOAD[pattern]
        isometric = pattern in ISOMETRIC_PATTERNS
        lumbar_risk = max(0, min(3, compressive + shear - (1 if isometric else 0)))

        if ex["requires_anchor"] is not None:
            requires_anchor = bool(ex["requires_anchor"])
        else:
            requires_anchor = any(k in text for k in ANCHOR_KEYWORDS)

        if ex["allowed_max_resistance"] is not None:
            allowed_max = float(ex["allowed_max_resistance"])
        elif pattern == MovementPattern.HINGE or family == BodyFamily.POSTERIOR:
            allowed_max = POSTERIOR_MAX_RESISTANCE
        else:
            allowed_max = UPPER_MAX_RESISTANCE

        return MovementProfile(
            movement_id=ex["id"],
            name=ex["name"],
            phase=ex["phase"],
            pattern=pattern,
            family=family,
            slot_family=_slot_family(pattern, family, explicit_family),
            dose_type=dose_type,
            compressive_load=compressive,
            shear_load=shear,
            lumbar_risk=lumbar_risk,
            requires_anchor=requires_anchor,
            allowed_max_resistance=allowed_max,
            equipment=tuple(ex["equipment"]),
            tags=tuple(ex["tags"]),
            adapted_id=ex["adapted_id"],
            adapted_version=ex["adapted_version"],
            catalog_index=catalog_index,
        )

    def classify_all(self, catalog: Sequence[Dict[str, Any]]) -> List[MovementProfile]:
        """Classify every catalog entry, preserving catalog order."""
        return [self.classify(raw, i) for i, raw in enumerate(catalog)]

    # =========================================================================
    # Per-item gate
    # =========================================================================

    def validate(
        self,
        profile: MovementProfile,
        context: SessionContext,
        deload: bool = False,
        resistance: Optional[Resistance] = None,
    ) -> Verdict:
        """
        Hard per-item gate. Rules are evaluated independently.

        Args:
            profile: Classified movement
            context: Today's context
            deload: Whether today is a deload session
            resistance: Requested resistance (skips the ceiling rule when None)

        Returns:
            Verdict listing every failing rule
        """
        reasons = []

        if context.run_day and profile.pattern == MovementPattern.HINGE:
            reasons.append("Run day: hinge excluded")

        if context.fasting and profile.compressive_load > 1:
            reasons.append("Fasting: high compressive load")

        if deload and profile.pattern == MovementPattern.PLYOMETRIC:
            reasons.append("Deload: plyometric excluded")

        if (
            resistance is not None
            and resistance.kind in BAND_KINDS
            and resistance.value > profile.allowed_max_resistance
        ):
            reasons.append(
                f"Resistance {resistance.value:g} kg exceeds ceiling {profile.allowed_max_resistance:g} kg"
            )

        if reasons:
            logger.debug(f"Rejected {profile.name}: {'; '.join(reasons)}")
            return Verdict(reasons=tuple(reasons))
        return ACCEPT

    # =========================================================================
    # No-anchor adaptation
    # =========================================================================

    def adapt_for_no_anchor(
        self,
        profile: MovementProfile,
        pool: Sequence[MovementProfile],
    ) -> Optional[MovementProfile]:
        """
        Replace a movement that needs an improvised anchor.

        Tries, in order: the declared substitute, a same-pattern anchor-free
        candidate, then the lowest-risk same-family anchor-free candidate.

        Args:
            profile: Movement to adapt
            pool: Candidate pool (catalog order)

        Returns:
            Anchor-free profile, or None when the slot is unavailable
        """
        if not profile.requires_anchor:
            return profile

        anchor_free = [p for p in pool if not p.requires_anchor and p.movement_id != profile.movement_id]

        if profile.adapted_id:
            for p in anchor_free:
                if p.movement_id == profile.adapted_id:
                    return p
        if profile.adapted_version:
            inline = dict(profile.adapted_version)
            inline.setdefault("phase", profile.phase)
            inline.setdefault("id", f"{profile.movement_id}-no-anchor")
            inline.setdefault("requires_anchor", False)
            adapted = self.classify(inline, profile.catalog_index)
            if not adapted.requires_anchor:
                return adapted

        for p in anchor_free:
            if p.pattern == profile.pattern:
                return p

        same_family = [p for p in anchor_free if p.family == profile.family]
        if same_family:
            return min(same_family, key=lambda p: (p.lumbar_risk, p.catalog_index))

        logger.info(f"No anchor-free substitute for {profile.name}")
        return None

    # =========================================================================
    # Cues & warnings
    # =========================================================================

    def cues_for(self, profile: MovementProfile) -> Tuple[str, ...]:
        """Universal spine cues plus pattern-specific cues, de-duplicated."""
        cues = list(self.knowledge.universal_cues)
        cues.extend(self.knowledge.pattern_cues.get(profile.pattern.value, ()))
        return tuple(dict.fromkeys(cues))[:8]

    def warnings_for(self, profile: MovementProfile, context: SessionContext) -> Tuple[str, ...]:
        warnings = []
        if profile.pattern == MovementPattern.HINGE:
            warnings.append("Shorten the range if you lose a neutral spine.")
        if context.run_day and profile.pattern == MovementPattern.PLYOMETRIC:
            warnings.append("Run day: judge plyometrics by how the legs feel.")
        if profile.lumbar_risk >= 3:
            warnings.append("High lumbar stress.")
        return tuple(dict.fromkeys(warnings))[:6]

    # =========================================================================
    # Session-level check
    # =========================================================================

    def validate_session(self, plan: SessionPlan) -> List[str]:
        """
        Advisory aggregate checks the per-item gate cannot see.

        Args:
            plan: Finished session plan

        Returns:
            List of warning strings (empty when clean)
        """
        warnings = []
        ratio = self.knowledge.progression.posterior_to_pull_cap

        pull_sets = sum(i.sets for i in plan.strength_items if i.family == "pull")
        posterior_sets = sum(i.sets for i in plan.strength_items if i.family == "posterior")
        if posterior_sets > pull_sets * ratio:
            warnings.append(
                f"Posterior volume {posterior_sets} sets exceeds {ratio:g}x pull ({pull_sets} sets)"
            )

        hinges = sum(1 for i in plan.all_items() if i.pattern == MovementPattern.HINGE.value)
        if hinges > MAX_HINGE_ITEMS:
            warnings.append(f"{hinges} hinge movements in one session (limit {MAX_HINGE_ITEMS})")

        return warnings

    def posterior_ceiling(self, pull_sets: int) -> int:
        """Largest posterior set count compatible with the given pull sets."""
        return posterior_cap(pull_sets, self.knowledge.progression.posterior_to_pull_cap)
