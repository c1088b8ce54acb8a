"""
Workout coordinator: plan, complete and export through a state store.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Tuple

from ..models import (
    AthleteProgressionState,
    HistoryRecord,
    SessionContext,
    SessionPlan,
    SessionResult,
)
from ..storage import StateStore
from .planner import SessionPlanner

logger = logging.getLogger(__name__)


class WorkoutCoordinator:
    """
    Ties the planner and progression engine to persistence.

    The coordinator is the only component that reads or writes the store.
    """

    def __init__(self, planner: SessionPlanner, store: StateStore):
        self.planner = planner
        self.progression = planner.progression
        self.store = store

    def current_state(self) -> AthleteProgressionState:
        """Load the persisted state (malformed or missing blobs become the baseline)."""
        return self.progression.load_state(self.store.load_state())

    def history(self) -> List[HistoryRecord]:
        return [HistoryRecord.from_dict(r) for r in self.store.load_history()]

    def generate(self, context: SessionContext) -> SessionPlan:
        """Plan today's session from the persisted state."""
        return self.planner.plan(self.current_state(), context)

    def complete_workout(
        self,
        plan: SessionPlan,
        reported: Dict[str, int],
        effort=None,
        technique_flags: Iterable[str] = (),
        notes: str = "",
    ) -> Tuple[AthleteProgressionState, Dict[str, Any]]:
        """
        Fold a completed session into the persisted state.

        Args:
            plan: The plan that was performed
            reported: Reps per rep family (pull/push/posterior), seconds for core
            effort: Reported effort (defaults to the planned effort)
            technique_flags: Free-form technique notes (e.g. "lost neutral spine")
            notes: Free text

        Returns:
            (new_state, snapshot)
        """
        meta = plan.meta
        result = SessionResult.from_dict({
            "day_key": meta.day_key,
            "effort": effort if effort is not None else meta.effort,
            "performance": reported,
            "technique_flags": list(technique_flags),
            "notes": notes,
            "plan_seed": meta.seed,
        })

        if any(r.seed == meta.seed for r in self.history()):
            logger.warning(f"Session {meta.seed} was already completed; applying again")

        state = self.current_state()
        new_state = self.progression.apply_result(state, result)

        record = HistoryRecord(
            day_key=meta.day_key,
            seed=meta.seed,
            week=state.week,
            effort=result.effort.label,
            deload_applied=meta.deload,
            performance=dict(result.performance),
            technique_flags=result.technique_flags,
            notes=result.notes,
            recorded_at=datetime.now(timezone.utc).isoformat(),
        )
        self.store.append_history(record.to_dict())
        self.store.save_state(new_state.to_dict())

        logger.info(
            f"Completed {meta.day_key} ({result.effort.label}): "
            f"week {new_state.week}, streak {new_state.streak}, deload next {self.progression.is_deload(new_state)}"
        )
        return new_state, self.export_snapshot()

    def export_snapshot(self) -> Dict[str, Any]:
        """JSON-serializable export of state and history."""
        state = self.current_state()
        return {
            "exported_at": datetime.now(timezone.utc).isoformat(),
            "knowledge_version": self.planner.knowledge.version,
            "state": state.to_dict(),
            "summary": self.progression.summary(state),
            "inventory": self.planner.equipment.describe_inventory(),
            "history": [r.to_dict() for r in self.history()],
        }
