"""
Planning core

Generates deterministic, time-closed, spine-safe band sessions from:
- The athlete's progression state
- Today's context (duration, run day, fasting, effort, anchor)
- The movement catalog and equipment inventory
- The knowledge base (tempo, menus, templates, cues)
"""

from .progression import ProgressionEngine
from .safety import SafetyFilter, MovementProfile, Verdict
from .planner import SessionPlanner, format_plan_text
from .coordinator import WorkoutCoordinator

__all__ = [
    'ProgressionEngine',
    'SafetyFilter',
    'MovementProfile',
    'Verdict',
    'SessionPlanner',
    'format_plan_text',
    'WorkoutCoordinator',
]
