#!/usr/bin/env python3
"""
bandcoach CLI

Command-line coaching interface.

Usage:
    bandcoach plan [--date DATE] [--minutes {25,30,35}] [--run-day] [--fasting] [--effort LEVEL]
    bandcoach complete [--date DATE] --pull N --push N --posterior N [--core SECONDS] [--effort LEVEL]
    bandcoach status
    bandcoach simulate [--weeks WEEKS]
    bandcoach export
"""

import json
import logging
import sys
from datetime import date
from typing import Optional

import click

from bandcoach.catalog import load_catalog
from bandcoach.errors import BandcoachError
from bandcoach.knowledge import KnowledgeBase
from bandcoach.models import SessionContext
from bandcoach.planning import ProgressionEngine, SessionPlanner, WorkoutCoordinator, format_plan_text
from bandcoach.storage import get_store


def build_coordinator() -> WorkoutCoordinator:
    """Wire knowledge, catalog, planner and store from config / environment."""
    knowledge = KnowledgeBase.from_yaml()
    planner = SessionPlanner(knowledge, load_catalog())
    return WorkoutCoordinator(planner, get_store())


def build_context(knowledge: KnowledgeBase, date_str, minutes, run_day, fasting, effort, allow_anchor) -> SessionContext:
    return SessionContext.build(
        day=date_str or date.today().isoformat(),
        duration_minutes=minutes,
        run_day=run_day,
        fasting=fasting,
        effort=effort,
        no_anchor=not allow_anchor,
        supported_durations=knowledge.supported_durations,
    )


def context_options(f):
    """Options shared by plan and complete (same flags -> same plan)."""
    options = [
        click.option('--date', 'date_str', type=str, help='Session date (YYYY-MM-DD), default: today'),
        click.option('--minutes', type=int, default=30, show_default=True, help='Session length (25, 30 or 35)'),
        click.option('--run-day', is_flag=True, help='A run is scheduled today (no hinge)'),
        click.option('--fasting', is_flag=True, help='Training fasted (no high compressive load)'),
        click.option('--effort', type=str, default='moderate', show_default=True, help='easy / moderate / hard (or 1-3)'),
        click.option('--allow-anchor', is_flag=True, help='A safe anchor point is available'),
    ]
    for option in reversed(options):
        f = option(f)
    return f


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Debug logging')
def cli(verbose: bool):
    """
    bandcoach - Spine-safe resistance band coach

    Your session, decided.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )


@cli.command()
@context_options
@click.option('--json', 'as_json', is_flag=True, help='Print the plan as JSON')
def plan(date_str: Optional[str], minutes: int, run_day: bool, fasting: bool, effort: str,
         allow_anchor: bool, as_json: bool):
    """Generate today's session plan."""
    try:
        coordinator = build_coordinator()
        context = build_context(coordinator.planner.knowledge, date_str, minutes, run_day, fasting,
                                effort, allow_anchor)
        session = coordinator.generate(context)
    except BandcoachError as e:
        click.echo(f"❌ Error generating plan: {e}")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(session.to_dict(), indent=2))
    else:
        click.echo(format_plan_text(session))


@cli.command()
@context_options
@click.option('--pull', type=int, help='Reps completed per set (pull)')
@click.option('--push', type=int, help='Reps completed per set (push)')
@click.option('--posterior', type=int, help='Reps completed per set (posterior)')
@click.option('--core', type=int, help='Seconds held (core)')
@click.option('--reported-effort', type=str, help='How hard it felt (default: planned effort)')
@click.option('--flag', 'flags', multiple=True, help='Technique flag (repeatable)')
@click.option('--notes', type=str, default='', help='Free-form notes')
def complete(date_str: Optional[str], minutes: int, run_day: bool, fasting: bool, effort: str,
             allow_anchor: bool, pull: Optional[int], push: Optional[int], posterior: Optional[int],
             core: Optional[int], reported_effort: Optional[str], flags, notes: str):
    """Record a completed session and advance progression."""
    reported = {k: v for k, v in (("pull", pull), ("push", push), ("posterior", posterior), ("core", core))
                if v is not None}

    try:
        coordinator = build_coordinator()
        context = build_context(coordinator.planner.knowledge, date_str, minutes, run_day, fasting,
                                effort, allow_anchor)
        session = coordinator.generate(context)
        state, _ = coordinator.complete_workout(
            session, reported, effort=reported_effort, technique_flags=flags, notes=notes
        )
    except BandcoachError as e:
        click.echo(f"❌ Error completing session: {e}")
        sys.exit(1)

    click.echo(f"✓ Session {session.meta.day_key} recorded")
    click.echo(f"  Week {state.week}, session {state.sessions_completed_in_week + 1} of the week")
    click.echo(f"  Streak: {state.streak}")
    if coordinator.progression.is_deload(state):
        click.echo("  ⚠️  Next session is a deload")


@cli.command()
def status():
    """Show current progression state."""
    try:
        coordinator = build_coordinator()
        summary = coordinator.progression.summary(coordinator.current_state())
    except BandcoachError as e:
        click.echo(f"❌ Error: {e}")
        sys.exit(1)

    click.echo("=" * 60)
    click.echo("BANDCOACH STATUS")
    click.echo("=" * 60)
    click.echo(f"\nWeek: {summary['week']} (session {summary['session_in_week']})")
    click.echo(f"Streak: {summary['streak']}")
    click.echo(f"Last session: {summary['last_completed_day'] or 'never'}")
    click.echo(f"Hard sessions in a row: {summary['hard_sessions_in_row']}")
    click.echo(f"Next session deload: {'yes' if summary['deload_next'] else 'no'}")

    click.echo(f"\n{'─' * 60}")
    click.echo("FAMILIES")
    click.echo('─' * 60)
    for name, fam in summary['families'].items():
        if 'hold_seconds' in fam:
            click.echo(f"  {name:<10} {fam['base_sets']} sets x {fam['hold_seconds']}s")
        else:
            click.echo(f"  {name:<10} {fam['base_sets']} sets x {fam['reps']} reps @ {fam['band']} kg band")

    inventory = coordinator.planner.equipment.describe_inventory()
    click.echo(f"\n{'─' * 60}")
    click.echo("EQUIPMENT")
    click.echo('─' * 60)
    click.echo(f"  Long bands (kg): {', '.join(f'{v:g}' for v in inventory['long_bands_kg'])}")
    click.echo(f"  Clip bands (kg): {', '.join(f'{v:g}' for v in inventory['clip_bands_kg'])}")
    click.echo(f"  Mini loops: {', '.join(inventory['mini_loops'])}")


@cli.command()
@click.option('--weeks', type=int, default=None, help='Weeks to project (default: one macrocycle)')
def simulate(weeks: Optional[int]):
    """Project the load factor across a macrocycle."""
    projection = ProgressionEngine(KnowledgeBase.from_yaml()).project_macrocycle(weeks)

    click.echo("=" * 60)
    click.echo("MACROCYCLE PROJECTION")
    click.echo("=" * 60)
    for week in projection:
        bar = '█' * int(round(week.load_factor * 20))
        click.echo(f"  Week {week.week:>2}  {week.load_factor:.3f}  {bar}{'  (deload)' if week.deload else ''}")


@cli.command()
def export():
    """Print state and history as JSON."""
    try:
        snapshot = build_coordinator().export_snapshot()
    except BandcoachError as e:
        click.echo(f"❌ Error exporting: {e}")
        sys.exit(1)
    click.echo(json.dumps(snapshot, indent=2))


if __name__ == '__main__':
    cli()
