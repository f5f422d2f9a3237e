"""pmassist CLI - tasks, provider sync and calendar availability."""

import json
import logging
import sys
from datetime import date, datetime
from zoneinfo import ZoneInfo

import click

from .core.calendar import format_schedule
from .core.errors import DuplicateTitle, PersistenceFailure, ProviderUnavailable
from .core.tasks import CATEGORIES, PROVIDERS, Priority, sort_by_priority
from .config import load_config
from .workflows import UnknownProvider, build_calendar, build_service, day_availability


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.DEBUG if verbose else logging.INFO,
    )


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


@click.group()
@click.version_option(package_name="pmassist")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
def main(verbose: bool):
    """pmassist - task and schedule assistant."""
    _setup_logging(verbose)


@main.command()
@click.option("--live/--no-live", default=True, help="Poll pollable providers for changes")
def serve(live: bool):
    """Run the HTTP API."""
    from .server import run_server

    config = load_config()
    service = build_service(config)
    if live:
        for name, provider in service.providers.items():
            if hasattr(provider, "get_changes_since"):
                service.start_live_sync(name)
    run_server(service, build_calendar(config))


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.option("--all", "show_all", is_flag=True, help="Include completed tasks")
def tasks(as_json: bool, show_all: bool):
    """List tasks, most important first."""
    service = build_service()
    task_list = sort_by_priority(service.list_tasks())
    if not show_all:
        task_list = [t for t in task_list if not t.completed]

    if as_json:
        click.echo(json.dumps([t.to_dict() for t in task_list], indent=2))
        return

    if not task_list:
        click.echo("No open tasks.")
        return

    for task in task_list:
        done = "x" if task.completed else " "
        due = f" (due {task.deadline})" if task.deadline else ""
        linked = f" [{', '.join(sorted(task.provider_ids))}]" if task.provider_ids else ""
        click.echo(f"[{done}] {task.priority.value.upper():6} {task.title}{due}{linked}")


@main.command()
@click.argument("title")
@click.option(
    "--priority",
    type=click.Choice([p.value for p in Priority]),
    default=Priority.MEDIUM.value,
)
@click.option("--category", type=click.Choice(CATEGORIES), default="Other")
@click.option("--deadline", type=click.DateTime(formats=["%Y-%m-%d"]), default=None)
def add(title: str, priority: str, category: str, deadline: datetime | None):
    """Add a local task."""
    service = build_service()
    try:
        task = service.add_task(title, priority, category, deadline.date() if deadline else None)
    except (DuplicateTitle, ValueError) as e:
        _fail(str(e))
    except PersistenceFailure as e:
        _fail(f"Task added but not saved: {e}")
    click.echo(f"Added {task.title} ({task.id})")


@main.command()
@click.argument("provider", type=click.Choice(PROVIDERS))
def sync(provider: str):
    """Merge every task from a provider into the local list."""
    service = build_service()
    try:
        outcome = service.sync_provider(provider)
    except UnknownProvider:
        _fail(f"{provider} is not configured. Add its credentials to pmassist.conf")
    except ProviderUnavailable as e:
        _fail(str(e))
    except PersistenceFailure as e:
        _fail(f"Merged but not saved: {e}")

    summary = outcome.summary()
    click.echo(
        f"{provider}: {summary['created']} new, {summary['updated']} updated, "
        f"{summary['unchanged']} unchanged, {summary['skipped']} skipped "
        f"({summary['total']} tasks total)"
    )
    for skipped in outcome.skipped:
        click.echo(f"  skipped #{skipped.index}: {skipped.reason}", err=True)


@main.group(invoke_without_command=True)
@click.pass_context
def calendar(ctx):
    """Show calendar events and free time."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(calendar_day)


def _load_day(target: datetime | None, min_minutes: int = 0):
    config = load_config()
    cal = build_calendar(config)
    if not cal.is_loaded:
        _fail(f"Could not load calendar file {config.calendar_path}")
    day = target.date() if target else date.today()
    events, blocks = day_availability(
        cal, day, config.work_hours, tz=ZoneInfo(config.timezone), min_minutes=min_minutes
    )
    return day, events, blocks


@calendar.command("day")
@click.option("--date", "target", type=click.DateTime(formats=["%Y-%m-%d"]), default=None)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def calendar_day(target: datetime | None = None, as_json: bool = False):
    """Show a day's meetings and available blocks."""
    day, events, blocks = _load_day(target)
    if as_json:
        click.echo(
            json.dumps(
                {
                    "date": day.isoformat(),
                    "events": [e.to_dict() for e in events],
                    "freeSlots": [b.to_dict() for b in blocks],
                },
                indent=2,
            )
        )
    else:
        click.echo(format_schedule(day, events, blocks))


@calendar.command("free")
@click.option("--date", "target", type=click.DateTime(formats=["%Y-%m-%d"]), default=None)
@click.option("--min", "min_minutes", type=int, default=30, help="Shortest block to show (minutes)")
def calendar_free(target: datetime | None, min_minutes: int):
    """List free blocks in the working window."""
    _, _, blocks = _load_day(target, min_minutes)
    if not blocks:
        click.echo("No free time.")
        return
    for block in blocks:
        click.echo(block.format())
