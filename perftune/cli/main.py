"""
Main CLI entry point for perftune.

This module provides the ``perftune`` command-line interface.
"""

import json
import logging
import sys
from typing import Optional

import click

from ..adaptive import JSONSettingsStore, Toggle
from ..benchmarks import CSVReporter, JSONReporter, OrchestratorConfig, TextReporter
from ..context import TelemetryContext
from ..errors import PerftuneError
from ..memory import load_memory_config_from_env
from .config import CLIConfig
from .utils import (
    colorize_flag,
    colorize_hit_rate,
    colorize_memory,
    colorize_score,
    format_bytes,
    format_success_message,
    format_table,
    handle_error,
)

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, quiet: bool = False):
    """Setup logging configuration."""
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def build_context(cli_config: CLIConfig) -> TelemetryContext:
    """Create the telemetry context the commands operate on."""
    return TelemetryContext(
        memory_config=load_memory_config_from_env(),
        orchestrator_config=OrchestratorConfig(
            cooldown_seconds=cli_config.get('cooldown_seconds', 0.5),
            probe_timeout_seconds=cli_config.get('probe_timeout_seconds'),
        ),
        settings_store=JSONSettingsStore(cli_config.settings_path()),
        json_log_file=cli_config.get('json_log_file'),
    )


def _emit_json(data) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group(name='perftune', invoke_without_command=True)
@click.option('--config', '-c', 'config_file',
              help='Path to configuration file')
@click.option('--settings', type=click.Path(dir_okay=False),
              help='Path to the toggle settings file')
@click.option('--format', 'output_format', type=click.Choice(['table', 'json']),
              help='Output format')
@click.option('--verbose', '-v', is_flag=True,
              help='Enable verbose output')
@click.option('--quiet', '-q', is_flag=True,
              help='Suppress non-essential output')
@click.option('--no-color', is_flag=True,
              help='Disable colored output')
@click.version_option(version='0.1.0', prog_name='perftune')
@click.pass_context
def cli(ctx, config_file: Optional[str], settings: Optional[str], output_format: Optional[str],
        verbose: bool, quiet: bool, no_color: bool):
    """
    perftune: runtime performance telemetry and self-tuning

    Inspect memory and cache telemetry, run the performance probe suite and
    manage adaptive feature toggles.

    Examples:
        perftune snapshot
        perftune run-tests --cooldown 0 --report report.txt
        perftune toggle preloading off
        perftune adjust
    """
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        return

    setup_logging(verbose, quiet)

    cli_config = CLIConfig(config_file=config_file)
    if settings:
        cli_config.set('settings_path', settings)
    if output_format:
        cli_config.set('output_format', output_format)
    if verbose:
        cli_config.set('verbose', True)
    if quiet:
        cli_config.set('quiet', True)
    if no_color:
        cli_config.set('color_output', False)

    try:
        telemetry = build_context(cli_config)
    except (PerftuneError, ValueError) as e:
        handle_error(e, verbose, context="building telemetry context")
        sys.exit(1)

    ctx.ensure_object(dict)
    ctx.obj['config'] = cli_config
    ctx.obj['context'] = telemetry
    ctx.call_on_close(telemetry.close)


def _wants_json(ctx) -> bool:
    return ctx.obj['config'].get('output_format') == 'json'


def _use_color(ctx) -> bool:
    return ctx.obj['config'].get('color_output', True)


@cli.command()
@click.pass_context
def snapshot(ctx):
    """Show current memory, cache, test and toggle state."""
    telemetry: TelemetryContext = ctx.obj['context']
    snap = telemetry.snapshot()

    if _wants_json(ctx):
        _emit_json(snap.to_dict())
        return

    color = _use_color(ctx)
    memory = snap.memory
    cache = snap.cache

    click.echo("Memory:")
    click.echo(f"  Usage:           {format_bytes(memory.current_usage_bytes)} of "
               f"{format_bytes(memory.total_memory_bytes)} "
               f"({colorize_memory(memory.usage_percentage, color)})")
    click.echo(f"  Low-memory mode: {'yes' if snap.low_memory_mode else 'no'}")

    click.echo("Cache:")
    click.echo(f"  Items:           {cache.total_items} ({cache.expired_items} expired)")
    click.echo(f"  Requests:        {cache.total_requests} "
               f"(hit rate {colorize_hit_rate(cache.hit_rate, color)})")

    if snap.session is not None:
        session = snap.session
        state = "running" if session.is_running else "finished"
        click.echo("Last test run:")
        click.echo(f"  State:           {state}")
        click.echo(f"  Score:           {colorize_score(session.overall_score(), color)}")
        click.echo(f"  Average:         {session.average_duration():.3f}s")

    click.echo("Toggles:")
    for name, value in snap.config_state.items():
        click.echo(f"  {name:<24} {colorize_flag(value, color)}")


@cli.command('run-tests')
@click.option('--cooldown', type=float, help='Seconds to pause between probes')
@click.option('--timeout', type=float, help='Per-probe watchdog in seconds')
@click.option('--report', 'report_path', type=click.Path(dir_okay=False),
              help='Write a text report to this file')
@click.option('--json', 'json_path', type=click.Path(dir_okay=False),
              help='Export results as JSON to this file')
@click.option('--csv', 'csv_path', type=click.Path(dir_okay=False),
              help='Export results as CSV to this file')
@click.pass_context
def run_tests(ctx, cooldown: Optional[float], timeout: Optional[float],
              report_path: Optional[str], json_path: Optional[str], csv_path: Optional[str]):
    """Run the performance probe suite."""
    telemetry: TelemetryContext = ctx.obj['context']
    cli_config: CLIConfig = ctx.obj['config']
    orchestrator = telemetry.orchestrator

    if cooldown is not None or timeout is not None:
        try:
            orchestrator.config = OrchestratorConfig(
                cooldown_seconds=orchestrator.config.cooldown_seconds if cooldown is None else cooldown,
                probe_timeout_seconds=orchestrator.config.probe_timeout_seconds if timeout is None else timeout,
                require_normal_memory=orchestrator.config.require_normal_memory,
            )
        except PerftuneError as e:
            handle_error(e, cli_config.get('verbose', False))
            sys.exit(2)

    session = None
    if cli_config.get('quiet', False) or _wants_json(ctx):
        for event in orchestrator.run_all():
            if event.finished:
                session = event.session
    else:
        with click.progressbar(length=100, label="Running performance tests") as bar:
            shown = 0
            for event in orchestrator.run_all():
                step = int(round(event.progress * 100)) - shown
                if step > 0:
                    bar.update(step)
                    shown += step
                if event.finished:
                    session = event.session

    if session is None:
        click.echo(click.style("A performance test run is already in progress", fg='yellow'), err=True)
        sys.exit(1)

    if report_path:
        TextReporter().export(session, report_path)
    if json_path:
        JSONReporter().export(session, json_path)
    if csv_path:
        CSVReporter().export(session, csv_path)

    if _wants_json(ctx):
        _emit_json(session.to_dict())
    else:
        click.echo(TextReporter().render(session))

    if session.error_message:
        sys.exit(1)


@cli.command()
@click.option('--apply', 'apply_changes', is_flag=True,
              help='Turn on the recommended optimizations')
@click.pass_context
def suggest(ctx, apply_changes: bool):
    """Show optimization suggestions for the current telemetry."""
    telemetry: TelemetryContext = ctx.obj['context']
    suggestions = telemetry.suggestions()
    changed = telemetry.apply_suggestions() if apply_changes else {}

    if _wants_json(ctx):
        if apply_changes:
            _emit_json({'suggestions': suggestions, 'applied': changed})
        else:
            _emit_json(suggestions)
        return

    if not suggestions:
        click.echo("No optimization suggestions.")
    for index, suggestion in enumerate(suggestions, start=1):
        click.echo(f"{index}. {suggestion}")

    if apply_changes:
        if changed:
            applied = ', '.join(f"{name} {'on' if value else 'off'}"
                                for name, value in changed.items())
            click.echo(format_success_message(f"Applied: {applied}"))
        else:
            click.echo("Recommended optimizations already applied")


@cli.command()
@click.argument('name', type=click.Choice([toggle.value for toggle in Toggle]))
@click.argument('state', type=click.Choice(['on', 'off']))
@click.pass_context
def toggle(ctx, name: str, state: str):
    """Turn a feature toggle on or off."""
    telemetry: TelemetryContext = ctx.obj['context']
    changed = telemetry.config.set_toggle(name, state == 'on')

    if changed:
        click.echo(format_success_message(f"{name} turned {state}"))
    else:
        click.echo(f"{name} is already {state}")


@cli.command()
@click.pass_context
def toggles(ctx):
    """List feature toggles."""
    telemetry: TelemetryContext = ctx.obj['context']
    state = telemetry.config.state()

    if _wants_json(ctx):
        _emit_json(state)
        return

    color = _use_color(ctx)
    rows = [{'toggle': name, 'state': colorize_flag(value, color)} for name, value in state.items()]
    click.echo(format_table(rows, ['toggle', 'state']))


@cli.command()
@click.pass_context
def adjust(ctx):
    """Reset toggles to the profile for this device's memory tier."""
    telemetry: TelemetryContext = ctx.obj['context']
    tier = telemetry.config.adjust_for_device()
    state = telemetry.config.state()

    if _wants_json(ctx):
        _emit_json({'tier': tier.value, 'toggles': state})
        return

    click.echo(format_success_message(f"Applied {tier.value}-tier profile", state))


@cli.command()
@click.pass_context
def cleanup(ctx):
    """Release cached data and report memory before and after."""
    telemetry: TelemetryContext = ctx.obj['context']
    monitor = telemetry.monitor

    before = monitor.sample()
    monitor.perform_manual_cleanup()
    after = monitor.get_last_sample() or before

    if _wants_json(ctx):
        _emit_json({'before': before.to_dict(), 'after': after.to_dict()})
        return

    click.echo(format_success_message("Cleanup complete", {
        'before': format_bytes(before.current_usage_bytes),
        'after': format_bytes(after.current_usage_bytes),
    }))


@cli.command()
@click.pass_context
def config(ctx):
    """Show current CLI configuration."""
    config_obj: CLIConfig = ctx.obj['config']

    click.echo("Current configuration:")
    click.echo("=" * 50)
    for key, value in config_obj.to_dict().items():
        click.echo(f"{key:<25}: {value}")
    click.echo(f"{'settings file':<25}: {config_obj.settings_path()}")


if __name__ == '__main__':
    cli()
