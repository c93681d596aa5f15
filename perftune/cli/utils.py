"""
Utility functions for the perftune CLI.

Provides formatting, table display, threshold color coding and error display.
"""

import traceback
from typing import Any, Dict, List

import click

# Display thresholds used for color coding
MEMORY_WARNING_PERCENT = 80.0
HIT_RATE_GOOD = 0.8
SCORE_GOOD = 80.0
SCORE_FAIR = 60.0


def format_bytes(num_bytes: float) -> str:
    """Format a byte count with a binary unit."""
    value = float(num_bytes)
    if abs(value) < 1024:
        return f"{int(value)} B"
    for unit in ('KiB', 'MiB'):
        value /= 1024
        if abs(value) < 1024:
            return f"{value:.1f} {unit}"
    return f"{value / 1024:.1f} GiB"


def colorize_memory(percentage: float, use_color: bool = True) -> str:
    text = f"{percentage:.1f}%"
    if not use_color:
        return text
    return click.style(text, fg='red' if percentage > MEMORY_WARNING_PERCENT else 'green')


def colorize_hit_rate(hit_rate: float, use_color: bool = True) -> str:
    text = f"{hit_rate:.1%}"
    if not use_color:
        return text
    return click.style(text, fg='green' if hit_rate > HIT_RATE_GOOD else 'yellow')


def colorize_score(score: float, use_color: bool = True) -> str:
    """Apply color coding to an overall test score."""
    text = f"{score:.1f}"
    if not use_color:
        return text
    if score > SCORE_GOOD:
        color = 'green'
    elif score > SCORE_FAIR:
        color = 'yellow'
    else:
        color = 'red'
    return click.style(text, fg=color)


def colorize_flag(value: bool, use_color: bool = True) -> str:
    text = "on" if value else "off"
    if not use_color:
        return text
    return click.style(text, fg='green' if value else 'white')


def format_table(data: List[Dict[str, Any]], headers: List[str]) -> str:
    """Format rows as a plain table; styled cells are padded by visible width."""
    if not data:
        return "No data to display."

    col_widths = {}
    for header in headers:
        col_widths[header] = len(header)
        for row in data:
            visible = click.unstyle(str(row.get(header, "N/A")))
            col_widths[header] = max(col_widths[header], len(visible))

    lines = [
        " | ".join(h.ljust(col_widths[h]) for h in headers),
        "-+-".join("-" * col_widths[h] for h in headers),
    ]

    for row in data:
        row_values = []
        for header in headers:
            value = str(row.get(header, "N/A"))
            padding = col_widths[header] - len(click.unstyle(value))
            row_values.append(value + " " * padding)
        lines.append(" | ".join(row_values))

    return "\n".join(lines)


def format_success_message(message: str, details: Dict[str, Any] = None) -> str:
    """Format a consistent success message with optional details."""
    lines = [click.style(f"✓ {message}", fg='green')]

    if details:
        for key, value in details.items():
            if value is not None:
                lines.append(f"  {key}: {value}")

    return "\n".join(lines)


def handle_error(error: Exception, verbose: bool = False, context: str = None) -> None:
    """Display an error, with a traceback in verbose mode."""
    click.echo(click.style(f"✗ Error: {error}", fg='red'), err=True)

    if context:
        click.echo(f"  Context: {context}", err=True)

    if verbose:
        click.echo(click.style("\nDetailed traceback:", fg='cyan'), err=True)
        click.echo(traceback.format_exc(), err=True)
    else:
        click.echo("\nUse --verbose for detailed error information", err=True)
