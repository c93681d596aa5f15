"""
CLI interface for perftune.

Provides command-line tools for inspecting telemetry snapshots, running the
performance probe suite and managing adaptive toggles.
"""

__all__ = ['cli']


# Lazy import so `python -m perftune.cli.main` does not import twice
def __getattr__(name):
    if name == 'cli':
        from .main import cli
        return cli
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
