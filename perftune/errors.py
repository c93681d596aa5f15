"""Exception types raised by the perftune package."""


class PerftuneError(Exception):
    """Base class for perftune errors."""


class ConfigurationError(PerftuneError, ValueError):
    """A configuration value is out of range or malformed."""


class UnknownToggleError(PerftuneError, KeyError):
    """Raised when a toggle name is not part of the adaptive toggle set."""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown toggle: {self.name!r}"


class OrchestratorError(PerftuneError):
    """The probe suite could not be started or completed."""
