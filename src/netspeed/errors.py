"""Exception hierarchy for netspeed."""


class NetSpeedError(Exception):
    """Base class for all netspeed errors."""


class SourceUnavailableError(NetSpeedError):
    """An OS query or the accounting subprocess failed."""


class ParseSkippedError(NetSpeedError):
    """A single line of accounting output could not be parsed."""

    def __init__(self, line: str, reason: str) -> None:
        super().__init__(f"{reason}: {line!r}")
        self.line = line
        self.reason = reason


class ConfigError(NetSpeedError):
    """The configuration file or a configuration value is invalid."""
