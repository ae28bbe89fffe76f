"""
Exception types raised by statpulse.

Probe and detection problems never surface here: they are absorbed into
measurement records. Only structural failures that should abort a run do.
"""


class StatpulseError(Exception):
    """Base class for statpulse errors."""


class ConfigurationError(StatpulseError):
    """Required configuration is missing or invalid."""


class HealthLogWriteError(StatpulseError):
    """The health log could not be written."""


class PublishError(StatpulseError):
    """A finished report could not be delivered."""
