"""statpulse: SDMX API health monitoring for the .Stat Suite platform."""

__version__ = "0.1.0"
