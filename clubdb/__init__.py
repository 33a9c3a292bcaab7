"""clubdb - data movement tooling for the club management platform."""

__version__ = "0.1.0"
