"""QueryPilot: natural-language questions answered with generated SQL."""

__version__ = "0.1.0"
