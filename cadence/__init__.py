"""Cadence — adaptive work/rest scheduling."""

__version__ = "0.1.0"
