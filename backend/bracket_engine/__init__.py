"""Bracket generation and progression engine for padel doubles tournaments."""

__version__ = "0.1.0"
