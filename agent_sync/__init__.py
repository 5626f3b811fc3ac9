"""Operator-side roster and conversation synchronization engine."""

__version__ = "1.0.0"
