"""Evaluate memory savings from deduplicating cluster image pull secrets."""

__version__ = "0.1.0"
