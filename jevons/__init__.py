"""Jevons: local token usage aggregation and query engine."""

__version__ = "0.1.0"
