"""Metrics aggregation, health scoring, and suggestion engine for project portfolios."""

__version__ = "0.1.0"
