"""Momentum: a conversational personal task planner."""

__version__ = "0.1.0"
