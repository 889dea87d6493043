"""
habitstreaks — Habit completion & streak recalculation engine.
"""

__version__ = "1.0.0"
