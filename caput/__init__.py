"""Caput - autonomous goal-processing agent."""
__version__ = "0.1.0"
