"""Utility modules for Caput."""

from caput.utils.logging import bind_goal, get_logger, setup_logging

__all__ = ["bind_goal", "get_logger", "setup_logging"]
