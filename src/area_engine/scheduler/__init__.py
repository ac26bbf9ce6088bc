"""Scheduling of the fixed-delay polling loops."""

from .scheduler import PollingLoop, PollingScheduler

__all__ = ["PollingLoop", "PollingScheduler"]
