"""Recurring deadline sweeps for wagers."""

from .base import Sweep, SweepContext, SweepSummary
from .deadlines import CloseExpiredWagersSweep, ProcessResolvableWagersSweep
from .reminders import BETTING_TRACK, RESOLUTION_TRACK, ReminderSweep, ReminderTrack

__all__ = [
    "BETTING_TRACK",
    "CloseExpiredWagersSweep",
    "ProcessResolvableWagersSweep",
    "RESOLUTION_TRACK",
    "ReminderSweep",
    "ReminderTrack",
    "Sweep",
    "SweepContext",
    "SweepSummary",
]
