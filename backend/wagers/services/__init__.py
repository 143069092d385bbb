"""Application services wrapping the wager repositories."""

from .notifications import EventSink, LoggingEventSink, publish_all
from .resolution_service import ResolutionService
from .settlement import Settlement, StakeLedgerSettlement
from .wager_service import CloseResult, WagerService

__all__ = [
    "CloseResult",
    "EventSink",
    "LoggingEventSink",
    "ResolutionService",
    "Settlement",
    "StakeLedgerSettlement",
    "WagerService",
    "publish_all",
]
