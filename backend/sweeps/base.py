"""Shared wiring and result types for the deadline sweeps."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from sqlalchemy.orm import Session, sessionmaker

from wagers.core.clock import Clock, SystemClock
from wagers.core.config import Settings, get_settings
from wagers.services import (
    EventSink,
    LoggingEventSink,
    ResolutionService,
    Settlement,
    StakeLedgerSettlement,
    WagerService,
)


@dataclass(slots=True)
class SweepContext:
    """Collaborators every sweep runs against."""

    settings: Settings
    clock: Clock
    event_sink: EventSink
    settlement: Settlement
    session_factory: sessionmaker[Session] | None = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "SweepContext":
        return cls(
            settings=settings or get_settings(),
            clock=SystemClock(),
            event_sink=LoggingEventSink(),
            settlement=StakeLedgerSettlement(),
        )

    def resolution_service(self) -> ResolutionService:
        return ResolutionService(
            self.session_factory,
            settlement=self.settlement,
            event_sink=self.event_sink,
            clock=self.clock,
        )

    def wager_service(self) -> WagerService:
        return WagerService(
            self.session_factory,
            settlement=self.settlement,
            event_sink=self.event_sink,
            clock=self.clock,
        )


@dataclass(slots=True)
class SweepSummary:
    sweep: str
    examined: int = 0
    transitioned: int = 0
    notified: int = 0
    skipped: int = 0
    failures: list[dict[str, Any]] = field(default_factory=list)

    def record_failure(self, wager_id: int, exc: BaseException) -> None:
        self.failures.append({"wager_id": wager_id, "error": f"{type(exc).__name__}: {exc}"})

    def to_dict(self) -> dict[str, Any]:
        return {
            "sweep": self.sweep,
            "examined": self.examined,
            "transitioned": self.transitioned,
            "notified": self.notified,
            "skipped": self.skipped,
            "failures": self.failures,
        }


class Sweep(Protocol):
    name: str

    def run(self) -> SweepSummary:
        ...


__all__ = ["Sweep", "SweepContext", "SweepSummary"]
