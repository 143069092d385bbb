"""Domain events handed to the notification collaborator after a commit."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar


@dataclass(slots=True, frozen=True)
class DomainEvent:
    event_type: ClassVar[str] = "domain_event"

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["event_type"] = self.event_type
        return payload


@dataclass(slots=True, frozen=True)
class WagerResolved(DomainEvent):
    event_type: ClassVar[str] = "wager_resolved"

    wager_id: int
    title: str
    group_id: int
    outcome: str
    outcome_label: str | None
    resolved_by_id: int | None
    winner_ids: list[int] = field(default_factory=list)
    loser_ids: list[int] = field(default_factory=list)
    draw_ids: list[int] = field(default_factory=list)
    payout_deltas: dict[int, Decimal] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class WagerCancelled(DomainEvent):
    event_type: ClassVar[str] = "wager_cancelled"

    wager_id: int
    title: str
    group_id: int
    cancelled_by_id: int
    reason: str | None
    refund_map: dict[int, Decimal] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class BettingDeadlineReached(DomainEvent):
    event_type: ClassVar[str] = "betting_deadline_reached"

    wager_id: int
    title: str
    group_id: int
    deadline: datetime
    participant_count: int


@dataclass(slots=True, frozen=True)
class AwaitingManualResolution(DomainEvent):
    event_type: ClassVar[str] = "awaiting_manual_resolution"

    wager_id: int
    title: str
    group_id: int
    resolve_deadline: datetime | None
    resolution_method: str
    creator_id: int
    resolver_ids: list[int] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class ResolutionDeadlineApproaching(DomainEvent):
    event_type: ClassVar[str] = "resolution_deadline_approaching"

    wager_id: int
    title: str
    group_id: int
    resolve_deadline: datetime
    resolution_method: str
    creator_id: int
    hours_remaining: int
    assigned_resolver_ids: list[int] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class BettingDeadlineApproaching(DomainEvent):
    event_type: ClassVar[str] = "betting_deadline_approaching"

    wager_id: int
    title: str
    group_id: int
    deadline: datetime
    hours_remaining: int


__all__ = [
    "DomainEvent",
    "WagerResolved",
    "WagerCancelled",
    "BettingDeadlineReached",
    "AwaitingManualResolution",
    "ResolutionDeadlineApproaching",
    "BettingDeadlineApproaching",
]
