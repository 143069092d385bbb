"""Event sink seam; delivery is best-effort and happens after commit."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from loguru import logger

from wagers.domain.events import DomainEvent


class EventSink(Protocol):
    def publish(self, event: DomainEvent) -> None:
        ...


class LoggingEventSink:
    """Sink used when no notification fan-out is wired in."""

    def publish(self, event: DomainEvent) -> None:
        logger.info("Event {} {}", event.event_type, event.to_dict())


def publish_all(sink: EventSink, events: Iterable[DomainEvent]) -> int:
    """Publish each event, logging failures instead of raising. Returns successes."""

    delivered = 0
    for event in events:
        try:
            sink.publish(event)
        except Exception:  # noqa: BLE001
            logger.exception(
                "Failed to publish {} for wager {}",
                event.event_type,
                getattr(event, "wager_id", None),
            )
            continue
        delivered += 1
    return delivered


__all__ = ["EventSink", "LoggingEventSink", "publish_all"]
