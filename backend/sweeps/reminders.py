"""Approaching-deadline reminders with per-wager de-duplication stamps.

Betting and resolution reminders share one sweep shape and differ only in the
deadline they watch, the stamps they write, the statuses they apply to and
the event they emit.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger

from wagers.db import session_scope
from wagers.domain.events import (
    BettingDeadlineApproaching,
    DomainEvent,
    ResolutionDeadlineApproaching,
)
from wagers.models import ResolutionMethod, Wager, WagerStatus
from wagers.repositories import RepositoryBundle
from wagers.services import publish_all

from .base import SweepContext, SweepSummary

# Sweeps run every 15 minutes, so each lead time is matched against a window.
DAY_WINDOW = (timedelta(hours=23, minutes=45), timedelta(hours=24, minutes=15))
HOUR_WINDOW = (timedelta(minutes=45), timedelta(hours=1, minutes=15))
URGENT_HORIZON = timedelta(hours=1)
MIN_HOURS_FOR_DAY_REMINDER = 2


def day_reminder_suppressed(deadline: datetime, now: datetime) -> bool:
    """Too close for a day-ahead reminder; the hour reminder will cover it."""

    hours_until = int((deadline - now).total_seconds() // 3600)
    return hours_until < MIN_HOURS_FOR_DAY_REMINDER


@dataclass(frozen=True, slots=True)
class ReminderTrack:
    name: str
    deadline_attr: str
    day_stamp_attr: str
    hour_stamp_attr: str
    statuses: tuple[str, ...]
    build_event: Callable[[Wager, int, RepositoryBundle], DomainEvent]


def _betting_event(wager: Wager, hours: int, stores: RepositoryBundle) -> DomainEvent:
    return BettingDeadlineApproaching(
        wager_id=wager.id,
        title=wager.title,
        group_id=wager.group_id,
        deadline=wager.betting_deadline,
        hours_remaining=hours,
    )


def _resolution_event(wager: Wager, hours: int, stores: RepositoryBundle) -> DomainEvent:
    resolver_ids: list[int] = []
    if wager.resolution_method == ResolutionMethod.ASSIGNED_RESOLVERS.value:
        resolver_ids = [
            assignment.resolver_id for assignment in stores.resolvers.list_active(wager.id)
        ]
    return ResolutionDeadlineApproaching(
        wager_id=wager.id,
        title=wager.title,
        group_id=wager.group_id,
        resolve_deadline=wager.resolve_deadline,
        resolution_method=wager.resolution_method,
        creator_id=wager.creator_id,
        hours_remaining=hours,
        assigned_resolver_ids=resolver_ids,
    )


BETTING_TRACK = ReminderTrack(
    name="betting_reminders",
    deadline_attr="betting_deadline",
    day_stamp_attr="betting_24h_reminder_sent_at",
    hour_stamp_attr="betting_1h_reminder_sent_at",
    statuses=(WagerStatus.OPEN.value,),
    build_event=_betting_event,
)

RESOLUTION_TRACK = ReminderTrack(
    name="resolution_reminders",
    deadline_attr="resolve_deadline",
    day_stamp_attr="resolution_24h_reminder_sent_at",
    hour_stamp_attr="resolution_1h_reminder_sent_at",
    statuses=(WagerStatus.OPEN.value, WagerStatus.CLOSED.value),
    build_event=_resolution_event,
)


class ReminderSweep:
    def __init__(self, context: SweepContext, track: ReminderTrack) -> None:
        self._context = context
        self._track = track
        self.name = track.name

    def run(self) -> SweepSummary:
        summary = SweepSummary(sweep=self.name)
        now = self._context.clock.now()
        track = self._track

        self._remind_window(summary, now, DAY_WINDOW, hours=24, stamp_attr=track.day_stamp_attr)
        self._remind_window(summary, now, HOUR_WINDOW, hours=1, stamp_attr=track.hour_stamp_attr)
        self._remind_urgent(summary, now)

        if summary.examined:
            logger.info(
                "{} finished: sent={}, suppressed={}, failures={}",
                self.name,
                summary.notified,
                summary.skipped,
                len(summary.failures),
            )
        else:
            logger.debug("{}: nothing due", self.name)
        return summary

    def _remind_window(
        self,
        summary: SweepSummary,
        now: datetime,
        window: tuple[timedelta, timedelta],
        *,
        hours: int,
        stamp_attr: str,
    ) -> None:
        track = self._track
        with session_scope(self._context.session_factory) as session:
            wager_ids = [
                wager.id
                for wager in RepositoryBundle.for_session(session).wagers.find_deadline_in_window(
                    getattr(Wager, track.deadline_attr),
                    getattr(Wager, stamp_attr),
                    now + window[0],
                    now + window[1],
                    track.statuses,
                )
            ]
        for wager_id in wager_ids:
            self._remind_one(summary, wager_id, now, hours=hours, stamp_attr=stamp_attr)

    def _remind_urgent(self, summary: SweepSummary, now: datetime) -> None:
        """Deadline inside the next hour and no reminder ever sent."""

        track = self._track
        with session_scope(self._context.session_factory) as session:
            wager_ids = [
                wager.id
                for wager in RepositoryBundle.for_session(session).wagers.find_urgent_unreminded(
                    getattr(Wager, track.deadline_attr),
                    (getattr(Wager, track.day_stamp_attr), getattr(Wager, track.hour_stamp_attr)),
                    now,
                    now + URGENT_HORIZON,
                    track.statuses,
                )
            ]
        for wager_id in wager_ids:
            self._remind_one(
                summary, wager_id, now, hours=1, stamp_attr=track.hour_stamp_attr, urgent=True
            )

    def _remind_one(
        self,
        summary: SweepSummary,
        wager_id: int,
        now: datetime,
        *,
        hours: int,
        stamp_attr: str,
        urgent: bool = False,
    ) -> None:
        track = self._track
        summary.examined += 1
        event: DomainEvent | None = None
        try:
            with session_scope(self._context.session_factory) as session:
                stores = RepositoryBundle.for_session(session)
                wager = stores.wagers.get_for_update(wager_id)
                if (
                    wager is None
                    or wager.status not in track.statuses
                    or getattr(wager, stamp_attr) is not None
                ):
                    summary.skipped += 1
                    return

                deadline: datetime = getattr(wager, track.deadline_attr)
                if hours == 24 and day_reminder_suppressed(deadline, now):
                    setattr(wager, stamp_attr, now)
                    summary.skipped += 1
                    logger.debug("Suppressed 24h reminder for wager {}", wager_id)
                    return

                event = track.build_event(wager, hours, stores)
                setattr(wager, stamp_attr, now)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to send {} for wager {}", self.name, wager_id)
            summary.record_failure(wager_id, exc)
            return

        if urgent:
            logger.info("Urgent {} reminder for wager {}", self.name, wager_id)
        publish_all(self._context.event_sink, [event])
        summary.notified += 1


__all__ = [
    "BETTING_TRACK",
    "DAY_WINDOW",
    "HOUR_WINDOW",
    "RESOLUTION_TRACK",
    "ReminderSweep",
    "ReminderTrack",
    "URGENT_HORIZON",
    "day_reminder_suppressed",
]
