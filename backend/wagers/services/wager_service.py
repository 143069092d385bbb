"""Wager lifecycle transitions outside resolution: closing and cancelling."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from wagers import schemas
from wagers.core.clock import Clock, SystemClock
from wagers.db import session_scope
from wagers.domain.events import BettingDeadlineReached, WagerCancelled
from wagers.errors import InvalidStateError, NotFoundError, UnauthorizedError
from wagers.models import WagerStatus
from wagers.repositories import RepositoryBundle

from .notifications import EventSink, LoggingEventSink, publish_all
from .settlement import Settlement, StakeLedgerSettlement


@dataclass(slots=True)
class CloseResult:
    closed: bool
    wager: schemas.Wager | None = None
    event: BettingDeadlineReached | None = None


class WagerService:
    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        *,
        settlement: Settlement | None = None,
        event_sink: EventSink | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settlement = settlement or StakeLedgerSettlement()
        self._event_sink = event_sink or LoggingEventSink()
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Closing

    def close(self, wager_id: int, actor_id: int | None = None) -> schemas.Wager:
        """Close betting now. Raises InvalidStateError when the wager is not OPEN."""

        result = self._close(wager_id, actor_id=actor_id)
        if not result.closed:
            raise InvalidStateError(f"Wager {wager_id} is not open")
        return result.wager

    def close_expired(self, wager_id: int) -> bool:
        """Deadline path: a lost race is a quiet no-op rather than an error."""

        return self._close(wager_id).closed

    def _close(self, wager_id: int, actor_id: int | None = None) -> CloseResult:
        with session_scope(self._session_factory) as session:
            stores = RepositoryBundle.for_session(session)
            wager = stores.wagers.get(wager_id)
            if wager is None:
                raise NotFoundError(f"Wager {wager_id} not found")
            if actor_id is not None and wager.creator_id != actor_id:
                raise UnauthorizedError("Only the wager creator can close betting")

            if not stores.wagers.close_if_open(wager.id, self._clock.now()):
                logger.debug("Wager {} was not open; close skipped", wager_id)
                return CloseResult(closed=False)

            event = BettingDeadlineReached(
                wager_id=wager.id,
                title=wager.title,
                group_id=wager.group_id,
                deadline=wager.betting_deadline,
                participant_count=stores.participations.count_for_wager(wager.id),
            )
            result = CloseResult(closed=True, wager=schemas.Wager.model_validate(wager), event=event)

        logger.info("Closed betting on wager {}", wager_id)
        publish_all(self._event_sink, [result.event])
        return result

    # ------------------------------------------------------------------
    # Cancelling

    def cancel(
        self, wager_id: int, actor_id: int, reason: str | None = None
    ) -> schemas.Wager:
        with session_scope(self._session_factory) as session:
            stores = RepositoryBundle.for_session(session)
            wager = stores.wagers.get_for_update(wager_id)
            if wager is None:
                raise NotFoundError(f"Wager {wager_id} not found")
            if wager.status == WagerStatus.RESOLVED.value:
                raise InvalidStateError("Cannot cancel a resolved wager")
            if wager.status == WagerStatus.CANCELLED.value:
                raise InvalidStateError(f"Wager {wager_id} is already cancelled")
            if wager.creator_id != actor_id:
                raise UnauthorizedError("Only the wager creator can cancel it")

            now = self._clock.now()
            if not stores.wagers.cancel_if_unresolved(wager.id, now, reason):
                raise InvalidStateError(f"Wager {wager_id} is no longer cancellable")

            refunded = stores.participations.refund_active(wager.id, now)
            refund_map: dict[int, Decimal] = {
                stake.user_id: Decimal(stake.stake_amount or 0) for stake in refunded
            }
            try:
                with session.begin_nested():
                    self._settlement.refund(session, wager, refunded, now)
            except Exception:  # noqa: BLE001
                logger.exception("Refund settlement failed for wager {}; cancellation stands", wager_id)

            event = WagerCancelled(
                wager_id=wager.id,
                title=wager.title,
                group_id=wager.group_id,
                cancelled_by_id=actor_id,
                reason=reason,
                refund_map=refund_map,
            )
            result = schemas.Wager.model_validate(wager)

        logger.info("Cancelled wager {} ({} stakes refunded)", wager_id, len(refund_map))
        publish_all(self._event_sink, [event])
        return result


__all__ = ["CloseResult", "WagerService"]
