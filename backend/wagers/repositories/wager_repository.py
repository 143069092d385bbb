"""Wager persistence, guarded status transitions and deadline sweep queries."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from wagers.models import (
    ACTIVE_STATUSES,
    Wager,
    WagerOutcome,
    WagerStatus,
)


class WagerRepository:
    """Own every read and write of the wager row."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def add(self, wager: Wager) -> Wager:
        self._session.add(wager)
        self._session.flush()
        return wager

    def close_if_open(self, wager_id: int, closed_at: datetime) -> bool:
        """Flip OPEN to CLOSED; False when another caller already moved the wager."""

        return self._compare_and_set(
            wager_id,
            (WagerStatus.OPEN.value,),
            status=WagerStatus.CLOSED.value,
            closed_at=closed_at,
        )

    def mark_resolved(
        self,
        wager_id: int,
        outcome: WagerOutcome,
        resolved_at: datetime,
        *,
        resolved_by_id: int | None = None,
        rationale: str | None = None,
    ) -> bool:
        return self._compare_and_set(
            wager_id,
            ACTIVE_STATUSES,
            status=WagerStatus.RESOLVED.value,
            outcome=outcome.value,
            resolved_at=resolved_at,
            resolved_by_id=resolved_by_id,
            resolution_rationale=rationale,
        )

    def cancel_if_unresolved(
        self, wager_id: int, cancelled_at: datetime, reason: str | None = None
    ) -> bool:
        return self._compare_and_set(
            wager_id,
            ACTIVE_STATUSES,
            status=WagerStatus.CANCELLED.value,
            outcome=WagerOutcome.CANCELLED.value,
            cancelled_at=cancelled_at,
            cancellation_reason=reason,
        )

    def _compare_and_set(
        self, wager_id: int, expected: Sequence[str], **values: object
    ) -> bool:
        statement = (
            update(Wager)
            .where(Wager.id == wager_id, Wager.status.in_(expected))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(statement)
        if result.rowcount != 1:
            return False
        # Reload so the identity map reflects the row as written.
        self._session.get(Wager, wager_id, populate_existing=True)
        return True

    # ------------------------------------------------------------------
    # Queries

    def get(self, wager_id: int) -> Wager | None:
        return self._session.get(Wager, wager_id)

    def get_for_update(self, wager_id: int) -> Wager | None:
        statement = (
            select(Wager)
            .where(Wager.id == wager_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self._session.execute(statement).scalars().first()

    def find_expired_open(self, now: datetime) -> list[Wager]:
        statement = (
            select(Wager)
            .where(
                Wager.status == WagerStatus.OPEN.value,
                Wager.betting_deadline <= now,
            )
            .order_by(Wager.betting_deadline, Wager.id)
        )
        return list(self._session.execute(statement).scalars())

    def find_past_resolve_deadline(self, now: datetime) -> list[Wager]:
        statement = (
            select(Wager)
            .where(
                Wager.status.in_(ACTIVE_STATUSES),
                Wager.resolve_deadline.is_not(None),
                Wager.resolve_deadline <= now,
            )
            .order_by(Wager.resolve_deadline, Wager.id)
        )
        return list(self._session.execute(statement).scalars())

    def find_deadline_in_window(
        self,
        deadline_column,
        sent_column,
        window_start: datetime,
        window_end: datetime,
        statuses: Sequence[str],
    ) -> list[Wager]:
        """Wagers whose deadline falls in (window_start, window_end] with no reminder stamp."""

        statement = (
            select(Wager)
            .where(
                Wager.status.in_(statuses),
                deadline_column.is_not(None),
                deadline_column > window_start,
                deadline_column <= window_end,
                sent_column.is_(None),
            )
            .order_by(deadline_column, Wager.id)
        )
        return list(self._session.execute(statement).scalars())

    def find_urgent_unreminded(
        self,
        deadline_column,
        sent_columns: Sequence,
        now: datetime,
        window_end: datetime,
        statuses: Sequence[str],
    ) -> list[Wager]:
        """Wagers due in (now, window_end) that never received any reminder."""

        statement = (
            select(Wager)
            .where(
                Wager.status.in_(statuses),
                deadline_column.is_not(None),
                deadline_column > now,
                deadline_column < window_end,
                *(column.is_(None) for column in sent_columns),
            )
            .order_by(deadline_column, Wager.id)
        )
        return list(self._session.execute(statement).scalars())


__all__ = ["WagerRepository"]
