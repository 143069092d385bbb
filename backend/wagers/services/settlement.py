"""Settlement hand-off invoked once per resolution or cancellation."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from typing import Protocol

from loguru import logger
from sqlalchemy.orm import Session

from wagers.models import ParticipantStake, ParticipationStatus, Wager


class Settlement(Protocol):
    """External payout collaborator.

    ``settle`` runs after the wager flipped to RESOLVED and every stake carries
    its final status; it returns the per-user payout delta reported in the
    resolved event. ``refund`` runs after a cancellation moved stakes to
    REFUNDED. Both execute inside the resolving unit of work.
    """

    def settle(
        self, session: Session, wager: Wager, stakes: Sequence[ParticipantStake], at: datetime
    ) -> dict[int, Decimal]:
        ...

    def refund(
        self, session: Session, wager: Wager, stakes: Sequence[ParticipantStake], at: datetime
    ) -> None:
        ...


class StakeLedgerSettlement:
    """Default settlement: derives payout deltas from the stake rows themselves."""

    def settle(
        self, session: Session, wager: Wager, stakes: Sequence[ParticipantStake], at: datetime
    ) -> dict[int, Decimal]:
        deltas: dict[int, Decimal] = {}
        for stake in stakes:
            if stake.status == ParticipationStatus.WON.value:
                deltas[stake.user_id] = Decimal(stake.potential_winnings or 0)
            elif stake.status == ParticipationStatus.LOST.value:
                deltas[stake.user_id] = -Decimal(stake.stake_amount or 0)
            elif stake.status == ParticipationStatus.DRAW.value:
                deltas[stake.user_id] = Decimal("0")
            else:
                continue
            stake.settled_at = at
        session.flush()
        return deltas

    def refund(
        self, session: Session, wager: Wager, stakes: Sequence[ParticipantStake], at: datetime
    ) -> None:
        logger.debug("Refunded {} stakes on wager {}", len(stakes), wager.id)


__all__ = ["Settlement", "StakeLedgerSettlement"]
