"""Participant stake access, including the join contract and the refund pass."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from wagers.models import (
    ParticipantStake,
    ParticipationStatus,
    ResolutionMethod,
    Wager,
)

from .resolver_repository import ResolverRepository


class ParticipationRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def record_join(
        self,
        wager: Wager,
        user_id: int,
        *,
        stake_amount: Decimal | int | str = Decimal("0"),
        chosen_option: int | None = None,
        predicted_value: str | None = None,
        potential_winnings: Decimal | None = None,
    ) -> ParticipantStake:
        """Create a stake for ``user_id``.

        Joining a PARTICIPANT_VOTE wager also grants the participant a vote-only
        resolver assignment, which is what makes them an eligible voter.
        """

        stake = ParticipantStake(
            wager_id=wager.id,
            user_id=user_id,
            stake_amount=Decimal(str(stake_amount)),
            chosen_option=chosen_option,
            predicted_value=predicted_value,
            potential_winnings=potential_winnings,
            status=ParticipationStatus.ACTIVE.value,
        )
        self._session.add(stake)

        if wager.resolution_method == ResolutionMethod.PARTICIPANT_VOTE.value:
            resolvers = ResolverRepository(self._session)
            if resolvers.find_active(wager.id, user_id) is None:
                resolvers.create(
                    wager_id=wager.id,
                    resolver_id=user_id,
                    assigned_by_id=user_id,
                    reason="Participant",
                    can_resolve_independently=False,
                )

        self._session.flush()
        return stake

    def refund_active(
        self, wager_id: int, refunded_at: datetime
    ) -> list[ParticipantStake]:
        """Move every ACTIVE stake to REFUNDED and return the stakes touched."""

        refunded: list[ParticipantStake] = []
        for stake in self.list_for_wager(wager_id):
            if stake.status != ParticipationStatus.ACTIVE.value:
                continue
            stake.status = ParticipationStatus.REFUNDED.value
            stake.settled_at = refunded_at
            refunded.append(stake)
        self._session.flush()
        return refunded

    # ------------------------------------------------------------------
    # Queries

    def get(self, participation_id: int) -> ParticipantStake | None:
        return self._session.get(ParticipantStake, participation_id)

    def list_for_wager(self, wager_id: int) -> list[ParticipantStake]:
        statement = (
            select(ParticipantStake)
            .where(ParticipantStake.wager_id == wager_id)
            .order_by(ParticipantStake.id)
        )
        return list(self._session.execute(statement).scalars())

    def count_for_wager(self, wager_id: int) -> int:
        statement = select(func.count(ParticipantStake.id)).where(
            ParticipantStake.wager_id == wager_id
        )
        return int(self._session.execute(statement).scalar_one())


__all__ = ["ParticipationRepository"]
