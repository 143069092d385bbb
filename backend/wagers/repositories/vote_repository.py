"""Vote ledger: outcome votes, winner nominations and correctness votes."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import case, distinct, func, select
from sqlalchemy.orm import Session, selectinload

from wagers.models import CorrectnessVote, OutcomeVote, WinnerSelection


class VoteRepository:
    """One active vote per (wager, voter), one per (voter, target stake)."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def upsert_outcome_vote(
        self,
        wager_id: int,
        voter_id: int,
        outcome: str | None,
        rationale: str | None,
        voted_at: datetime,
    ) -> OutcomeVote:
        vote = self.find_outcome_vote(wager_id, voter_id)
        if vote is None:
            vote = OutcomeVote(wager_id=wager_id, voter_id=voter_id, created_at=voted_at)
            self._session.add(vote)
        vote.voted_outcome = outcome
        vote.rationale = rationale
        vote.is_active = True
        vote.updated_at = voted_at
        self._session.flush()
        return vote

    def replace_winner_nominations(
        self,
        wager_id: int,
        voter_id: int,
        winner_user_ids: Iterable[int],
        rationale: str | None,
        voted_at: datetime,
    ) -> OutcomeVote:
        vote = self.upsert_outcome_vote(wager_id, voter_id, None, rationale, voted_at)
        vote.winner_selections.clear()
        # Flush the orphan deletes before re-inserting the same (vote, winner) pairs.
        self._session.flush()
        for winner_id in winner_user_ids:
            vote.winner_selections.append(WinnerSelection(winner_user_id=winner_id))
        self._session.flush()
        return vote

    def upsert_correctness_vote(
        self,
        wager_id: int,
        voter_id: int,
        participation_id: int,
        is_correct: bool,
        voted_at: datetime,
    ) -> CorrectnessVote:
        statement = select(CorrectnessVote).where(
            CorrectnessVote.voter_id == voter_id,
            CorrectnessVote.participation_id == participation_id,
        )
        vote = self._session.execute(statement).scalars().first()
        if vote is None:
            vote = CorrectnessVote(
                wager_id=wager_id,
                voter_id=voter_id,
                participation_id=participation_id,
                created_at=voted_at,
            )
            self._session.add(vote)
        vote.is_correct = is_correct
        vote.is_active = True
        vote.updated_at = voted_at
        self._session.flush()
        return vote

    def deactivate_voter(self, wager_id: int, voter_id: int, at: datetime) -> int:
        """Retire every active vote ``voter_id`` holds on the wager."""

        touched = 0
        vote = self.find_outcome_vote(wager_id, voter_id)
        if vote is not None and vote.is_active:
            vote.is_active = False
            vote.updated_at = at
            touched += 1
        statement = select(CorrectnessVote).where(
            CorrectnessVote.wager_id == wager_id,
            CorrectnessVote.voter_id == voter_id,
            CorrectnessVote.is_active.is_(True),
        )
        for correctness_vote in self._session.execute(statement).scalars():
            correctness_vote.is_active = False
            correctness_vote.updated_at = at
            touched += 1
        self._session.flush()
        return touched

    # ------------------------------------------------------------------
    # Queries

    def find_outcome_vote(self, wager_id: int, voter_id: int) -> OutcomeVote | None:
        statement = select(OutcomeVote).where(
            OutcomeVote.wager_id == wager_id, OutcomeVote.voter_id == voter_id
        )
        return self._session.execute(statement).scalars().first()

    def list_active_outcome_votes(self, wager_id: int) -> list[OutcomeVote]:
        statement = (
            select(OutcomeVote)
            .options(selectinload(OutcomeVote.winner_selections))
            .where(OutcomeVote.wager_id == wager_id, OutcomeVote.is_active.is_(True))
            .order_by(OutcomeVote.created_at, OutcomeVote.id)
        )
        return list(self._session.execute(statement).scalars())

    def outcome_counts(self, wager_id: int) -> dict[str, int]:
        statement = (
            select(OutcomeVote.voted_outcome, func.count(OutcomeVote.id))
            .where(
                OutcomeVote.wager_id == wager_id,
                OutcomeVote.is_active.is_(True),
                OutcomeVote.voted_outcome.is_not(None),
            )
            .group_by(OutcomeVote.voted_outcome)
        )
        return {outcome: int(count) for outcome, count in self._session.execute(statement)}

    def count_outcome_voters(self, wager_id: int) -> int:
        return sum(self.outcome_counts(wager_id).values())

    def nomination_counts(self, wager_id: int) -> dict[int, int]:
        """Number of active voters that nominated each user."""

        statement = (
            select(WinnerSelection.winner_user_id, func.count(distinct(OutcomeVote.voter_id)))
            .join(OutcomeVote, WinnerSelection.vote_id == OutcomeVote.id)
            .where(OutcomeVote.wager_id == wager_id, OutcomeVote.is_active.is_(True))
            .group_by(WinnerSelection.winner_user_id)
        )
        return {user_id: int(count) for user_id, count in self._session.execute(statement)}

    def count_nominating_voters(self, wager_id: int) -> int:
        statement = (
            select(func.count(distinct(OutcomeVote.voter_id)))
            .join(WinnerSelection, WinnerSelection.vote_id == OutcomeVote.id)
            .where(OutcomeVote.wager_id == wager_id, OutcomeVote.is_active.is_(True))
        )
        return int(self._session.execute(statement).scalar_one())

    def count_active_correctness_votes(self, wager_id: int) -> int:
        statement = select(func.count(CorrectnessVote.id)).where(
            CorrectnessVote.wager_id == wager_id,
            CorrectnessVote.is_active.is_(True),
        )
        return int(self._session.execute(statement).scalar_one())

    def count_correctness_voters(self, wager_id: int) -> int:
        statement = select(func.count(distinct(CorrectnessVote.voter_id))).where(
            CorrectnessVote.wager_id == wager_id,
            CorrectnessVote.is_active.is_(True),
        )
        return int(self._session.execute(statement).scalar_one())

    def correctness_distribution(self, wager_id: int) -> dict[int, tuple[int, int]]:
        """Map participation id to (correct, incorrect) active vote counts."""

        correct = func.sum(case((CorrectnessVote.is_correct.is_(True), 1), else_=0))
        incorrect = func.sum(case((CorrectnessVote.is_correct.is_(False), 1), else_=0))
        statement = (
            select(CorrectnessVote.participation_id, correct, incorrect)
            .where(
                CorrectnessVote.wager_id == wager_id,
                CorrectnessVote.is_active.is_(True),
            )
            .group_by(CorrectnessVote.participation_id)
        )
        return {
            participation_id: (int(yes or 0), int(no or 0))
            for participation_id, yes, no in self._session.execute(statement)
        }


__all__ = ["VoteRepository"]
