"""Shared repository wiring."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from .participation_repository import ParticipationRepository
from .resolver_repository import ResolverRepository
from .vote_repository import VoteRepository
from .wager_repository import WagerRepository


@dataclass(slots=True)
class RepositoryBundle:
    """Every repository bound to one unit-of-work session."""

    session: Session
    wagers: WagerRepository
    participations: ParticipationRepository
    resolvers: ResolverRepository
    votes: VoteRepository

    @classmethod
    def for_session(cls, session: Session) -> "RepositoryBundle":
        return cls(
            session=session,
            wagers=WagerRepository(session),
            participations=ParticipationRepository(session),
            resolvers=ResolverRepository(session),
            votes=VoteRepository(session),
        )


__all__ = ["RepositoryBundle"]
