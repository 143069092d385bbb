"""Repository abstractions for database interactions."""

from .participation_repository import ParticipationRepository
from .resolver_repository import ResolverRepository
from .types import RepositoryBundle
from .vote_repository import VoteRepository
from .wager_repository import WagerRepository

__all__ = [
    "ParticipationRepository",
    "RepositoryBundle",
    "ResolverRepository",
    "VoteRepository",
    "WagerRepository",
]
