"""Resolver assignments: the single source of truth for who may vote or resolve."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from wagers.models import ResolverAssignment, Wager


class ResolverRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def create(
        self,
        *,
        wager_id: int,
        resolver_id: int,
        assigned_by_id: int,
        reason: str | None,
        can_resolve_independently: bool,
    ) -> ResolverAssignment:
        assignment = ResolverAssignment(
            wager_id=wager_id,
            resolver_id=resolver_id,
            assigned_by_id=assigned_by_id,
            reason=reason,
            can_resolve_independently=can_resolve_independently,
            is_active=True,
        )
        self._session.add(assignment)
        self._session.flush()
        return assignment

    def revoke(self, assignment: ResolverAssignment, revoked_at: datetime) -> None:
        assignment.is_active = False
        assignment.revoked_at = revoked_at
        self._session.flush()

    # ------------------------------------------------------------------
    # Queries

    def find_active(self, wager_id: int, resolver_id: int) -> ResolverAssignment | None:
        statement = select(ResolverAssignment).where(
            ResolverAssignment.wager_id == wager_id,
            ResolverAssignment.resolver_id == resolver_id,
            ResolverAssignment.is_active.is_(True),
        )
        return self._session.execute(statement).scalars().first()

    def list_active(self, wager_id: int) -> list[ResolverAssignment]:
        statement = (
            select(ResolverAssignment)
            .where(
                ResolverAssignment.wager_id == wager_id,
                ResolverAssignment.is_active.is_(True),
            )
            .order_by(ResolverAssignment.assigned_at, ResolverAssignment.id)
        )
        return list(self._session.execute(statement).scalars())

    def eligible_voter_ids(self, wager: Wager) -> frozenset[int]:
        """Distinct users allowed to cast a consensus vote on ``wager``."""

        voters = {assignment.resolver_id for assignment in self.list_active(wager.id)}
        if wager.allow_creator_vote:
            voters.add(wager.creator_id)
        return frozenset(voters)


__all__ = ["ResolverRepository"]
