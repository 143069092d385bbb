from __future__ import annotations

from wagers.models import (
    ResolutionMethod,
    ResolverAssignment,
    Wager,
    WagerOutcome,
    WagerStatus,
)
from wagers.repositories import RepositoryBundle, VoteRepository, WagerRepository

from conftest import NOW


def test_close_is_a_guarded_compare_and_set(factory, session_factory):
    wager_id = factory.create()

    with session_factory() as first, session_factory() as second:
        assert WagerRepository(first).close_if_open(wager_id, NOW) is True
        first.commit()
        assert WagerRepository(second).close_if_open(wager_id, NOW) is False


def test_only_one_racing_resolution_flips_the_wager(factory, session_factory):
    wager_id = factory.create()

    with session_factory() as first, session_factory() as second:
        stale = WagerRepository(second).get(wager_id)
        assert stale.status == WagerStatus.OPEN.value

        assert WagerRepository(first).mark_resolved(wager_id, WagerOutcome.OPTION_1, NOW) is True
        first.commit()

        assert WagerRepository(second).mark_resolved(wager_id, WagerOutcome.OPTION_2, NOW) is False
        second.rollback()

    wager = factory.get(wager_id)
    assert wager.outcome == WagerOutcome.OPTION_1.value
    assert wager.resolved_at == NOW


def test_cancel_cannot_overwrite_resolution(factory, session_factory):
    wager_id = factory.create()

    with session_factory() as session:
        repo = WagerRepository(session)
        assert repo.mark_resolved(wager_id, WagerOutcome.DRAW, NOW) is True
        assert repo.cancel_if_unresolved(wager_id, NOW, "too late") is False
        session.commit()

    assert factory.get(wager_id).status == WagerStatus.RESOLVED.value


def test_joining_participant_vote_wager_grants_vote_only_assignment(factory, session_factory):
    wager_id = factory.create(resolution_method=ResolutionMethod.PARTICIPANT_VOTE.value)
    factory.join(wager_id, 11, chosen_option=1)
    self_wager = factory.create()
    factory.join(self_wager, 11, chosen_option=1)

    with session_factory() as session:
        stores = RepositoryBundle.for_session(session)
        (assignment,) = stores.resolvers.list_active(wager_id)
        assert isinstance(assignment, ResolverAssignment)
        assert assignment.resolver_id == 11
        assert assignment.can_resolve_independently is False
        assert stores.resolvers.list_active(self_wager) == []
        assert stores.resolvers.eligible_voter_ids(session.get(Wager, wager_id)) == frozenset({11})


def test_timestamps_round_trip_as_utc(factory):
    wager_id = factory.create(betting_deadline=NOW)

    assert factory.get(wager_id).betting_deadline == NOW
    assert factory.get(wager_id).betting_deadline.tzinfo is not None


def test_deactivated_votes_drop_out_of_counts(factory, session_factory):
    wager_id = factory.create(resolution_method=ResolutionMethod.PARTICIPANT_VOTE.value)
    factory.join(wager_id, 11, chosen_option=1)
    factory.join(wager_id, 12, chosen_option=2)

    with session_factory() as session:
        votes = VoteRepository(session)
        votes.upsert_outcome_vote(wager_id, 11, "OPTION_1", None, NOW)
        votes.upsert_outcome_vote(wager_id, 12, "OPTION_2", None, NOW)
        assert votes.outcome_counts(wager_id) == {"OPTION_1": 1, "OPTION_2": 1}

        assert votes.deactivate_voter(wager_id, 12, NOW) == 1
        assert votes.outcome_counts(wager_id) == {"OPTION_1": 1}

        # A fresh submission reactivates the same row.
        reactivated = votes.upsert_outcome_vote(wager_id, 12, "OPTION_1", "changed", NOW)
        assert reactivated.is_active is True
        assert votes.outcome_counts(wager_id) == {"OPTION_1": 2}
        session.commit()
