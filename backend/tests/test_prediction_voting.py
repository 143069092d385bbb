from __future__ import annotations

import pytest

from wagers.domain.events import WagerResolved
from wagers.errors import InvalidStateError, NotFoundError, UnauthorizedError
from wagers.models import ResolutionMethod, WagerStatus, WagerType


def _prediction_wager(factory, users, method=ResolutionMethod.PARTICIPANT_VOTE):
    wager_id = factory.create(
        wager_type=WagerType.PREDICTION.value,
        resolution_method=method.value,
        option_1=None,
        option_2=None,
    )
    stake_ids = {
        user_id: factory.join(wager_id, user_id, predicted_value=f"guess-{user_id}")
        for user_id in users
    }
    return wager_id, stake_ids


def test_correctness_votes_resolve_per_participant(factory, engine_service, sink):
    wager_id, stakes = _prediction_wager(factory, [11, 12, 13])
    ballots = [
        (12, stakes[11], True),
        (13, stakes[11], True),
        (11, stakes[12], True),
        (13, stakes[12], False),
        (11, stakes[13], False),
    ]
    for voter_id, target_id, is_correct in ballots:
        result = engine_service.vote_on_prediction(wager_id, voter_id, target_id, is_correct)
        assert result.status == WagerStatus.OPEN.value

    result = engine_service.vote_on_prediction(wager_id, 12, stakes[13], False)

    assert result.status == WagerStatus.RESOLVED.value
    assert result.outcome == "OPTION_1"
    records = factory.stakes(wager_id)
    assert records[11].status == "WON"
    assert records[12].status == "DRAW"
    assert records[13].status == "LOST"
    (event,) = sink.of_type(WagerResolved)
    assert event.winner_ids == [11]
    assert event.draw_ids == [12]
    assert event.loser_ids == [13]


def test_revoting_correctness_replaces_previous_judgement(factory, engine_service):
    wager_id, stakes = _prediction_wager(factory, [11, 12])

    engine_service.vote_on_prediction(wager_id, 12, stakes[11], False)
    engine_service.vote_on_prediction(wager_id, 12, stakes[11], True)
    result = engine_service.vote_on_prediction(wager_id, 11, stakes[12], False)

    assert result.status == WagerStatus.RESOLVED.value
    records = factory.stakes(wager_id)
    assert records[11].status == "WON"
    assert records[12].status == "LOST"


def test_cannot_vote_on_own_prediction(factory, engine_service):
    wager_id, stakes = _prediction_wager(factory, [11, 12])

    with pytest.raises(UnauthorizedError):
        engine_service.vote_on_prediction(wager_id, 11, stakes[11], True)


def test_prediction_vote_targets_must_belong_to_wager(factory, engine_service):
    wager_id, _ = _prediction_wager(factory, [11, 12])
    _, other_stakes = _prediction_wager(factory, [21, 22])

    with pytest.raises(NotFoundError):
        engine_service.vote_on_prediction(wager_id, 11, other_stakes[21], True)


def test_prediction_paths_reject_other_wager_types(factory, engine_service):
    wager_id, stakes = _prediction_wager(factory, [11, 12])
    binary_id = factory.create(resolution_method=ResolutionMethod.PARTICIPANT_VOTE.value)
    binary_stake = factory.join(binary_id, 11, chosen_option=1)
    factory.join(binary_id, 12, chosen_option=2)

    with pytest.raises(InvalidStateError):
        engine_service.vote(wager_id, 11, "OPTION_1")
    with pytest.raises(InvalidStateError):
        engine_service.vote_on_prediction(binary_id, 12, binary_stake, True)
    with pytest.raises(InvalidStateError):
        engine_service.vote_on_prediction_by_winners(binary_id, 12, [11])


def test_winner_selection_consensus_thresholds(factory, engine_service):
    wager_id, _ = _prediction_wager(factory, [11, 12, 13, 14])

    engine_service.vote_on_prediction_by_winners(wager_id, 11, [12, 13])
    engine_service.vote_on_prediction_by_winners(wager_id, 12, [11])
    result = engine_service.vote_on_prediction_by_winners(wager_id, 13, [11, 12])
    assert result.status == WagerStatus.OPEN.value

    result = engine_service.vote_on_prediction_by_winners(wager_id, 14, [11], "Closest guess")

    assert result.status == WagerStatus.RESOLVED.value
    assert result.outcome == "OPTION_1"
    records = factory.stakes(wager_id)
    assert records[11].status == "WON"
    assert records[12].status == "DRAW"
    assert records[13].status == "LOST"
    assert records[14].status == "LOST"


def test_winner_nominations_are_replaced_not_merged(factory, engine_service):
    wager_id, _ = _prediction_wager(factory, [11, 12, 13])

    engine_service.vote_on_prediction_by_winners(wager_id, 11, [13])
    engine_service.vote_on_prediction_by_winners(wager_id, 11, [12, 12])

    (vote,) = engine_service.list_active_votes(wager_id)
    assert vote.winner_user_ids == [12]
    assert vote.voted_outcome is None


def test_winner_nominations_must_name_participants(factory, engine_service):
    wager_id, _ = _prediction_wager(factory, [11, 12])

    with pytest.raises(InvalidStateError):
        engine_service.vote_on_prediction_by_winners(wager_id, 11, [99])
    with pytest.raises(InvalidStateError):
        engine_service.vote_on_prediction_by_winners(wager_id, 11, [])


def test_forced_prediction_uses_correctness_votes(factory, engine_service):
    wager_id, stakes = _prediction_wager(factory, [11, 12, 13])
    engine_service.vote_on_prediction(wager_id, 12, stakes[11], True)

    result = engine_service.force_resolve(wager_id)

    assert result.outcome == "OPTION_1"
    records = factory.stakes(wager_id)
    assert records[11].status == "WON"
    assert records[12].status == "DRAW"
    assert records[13].status == "DRAW"


def test_forced_prediction_prefers_winner_nominations(factory, engine_service):
    wager_id, _ = _prediction_wager(factory, [11, 12, 13])
    engine_service.vote_on_prediction_by_winners(wager_id, 12, [11])

    engine_service.force_resolve(wager_id)

    records = factory.stakes(wager_id)
    assert records[11].status == "WON"
    assert records[12].status == "LOST"
    assert records[13].status == "LOST"


def test_creator_resolves_prediction_by_winners(factory, engine_service, sink):
    wager_id, _ = _prediction_wager(factory, [11, 12, 13], method=ResolutionMethod.SELF)

    with pytest.raises(UnauthorizedError):
        engine_service.resolve_by_winners(wager_id, 11, [11])
    with pytest.raises(InvalidStateError):
        engine_service.resolve_by_winners(wager_id, 1, [11, 99])
    with pytest.raises(InvalidStateError):
        engine_service.resolve_by_winners(wager_id, 1, [])

    result = engine_service.resolve_by_winners(wager_id, 1, [11, 13], "Both within a degree")

    assert result.outcome == "OPTION_1"
    records = factory.stakes(wager_id)
    assert records[11].status == "WON"
    assert records[12].status == "LOST"
    assert records[13].status == "WON"
    (event,) = sink.of_type(WagerResolved)
    assert sorted(event.winner_ids) == [11, 13]
    assert event.draw_ids == []
    assert event.resolved_by_id == 1


def test_eligible_voter_resolves_participant_vote_prediction_by_winners(
    factory, engine_service, sink
):
    wager_id, _ = _prediction_wager(factory, [11, 12, 13])

    assert engine_service.can_resolve(wager_id, 11) is True
    assert engine_service.can_resolve(wager_id, 99) is False
    with pytest.raises(UnauthorizedError):
        engine_service.resolve_by_winners(wager_id, 99, [12])

    result = engine_service.resolve_by_winners(wager_id, 11, [12], "Closest to the real value")

    assert result.status == WagerStatus.RESOLVED.value
    assert result.resolved_by_id == 11
    records = factory.stakes(wager_id)
    assert records[12].status == "WON"
    assert records[11].status == "LOST"
    assert records[13].status == "LOST"
    (event,) = sink.of_type(WagerResolved)
    assert event.winner_ids == [12]
    assert engine_service.can_resolve(wager_id, 11) is False


def test_participant_vote_creator_needs_vote_permission_to_name_winners(factory, engine_service):
    wager_id, _ = _prediction_wager(factory, [11, 12])

    with pytest.raises(UnauthorizedError):
        engine_service.resolve_by_winners(wager_id, 1, [11])


def test_resolve_by_winners_requires_prediction_wager(factory, engine_service):
    wager_id = factory.create()
    factory.join(wager_id, 11, chosen_option=1)

    with pytest.raises(InvalidStateError):
        engine_service.resolve_by_winners(wager_id, 1, [11])


def test_prediction_resolution_status_counts_nominators(factory, engine_service):
    wager_id, _ = _prediction_wager(factory, [11, 12, 13])
    engine_service.vote_on_prediction_by_winners(wager_id, 12, [11])

    status = engine_service.get_resolution_status(wager_id)

    assert status.total_voters == 3
    assert status.voters_who_voted == 1
    assert status.vote_counts == {}
