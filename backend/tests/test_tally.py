from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import NOW
from sweeps.reminders import day_reminder_suppressed
from wagers.domain.tally import (
    correctness_result,
    expected_correctness_votes,
    outcome_for_results,
    parse_outcome,
    plurality_outcome,
    stake_results_for_outcome,
    winner_vote_result,
)
from wagers.errors import InvalidStateError
from wagers.models import ParticipationStatus, WagerOutcome


def test_plurality_single_leader_wins():
    assert plurality_outcome({"OPTION_1": 2, "OPTION_2": 1}) is WagerOutcome.OPTION_1


def test_plurality_tie_is_draw():
    assert plurality_outcome({"OPTION_1": 1, "OPTION_2": 1}) is WagerOutcome.DRAW
    assert plurality_outcome({"OPTION_1": 2, "OPTION_2": 2, "OPTION_3": 1}) is WagerOutcome.DRAW


def test_plurality_without_votes_is_draw():
    assert plurality_outcome({}) is WagerOutcome.DRAW


@pytest.mark.parametrize(
    ("correct", "incorrect", "expected"),
    [
        (3, 1, ParticipationStatus.WON),
        (2, 2, ParticipationStatus.DRAW),
        (1, 3, ParticipationStatus.LOST),
        (0, 0, ParticipationStatus.DRAW),
    ],
)
def test_correctness_thresholds(correct, incorrect, expected):
    assert correctness_result(correct, incorrect) is expected


@pytest.mark.parametrize(
    ("nominations", "total", "expected"),
    [
        (3, 4, ParticipationStatus.WON),
        (2, 4, ParticipationStatus.DRAW),
        (1, 4, ParticipationStatus.LOST),
        (1, 3, ParticipationStatus.LOST),
        (2, 3, ParticipationStatus.WON),
    ],
)
def test_winner_vote_thresholds(nominations, total, expected):
    assert winner_vote_result(nominations, total) is expected


def test_outcome_for_results_uses_placeholder_when_anyone_won():
    assert outcome_for_results([ParticipationStatus.LOST, ParticipationStatus.WON]) is WagerOutcome.OPTION_1
    assert outcome_for_results([ParticipationStatus.LOST, ParticipationStatus.DRAW]) is WagerOutcome.DRAW


def test_stake_results_for_option_and_draw():
    chosen = {10: 1, 11: 2, 12: 1}
    assert stake_results_for_outcome(WagerOutcome.OPTION_1, chosen) == {
        10: ParticipationStatus.WON,
        11: ParticipationStatus.LOST,
        12: ParticipationStatus.WON,
    }
    assert set(stake_results_for_outcome(WagerOutcome.DRAW, chosen).values()) == {
        ParticipationStatus.DRAW
    }


def test_expected_correctness_votes_excludes_self_votes():
    # Voters 1, 2, 3; stakes owned by 1, 2 and outsider 9.
    assert expected_correctness_votes([1, 2, 9], frozenset({1, 2, 3})) == 2 + 2 + 3


def test_parse_outcome_accepts_case_insensitive_values():
    assert parse_outcome(" option_2 ", {1, 2}) is WagerOutcome.OPTION_2
    assert parse_outcome("draw", {1, 2}) is WagerOutcome.DRAW


@pytest.mark.parametrize("value", ["OPTION_9", "maybe", "", "CANCELLED", "OPTION_3"])
def test_parse_outcome_rejects_invalid_values(value):
    with pytest.raises(InvalidStateError):
        parse_outcome(value, {1, 2})


def test_day_reminder_suppressed_under_two_hours():
    assert day_reminder_suppressed(NOW + timedelta(minutes=90), NOW)
    assert not day_reminder_suppressed(NOW + timedelta(hours=24), NOW)


def test_parse_outcome_follows_labelled_slots_not_label_count():
    # Labels on options 1, 2 and 4 with option 3 left blank.
    configured = frozenset({1, 2, 4})

    assert parse_outcome("OPTION_4", configured) is WagerOutcome.OPTION_4
    with pytest.raises(InvalidStateError):
        parse_outcome("OPTION_3", configured)
    with pytest.raises(InvalidStateError):
        parse_outcome("OPTION_2", frozenset({1, 3}))


def test_parse_outcome_defaults_to_binary_options_without_labels():
    assert parse_outcome("OPTION_2", frozenset()) is WagerOutcome.OPTION_2
    with pytest.raises(InvalidStateError):
        parse_outcome("OPTION_3", frozenset())
