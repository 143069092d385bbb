"""Pure vote-tallying rules shared by consensus, forced and direct resolution."""

from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping

from wagers.errors import InvalidStateError
from wagers.models import ParticipationStatus, WagerOutcome


BINARY_OPTIONS = frozenset({1, 2})


def parse_outcome(
    value: str | WagerOutcome, configured_options: Collection[int]
) -> WagerOutcome:
    """Parse a caller supplied outcome and check it against the configured options.

    ``configured_options`` holds the option indexes that carry a label; an
    unlabelled wager accepts the two binary options.
    """

    if isinstance(value, WagerOutcome):
        outcome = value
    else:
        token = (value or "").strip().upper()
        try:
            outcome = WagerOutcome(token)
        except ValueError as exc:
            raise InvalidStateError(f"Invalid outcome: {value!r}") from exc

    if outcome is WagerOutcome.CANCELLED:
        raise InvalidStateError("CANCELLED is not a resolvable outcome")
    index = outcome.option_index
    if index is not None and index not in (configured_options or BINARY_OPTIONS):
        raise InvalidStateError(f"Outcome {outcome.value} is not configured on this wager")
    return outcome


def plurality_outcome(counts: Mapping[str | WagerOutcome, int]) -> WagerOutcome:
    """Return the single most voted outcome, or DRAW on a tie or an empty tally."""

    positive = {WagerOutcome(key): count for key, count in counts.items() if count > 0}
    if not positive:
        return WagerOutcome.DRAW
    top = max(positive.values())
    leaders = [outcome for outcome, count in positive.items() if count == top]
    if len(leaders) != 1:
        return WagerOutcome.DRAW
    return leaders[0]


def stake_results_for_outcome(
    outcome: WagerOutcome, chosen_options: Mapping[int, int | None]
) -> dict[int, ParticipationStatus]:
    """Map stake id to WON/LOST for an option outcome; DRAW settles every stake as DRAW."""

    if outcome is WagerOutcome.DRAW:
        return {stake_id: ParticipationStatus.DRAW for stake_id in chosen_options}
    index = outcome.option_index
    return {
        stake_id: ParticipationStatus.WON if chosen == index else ParticipationStatus.LOST
        for stake_id, chosen in chosen_options.items()
    }


def correctness_result(correct: int, incorrect: int) -> ParticipationStatus:
    total = correct + incorrect
    if total == 0:
        return ParticipationStatus.DRAW
    # Integer form of 100 * correct / total compared against 50.
    if correct * 2 > total:
        return ParticipationStatus.WON
    if correct * 2 == total:
        return ParticipationStatus.DRAW
    return ParticipationStatus.LOST


def winner_vote_result(nominations: int, total_voters: int) -> ParticipationStatus:
    if total_voters == 0:
        return ParticipationStatus.DRAW
    if nominations * 2 > total_voters:
        return ParticipationStatus.WON
    # An exact half is only reachable when the voter total is even.
    if nominations * 2 == total_voters:
        return ParticipationStatus.DRAW
    return ParticipationStatus.LOST


def outcome_for_results(results: Iterable[ParticipationStatus]) -> WagerOutcome:
    """Placeholder wager outcome for prediction wagers resolved per participant."""

    if any(result is ParticipationStatus.WON for result in results):
        return WagerOutcome.OPTION_1
    return WagerOutcome.DRAW


def expected_correctness_votes(
    owner_ids: Iterable[int], eligible_voter_ids: Collection[int]
) -> int:
    """Total correctness votes needed before every eligible voter has judged every stake.

    Voters never judge their own stake, so an owner who is also a voter lowers
    the expectation for that stake by one.
    """

    voter_count = len(eligible_voter_ids)
    total = 0
    for owner_id in owner_ids:
        total += voter_count - 1 if owner_id in eligible_voter_ids else voter_count
    return total


__all__ = [
    "parse_outcome",
    "plurality_outcome",
    "stake_results_for_outcome",
    "correctness_result",
    "winner_vote_result",
    "outcome_for_results",
    "expected_correctness_votes",
]
