"""Pure domain rules and events for wager resolution."""

from .events import (
    AwaitingManualResolution,
    BettingDeadlineApproaching,
    BettingDeadlineReached,
    DomainEvent,
    ResolutionDeadlineApproaching,
    WagerCancelled,
    WagerResolved,
)
from .tally import (
    correctness_result,
    expected_correctness_votes,
    outcome_for_results,
    parse_outcome,
    plurality_outcome,
    stake_results_for_outcome,
    winner_vote_result,
)

__all__ = [
    "AwaitingManualResolution",
    "BettingDeadlineApproaching",
    "BettingDeadlineReached",
    "DomainEvent",
    "ResolutionDeadlineApproaching",
    "WagerCancelled",
    "WagerResolved",
    "correctness_result",
    "expected_correctness_votes",
    "outcome_for_results",
    "parse_outcome",
    "plurality_outcome",
    "stake_results_for_outcome",
    "winner_vote_result",
]
