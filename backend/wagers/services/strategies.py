"""Resolution strategies: who may resolve a wager and how its votes are tallied.

A strategy pairs an authority (keyed by resolution method) with a tally rule
(keyed by wager type). The engine only talks to the combined object through
``authorize``, ``is_complete``, ``tally`` and ``apply``.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from wagers.domain.tally import (
    correctness_result,
    expected_correctness_votes,
    outcome_for_results,
    plurality_outcome,
    stake_results_for_outcome,
    winner_vote_result,
)
from wagers.models import (
    ParticipantStake,
    ParticipationStatus,
    ResolutionMethod,
    ResolverAssignment,
    Wager,
    WagerOutcome,
    WagerType,
)
from wagers.repositories import VoteRepository


@dataclass(slots=True)
class ResolutionContext:
    """Everything a tally rule may read, loaded inside the resolving unit of work."""

    wager: Wager
    stakes: list[ParticipantStake]
    eligible_voter_ids: frozenset[int]
    votes: VoteRepository


@dataclass(slots=True)
class ResolutionPlan:
    outcome: WagerOutcome
    results: dict[int, ParticipationStatus] = field(default_factory=dict)


@dataclass(slots=True)
class StakeBuckets:
    winner_ids: list[int] = field(default_factory=list)
    loser_ids: list[int] = field(default_factory=list)
    draw_ids: list[int] = field(default_factory=list)


# ----------------------------------------------------------------------
# Authorities


class Authority(Protocol):
    method: ResolutionMethod
    allows_outcome_resolution: bool

    def authorize(
        self, wager: Wager, user_id: int, assignments: Sequence[ResolverAssignment]
    ) -> bool:
        ...


class CreatorAuthority:
    method = ResolutionMethod.SELF
    allows_outcome_resolution = True

    def authorize(self, wager, user_id, assignments) -> bool:
        return wager.creator_id == user_id


class AssignedResolverAuthority:
    method = ResolutionMethod.ASSIGNED_RESOLVERS
    allows_outcome_resolution = True

    def authorize(self, wager, user_id, assignments) -> bool:
        return any(
            assignment.resolver_id == user_id
            and assignment.is_active
            and assignment.can_resolve_independently
            for assignment in assignments
        )


class ParticipantVoteAuthority:
    """Any eligible voter may name the winners; outcomes are only reached by consensus."""

    method = ResolutionMethod.PARTICIPANT_VOTE
    allows_outcome_resolution = False

    def authorize(self, wager, user_id, assignments) -> bool:
        if wager.allow_creator_vote and wager.creator_id == user_id:
            return True
        return any(
            assignment.resolver_id == user_id and assignment.is_active
            for assignment in assignments
        )


# ----------------------------------------------------------------------
# Tally rules


class TallyRule(Protocol):
    name: str

    def is_complete(self, context: ResolutionContext) -> bool:
        ...

    def tally(self, context: ResolutionContext) -> ResolutionPlan:
        ...


class OutcomePluralityTally:
    name = "outcome_plurality"

    def is_complete(self, context: ResolutionContext) -> bool:
        required = len(context.eligible_voter_ids)
        if required == 0:
            return False
        return context.votes.count_outcome_voters(context.wager.id) >= required

    def tally(self, context: ResolutionContext) -> ResolutionPlan:
        outcome = plurality_outcome(context.votes.outcome_counts(context.wager.id))
        return self.plan_for_outcome(outcome, context.stakes)

    @staticmethod
    def plan_for_outcome(
        outcome: WagerOutcome, stakes: Iterable[ParticipantStake]
    ) -> ResolutionPlan:
        chosen = {stake.id: stake.chosen_option for stake in stakes}
        return ResolutionPlan(outcome=outcome, results=stake_results_for_outcome(outcome, chosen))


class CorrectnessTally:
    name = "prediction_correctness"

    def is_complete(self, context: ResolutionContext) -> bool:
        expected = expected_correctness_votes(
            (stake.user_id for stake in context.stakes), context.eligible_voter_ids
        )
        if expected <= 0:
            return False
        return context.votes.count_active_correctness_votes(context.wager.id) >= expected

    def tally(self, context: ResolutionContext) -> ResolutionPlan:
        distribution = context.votes.correctness_distribution(context.wager.id)
        results = {
            stake.id: correctness_result(*distribution.get(stake.id, (0, 0)))
            for stake in context.stakes
        }
        return ResolutionPlan(outcome=outcome_for_results(results.values()), results=results)


class WinnerSelectionTally:
    name = "prediction_winner_selection"

    def is_complete(self, context: ResolutionContext) -> bool:
        required = len(context.eligible_voter_ids)
        if required == 0:
            return False
        return context.votes.count_nominating_voters(context.wager.id) >= required

    def tally(self, context: ResolutionContext) -> ResolutionPlan:
        total_voters = context.votes.count_nominating_voters(context.wager.id)
        nominations = context.votes.nomination_counts(context.wager.id)
        results = {
            stake.id: winner_vote_result(nominations.get(stake.user_id, 0), total_voters)
            for stake in context.stakes
        }
        return ResolutionPlan(outcome=outcome_for_results(results.values()), results=results)

    @staticmethod
    def plan_for_winners(
        winner_user_ids: Iterable[int], stakes: Iterable[ParticipantStake]
    ) -> ResolutionPlan:
        winners = set(winner_user_ids)
        results = {
            stake.id: ParticipationStatus.WON if stake.user_id in winners else ParticipationStatus.LOST
            for stake in stakes
        }
        return ResolutionPlan(outcome=WagerOutcome.OPTION_1, results=results)


OUTCOME_PLURALITY = OutcomePluralityTally()
PREDICTION_CORRECTNESS = CorrectnessTally()
PREDICTION_WINNERS = WinnerSelectionTally()

_AUTHORITIES: dict[str, Authority] = {
    ResolutionMethod.SELF.value: CreatorAuthority(),
    ResolutionMethod.ASSIGNED_RESOLVERS.value: AssignedResolverAuthority(),
    ResolutionMethod.PARTICIPANT_VOTE.value: ParticipantVoteAuthority(),
}


# ----------------------------------------------------------------------
# Combined strategy


@dataclass(slots=True, frozen=True)
class ResolutionStrategy:
    authority: Authority
    rule: TallyRule

    @property
    def allows_outcome_resolution(self) -> bool:
        return self.authority.allows_outcome_resolution

    def authorize(
        self, wager: Wager, user_id: int, assignments: Sequence[ResolverAssignment]
    ) -> bool:
        if wager.is_terminal:
            return False
        return self.authority.authorize(wager, user_id, assignments)

    def is_complete(self, context: ResolutionContext) -> bool:
        return self.rule.is_complete(context)

    def tally(self, context: ResolutionContext) -> ResolutionPlan:
        return self.rule.tally(context)

    def apply(self, plan: ResolutionPlan, stakes: Iterable[ParticipantStake]) -> StakeBuckets:
        """Write each stake's terminal status and group user ids for the resolved event."""

        buckets = StakeBuckets()
        for stake in stakes:
            result = plan.results.get(stake.id)
            if result is None:
                continue
            stake.status = result.value
            if result is ParticipationStatus.WON:
                buckets.winner_ids.append(stake.user_id)
            elif result is ParticipationStatus.LOST:
                buckets.loser_ids.append(stake.user_id)
            else:
                buckets.draw_ids.append(stake.user_id)
        return buckets


def authority_for(wager: Wager) -> Authority:
    return _AUTHORITIES[wager.resolution_method]


def strategy_for(wager: Wager, rule: TallyRule | None = None) -> ResolutionStrategy:
    """Pick the strategy for ``wager``; prediction wagers need an explicit rule."""

    if rule is None:
        if wager.wager_type == WagerType.PREDICTION.value:
            raise ValueError("prediction wagers must name their tally rule")
        rule = OUTCOME_PLURALITY
    return ResolutionStrategy(authority=authority_for(wager), rule=rule)


def prediction_rule_for(wager: Wager, votes: VoteRepository) -> TallyRule:
    """Winner selection once anybody has nominated winners, correctness otherwise."""

    if votes.count_nominating_voters(wager.id) > 0:
        return PREDICTION_WINNERS
    return PREDICTION_CORRECTNESS


__all__ = [
    "AssignedResolverAuthority",
    "CorrectnessTally",
    "CreatorAuthority",
    "OUTCOME_PLURALITY",
    "OutcomePluralityTally",
    "PREDICTION_CORRECTNESS",
    "PREDICTION_WINNERS",
    "ParticipantVoteAuthority",
    "ResolutionContext",
    "ResolutionPlan",
    "ResolutionStrategy",
    "StakeBuckets",
    "WinnerSelectionTally",
    "authority_for",
    "prediction_rule_for",
    "strategy_for",
]
