"""Resolution engine: direct resolution, consensus voting and forced resolution."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime
from decimal import Decimal

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from wagers import schemas
from wagers.core.clock import Clock, SystemClock
from wagers.db import session_scope
from wagers.domain.events import WagerResolved
from wagers.domain.tally import parse_outcome
from wagers.errors import InvalidStateError, NotFoundError, UnauthorizedError
from wagers.models import (
    ParticipantStake,
    ResolutionMethod,
    Wager,
    WagerStatus,
    WagerType,
)
from wagers.repositories import RepositoryBundle

from .notifications import EventSink, LoggingEventSink, publish_all
from .settlement import Settlement, StakeLedgerSettlement
from .strategies import (
    OUTCOME_PLURALITY,
    PREDICTION_CORRECTNESS,
    PREDICTION_WINNERS,
    OutcomePluralityTally,
    ResolutionContext,
    ResolutionPlan,
    ResolutionStrategy,
    WinnerSelectionTally,
    prediction_rule_for,
    strategy_for,
)


class ResolutionService:
    """Run every resolution-affecting operation as one unit of work.

    The wager row is locked first, the status flip is a guarded update, and
    settlement runs in a savepoint so its failure cannot undo the flip. Events
    are published only after the unit of work commits.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        *,
        settlement: Settlement | None = None,
        event_sink: EventSink | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settlement = settlement or StakeLedgerSettlement()
        self._event_sink = event_sink or LoggingEventSink()
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Direct resolution

    def resolve(
        self,
        wager_id: int,
        actor_id: int,
        outcome: str,
        rationale: str | None = None,
    ) -> schemas.Wager:
        with session_scope(self._session_factory) as session:
            stores = RepositoryBundle.for_session(session)
            wager = self._load_unresolved(stores, wager_id)
            if wager.wager_type == WagerType.PREDICTION.value:
                raise InvalidStateError("Prediction wagers are resolved by naming winners")
            strategy = strategy_for(wager)
            self._authorize_direct(stores, wager, strategy, actor_id)
            parsed = parse_outcome(outcome, wager.configured_options)

            stakes = stores.participations.list_for_wager(wager.id)
            plan = OutcomePluralityTally.plan_for_outcome(parsed, stakes)
            event = self._finalize(
                stores, wager, strategy, plan, stakes, resolved_by_id=actor_id, rationale=rationale
            )
            result = schemas.Wager.model_validate(wager)

        publish_all(self._event_sink, [event])
        return result

    def resolve_by_winners(
        self,
        wager_id: int,
        actor_id: int,
        winner_user_ids: Iterable[int],
        rationale: str | None = None,
    ) -> schemas.Wager:
        with session_scope(self._session_factory) as session:
            stores = RepositoryBundle.for_session(session)
            wager = self._load_unresolved(stores, wager_id)
            self._require_prediction(wager)
            strategy = strategy_for(wager, PREDICTION_WINNERS)
            self._authorize_direct(stores, wager, strategy, actor_id, by_outcome=False)

            stakes = stores.participations.list_for_wager(wager.id)
            winners = self._validate_winners(winner_user_ids, stakes)
            plan = WinnerSelectionTally.plan_for_winners(winners, stakes)
            event = self._finalize(
                stores, wager, strategy, plan, stakes, resolved_by_id=actor_id, rationale=rationale
            )
            result = schemas.Wager.model_validate(wager)

        publish_all(self._event_sink, [event])
        return result

    def force_resolve(self, wager_id: int) -> schemas.Wager:
        """Resolve from whatever votes exist, used once the resolve deadline passed."""

        with session_scope(self._session_factory) as session:
            stores = RepositoryBundle.for_session(session)
            wager = self._load_unresolved(stores, wager_id)
            if wager.wager_type == WagerType.PREDICTION.value:
                rule = prediction_rule_for(wager, stores.votes)
            elif wager.resolution_method == ResolutionMethod.PARTICIPANT_VOTE.value:
                rule = OUTCOME_PLURALITY
            else:
                raise InvalidStateError(
                    f"Wager {wager.id} uses {wager.resolution_method} and needs a manual resolution"
                )
            strategy = strategy_for(wager, rule)
            context = self._context(stores, wager)
            plan = strategy.tally(context)
            logger.info(
                "Force resolving wager {} with {} ({} eligible voters)",
                wager.id,
                rule.name,
                len(context.eligible_voter_ids),
            )
            event = self._finalize(stores, wager, strategy, plan, context.stakes)
            result = schemas.Wager.model_validate(wager)

        publish_all(self._event_sink, [event])
        return result

    # ------------------------------------------------------------------
    # Voting

    def vote(
        self,
        wager_id: int,
        voter_id: int,
        outcome: str,
        rationale: str | None = None,
    ) -> schemas.Wager:
        with session_scope(self._session_factory) as session:
            stores = RepositoryBundle.for_session(session)
            wager = self._load_unresolved(stores, wager_id)
            if wager.wager_type == WagerType.PREDICTION.value:
                raise InvalidStateError("Prediction wagers are voted per participant or by winners")
            eligible = self._require_voter(stores, wager, voter_id)
            parsed = parse_outcome(outcome, wager.configured_options)

            stores.votes.upsert_outcome_vote(
                wager.id, voter_id, parsed.value, rationale, self._clock.now()
            )
            logger.debug("Voter {} voted {} on wager {}", voter_id, parsed.value, wager.id)
            event = self._resolve_if_complete(stores, wager, strategy_for(wager), eligible)
            result = schemas.Wager.model_validate(wager)

        publish_all(self._event_sink, [event] if event else [])
        return result

    def vote_on_prediction(
        self,
        wager_id: int,
        voter_id: int,
        participation_id: int,
        is_correct: bool,
    ) -> schemas.Wager:
        with session_scope(self._session_factory) as session:
            stores = RepositoryBundle.for_session(session)
            wager = self._load_unresolved(stores, wager_id)
            self._require_prediction(wager)
            eligible = self._require_voter(stores, wager, voter_id)

            target = stores.participations.get(participation_id)
            if target is None or target.wager_id != wager.id:
                raise NotFoundError(f"Participation {participation_id} not found on wager {wager.id}")
            if target.user_id == voter_id:
                raise UnauthorizedError("You cannot vote on your own prediction")

            stores.votes.upsert_correctness_vote(
                wager.id, voter_id, target.id, is_correct, self._clock.now()
            )
            strategy = strategy_for(wager, PREDICTION_CORRECTNESS)
            event = self._resolve_if_complete(stores, wager, strategy, eligible)
            result = schemas.Wager.model_validate(wager)

        publish_all(self._event_sink, [event] if event else [])
        return result

    def vote_on_prediction_by_winners(
        self,
        wager_id: int,
        voter_id: int,
        winner_user_ids: Iterable[int],
        rationale: str | None = None,
    ) -> schemas.Wager:
        with session_scope(self._session_factory) as session:
            stores = RepositoryBundle.for_session(session)
            wager = self._load_unresolved(stores, wager_id)
            self._require_prediction(wager)
            eligible = self._require_voter(stores, wager, voter_id)

            stakes = stores.participations.list_for_wager(wager.id)
            winners = self._validate_winners(winner_user_ids, stakes)
            stores.votes.replace_winner_nominations(
                wager.id, voter_id, winners, rationale, self._clock.now()
            )
            strategy = strategy_for(wager, PREDICTION_WINNERS)
            event = self._resolve_if_complete(stores, wager, strategy, eligible)
            result = schemas.Wager.model_validate(wager)

        publish_all(self._event_sink, [event] if event else [])
        return result

    # ------------------------------------------------------------------
    # Resolver management

    def assign_resolver(
        self,
        wager_id: int,
        assigner_id: int,
        resolver_id: int,
        reason: str | None = None,
        can_vote_only: bool = False,
    ) -> schemas.ResolverAssignment:
        with session_scope(self._session_factory) as session:
            stores = RepositoryBundle.for_session(session)
            wager = self._load_unresolved(stores, wager_id)
            if wager.creator_id != assigner_id:
                raise UnauthorizedError("Only the wager creator can assign resolvers")
            if wager.resolution_method != ResolutionMethod.ASSIGNED_RESOLVERS.value:
                raise InvalidStateError("Resolvers can only be assigned on ASSIGNED_RESOLVERS wagers")
            if stores.resolvers.find_active(wager.id, resolver_id) is not None:
                raise InvalidStateError(f"User {resolver_id} is already a resolver for this wager")

            assignment = stores.resolvers.create(
                wager_id=wager.id,
                resolver_id=resolver_id,
                assigned_by_id=assigner_id,
                reason=reason,
                can_resolve_independently=not can_vote_only,
            )
            logger.info(
                "Assigned resolver {} to wager {} (independent={})",
                resolver_id,
                wager.id,
                assignment.can_resolve_independently,
            )
            return schemas.ResolverAssignment.model_validate(assignment)

    def revoke_resolver(
        self, wager_id: int, revoker_id: int, resolver_id: int
    ) -> schemas.ResolverAssignment:
        with session_scope(self._session_factory) as session:
            stores = RepositoryBundle.for_session(session)
            wager = self._load_unresolved(stores, wager_id)
            if wager.creator_id != revoker_id:
                raise UnauthorizedError("Only the wager creator can revoke resolvers")
            assignment = stores.resolvers.find_active(wager.id, resolver_id)
            if assignment is None:
                raise NotFoundError(f"User {resolver_id} is not an active resolver for this wager")

            now = self._clock.now()
            stores.resolvers.revoke(assignment, now)
            retired = stores.votes.deactivate_voter(wager.id, resolver_id, now)
            logger.info(
                "Revoked resolver {} on wager {} ({} votes retired)", resolver_id, wager.id, retired
            )

            # The electorate shrank, so the remaining votes may now be complete.
            if wager.wager_type == WagerType.PREDICTION.value:
                rule = prediction_rule_for(wager, stores.votes)
            else:
                rule = OUTCOME_PLURALITY
            event = self._resolve_if_complete(
                stores, wager, strategy_for(wager, rule), stores.resolvers.eligible_voter_ids(wager)
            )
            result = schemas.ResolverAssignment.model_validate(assignment)

        publish_all(self._event_sink, [event] if event else [])
        return result

    # ------------------------------------------------------------------
    # Queries

    def can_resolve(self, wager_id: int, user_id: int) -> bool:
        with session_scope(self._session_factory) as session:
            stores = RepositoryBundle.for_session(session)
            wager = self._load(stores, wager_id)
            if wager.is_terminal:
                return False
            rule = PREDICTION_WINNERS if wager.wager_type == WagerType.PREDICTION.value else None
            strategy = strategy_for(wager, rule)
            return strategy.authorize(wager, user_id, stores.resolvers.list_active(wager.id))

    def get_vote_counts(self, wager_id: int) -> dict[str, int]:
        with session_scope(self._session_factory) as session:
            stores = RepositoryBundle.for_session(session)
            wager = self._load(stores, wager_id)
            return stores.votes.outcome_counts(wager.id)

    def get_resolution_status(self, wager_id: int) -> schemas.ResolutionStatus:
        with session_scope(self._session_factory) as session:
            stores = RepositoryBundle.for_session(session)
            wager = self._load(stores, wager_id)
            eligible = stores.resolvers.eligible_voter_ids(wager)
            if wager.wager_type == WagerType.PREDICTION.value:
                voted = stores.votes.count_nominating_voters(wager.id)
                if voted == 0:
                    voted = stores.votes.count_correctness_voters(wager.id)
            else:
                voted = stores.votes.count_outcome_voters(wager.id)
            return schemas.ResolutionStatus(
                wager_id=wager.id,
                status=wager.status,
                wager_type=wager.wager_type,
                resolution_method=wager.resolution_method,
                total_voters=len(eligible),
                voters_who_voted=voted,
                total_participations=stores.participations.count_for_wager(wager.id),
                vote_counts=stores.votes.outcome_counts(wager.id),
            )

    def list_active_resolvers(self, wager_id: int) -> list[schemas.ResolverAssignment]:
        with session_scope(self._session_factory) as session:
            stores = RepositoryBundle.for_session(session)
            wager = self._load(stores, wager_id)
            return [
                schemas.ResolverAssignment.model_validate(assignment)
                for assignment in stores.resolvers.list_active(wager.id)
            ]

    def list_active_votes(self, wager_id: int) -> list[schemas.OutcomeVote]:
        with session_scope(self._session_factory) as session:
            stores = RepositoryBundle.for_session(session)
            wager = self._load(stores, wager_id)
            return [
                schemas.OutcomeVote.from_record(vote)
                for vote in stores.votes.list_active_outcome_votes(wager.id)
            ]

    # ------------------------------------------------------------------
    # Internals

    def _load(self, stores: RepositoryBundle, wager_id: int) -> Wager:
        wager = stores.wagers.get(wager_id)
        if wager is None:
            raise NotFoundError(f"Wager {wager_id} not found")
        return wager

    def _load_unresolved(self, stores: RepositoryBundle, wager_id: int) -> Wager:
        wager = stores.wagers.get_for_update(wager_id)
        if wager is None:
            raise NotFoundError(f"Wager {wager_id} not found")
        if wager.status == WagerStatus.RESOLVED.value:
            raise InvalidStateError(f"Wager {wager_id} is already resolved")
        if wager.status == WagerStatus.CANCELLED.value:
            raise InvalidStateError(f"Wager {wager_id} is cancelled")
        return wager

    @staticmethod
    def _require_prediction(wager: Wager) -> None:
        if wager.wager_type != WagerType.PREDICTION.value:
            raise InvalidStateError(f"Wager {wager.id} is not a prediction wager")

    def _authorize_direct(
        self,
        stores: RepositoryBundle,
        wager: Wager,
        strategy: ResolutionStrategy,
        actor_id: int,
        *,
        by_outcome: bool = True,
    ) -> None:
        if by_outcome and not strategy.allows_outcome_resolution:
            raise InvalidStateError("Participant vote wagers must be resolved through voting")
        if not strategy.authorize(wager, actor_id, stores.resolvers.list_active(wager.id)):
            raise UnauthorizedError(f"User {actor_id} is not authorized to resolve wager {wager.id}")

    def _require_voter(
        self, stores: RepositoryBundle, wager: Wager, voter_id: int
    ) -> frozenset[int]:
        eligible = stores.resolvers.eligible_voter_ids(wager)
        if voter_id not in eligible:
            raise UnauthorizedError(f"User {voter_id} is not allowed to vote on wager {wager.id}")
        return eligible

    @staticmethod
    def _validate_winners(
        winner_user_ids: Iterable[int], stakes: Sequence[ParticipantStake]
    ) -> list[int]:
        winners = list(dict.fromkeys(int(user_id) for user_id in winner_user_ids))
        if not winners:
            raise InvalidStateError("At least one winner must be named")
        participants = {stake.user_id for stake in stakes}
        unknown = [user_id for user_id in winners if user_id not in participants]
        if unknown:
            raise InvalidStateError(f"Winners {unknown} are not participants in this wager")
        return winners

    def _context(
        self,
        stores: RepositoryBundle,
        wager: Wager,
        eligible: frozenset[int] | None = None,
    ) -> ResolutionContext:
        return ResolutionContext(
            wager=wager,
            stakes=stores.participations.list_for_wager(wager.id),
            eligible_voter_ids=(
                eligible if eligible is not None else stores.resolvers.eligible_voter_ids(wager)
            ),
            votes=stores.votes,
        )

    def _resolve_if_complete(
        self,
        stores: RepositoryBundle,
        wager: Wager,
        strategy: ResolutionStrategy,
        eligible: frozenset[int],
    ) -> WagerResolved | None:
        context = self._context(stores, wager, eligible)
        if not strategy.is_complete(context):
            return None
        logger.info("Consensus reached on wager {} via {}", wager.id, strategy.rule.name)
        plan = strategy.tally(context)
        return self._finalize(stores, wager, strategy, plan, context.stakes)

    def _finalize(
        self,
        stores: RepositoryBundle,
        wager: Wager,
        strategy: ResolutionStrategy,
        plan: ResolutionPlan,
        stakes: Sequence[ParticipantStake],
        *,
        resolved_by_id: int | None = None,
        rationale: str | None = None,
    ) -> WagerResolved:
        now = self._clock.now()
        flipped = stores.wagers.mark_resolved(
            wager.id, plan.outcome, now, resolved_by_id=resolved_by_id, rationale=rationale
        )
        if not flipped:
            raise InvalidStateError(f"Wager {wager.id} is no longer resolvable")

        buckets = strategy.apply(plan, stakes)
        stores.session.flush()
        deltas = self._settle(stores.session, wager, stakes, now)

        logger.info(
            "Resolved wager {} as {} (won={}, lost={}, draw={})",
            wager.id,
            plan.outcome.value,
            len(buckets.winner_ids),
            len(buckets.loser_ids),
            len(buckets.draw_ids),
        )
        return WagerResolved(
            wager_id=wager.id,
            title=wager.title,
            group_id=wager.group_id,
            outcome=plan.outcome.value,
            outcome_label=wager.outcome_label(),
            resolved_by_id=resolved_by_id,
            winner_ids=buckets.winner_ids,
            loser_ids=buckets.loser_ids,
            draw_ids=buckets.draw_ids,
            payout_deltas=deltas,
        )

    def _settle(
        self,
        session: Session,
        wager: Wager,
        stakes: Sequence[ParticipantStake],
        at: datetime,
    ) -> dict[int, Decimal]:
        try:
            with session.begin_nested():
                return dict(self._settlement.settle(session, wager, stakes, at) or {})
        except Exception:  # noqa: BLE001
            logger.exception("Settlement failed for wager {}; resolution stands", wager.id)
            return {}


__all__ = ["ResolutionService"]
