"""Sweeps that act on passed deadlines: close betting and force resolution."""

from __future__ import annotations

from loguru import logger

from wagers.db import session_scope
from wagers.domain.events import AwaitingManualResolution
from wagers.errors import InvalidStateError, NotFoundError
from wagers.models import ResolutionMethod, WagerType
from wagers.repositories import RepositoryBundle, WagerRepository
from wagers.services import publish_all

from .base import SweepContext, SweepSummary


class CloseExpiredWagersSweep:
    """Move OPEN wagers past their betting deadline to CLOSED."""

    name = "close_expired"

    def __init__(self, context: SweepContext) -> None:
        self._context = context

    def run(self) -> SweepSummary:
        summary = SweepSummary(sweep=self.name)
        now = self._context.clock.now()
        with session_scope(self._context.session_factory) as session:
            wager_ids = [wager.id for wager in WagerRepository(session).find_expired_open(now)]

        if not wager_ids:
            logger.debug("No wagers past their betting deadline")
            return summary

        logger.info("Closing {} wagers past their betting deadline", len(wager_ids))
        service = self._context.wager_service()
        for wager_id in wager_ids:
            summary.examined += 1
            try:
                closed = service.close_expired(wager_id)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Failed to close wager {}", wager_id)
                summary.record_failure(wager_id, exc)
                continue
            if closed:
                summary.transitioned += 1
            else:
                summary.skipped += 1

        logger.info(
            "Close sweep finished: closed={}, skipped={}, failures={}",
            summary.transitioned,
            summary.skipped,
            len(summary.failures),
        )
        return summary


class ProcessResolvableWagersSweep:
    """Force resolution, or ask for a human, once the resolve deadline has passed."""

    name = "process_resolvable"

    def __init__(self, context: SweepContext) -> None:
        self._context = context

    def run(self) -> SweepSummary:
        summary = SweepSummary(sweep=self.name)
        now = self._context.clock.now()
        with session_scope(self._context.session_factory) as session:
            candidates = [
                (wager.id, wager.wager_type, wager.resolution_method)
                for wager in WagerRepository(session).find_past_resolve_deadline(now)
            ]

        if not candidates:
            logger.debug("No wagers past their resolve deadline")
            return summary

        logger.info("Processing {} wagers past their resolve deadline", len(candidates))
        service = self._context.resolution_service()
        for wager_id, wager_type, method in candidates:
            summary.examined += 1
            try:
                if (
                    wager_type == WagerType.PREDICTION.value
                    or method == ResolutionMethod.PARTICIPANT_VOTE.value
                ):
                    service.force_resolve(wager_id)
                    summary.transitioned += 1
                else:
                    self._request_manual_resolution(wager_id)
                    summary.notified += 1
            except (InvalidStateError, NotFoundError) as exc:
                # Resolved or cancelled since the candidate list was read.
                logger.info("Skipping wager {}: {}", wager_id, exc)
                summary.skipped += 1
            except Exception as exc:  # noqa: BLE001
                logger.exception("Failed to process wager {} at its resolve deadline", wager_id)
                summary.record_failure(wager_id, exc)

        logger.info(
            "Resolvable sweep finished: resolved={}, awaiting_manual={}, skipped={}, failures={}",
            summary.transitioned,
            summary.notified,
            summary.skipped,
            len(summary.failures),
        )
        return summary

    def _request_manual_resolution(self, wager_id: int) -> None:
        with session_scope(self._context.session_factory) as session:
            stores = RepositoryBundle.for_session(session)
            wager = stores.wagers.get(wager_id)
            if wager is None:
                raise NotFoundError(f"Wager {wager_id} not found")
            if wager.is_terminal:
                raise InvalidStateError(f"Wager {wager_id} is already {wager.status}")
            event = AwaitingManualResolution(
                wager_id=wager.id,
                title=wager.title,
                group_id=wager.group_id,
                resolve_deadline=wager.resolve_deadline,
                resolution_method=wager.resolution_method,
                creator_id=wager.creator_id,
                resolver_ids=[
                    assignment.resolver_id
                    for assignment in stores.resolvers.list_active(wager.id)
                ],
            )
        publish_all(self._context.event_sink, [event])


__all__ = ["CloseExpiredWagersSweep", "ProcessResolvableWagersSweep"]
