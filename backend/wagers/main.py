from __future__ import annotations

from typing import Annotated

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse

from . import schemas
from .core.config import settings
from .db import SessionLocal, init_db
from .errors import InvalidStateError, NotFoundError, UnauthorizedError, WagerError
from .services import ResolutionService, WagerService

app = FastAPI(title="Wager Resolution API", version="0.1.0", debug=settings.debug)


@app.on_event("startup")
def on_startup() -> None:
    """Create tables when the API boots."""

    init_db()


_ERROR_STATUS: dict[type[WagerError], int] = {
    NotFoundError: 404,
    UnauthorizedError: 403,
    InvalidStateError: 409,
}


@app.exception_handler(WagerError)
def _wager_error_handler(request: Request, exc: WagerError) -> JSONResponse:
    status_code = next(
        (code for error_type, code in _ERROR_STATUS.items() if isinstance(exc, error_type)),
        400,
    )
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness probe consumed by infrastructure monitors."""

    return {"status": "ok"}


def _resolution_service() -> ResolutionService:
    """Provide the resolution engine bound to the application session factory."""

    return ResolutionService(SessionLocal)


def _wager_service() -> WagerService:
    return WagerService(SessionLocal)


CallerId = Annotated[int, Header(alias="X-User-Id", description="Authenticated caller id")]


@app.post("/wagers/{wager_id}/resolve", response_model=schemas.Wager, tags=["resolution"])
def resolve_wager(
    wager_id: int,
    payload: schemas.ResolveRequest,
    caller_id: CallerId,
    service: ResolutionService = Depends(_resolution_service),
) -> schemas.Wager:
    return service.resolve(wager_id, caller_id, payload.outcome, payload.rationale)


@app.post("/wagers/{wager_id}/resolve-winners", response_model=schemas.Wager, tags=["resolution"])
def resolve_wager_by_winners(
    wager_id: int,
    payload: schemas.WinnersRequest,
    caller_id: CallerId,
    service: ResolutionService = Depends(_resolution_service),
) -> schemas.Wager:
    return service.resolve_by_winners(
        wager_id, caller_id, payload.winner_user_ids, payload.rationale
    )


@app.post("/wagers/{wager_id}/votes", response_model=schemas.Wager, tags=["voting"])
def vote_on_wager(
    wager_id: int,
    payload: schemas.ResolveRequest,
    caller_id: CallerId,
    service: ResolutionService = Depends(_resolution_service),
) -> schemas.Wager:
    return service.vote(wager_id, caller_id, payload.outcome, payload.rationale)


@app.post("/wagers/{wager_id}/prediction-votes", response_model=schemas.Wager, tags=["voting"])
def vote_on_prediction(
    wager_id: int,
    payload: schemas.PredictionVoteRequest,
    caller_id: CallerId,
    service: ResolutionService = Depends(_resolution_service),
) -> schemas.Wager:
    return service.vote_on_prediction(
        wager_id, caller_id, payload.participation_id, payload.is_correct
    )


@app.post("/wagers/{wager_id}/winner-votes", response_model=schemas.Wager, tags=["voting"])
def vote_on_prediction_winners(
    wager_id: int,
    payload: schemas.WinnersRequest,
    caller_id: CallerId,
    service: ResolutionService = Depends(_resolution_service),
) -> schemas.Wager:
    return service.vote_on_prediction_by_winners(
        wager_id, caller_id, payload.winner_user_ids, payload.rationale
    )


@app.get("/wagers/{wager_id}/vote-counts", response_model=schemas.VoteCounts, tags=["voting"])
def get_vote_counts(
    wager_id: int,
    service: ResolutionService = Depends(_resolution_service),
) -> schemas.VoteCounts:
    return schemas.VoteCounts(wager_id=wager_id, counts=service.get_vote_counts(wager_id))


@app.get(
    "/wagers/{wager_id}/resolution-status",
    response_model=schemas.ResolutionStatus,
    tags=["voting"],
)
def get_resolution_status(
    wager_id: int,
    service: ResolutionService = Depends(_resolution_service),
) -> schemas.ResolutionStatus:
    return service.get_resolution_status(wager_id)


@app.get("/wagers/{wager_id}/votes", response_model=list[schemas.OutcomeVote], tags=["voting"])
def list_votes(
    wager_id: int,
    service: ResolutionService = Depends(_resolution_service),
) -> list[schemas.OutcomeVote]:
    return service.list_active_votes(wager_id)


@app.get("/wagers/{wager_id}/can-resolve", response_model=schemas.CanResolve, tags=["resolution"])
def can_resolve(
    wager_id: int,
    caller_id: CallerId,
    service: ResolutionService = Depends(_resolution_service),
) -> schemas.CanResolve:
    return schemas.CanResolve(
        wager_id=wager_id,
        user_id=caller_id,
        can_resolve=service.can_resolve(wager_id, caller_id),
    )


@app.get(
    "/wagers/{wager_id}/resolvers",
    response_model=list[schemas.ResolverAssignment],
    tags=["resolvers"],
)
def list_resolvers(
    wager_id: int,
    service: ResolutionService = Depends(_resolution_service),
) -> list[schemas.ResolverAssignment]:
    return service.list_active_resolvers(wager_id)


@app.post(
    "/wagers/{wager_id}/resolvers",
    response_model=schemas.ResolverAssignment,
    status_code=201,
    tags=["resolvers"],
)
def assign_resolver(
    wager_id: int,
    payload: schemas.AssignResolverRequest,
    caller_id: CallerId,
    service: ResolutionService = Depends(_resolution_service),
) -> schemas.ResolverAssignment:
    return service.assign_resolver(
        wager_id, caller_id, payload.resolver_id, payload.reason, payload.can_vote_only
    )


@app.delete(
    "/wagers/{wager_id}/resolvers/{resolver_id}",
    response_model=schemas.ResolverAssignment,
    tags=["resolvers"],
)
def revoke_resolver(
    wager_id: int,
    resolver_id: int,
    caller_id: CallerId,
    service: ResolutionService = Depends(_resolution_service),
) -> schemas.ResolverAssignment:
    return service.revoke_resolver(wager_id, caller_id, resolver_id)


@app.post("/wagers/{wager_id}/close", response_model=schemas.Wager, tags=["lifecycle"])
def close_wager(
    wager_id: int,
    caller_id: CallerId,
    service: WagerService = Depends(_wager_service),
) -> schemas.Wager:
    return service.close(wager_id, caller_id)


@app.post("/wagers/{wager_id}/cancel", response_model=schemas.Wager, tags=["lifecycle"])
def cancel_wager(
    wager_id: int,
    caller_id: CallerId,
    payload: schemas.CancelRequest | None = None,
    service: WagerService = Depends(_wager_service),
) -> schemas.Wager:
    reason = payload.reason if payload else None
    return service.cancel(wager_id, caller_id, reason)
