from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


class Stake(BaseModel):
    id: int
    user_id: int
    chosen_option: int | None = None
    predicted_value: str | None = None
    stake_amount: float
    potential_winnings: float | None = None
    status: str

    @field_validator("stake_amount", "potential_winnings", mode="before")
    @classmethod
    def _coerce_decimal(cls, value: Any) -> float | None:
        if value is None:
            return None
        return float(value)

    model_config = {"from_attributes": True}


class Wager(BaseModel):
    id: int
    title: str
    group_id: int
    creator_id: int
    wager_type: str
    resolution_method: str
    status: str
    outcome: str | None = None
    option_1: str | None = None
    option_2: str | None = None
    option_3: str | None = None
    option_4: str | None = None
    betting_deadline: datetime
    resolve_deadline: datetime | None = None
    allow_creator_vote: bool = False
    closed_at: datetime | None = None
    resolved_at: datetime | None = None
    resolved_by_id: int | None = None
    resolution_rationale: str | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    stakes: list[Stake] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class ResolverAssignment(BaseModel):
    id: int
    wager_id: int
    resolver_id: int
    assigned_by_id: int
    reason: str | None = None
    can_resolve_independently: bool
    is_active: bool
    assigned_at: datetime
    revoked_at: datetime | None = None

    model_config = {"from_attributes": True}


class OutcomeVote(BaseModel):
    id: int
    wager_id: int
    voter_id: int
    voted_outcome: str | None = None
    rationale: str | None = None
    winner_user_ids: list[int] = Field(default_factory=list)
    updated_at: datetime

    @classmethod
    def from_record(cls, record: Any) -> "OutcomeVote":
        return cls(
            id=record.id,
            wager_id=record.wager_id,
            voter_id=record.voter_id,
            voted_outcome=record.voted_outcome,
            rationale=record.rationale,
            winner_user_ids=sorted(
                selection.winner_user_id for selection in record.winner_selections
            ),
            updated_at=record.updated_at,
        )


class ResolutionStatus(BaseModel):
    """Voting progress towards consensus resolution."""

    wager_id: int
    status: str
    wager_type: str
    resolution_method: str
    total_voters: int
    voters_who_voted: int
    total_participations: int
    vote_counts: dict[str, int] = Field(default_factory=dict)


class ResolveRequest(BaseModel):
    outcome: str = Field(..., description="OPTION_1..OPTION_4 or DRAW")
    rationale: str | None = Field(default=None, max_length=2000)


class WinnersRequest(BaseModel):
    winner_user_ids: list[int]
    rationale: str | None = Field(default=None, max_length=2000)


class PredictionVoteRequest(BaseModel):
    participation_id: int
    is_correct: bool


class CancelRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class AssignResolverRequest(BaseModel):
    resolver_id: int
    reason: str | None = Field(default=None, max_length=1000)
    can_vote_only: bool = False


class CanResolve(BaseModel):
    wager_id: int
    user_id: int
    can_resolve: bool


class VoteCounts(BaseModel):
    wager_id: int
    counts: dict[str, int] = Field(default_factory=dict)
