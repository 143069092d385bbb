from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from .db import Base


class WagerStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    RESOLVED = "RESOLVED"
    CANCELLED = "CANCELLED"


class WagerOutcome(str, Enum):
    OPTION_1 = "OPTION_1"
    OPTION_2 = "OPTION_2"
    OPTION_3 = "OPTION_3"
    OPTION_4 = "OPTION_4"
    DRAW = "DRAW"
    CANCELLED = "CANCELLED"

    @property
    def option_index(self) -> int | None:
        if self.value.startswith("OPTION_"):
            return int(self.value.rsplit("_", 1)[1])
        return None


class WagerType(str, Enum):
    BINARY = "BINARY"
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    PREDICTION = "PREDICTION"


class ResolutionMethod(str, Enum):
    SELF = "SELF"
    ASSIGNED_RESOLVERS = "ASSIGNED_RESOLVERS"
    PARTICIPANT_VOTE = "PARTICIPANT_VOTE"


class ParticipationStatus(str, Enum):
    ACTIVE = "ACTIVE"
    WON = "WON"
    LOST = "LOST"
    DRAW = "DRAW"
    REFUNDED = "REFUNDED"


TERMINAL_STATUSES = (WagerStatus.RESOLVED.value, WagerStatus.CANCELLED.value)
ACTIVE_STATUSES = (WagerStatus.OPEN.value, WagerStatus.CLOSED.value)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime column that always round-trips as UTC.

    SQLite drops offsets on storage, so naive values read back are tagged as
    UTC and aware values are converted to UTC before they are written.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Wager(Base):
    __tablename__ = "wagers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    group_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    creator_id: Mapped[int] = mapped_column(Integer, nullable=False)
    wager_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=WagerType.BINARY.value
    )
    resolution_method: Mapped[str] = mapped_column(
        String(30), nullable=False, default=ResolutionMethod.SELF.value
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=WagerStatus.OPEN.value, index=True
    )
    outcome: Mapped[str | None] = mapped_column(String(20), nullable=True)

    option_1: Mapped[str | None] = mapped_column(String(100), nullable=True)
    option_2: Mapped[str | None] = mapped_column(String(100), nullable=True)
    option_3: Mapped[str | None] = mapped_column(String(100), nullable=True)
    option_4: Mapped[str | None] = mapped_column(String(100), nullable=True)

    betting_deadline: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    resolve_deadline: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    allow_creator_vote: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    betting_24h_reminder_sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    betting_1h_reminder_sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    resolution_24h_reminder_sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    resolution_1h_reminder_sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    closed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    resolved_by_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    resolution_rationale: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)

    stakes: Mapped[list["ParticipantStake"]] = relationship(
        "ParticipantStake",
        back_populates="wager",
        cascade="all, delete-orphan",
        order_by="ParticipantStake.id",
    )
    resolvers: Mapped[list["ResolverAssignment"]] = relationship(
        "ResolverAssignment", back_populates="wager", cascade="all, delete-orphan"
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def configured_options(self) -> frozenset[int]:
        """Option indexes that carry a non-blank label."""

        labels = (self.option_1, self.option_2, self.option_3, self.option_4)
        return frozenset(
            index for index, label in enumerate(labels, start=1) if label and label.strip()
        )

    def outcome_label(self) -> str | None:
        if self.outcome is None:
            return None
        index = WagerOutcome(self.outcome).option_index
        if index is None or self.wager_type == WagerType.PREDICTION.value:
            return self.outcome
        return getattr(self, f"option_{index}") or self.outcome


class ParticipantStake(Base):
    __tablename__ = "participant_stakes"
    __table_args__ = (
        UniqueConstraint("wager_id", "user_id", name="uq_participant_stakes_wager_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wager_id: Mapped[int] = mapped_column(Integer, ForeignKey("wagers.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    chosen_option: Mapped[int | None] = mapped_column(Integer, nullable=True)
    predicted_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    stake_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    potential_winnings: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ParticipationStatus.ACTIVE.value
    )
    settled_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)

    wager: Mapped[Wager] = relationship("Wager", back_populates="stakes")


class ResolverAssignment(Base):
    __tablename__ = "resolver_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wager_id: Mapped[int] = mapped_column(Integer, ForeignKey("wagers.id"), nullable=False, index=True)
    resolver_id: Mapped[int] = mapped_column(Integer, nullable=False)
    assigned_by_id: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    can_resolve_independently: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    assigned_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    wager: Mapped[Wager] = relationship("Wager", back_populates="resolvers")


class OutcomeVote(Base):
    __tablename__ = "outcome_votes"
    __table_args__ = (
        UniqueConstraint("wager_id", "voter_id", name="uq_outcome_votes_wager_voter"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wager_id: Mapped[int] = mapped_column(Integer, ForeignKey("wagers.id"), nullable=False, index=True)
    voter_id: Mapped[int] = mapped_column(Integer, nullable=False)
    # Null for prediction wagers voted through winner selection.
    voted_outcome: Mapped[str | None] = mapped_column(String(20), nullable=True)
    rationale: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)

    winner_selections: Mapped[list["WinnerSelection"]] = relationship(
        "WinnerSelection", back_populates="vote", cascade="all, delete-orphan"
    )


class WinnerSelection(Base):
    __tablename__ = "winner_selections"
    __table_args__ = (
        UniqueConstraint("vote_id", "winner_user_id", name="uq_winner_selections_vote_winner"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vote_id: Mapped[int] = mapped_column(Integer, ForeignKey("outcome_votes.id"), nullable=False, index=True)
    winner_user_id: Mapped[int] = mapped_column(Integer, nullable=False)

    vote: Mapped[OutcomeVote] = relationship("OutcomeVote", back_populates="winner_selections")


class CorrectnessVote(Base):
    __tablename__ = "correctness_votes"
    __table_args__ = (
        UniqueConstraint("voter_id", "participation_id", name="uq_correctness_votes_voter_target"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wager_id: Mapped[int] = mapped_column(Integer, ForeignKey("wagers.id"), nullable=False, index=True)
    voter_id: Mapped[int] = mapped_column(Integer, nullable=False)
    participation_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("participant_stakes.id"), nullable=False
    )
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
