from __future__ import annotations

import os
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest

from wagers.core.config import Settings
from wagers.db import build_db_components, init_db
from wagers.models import ParticipantStake, ResolutionMethod, Wager, WagerType
from wagers.repositories import ParticipationRepository, ResolverRepository
from wagers.services import ResolutionService, StakeLedgerSettlement, WagerService
from sweeps.base import SweepContext

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class RecordingSink:
    def __init__(self) -> None:
        self.events = []

    def publish(self, event) -> None:
        self.events.append(event)

    def of_type(self, event_type):
        return [event for event in self.events if isinstance(event, event_type)]


class RecordingSettlement(StakeLedgerSettlement):
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.settled: list[int] = []
        self.refunded: list[int] = []

    def settle(self, session, wager, stakes, at):
        self.settled.append(wager.id)
        if self.fail:
            raise RuntimeError("ledger unavailable")
        return super().settle(session, wager, stakes, at)

    def refund(self, session, wager, stakes, at):
        self.refunded.append(wager.id)
        if self.fail:
            raise RuntimeError("ledger unavailable")
        return super().refund(session, wager, stakes, at)


class WagerFactory:
    """Seed wagers, stakes and resolvers directly through the repositories."""

    def __init__(self, session_factory, clock: FrozenClock) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def create(self, **overrides) -> int:
        values = {
            "title": "Will it rain on Saturday?",
            "group_id": 7,
            "creator_id": 1,
            "wager_type": WagerType.BINARY.value,
            "resolution_method": ResolutionMethod.SELF.value,
            "option_1": "Yes",
            "option_2": "No",
            "betting_deadline": self._clock.now() + timedelta(days=1),
            "resolve_deadline": self._clock.now() + timedelta(days=2),
        }
        values.update(overrides)
        with self._session_factory() as session:
            wager = Wager(**values)
            session.add(wager)
            session.commit()
            return wager.id

    def join(
        self,
        wager_id: int,
        user_id: int,
        *,
        chosen_option: int | None = None,
        stake: str = "10",
        predicted_value: str | None = None,
        potential_winnings: str | None = None,
    ) -> int:
        with self._session_factory() as session:
            wager = session.get(Wager, wager_id)
            record = ParticipationRepository(session).record_join(
                wager,
                user_id,
                stake_amount=Decimal(stake),
                chosen_option=chosen_option,
                predicted_value=predicted_value,
                potential_winnings=Decimal(potential_winnings) if potential_winnings else None,
            )
            session.commit()
            return record.id

    def assign(self, wager_id: int, resolver_id: int, *, independent: bool = True) -> None:
        with self._session_factory() as session:
            ResolverRepository(session).create(
                wager_id=wager_id,
                resolver_id=resolver_id,
                assigned_by_id=1,
                reason="seeded",
                can_resolve_independently=independent,
            )
            session.commit()

    def get(self, wager_id: int) -> Wager:
        with self._session_factory() as session:
            return session.get(Wager, wager_id)

    def stakes(self, wager_id: int) -> dict[int, ParticipantStake]:
        with self._session_factory() as session:
            records = ParticipationRepository(session).list_for_wager(wager_id)
            return {record.user_id: record for record in records}


@pytest.fixture
def session_factory():
    engine, factory = build_db_components("sqlite://")
    init_db(bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def settlement() -> RecordingSettlement:
    return RecordingSettlement()


@pytest.fixture
def factory(session_factory, clock) -> WagerFactory:
    return WagerFactory(session_factory, clock)


@pytest.fixture
def engine_service(session_factory, settlement, sink, clock) -> ResolutionService:
    return ResolutionService(session_factory, settlement=settlement, event_sink=sink, clock=clock)


@pytest.fixture
def wager_service(session_factory, settlement, sink, clock) -> WagerService:
    return WagerService(session_factory, settlement=settlement, event_sink=sink, clock=clock)


@pytest.fixture
def test_settings(monkeypatch) -> Settings:
    settings = Settings(
        database_url="sqlite://",
        close_expired_interval_ms=60_000,
        process_resolvable_interval_ms=120_000,
    )
    monkeypatch.setattr("wagers.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("wagers.core.config.settings", settings)
    return settings


@pytest.fixture
def sweep_context(test_settings, session_factory, clock, sink, settlement) -> SweepContext:
    return SweepContext(
        settings=test_settings,
        clock=clock,
        event_sink=sink,
        settlement=settlement,
        session_factory=session_factory,
    )
