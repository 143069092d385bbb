from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .core.config import settings


def _ensure_sqlite_path(url: str) -> None:
    if not url.startswith("sqlite"):
        return

    parsed = make_url(url)
    database = parsed.database
    if not database or database == ":memory:":
        return

    path = Path(database)
    path.parent.mkdir(parents=True, exist_ok=True)


def _create_engine(url: str, *, echo: bool = False):
    connect_args: dict[str, object] = {}
    engine_kwargs: dict[str, object] = {
        "echo": echo,
        "future": True,
        "pool_pre_ping": True,
    }

    parsed = make_url(url)
    backend = parsed.get_backend_name()

    if backend == "sqlite":
        connect_args["check_same_thread"] = False
        if not parsed.database or parsed.database == ":memory:":
            # Every session must see the same in-memory database.
            engine_kwargs["poolclass"] = StaticPool
        _ensure_sqlite_path(url)
    else:
        engine_kwargs["pool_recycle"] = 300

        if backend.startswith("postgresql"):
            connect_args.setdefault("keepalives", 1)
            connect_args.setdefault("keepalives_idle", 120)
            connect_args.setdefault("keepalives_interval", 30)
            connect_args.setdefault("keepalives_count", 5)

    if connect_args:
        engine_kwargs["connect_args"] = connect_args

    return create_engine(url, **engine_kwargs)


def _create_session_factory(engine) -> sessionmaker[Session]:
    # Services hand ORM rows to schema builders after the unit of work commits.
    return sessionmaker(
        bind=engine,
        autoflush=True,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


def build_db_components(url: str, *, echo: bool = False):
    engine = _create_engine(url, echo=echo)
    session_factory = _create_session_factory(engine)
    return engine, session_factory


engine, SessionLocal = build_db_components(
    settings.resolved_database_url, echo=settings.debug
)
Base = declarative_base()


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session] | None = None,
) -> Iterator[Session]:
    factory = session_factory or SessionLocal
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(bind=None) -> None:
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
