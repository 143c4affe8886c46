from __future__ import annotations

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker


Base = declarative_base()


def make_engine(database_url: str) -> Engine:
    url = str(database_url or "").strip()
    if not url:
        raise RuntimeError("Missing DATABASE_URL")
    kwargs: dict = {"pool_pre_ping": True, "future": True}
    if url.startswith("sqlite"):
        # The store is written from request threads and cloud callback threads alike.
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(url, **kwargs)


def make_session_factory(database_url: str) -> sessionmaker:
    import models  # noqa: F401  registers tables on Base

    eng = make_engine(database_url)
    Base.metadata.create_all(bind=eng)
    return sessionmaker(bind=eng, autoflush=False, expire_on_commit=False)


def ping_db(session_factory: sessionmaker | None) -> bool:
    if session_factory is None:
        return False
    try:
        with session_factory() as db:
            db.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
