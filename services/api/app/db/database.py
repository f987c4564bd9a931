from __future__ import annotations

import os

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

_ENGINE: Engine | None = None
_ENGINE_URL: str | None = None
_SESSIONMAKER: sessionmaker | None = None


def _default_db_url() -> str:
    # Local-only default. Production must provide DATABASE_URL explicitly.
    return "sqlite+pysqlite:///.local/bouquet.db"


def env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "y"}


def db_timeout_seconds() -> float:
    return float(os.getenv("BOUQUET_DB_TIMEOUT_SECONDS", "10"))


def _connect_args(url: str, timeout: float) -> dict:
    if url.startswith("sqlite"):
        # `timeout` bounds how long sqlite waits on a locked database.
        return {"check_same_thread": False, "timeout": timeout}
    if url.startswith("postgresql"):
        return {
            "connect_timeout": int(timeout),
            "options": f"-c statement_timeout={int(timeout * 1000)}",
        }
    return {}


def get_engine() -> Engine:
    """Return a cached SQLAlchemy engine.

    We cache based on DATABASE_URL so tests can override DATABASE_URL before first use.
    """

    global _ENGINE, _ENGINE_URL, _SESSIONMAKER

    url = os.getenv("DATABASE_URL", _default_db_url())

    if _ENGINE is not None and _ENGINE_URL == url:
        return _ENGINE

    if url.startswith("sqlite+pysqlite:///") and not url.endswith(":memory:"):
        os.makedirs(os.path.dirname(os.path.abspath(url.split("///", 1)[1])), exist_ok=True)

    timeout = db_timeout_seconds()
    kwargs: dict = {"future": True, "connect_args": _connect_args(url, timeout)}
    if not url.startswith("sqlite"):
        kwargs["pool_timeout"] = timeout

    _ENGINE = create_engine(url, **kwargs)
    _ENGINE_URL = url
    _SESSIONMAKER = sessionmaker(
        bind=_ENGINE, class_=Session, autocommit=False, autoflush=False, expire_on_commit=False
    )
    return _ENGINE


def db_session() -> Session:
    get_engine()  # ensure _SESSIONMAKER is created
    assert _SESSIONMAKER is not None
    return _SESSIONMAKER()
