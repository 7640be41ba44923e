from __future__ import annotations

import os
from pathlib import Path

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

DEFAULT_DATABASE_URL = "sqlite+pysqlite:///.local/waiverdesk.db"

# One engine per DATABASE_URL; tests switch the URL between cases.
_ENGINES: dict[str, tuple[Engine, sessionmaker]] = {}


def database_url() -> str:
    return os.getenv("DATABASE_URL", "").strip() or DEFAULT_DATABASE_URL


def _sqlite_file(url: str) -> Path | None:
    if not url.startswith("sqlite") or ":///" not in url:
        return None
    path = url.split(":///", 1)[1]
    if not path or path == ":memory:":
        return None
    return Path(path)


def _build(url: str) -> tuple[Engine, sessionmaker]:
    is_sqlite = url.startswith("sqlite")
    sqlite_file = _sqlite_file(url)
    if sqlite_file is not None:
        sqlite_file.parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(
        url,
        # Sessions are opened from worker threads.
        connect_args={"check_same_thread": False} if is_sqlite else {},
        pool_pre_ping=not is_sqlite,
    )
    return engine, sessionmaker(bind=engine, class_=Session, autoflush=False)


def get_engine() -> Engine:
    url = database_url()
    if url not in _ENGINES:
        _ENGINES[url] = _build(url)
    return _ENGINES[url][0]


def db_session() -> Session:
    url = database_url()
    get_engine()
    return _ENGINES[url][1]()
