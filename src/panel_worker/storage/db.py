"""
Инициализация базы данных и сессий SQLAlchemy.

Назначение:
- ленивое создание engine (воркер, которому не нужна БД, не тянет драйвер)
- контекстный менеджер для сессий: commit на выходе, rollback на ошибке
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from panel_worker.common.config import get_settings

# =============================================================================
# ENGINE / SESSION FACTORY
# =============================================================================
_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = create_engine(get_settings().database_dsn, pool_pre_ping=True)
    return _engine


def session_factory() -> sessionmaker[Session]:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(), autocommit=False, autoflush=False)
    return _session_factory


def configure(engine: Engine) -> None:
    """
    Подменить engine (тесты, скрипты с другим DSN).
    """
    global _engine, _session_factory
    _engine = engine
    _session_factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)


# =============================================================================
# CONTEXT MANAGER
# =============================================================================
@contextmanager
def db_session() -> Iterator[Session]:
    """
    Контекстный менеджер для работы с БД.

    Использование:
        with db_session() as session:
            session.add(...)
    """
    session: Session = session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
