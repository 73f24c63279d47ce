from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .exceptions import PersistenceFailure
from .feed import ChangeFeed

log = logging.getLogger(__name__)

Base = declarative_base()

_CHANGES_KEY = "taskpoints.changes"


def mark_changed(session: Session, user_id: str, collection: str) -> None:
    """Record that this transaction touched ``collection`` for ``user_id``.

    The change is published once the transaction commits.
    """
    session.info.setdefault(_CHANGES_KEY, set()).add((user_id, collection))


class Database:
    def __init__(self, database_url: str, feed: Optional[ChangeFeed] = None, echo: bool = False) -> None:
        kwargs = {"echo": echo, "future": True}
        if database_url.startswith("sqlite") and (database_url in ("sqlite://", "sqlite:///:memory:")):
            kwargs.update(connect_args={"check_same_thread": False}, poolclass=StaticPool)
        self.engine = create_engine(database_url, **kwargs)
        self.session_factory = sessionmaker(
            bind=self.engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True
        )
        self.feed = feed or ChangeFeed()

    def create_all(self) -> None:
        # models must be imported so their tables are registered on Base
        from . import models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session_scope(self, operation: str = "write") -> Generator[Session, None, None]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            log.error("Store %s failed: %s", operation, exc)
            raise PersistenceFailure(operation, str(exc)) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            changes = session.info.pop(_CHANGES_KEY, set())
            session.close()
        for user_id, collection in sorted(changes):
            self.feed.publish(user_id, collection)
