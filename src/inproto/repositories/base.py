"""Shared transaction handling for the relay repositories."""
from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from threading import RLock

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from inproto.core.errors import StorageError

logger = logging.getLogger(__name__)

__all__ = ["Repository"]


class Repository:
    """Base class owning a session factory and a single-writer lock.

    Every read-modify-write runs inside :meth:`transaction`, which holds the
    lock for the whole unit of work and either commits everything or rolls
    everything back.
    """

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        if session_factory is None:
            from inproto.db.session import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory
        self._lock = RLock()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Yield a session whose work is committed atomically under the writer lock.

        Raises:
            StorageError: If the database rejects the read or the write.
        """
        with self._lock:
            session = self._session_factory()
            try:
                yield session
                session.commit()
            except SQLAlchemyError as err:
                session.rollback()
                logger.error("%s transaction failed: %s", type(self).__name__, err)
                raise StorageError(str(err)) from err
            except BaseException:
                session.rollback()
                raise
            finally:
                session.close()

    @contextmanager
    def reading(self) -> Iterator[Session]:
        """Yield a session for read-only queries."""
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as err:
            logger.error("%s read failed: %s", type(self).__name__, err)
            raise StorageError(str(err)) from err
        finally:
            session.close()
