"""
Transactional store adapter shared by the registry and mapping gateways.

A gateway instance owns at most one open transaction and is meant to live for a
single saga invocation; build a new one per request from the shared session factory.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Union

from sqlalchemy import text
from sqlalchemy.engine import RowMapping
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.sql import Executable

from gateways.errors import StoreError, StoreTimeout

logger = logging.getLogger(__name__)

_TIMEOUT_MARKERS = ("statement timeout", "canceling statement", "lock timeout", "timed out", "timeout expired")


class TransactionalStore:
    name = "store"

    def __init__(self, session_factory: sessionmaker, *, statement_timeout_ms: Optional[int] = None) -> None:
        self._session_factory = session_factory
        self._statement_timeout_ms = statement_timeout_ms
        self._session: Optional[Session] = None

    @property
    def in_transaction(self) -> bool:
        return self._session is not None

    # --- transaction boundaries (called by the sagas only) ---
    def begin(self, timeout: Optional[float] = None) -> None:
        if self._session is not None:
            raise StoreError(f"{self.name}: transaction already open")
        session = self._session_factory()
        try:
            session.begin()
            self._apply_statement_timeout(session, timeout)
        except SQLAlchemyError as exc:
            session.close()
            raise self._translate(exc, "begin") from exc
        self._session = session
        logger.debug("%s: transaction opened", self.name)

    def commit(self) -> None:
        session = self._require_session("commit")
        try:
            session.commit()
        except SQLAlchemyError as exc:
            try:
                session.rollback()
            except SQLAlchemyError:
                logger.warning("%s: rollback after failed commit also failed", self.name)
            raise self._translate(exc, "commit") from exc
        finally:
            session.close()
            self._session = None
        logger.debug("%s: transaction committed", self.name)

    def rollback(self) -> None:
        # Safe to call when nothing is open; compensation paths rely on that.
        session = self._session
        if session is None:
            return
        try:
            session.rollback()
        except SQLAlchemyError as exc:
            raise self._translate(exc, "rollback") from exc
        finally:
            session.close()
            self._session = None
        logger.debug("%s: transaction rolled back", self.name)

    def execute(self, query: Union[str, Executable], params: Optional[Dict[str, Any]] = None) -> List[RowMapping]:
        stmt = text(query) if isinstance(query, str) else query
        with self._scope("execute") as session:
            result = session.execute(stmt, params or {})
            return list(result.mappings().all()) if result.returns_rows else []

    # --- helpers ---
    @contextmanager
    def _scope(self, operation: str) -> Iterator[Session]:
        """Run inside the open transaction, or in a short-lived one when none is open."""
        if self._session is not None:
            try:
                yield self._session
            except SQLAlchemyError as exc:
                raise self._translate(exc, operation) from exc
            return
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise self._translate(exc, operation) from exc
        finally:
            session.close()

    def _require_session(self, operation: str) -> Session:
        if self._session is None:
            raise StoreError(f"{self.name}: {operation} requires an open transaction")
        return self._session

    def _apply_statement_timeout(self, session: Session, timeout: Optional[float]) -> None:
        if session.get_bind().dialect.name != "postgresql":
            return
        ms = self._statement_timeout_ms
        if timeout is not None:
            ms = min(ms or int(timeout * 1000), int(timeout * 1000))
        if not ms:
            return
        # set_config(..., true) is transaction-local, like SET LOCAL, but accepts bind params.
        session.execute(text("SELECT set_config('statement_timeout', :ms, true)"), {"ms": str(max(ms, 1))})

    def _translate(self, exc: SQLAlchemyError, operation: str) -> StoreError:
        message = f"{self.name}: {operation} failed: {exc}"
        if isinstance(exc, (OperationalError, DBAPIError)) and not isinstance(exc, IntegrityError):
            lowered = str(exc).lower()
            if any(marker in lowered for marker in _TIMEOUT_MARKERS):
                return StoreTimeout(message)
        return StoreError(message)
