"""SQLite access to the database embedded in an ``.apkg`` archive.

SQLite wants a real file, so the member is streamed into a scratch file
(same trick as ``open_member`` uses for APIs that expect a path) and an
SQLAlchemy engine is bound to it read-only.  The byte source is handed in
by the caller; nothing here knows about zip archives.
"""
from __future__ import annotations

import logging
import shutil
import sqlite3
import tempfile
from pathlib import Path
from typing import Any, BinaryIO, List, Mapping

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, Result, Row
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool
from sqlalchemy.sql.expression import Executable

from .errors import FormatError, ResourceError

logger = logging.getLogger(__name__)

__all__ = ["EmbeddedDatabase"]

_SCRATCH_PREFIX = "ankipack-"


class EmbeddedDatabase:
    """Queryable view of an SQLite database read from *source*.

    Parameters
    ----------
    source: BinaryIO
        Readable binary stream positioned at the start of the database bytes.
    scratch_dir: str | Path | None
        Directory for the scratch copy; the system temp dir by default.
    """

    def __init__(self, source: BinaryIO, *, scratch_dir: Path | str | None = None):
        self._scratch: Path | None = None
        self._engine: Engine | None = None
        self._session: Session | None = None
        self._closed = False
        try:
            self._scratch = self._materialize(source, scratch_dir)
            self._engine = self._connect(self._scratch)
            self._session = sessionmaker(self._engine, future=True)()
        except BaseException:
            self._release(raise_errors=False)
            raise

    # ------------------------------------------------------------------
    # setup
    # ------------------------------------------------------------------

    @staticmethod
    def _materialize(source: BinaryIO, scratch_dir: Path | str | None) -> Path:
        with tempfile.NamedTemporaryFile(prefix=_SCRATCH_PREFIX, suffix=".anki2", dir=scratch_dir, delete=False) as tmp:
            path = Path(tmp.name)
            try:
                shutil.copyfileobj(source, tmp)
            except BaseException:
                tmp.close()
                path.unlink(missing_ok=True)
                raise
        logger.debug("materialized embedded database to %s (%d bytes)", path, path.stat().st_size)
        return path

    @staticmethod
    def _connect(path: Path) -> Engine:
        # as_uri() percent-encodes the path, so '#', '?' and '%' in the
        # scratch directory cannot truncate it; mode=ro keeps the copy unwritten
        uri = f"{path.resolve().as_uri()}?mode=ro"
        engine = create_engine(
            "sqlite://",
            creator=lambda: sqlite3.connect(uri, uri=True, check_same_thread=False),
            poolclass=NullPool,
            future=True,
        )
        try:
            with engine.connect() as conn:
                conn.exec_driver_sql("SELECT count(*) FROM sqlite_master")
        except SQLAlchemyError as exc:
            engine.dispose()
            raise FormatError(f"embedded database is not a readable SQLite file: {exc}") from exc
        return engine

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def _require_session(self) -> Session:
        if self._closed or self._session is None:
            raise ResourceError("embedded database has been closed")
        return self._session

    def query(self, statement: Executable, params: Mapping[str, Any] | None = None) -> Result:
        """Run *statement* and return its row cursor."""
        session = self._require_session()
        try:
            return session.execute(statement, params or {})
        except SQLAlchemyError as exc:
            raise FormatError(f"query against embedded database failed: {exc}") from exc

    def get(self, statement: Executable, params: Mapping[str, Any] | None = None) -> Row:
        """Run *statement* and return its first row; no row is an error."""
        result = self.query(statement, params)
        try:
            row = result.first()
        except SQLAlchemyError as exc:
            raise FormatError(f"query against embedded database failed: {exc}") from exc
        if row is None:
            raise FormatError("expected a row from the embedded database, got none")
        return row

    # ------------------------------------------------------------------
    # teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Release the session, the engine and the scratch file.

        Safe to call more than once.  Every resource is released even when
        an earlier release fails; the first failure is raised as
        :class:`ResourceError`, later ones are logged.
        """
        if self._closed:
            return
        self._release(raise_errors=True)

    def _release(self, *, raise_errors: bool) -> None:
        self._closed = True
        errors: List[BaseException] = []
        if self._session is not None:
            try:
                self._session.close()
            except SQLAlchemyError as exc:
                errors.append(exc)
            self._session = None
        if self._engine is not None:
            try:
                self._engine.dispose()
            except SQLAlchemyError as exc:
                errors.append(exc)
            self._engine = None
        if self._scratch is not None:
            try:
                self._scratch.unlink(missing_ok=True)
            except OSError as exc:
                errors.append(exc)
            else:
                logger.debug("removed scratch database %s", self._scratch)
            self._scratch = None
        if not errors:
            return
        for extra in errors[1:]:
            logger.error("additional failure while closing embedded database: %s", extra)
        if raise_errors:
            raise ResourceError(f"failed to release embedded database: {errors[0]}", errors) from errors[0]
        logger.error("failed to release embedded database: %s", errors[0])

    def __enter__(self) -> "EmbeddedDatabase":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
