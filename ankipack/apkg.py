"""Top-level handle for a single ``.apkg`` package."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import BinaryIO, List

from .archive import ApkgArchive, Source
from .assembler import (
    assemble_collection,
    cards_statement,
    notes_statement,
    reviews_statement,
)
from .cursors import Cards, Notes, Reviews
from .database import EmbeddedDatabase
from .errors import ResourceError
from .models import Collection

logger = logging.getLogger(__name__)

__all__ = ["Apkg", "read_file", "read_bytes", "read_stream"]


class Apkg:
    """An opened ``.apkg`` package.

    Owns the archive and the embedded database; both are released by
    :meth:`close`.  Cursors handed out by :meth:`notes`, :meth:`cards` and
    :meth:`reviews` stop working once the package is closed.

    Not thread-safe: callers sharing one package between threads must
    serialize access themselves.
    """

    def __init__(self, archive: ApkgArchive, *, scratch_dir: Path | str | None = None):
        self._archive = archive
        self._db: EmbeddedDatabase | None = None
        self._collection: Collection | None = None
        try:
            with archive.open_database() as stream:
                self._db = EmbeddedDatabase(stream, scratch_dir=scratch_dir)
        except BaseException:
            archive.close()
            raise
        logger.debug("opened package (database member %s)", archive.database_member)

    @classmethod
    def open(cls, source: Source, *, size: int | None = None, scratch_dir: Path | str | None = None) -> "Apkg":
        return cls(ApkgArchive.open(source, size=size), scratch_dir=scratch_dir)

    def _database(self) -> EmbeddedDatabase:
        if self._db is None or self._db.closed:
            raise ResourceError("package has been closed")
        return self._db

    # ------------------------------------------------------------------
    # domain access
    # ------------------------------------------------------------------

    def collection(self) -> Collection:
        """Return the collection; decoded on first call, then cached.

        The cached graph is released along with the package.
        """
        db = self._database()
        if self._collection is None:
            self._collection = assemble_collection(db)
        return self._collection

    def notes(self) -> Notes:
        """Cursor over notes not listed in ``graves``, ascending by id."""
        db = self._database()
        return Notes(db, db.query(notes_statement()))

    def cards(self) -> Cards:
        """Cursor over cards not listed in ``graves``, ascending by id."""
        db = self._database()
        return Cards(db, db.query(cards_statement()))

    def reviews(self) -> Reviews:
        """Cursor over reviews of live cards, newest first."""
        db = self._database()
        return Reviews(db, db.query(reviews_statement()))

    def media_names(self) -> List[str]:
        return self._archive.media_names()

    def read_media(self, name: str) -> bytes:
        return self._archive.read_media(name)

    # ------------------------------------------------------------------
    # teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Release the database and the archive; a second call is a no-op.

        Both are released even if the first fails.  The first failure is
        raised, later ones are logged.
        """
        errors: List[BaseException] = []
        if self._db is not None:
            db, self._db = self._db, None
            self._collection = None
            try:
                db.close()
            except ResourceError as exc:
                errors.append(exc)
        try:
            self._archive.close()
        except OSError as exc:
            errors.append(exc)
        if not errors:
            return
        for extra in errors[1:]:
            logger.error("additional failure while closing package: %s", extra)
        first = errors[0]
        if isinstance(first, ResourceError):
            raise first
        raise ResourceError(f"failed to close archive: {first}", errors) from first

    def __enter__(self) -> "Apkg":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def read_file(path: str | os.PathLike, **kwargs) -> Apkg:
    """Open the ``.apkg`` file at *path*."""
    return Apkg.open(os.fspath(path), **kwargs)


def read_bytes(data: bytes, **kwargs) -> Apkg:
    """Open an ``.apkg`` package held in memory."""
    return Apkg.open(bytes(data), **kwargs)


def read_stream(stream: BinaryIO, size: int | None = None, **kwargs) -> Apkg:
    """Open an ``.apkg`` package from a seekable binary stream.

    When *size* is given, only that many bytes from the stream's current
    position are treated as the archive.
    """
    return Apkg.open(stream, size=size, **kwargs)
