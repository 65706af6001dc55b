"""Forward-only cursors over notes, cards and reviews.

A cursor wraps one SQLAlchemy result.  ``advance()`` moves to the next
row; ``note()`` / ``card()`` / ``review()`` decode the current row.  A row
that fails to decode raises :class:`~ankipack.errors.ColumnTypeError` and
the cursor stays usable for the rows after it.

Typical use::

    with apkg.notes() as notes:
        while notes.advance():
            note = notes.note()

or simply ``for note in apkg.notes(): ...``.
"""
from __future__ import annotations

import logging
from typing import Generic, Iterator, TypeVar

from sqlalchemy.engine import Result, Row
from sqlalchemy.exc import SQLAlchemyError

from .assembler import collection_created, decode_card_row, decode_note_row, decode_review_row
from .database import EmbeddedDatabase
from .errors import ApkgError, ResourceError
from .models import Card, Note, Review

logger = logging.getLogger(__name__)

__all__ = ["Notes", "Cards", "Reviews"]

T = TypeVar("T")


class _RowCursor(Generic[T]):
    """Single-pass cursor; reissue the query for a second pass."""

    _entity = "row"

    def __init__(self, db: EmbeddedDatabase, result: Result):
        self._db = db  # not owned
        self._result = result
        self._row: Row | None = None
        self._exhausted = False
        self._closed = False

    def _check_usable(self) -> None:
        if self._closed:
            raise ResourceError(f"{type(self).__name__} cursor is closed")
        if self._db.closed:
            raise ResourceError(f"{type(self).__name__} cursor outlived its package, which has been closed")

    def advance(self) -> bool:
        """Move to the next row; ``False`` once the rows are exhausted."""
        self._check_usable()
        if self._exhausted:
            return False
        try:
            row = self._result.fetchone()
        except SQLAlchemyError as exc:
            raise ResourceError(f"failed to fetch next {self._entity}: {exc}") from exc
        if row is None:
            self._row = None
            self._exhausted = True
            return False
        self._row = row
        return True

    def _current(self) -> Row:
        self._check_usable()
        if self._row is None:
            raise ApkgError(f"no current {self._entity}; call advance() first")
        return self._row

    def _decode(self, row: Row) -> T:
        raise NotImplementedError

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._row = None
        if self._db.closed:
            # the package already released the connection under us
            return
        try:
            self._result.close()
        except SQLAlchemyError as exc:
            raise ResourceError(f"failed to close {self._entity} cursor: {exc}") from exc

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self) -> Iterator[T]:
        while self.advance():
            yield self._decode(self._current())

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class Notes(_RowCursor[Note]):
    _entity = "note"

    def note(self) -> Note:
        return self._decode(self._current())

    def _decode(self, row: Row) -> Note:
        return decode_note_row(row)


class Cards(_RowCursor[Card]):
    _entity = "card"

    def __init__(self, db: EmbeddedDatabase, result: Result):
        super().__init__(db, result)
        # col.crt, read with the first decoded card
        self._created: int | None = None

    def card(self) -> Card:
        return self._decode(self._current())

    def _decode(self, row: Row) -> Card:
        if self._created is None:
            self._created = collection_created(self._db)
        return decode_card_row(row, self._created)


class Reviews(_RowCursor[Review]):
    _entity = "review"

    def review(self) -> Review:
        return self._decode(self._current())

    def _decode(self, row: Row) -> Review:
        return decode_review_row(row)
