"""Exception hierarchy for ankipack."""
from __future__ import annotations

from typing import List

__all__ = [
    "ApkgError",
    "ArchiveError",
    "FormatError",
    "ColumnTypeError",
    "ReferentialIntegrityError",
    "NotFoundError",
    "ResourceError",
]


class ApkgError(RuntimeError):
    pass


class ArchiveError(ApkgError):
    """The container is missing, unreadable or not a zip archive."""


class FormatError(ApkgError):
    """A required archive member (or the ``col`` row) is missing or malformed."""


class ColumnTypeError(ApkgError, TypeError):
    """A column value could not be coerced to its domain type."""

    def __init__(self, column: str, value: object, expected: str):
        self.column = column
        self.value = value
        self.expected = expected
        super().__init__(f"column {column!r}: cannot decode {value!r} ({type(value).__name__}) as {expected}")


class ReferentialIntegrityError(ApkgError):
    pass


class NotFoundError(ApkgError, LookupError):
    pass


class ResourceError(ApkgError):
    """Releasing scratch storage or the engine handle failed.

    ``errors`` holds every failure seen during the release, first one first.
    """

    def __init__(self, message: str, errors: List[BaseException] | None = None):
        super().__init__(message)
        self.errors = list(errors or [])
