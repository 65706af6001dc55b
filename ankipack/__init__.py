"""ankipack - read-only access to Anki ``.apkg`` study packages.

This package provides:
    • read_file / read_bytes / read_stream – open a package as an ``Apkg``.
    • Apkg.collection() – models, decks and deck options as frozen dataclasses.
    • Apkg.notes() / cards() / reviews() – lazy cursors over the study data.
    • Apkg.read_media() – media payloads by display filename.

Scheduling fields are normalized on read: due times become Unix seconds,
intervals become positive durations and ease factors real multipliers.
Objects listed as deleted in the package are never returned.
"""

__all__ = [
    "Apkg",
    "read_file",
    "read_bytes",
    "read_stream",
    "ApkgError",
    "ArchiveError",
    "FormatError",
    "ColumnTypeError",
    "ReferentialIntegrityError",
    "NotFoundError",
    "ResourceError",
]

from .apkg import Apkg, read_bytes, read_file, read_stream  # noqa: E402
from .errors import (  # noqa: E402
    ApkgError,
    ArchiveError,
    ColumnTypeError,
    FormatError,
    NotFoundError,
    ReferentialIntegrityError,
    ResourceError,
)
