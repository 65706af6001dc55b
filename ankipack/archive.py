"""Reading the zip container of an ``.apkg`` package.

An ``.apkg`` file is a plain zip archive holding::

    collection.anki2     SQLite database (collection.anki21 in 2.1 exports)
    media                JSON object {"0": "image.png", "1": "sound.mp3", ...}
    0, 1, 2, ...         media payloads, named by their key in ``media``

``ApkgArchive`` indexes the members, finds the database and the media map,
and serves media payloads by display filename.
"""
from __future__ import annotations

import io
import json
import logging
import os
import zipfile
from typing import BinaryIO, Dict, List, Union

from .errors import ArchiveError, FormatError, NotFoundError

logger = logging.getLogger(__name__)

__all__ = ["ApkgArchive", "Source", "DATABASE_MEMBERS", "MEDIA_MEMBER"]

# 2.1 exports ship a stub collection.anki2 next to the real collection.anki21
DATABASE_MEMBERS = ("collection.anki21", "collection.anki2")
MEDIA_MEMBER = "media"

Source = Union[str, "os.PathLike[str]", bytes, bytearray, memoryview, BinaryIO]


class _Window(io.RawIOBase):
    """Read-only view of the first *size* bytes of a seekable stream."""

    def __init__(self, stream: BinaryIO, size: int):
        self._stream = stream
        self._size = size
        self._start = stream.tell()
        self._pos = 0

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def tell(self) -> int:
        return self._pos

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if whence == io.SEEK_SET:
            pos = offset
        elif whence == io.SEEK_CUR:
            pos = self._pos + offset
        elif whence == io.SEEK_END:
            pos = self._size + offset
        else:
            raise ValueError(f"invalid whence {whence}")
        self._pos = max(0, min(pos, self._size))
        return self._pos

    def readinto(self, buf) -> int:
        remaining = self._size - self._pos
        if remaining <= 0:
            return 0
        view = memoryview(buf)[:remaining]
        self._stream.seek(self._start + self._pos)
        n = self._stream.readinto(view)
        self._pos += n or 0
        return n or 0


class ApkgArchive:
    """Member index over an ``.apkg`` zip archive.

    Use :meth:`open` rather than the constructor; it accepts a filesystem
    path, an in-memory buffer or a seekable binary stream.
    """

    def __init__(self, zf: zipfile.ZipFile):
        self._zf: zipfile.ZipFile | None = zf
        self._members: Dict[str, zipfile.ZipInfo] = {}
        self._media: Dict[str, zipfile.ZipInfo] = {}
        self.database_member: str = ""
        try:
            self._populate_index()
        except BaseException:
            self.close()
            raise

    @classmethod
    def open(cls, source: Source, *, size: int | None = None) -> "ApkgArchive":
        """Open *source* as an ``.apkg`` archive.

        *size* only applies to streams and bounds how many bytes, starting at
        the stream's current position, belong to the archive.
        """
        if isinstance(source, (str, os.PathLike)):
            target: Union[str, os.PathLike, BinaryIO] = os.fspath(source)
        elif isinstance(source, (bytes, bytearray, memoryview)):
            target = io.BytesIO(bytes(source))
        elif hasattr(source, "read") and hasattr(source, "seek"):
            target = _Window(source, size) if size is not None else source
        else:
            raise ArchiveError(f"unsupported archive source: {type(source).__name__}")

        try:
            zf = zipfile.ZipFile(target)
        except FileNotFoundError as exc:
            raise ArchiveError(f"archive not found: {source}") from exc
        except (zipfile.BadZipFile, OSError, ValueError) as exc:
            raise ArchiveError(f"not a readable zip archive: {exc}") from exc
        logger.debug("opened archive with %d members", len(zf.infolist()))
        return cls(zf)

    # ------------------------------------------------------------------
    # index
    # ------------------------------------------------------------------

    def _populate_index(self) -> None:
        zf = self._require_open()
        for info in zf.infolist():
            if not info.is_dir():
                self._members[info.filename] = info

        for name in DATABASE_MEMBERS:
            if name in self._members:
                self.database_member = name
                break
        else:
            raise FormatError(f"unable to find {' or '.join(DATABASE_MEMBERS)} in archive")

        if MEDIA_MEMBER not in self._members:
            raise FormatError(f"unable to find `{MEDIA_MEMBER}` in archive")
        try:
            raw = zf.read(self._members[MEDIA_MEMBER])
            media_map = json.loads(raw.decode("utf-8"))
        except (zipfile.BadZipFile, OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise FormatError(f"`{MEDIA_MEMBER}` is not a valid JSON map: {exc}") from exc
        if not isinstance(media_map, dict):
            raise FormatError(f"`{MEDIA_MEMBER}` must be a JSON object, got {type(media_map).__name__}")

        for key, filename in media_map.items():
            info = self._members.get(str(key))
            if info is None:
                logger.warning("media entry %s (%r) has no payload in archive, skipping", key, filename)
                continue
            self._media[str(filename)] = info
        logger.debug("database member %s, %d media files", self.database_member, len(self._media))

    def _require_open(self) -> zipfile.ZipFile:
        if self._zf is None:
            raise ArchiveError("archive has been closed")
        return self._zf

    # ------------------------------------------------------------------
    # public helpers
    # ------------------------------------------------------------------

    def open_database(self) -> BinaryIO:
        """Return a binary stream over the embedded database member."""
        zf = self._require_open()
        try:
            return zf.open(self._members[self.database_member])  # type: ignore[return-value]
        except (zipfile.BadZipFile, OSError) as exc:
            raise ArchiveError(f"cannot read `{self.database_member}`: {exc}") from exc

    def media_names(self) -> List[str]:
        return sorted(self._media)

    def read_media(self, name: str) -> bytes:
        """Return the raw bytes of the media file displayed as *name*."""
        info = self._media.get(name)
        if info is None:
            raise NotFoundError(f"media file `{name}` not found in archive")
        zf = self._require_open()
        try:
            return zf.read(info)
        except (zipfile.BadZipFile, OSError) as exc:
            raise ArchiveError(f"cannot read media file `{name}`: {exc}") from exc

    def close(self) -> None:
        if self._zf is not None:
            zf, self._zf = self._zf, None
            zf.close()

    def __enter__(self) -> "ApkgArchive":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
