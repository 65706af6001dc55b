"""SQLAlchemy mappings of the tables stored in ``collection.anki2``.

Only the columns read by :mod:`ankipack.assembler` are declared; extra
columns present in newer exports are ignored because every statement
names its columns explicitly.
"""

from __future__ import annotations

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class ColRow(Base):
    __tablename__ = "col"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    crt: Mapped[int] = mapped_column(Integer, nullable=False)  # seconds
    mod: Mapped[int] = mapped_column(Integer, nullable=False)  # milliseconds
    scm: Mapped[int] = mapped_column(Integer, nullable=False)  # milliseconds
    ver: Mapped[int] = mapped_column(Integer, nullable=False)
    dty: Mapped[int] = mapped_column(Integer, nullable=False)
    usn: Mapped[int] = mapped_column(Integer, nullable=False)
    ls: Mapped[int] = mapped_column(Integer, nullable=False)  # milliseconds
    conf: Mapped[str] = mapped_column(Text, nullable=False)
    models: Mapped[str] = mapped_column(Text, nullable=False)
    decks: Mapped[str] = mapped_column(Text, nullable=False)
    dconf: Mapped[str] = mapped_column(Text, nullable=False)
    tags: Mapped[str] = mapped_column(Text, nullable=False)


class NoteRow(Base):
    __tablename__ = "notes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    guid: Mapped[str] = mapped_column(String, nullable=False)
    mid: Mapped[int] = mapped_column(Integer, nullable=False)
    mod: Mapped[int] = mapped_column(Integer, nullable=False)
    usn: Mapped[int] = mapped_column(Integer, nullable=False)
    tags: Mapped[str] = mapped_column(Text, nullable=False)
    flds: Mapped[str] = mapped_column(Text, nullable=False)
    sfld: Mapped[str] = mapped_column(Text, nullable=False)  # integer affinity when numeric
    csum: Mapped[int] = mapped_column(Integer, nullable=False)
    flags: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    data: Mapped[str] = mapped_column(Text, nullable=False, default="")


class CardRow(Base):
    __tablename__ = "cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    nid: Mapped[int] = mapped_column(Integer, nullable=False)
    did: Mapped[int] = mapped_column(Integer, nullable=False)
    ord: Mapped[int] = mapped_column(Integer, nullable=False)
    mod: Mapped[int] = mapped_column(Integer, nullable=False)
    usn: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[int] = mapped_column(Integer, nullable=False)
    queue: Mapped[int] = mapped_column(Integer, nullable=False)
    due: Mapped[int] = mapped_column(Integer, nullable=False)
    ivl: Mapped[int] = mapped_column(Integer, nullable=False)
    factor: Mapped[int] = mapped_column(Integer, nullable=False)
    reps: Mapped[int] = mapped_column(Integer, nullable=False)
    lapses: Mapped[int] = mapped_column(Integer, nullable=False)
    left: Mapped[int] = mapped_column(Integer, nullable=False)
    odue: Mapped[int] = mapped_column(Integer, nullable=False)
    odid: Mapped[int] = mapped_column(Integer, nullable=False)
    flags: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    data: Mapped[str] = mapped_column(Text, nullable=False, default="")


class RevlogRow(Base):
    __tablename__ = "revlog"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)  # milliseconds
    cid: Mapped[int] = mapped_column(Integer, nullable=False)
    usn: Mapped[int] = mapped_column(Integer, nullable=False)
    ease: Mapped[int] = mapped_column(Integer, nullable=False)
    ivl: Mapped[int] = mapped_column(Integer, nullable=False)
    last_ivl: Mapped[int] = mapped_column("lastIvl", Integer, nullable=False)
    factor: Mapped[int] = mapped_column(Integer, nullable=False)
    time: Mapped[int] = mapped_column(Integer, nullable=False)  # milliseconds
    type: Mapped[int] = mapped_column(Integer, nullable=False)


class GraveRow(Base):
    __tablename__ = "graves"

    # graves has no key of its own; (oid, type) identifies a tombstone
    usn: Mapped[int] = mapped_column(Integer, nullable=False)
    oid: Mapped[int] = mapped_column(Integer, primary_key=True)
    type: Mapped[int] = mapped_column(Integer, primary_key=True)


# graves.type discriminator
GRAVE_CARD = 0
GRAVE_NOTE = 1
GRAVE_DECK = 2
