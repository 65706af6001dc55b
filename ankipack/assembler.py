"""Assembly of domain records from the embedded database.

Rows are fetched raw and normalized here, after the fetch, so the same
rules apply whatever driver produced the row:

* ``cards.due`` / ``cards.odue`` depend on ``cards.type``: new cards have
  no meaningful due (0), learning cards store Unix seconds, review cards
  store days since the collection was created.
* ``ivl`` / ``lastIvl`` are negative seconds or positive days; both become
  positive seconds.
* ``factor`` is stored multiplied by 1000.

Soft-deleted objects are listed in ``graves`` and filtered out with an
outer join, never materialized.
"""
from __future__ import annotations

import datetime as _dt
import logging
from dataclasses import replace
from typing import Any, Dict, Mapping, Set

from sqlalchemy import Text, and_, cast, select
from sqlalchemy.engine import Row
from sqlalchemy.sql.expression import Select

from . import coerce
from .database import EmbeddedDatabase
from .errors import ReferentialIntegrityError
from .models import (
    EMPTY_ID,
    ID,
    Card,
    CardQueue,
    CardType,
    Collection,
    Deck,
    Note,
    Review,
    ReviewEase,
    ReviewType,
)
from .schema import GRAVE_CARD, GRAVE_DECK, GRAVE_NOTE, CardRow, ColRow, GraveRow, NoteRow, RevlogRow

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


# ---------------------------------------------------------------------------
# scheduling transforms
# ---------------------------------------------------------------------------


def derive_due(card_type: CardType, raw_due: int, created: int) -> int:
    """Return the due time of a card as Unix seconds (0 for new cards).

    *created* is the collection creation time (``col.crt``) in seconds.
    """
    if card_type == CardType.NEW:
        return 0
    if card_type == CardType.REVIEW:
        return created + raw_due * SECONDS_PER_DAY
    # learning and relearning cards already store Unix seconds
    return raw_due


def derive_original_due(card_type: CardType, raw_odue: int, created: int) -> int:
    # odue is 0 unless the card sits in a filtered deck
    if raw_odue == 0:
        return 0
    return derive_due(card_type, raw_odue, created)


def normalize_interval(raw: int) -> int:
    """Interval in seconds: negative values are seconds, positive values days."""
    if raw < 0:
        return -raw
    return raw * SECONDS_PER_DAY


def card_interval(raw: int) -> _dt.timedelta | None:
    if raw == 0:
        return None
    return _dt.timedelta(seconds=normalize_interval(raw))


def derive_factor(raw: int | float) -> float:
    return raw / 1000


# ---------------------------------------------------------------------------
# statements
# ---------------------------------------------------------------------------


def _without_graves(statement: Select, table, id_column, grave_type: int) -> Select:
    """``table LEFT JOIN graves`` keeping rows with no matching tombstone."""
    return statement.outerjoin_from(
        table, GraveRow, and_(GraveRow.oid == id_column, GraveRow.type == grave_type)
    ).where(GraveRow.oid.is_(None))


def notes_statement() -> Select:
    statement = select(
        NoteRow.id,
        NoteRow.guid,
        NoteRow.mid,
        NoteRow.mod,
        NoteRow.usn,
        NoteRow.tags,
        NoteRow.flds,
        NoteRow.sfld,
        # some drivers widen large integers to float; text keeps every digit
        cast(NoteRow.csum, Text).label("csum"),
    )
    return _without_graves(statement, NoteRow, NoteRow.id, GRAVE_NOTE).order_by(NoteRow.id)


def cards_statement() -> Select:
    statement = select(
        CardRow.id,
        CardRow.nid,
        CardRow.did,
        CardRow.ord,
        CardRow.mod,
        CardRow.usn,
        CardRow.type,
        CardRow.queue,
        CardRow.due,
        CardRow.ivl,
        CardRow.factor,
        CardRow.reps,
        CardRow.lapses,
        CardRow.left,
        CardRow.odue,
        CardRow.odid,
        CardRow.flags,
    )
    return _without_graves(statement, CardRow, CardRow.id, GRAVE_CARD).order_by(CardRow.id)


def reviews_statement() -> Select:
    statement = select(
        RevlogRow.id,
        RevlogRow.cid,
        RevlogRow.usn,
        RevlogRow.ease,
        RevlogRow.ivl,
        RevlogRow.last_ivl.label("last_ivl"),
        RevlogRow.factor,
        RevlogRow.time,
        RevlogRow.type,
    )
    # a review belongs to a deleted card when the card's id is in graves
    return _without_graves(statement, RevlogRow, RevlogRow.cid, GRAVE_CARD).order_by(RevlogRow.id.desc())


def collection_statement() -> Select:
    return select(
        ColRow.id,
        ColRow.crt,
        ColRow.mod,
        ColRow.scm,
        ColRow.ver,
        ColRow.dty,
        ColRow.usn,
        ColRow.ls,
        ColRow.conf,
        ColRow.models,
        ColRow.decks,
        ColRow.dconf,
        ColRow.tags,
    ).limit(1)


# ---------------------------------------------------------------------------
# row decoders
# ---------------------------------------------------------------------------


def _columns(row: Row | Mapping[str, Any]) -> Mapping[str, Any]:
    return row._mapping if isinstance(row, Row) else row


def decode_note_row(row: Row | Mapping[str, Any]) -> Note:
    m = _columns(row)
    return Note(
        id=coerce.identifier(m["id"], "notes.id"),
        guid=coerce.text(m["guid"], "notes.guid"),
        model_id=coerce.identifier(m["mid"], "notes.mid"),
        modified=coerce.seconds_timestamp(m["mod"], "notes.mod"),
        usn=coerce.integer(m["usn"], "notes.usn"),
        tags=coerce.tag_set(m["tags"], "notes.tags"),
        field_values=coerce.field_values(m["flds"], "notes.flds"),
        sort_field=coerce.text(m["sfld"], "notes.sfld"),
        checksum=coerce.integer(m["csum"], "notes.csum"),
    )


def decode_card_row(row: Row | Mapping[str, Any], created: int) -> Card:
    m = _columns(row)
    card_type = coerce.enumerated(CardType, m["type"], "cards.type")
    return Card(
        id=coerce.identifier(m["id"], "cards.id"),
        note_id=coerce.identifier(m["nid"], "cards.nid"),
        deck_id=coerce.identifier(m["did"], "cards.did"),
        ordinal=coerce.integer(m["ord"], "cards.ord"),
        modified=coerce.seconds_timestamp(m["mod"], "cards.mod"),
        usn=coerce.integer(m["usn"], "cards.usn"),
        type=card_type,
        queue=coerce.enumerated(CardQueue, m["queue"], "cards.queue"),
        due=derive_due(card_type, coerce.integer(m["due"], "cards.due"), created),
        interval=card_interval(coerce.integer(m["ivl"], "cards.ivl")),
        factor=derive_factor(coerce.number(m["factor"], "cards.factor")),
        reps=coerce.integer(m["reps"], "cards.reps"),
        lapses=coerce.integer(m["lapses"], "cards.lapses"),
        left=coerce.integer(m["left"], "cards.left"),
        original_due=derive_original_due(card_type, coerce.integer(m["odue"], "cards.odue"), created),
        original_deck_id=coerce.identifier(m["odid"], "cards.odid"),
        flags=coerce.integer(m["flags"] or 0, "cards.flags"),
    )


def decode_review_row(row: Row | Mapping[str, Any]) -> Review:
    m = _columns(row)
    return Review(
        id=coerce.identifier(m["id"], "revlog.id"),
        reviewed_at=coerce.milliseconds_timestamp(m["id"], "revlog.id"),
        card_id=coerce.identifier(m["cid"], "revlog.cid"),
        usn=coerce.integer(m["usn"], "revlog.usn"),
        ease=coerce.enumerated(ReviewEase, m["ease"], "revlog.ease"),
        interval=_dt.timedelta(seconds=normalize_interval(coerce.integer(m["ivl"], "revlog.ivl"))),
        last_interval=_dt.timedelta(seconds=normalize_interval(coerce.integer(m["last_ivl"], "revlog.lastIvl"))),
        factor=derive_factor(coerce.number(m["factor"], "revlog.factor")),
        time=coerce.milliseconds_duration(m["time"], "revlog.time"),
        type=coerce.enumerated(ReviewType, m["type"], "revlog.type"),
    )


# ---------------------------------------------------------------------------
# collection
# ---------------------------------------------------------------------------


def collection_created(db: EmbeddedDatabase) -> int:
    """``col.crt`` in Unix seconds, the epoch of review-card due days."""
    row = db.get(select(ColRow.crt).limit(1))
    return coerce.integer(row.crt, "col.crt")


def deleted_ids(db: EmbeddedDatabase, grave_type: int) -> Set[ID]:
    result = db.query(select(GraveRow.oid).where(GraveRow.type == grave_type))
    return {coerce.identifier(oid, "graves.oid") for oid in result.scalars()}


def _resolve_decks(decks: Dict[ID, Deck], collection: Collection, deleted: Set[ID]) -> Dict[ID, Deck]:
    resolved: Dict[ID, Deck] = {}
    for deck_id, deck in decks.items():
        if deck_id in deleted:
            logger.debug("skipping deleted deck %s (%s)", deck_id, deck.name)
            continue
        if deck.dynamic and deck.config_id == EMPTY_ID:
            # filtered decks borrow the options of each card's home deck
            resolved[deck_id] = deck
            continue
        config = collection.deck_configs.get(deck.config_id)
        if config is None:
            raise ReferentialIntegrityError(f"deck {deck_id} ({deck.name!r}) references non-existent config {deck.config_id}")
        resolved[deck_id] = replace(deck, config=config)
    return resolved


def assemble_collection(db: EmbeddedDatabase) -> Collection:
    """Decode the ``col`` row into a :class:`Collection`.

    Decks listed in ``graves`` are dropped; every other deck gets its
    :class:`DeckConfig` attached.  A dangling config reference aborts the
    whole assembly with :class:`ReferentialIntegrityError`.
    """
    deleted = deleted_ids(db, GRAVE_DECK)
    m = db.get(collection_statement())._mapping
    collection = Collection(
        id=coerce.identifier(m["id"], "col.id"),
        created=coerce.seconds_timestamp(m["crt"], "col.crt"),
        modified=coerce.milliseconds_timestamp(m["mod"], "col.mod"),
        schema_modified=coerce.milliseconds_timestamp(m["scm"], "col.scm"),
        version=coerce.integer(m["ver"], "col.ver"),
        dirty=coerce.flag(m["dty"], "col.dty"),
        usn=coerce.integer(m["usn"], "col.usn"),
        last_sync=coerce.milliseconds_timestamp(m["ls"], "col.ls"),
        config=coerce.decode_config(m["conf"]),
        models=coerce.decode_models(m["models"]),
        decks={},
        deck_configs=coerce.decode_deck_configs(m["dconf"]),
        tags=coerce.text(m["tags"], "col.tags"),
    )
    decks = _resolve_decks(coerce.decode_decks(m["decks"]), collection, deleted)
    logger.debug(
        "assembled collection: %d models, %d decks (%d deleted), %d deck configs",
        len(collection.models),
        len(decks),
        len(deleted),
        len(collection.deck_configs),
    )
    return replace(collection, decks=decks)
