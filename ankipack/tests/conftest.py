"""Pytest configuration for ankipack tests.

``make_apkg`` builds real ``.apkg`` archives in ``tmp_path``: the SQLite
database is created from :mod:`ankipack.schema` and zipped together with a
``media`` map, so every test goes through the same code paths as a real
export.
"""
from __future__ import annotations

import json
import sys
import zipfile
from pathlib import Path
from typing import Any, Callable, Dict, List

import pytest

# Ensure project root is importable
PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from ankipack.schema import Base, CardRow, ColRow, GraveRow, NoteRow, RevlogRow  # noqa: E402

CREATED = 1388707200  # 2014-01-03 00:00:00 UTC
MODEL_ID = 1357356563296
DECK_ID = 1388721680000
DELETED_DECK_ID = 1400000000000
FILTERED_DECK_ID = 1388721690000
NOTE_ID = 1388721680877
DELETED_NOTE_ID = 1388721680999
CARD_ID = 1388721683902
DELETED_CARD_ID = 1388721683999


def default_conf() -> Dict[str, Any]:
    return {
        "nextPos": 2,
        "estTimes": True,
        "activeDecks": [1],
        "sortType": "noteFld",
        "timeLimit": 0,
        "sortBackwards": False,
        "addToCur": True,
        "curDeck": 1,
        "newBury": True,
        "newSpread": 0,
        "dueCounts": True,
        "curModel": str(MODEL_ID),
        "collapseTime": 1200,
    }


def default_models() -> Dict[str, Any]:
    return {
        str(MODEL_ID): {
            "id": MODEL_ID,
            "name": "Basic",
            "type": 0,
            "mod": 1388721680,
            "usn": -1,
            "sortf": 0,
            "did": DECK_ID,
            "tags": ["vocab", "spanish"],
            "flds": [
                {"name": "Front", "ord": 0, "sticky": False, "rtl": False, "font": "Arial", "size": 20, "media": []},
                {"name": "Back", "ord": 1, "sticky": False, "rtl": False, "font": "Arial", "size": 20, "media": []},
            ],
            "tmpls": [
                {
                    "name": "Card 1",
                    "ord": 0,
                    "qfmt": "{{Front}}",
                    "afmt": "{{FrontSide}}<hr id=answer>{{Back}}",
                    "bqfmt": "",
                    "bafmt": "",
                    "did": None,
                }
            ],
            "req": [[0, "all", [0]]],
            "latexPre": "\\documentclass[12pt]{article}",
            "latexPost": "\\end{document}",
            "css": ".card { font-family: arial; }",
            "vers": [],
        }
    }


def default_decks() -> Dict[str, Any]:
    def deck(deck_id: int, name: str, conf: int) -> Dict[str, Any]:
        return {
            "id": deck_id,
            "name": name,
            "desc": "",
            "mod": 1388721680,
            "usn": -1,
            "collapsed": False,
            "browserCollapsed": False,
            "extendedNew": 10,
            "extendedRev": 50,
            "dyn": 0,
            "conf": conf,
            "newToday": [0, 0],
            "revToday": [0, 0],
            "lrnToday": [0, 0],
            "timeToday": [0, 0],
        }

    return {
        "1": deck(1, "Default", 1),
        str(DECK_ID): deck(DECK_ID, "Spanish", 1),
        # tombstoned below; its config does not exist
        str(DELETED_DECK_ID): deck(DELETED_DECK_ID, "Old", 999),
    }


def default_dconf() -> Dict[str, Any]:
    return {
        "1": {
            "id": 1,
            "name": "Default",
            "replayq": True,
            "timer": 0,
            "maxTaken": 60,
            "mod": 0,
            "usn": 0,
            "autoplay": True,
            "new": {
                "perDay": 20,
                "delays": [1, 10],
                "bury": True,
                "separate": True,
                "ints": [1, 4, 7],
                "initialFactor": 2500,
                "order": 1,
            },
            "rev": {"perDay": 100, "fuzz": 0.05, "ivlFct": 1, "maxIvl": 36500, "ease4": 1.3, "bury": True, "minSpace": 1},
            "lapse": {"leechFails": 8, "minInt": 1, "leechAction": 0, "delays": [10], "mult": 0},
        }
    }


def default_tables() -> Dict[str, List[Dict[str, Any]]]:
    return {
        "col": [
            dict(
                id=1,
                crt=CREATED,
                mod=1388721690000,
                scm=1388721680000,
                ver=11,
                dty=0,
                usn=0,
                ls=0,
                conf=json.dumps(default_conf()),
                models=json.dumps(default_models()),
                decks=json.dumps(default_decks()),
                dconf=json.dumps(default_dconf()),
                tags="{}",
            )
        ],
        "notes": [
            dict(
                id=NOTE_ID,
                guid="f3@h#2k",
                mid=MODEL_ID,
                mod=1388721680,
                usn=-1,
                tags=" vocab spanish ",
                flds="hola\x1fhello",
                sfld="hola",
                csum=1090091728,
                flags=0,
                data="",
            ),
            dict(
                id=DELETED_NOTE_ID,
                guid="deleted",
                mid=MODEL_ID,
                mod=1388721680,
                usn=-1,
                tags="",
                flds="adiós\x1fgoodbye",
                sfld="adiós",
                csum=123,
                flags=0,
                data="",
            ),
        ],
        "cards": [
            dict(
                id=CARD_ID,
                nid=NOTE_ID,
                did=DECK_ID,
                ord=0,
                mod=1388800000,
                usn=-1,
                type=2,
                queue=2,
                due=10,
                ivl=5,
                factor=2500,
                reps=3,
                lapses=0,
                left=0,
                odue=0,
                odid=0,
                flags=0,
                data="",
            ),
            dict(
                id=DELETED_CARD_ID,
                nid=DELETED_NOTE_ID,
                did=DECK_ID,
                ord=0,
                mod=1388800000,
                usn=-1,
                type=0,
                queue=0,
                due=2,
                ivl=0,
                factor=0,
                reps=0,
                lapses=0,
                left=0,
                odue=0,
                odid=0,
                flags=0,
                data="",
            ),
        ],
        "revlog": [
            dict(id=1388721700000, cid=CARD_ID, usn=-1, ease=3, ivl=-600, last_ivl=0, factor=0, time=6000, type=0),
            dict(id=1388800000000, cid=CARD_ID, usn=-1, ease=3, ivl=5, last_ivl=-600, factor=2500, time=4000, type=1),
            dict(id=1388800000500, cid=DELETED_CARD_ID, usn=-1, ease=1, ivl=-60, last_ivl=0, factor=0, time=1000, type=0),
        ],
        "graves": [
            dict(usn=-1, oid=DELETED_DECK_ID, type=2),
            dict(usn=-1, oid=DELETED_NOTE_ID, type=1),
            dict(usn=-1, oid=DELETED_CARD_ID, type=0),
        ],
    }


_ROW_CLASSES = {"col": ColRow, "notes": NoteRow, "cards": CardRow, "revlog": RevlogRow, "graves": GraveRow}


def write_database(path: Path, tables: Dict[str, List[Dict[str, Any]]]) -> Path:
    engine = create_engine(f"sqlite:///{path}", future=True)
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        for table, rows in tables.items():
            session.add_all(_ROW_CLASSES[table](**row) for row in rows)
        session.commit()
    engine.dispose()
    return path


def write_apkg(
    archive: Path,
    database: Path | None,
    *,
    media: Dict[str, bytes] | None = None,
    media_map: Any = None,
    database_member: str = "collection.anki2",
) -> Path:
    media = {"hello.png": b"\x89PNG fake image"} if media is None else media
    if media_map is None:
        media_map = {str(i): name for i, name in enumerate(media)}
    with zipfile.ZipFile(archive, "w") as zf:
        if database is not None:
            zf.write(database, database_member)
        if media_map is not False:
            zf.writestr("media", media_map if isinstance(media_map, str) else json.dumps(media_map))
        for i, data in enumerate(media.values()):
            zf.writestr(str(i), data)
    return archive


@pytest.fixture()
def make_apkg(tmp_path: Path) -> Callable[..., Path]:
    """Return a factory ``make_apkg(**table_overrides, media=..., ...) -> Path``."""
    counter = iter(range(1_000_000))

    def _make(
        *,
        tables: Dict[str, List[Dict[str, Any]]] | None = None,
        media: Dict[str, bytes] | None = None,
        media_map: Any = None,
        database_member: str = "collection.anki2",
        include_database: bool = True,
    ) -> Path:
        n = next(counter)
        db_path = None
        if include_database:
            db_path = write_database(tmp_path / f"collection-{n}.anki2", tables or default_tables())
        return write_apkg(
            tmp_path / f"test-{n}.apkg",
            db_path,
            media=media,
            media_map=media_map,
            database_member=database_member,
        )

    return _make


@pytest.fixture()
def apkg_path(make_apkg) -> Path:
    return make_apkg()
