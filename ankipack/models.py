"""Domain records decoded from an ``.apkg`` package.

Every record is a frozen dataclass; the object graph is built once per
read and never written back.
"""

from __future__ import annotations

import datetime as _dt
import enum
from dataclasses import dataclass, field
from typing import Dict, List, NewType, Optional, Tuple

ID = NewType("ID", int)

# absent/null identifiers decode to this instead of failing
EMPTY_ID = ID(0)

FIELD_SEPARATOR = "\x1f"


class ModelType(enum.IntEnum):
    STANDARD = 0
    CLOZE = 1


class LeechAction(enum.IntEnum):
    SUSPEND = 0
    TAG_ONLY = 1


class NewCardOrder(enum.IntEnum):
    DUE = 0  # order added
    RANDOM = 1


class CardType(enum.IntEnum):
    NEW = 0
    LEARNING = 1
    REVIEW = 2
    RELEARNING = 3


class CardQueue(enum.IntEnum):
    SCHED_BURIED = -3
    BURIED = -2
    SUSPENDED = -1
    NEW = 0
    LEARNING = 1
    REVIEW = 2
    DAY_LEARNING = 3
    PREVIEW = 4


class ReviewEase(enum.IntEnum):
    MANUAL = 0  # rescheduled by hand, no button pressed
    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


class ReviewType(enum.IntEnum):
    LEARN = 0
    REVIEW = 1
    RELEARN = 2
    CRAM = 3
    MANUAL = 4


# ---------------------------------------------------------------------------
# col.conf
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Config:
    """Global client options stored in ``col.conf``."""

    next_pos: int = 0
    estimate_times: bool = False
    active_decks: Tuple[ID, ...] = ()
    sort_type: str = ""
    time_limit: _dt.timedelta = _dt.timedelta(0)
    sort_backwards: bool = False
    add_to_current: bool = False
    current_deck: ID = EMPTY_ID
    new_bury: bool = False
    new_spread: int = 0
    due_counts: bool = False
    current_model: ID = EMPTY_ID
    collapse_time: int = 0


# ---------------------------------------------------------------------------
# col.models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Field:
    name: str
    ordinal: int  # position inside Note.field_values
    sticky: bool = False
    rtl: bool = False
    font: str = ""
    font_size: int = 0


@dataclass(frozen=True)
class Template:
    name: str
    ordinal: int
    question_format: str = ""
    answer_format: str = ""
    browser_question_format: str = ""
    browser_answer_format: str = ""
    deck_override: ID = EMPTY_ID


@dataclass(frozen=True)
class CardConstraint:
    """Fields required for the template at ``index`` to generate a card."""

    index: int
    match_type: str  # "any" or "all"
    fields: Tuple[int, ...]


@dataclass(frozen=True)
class Model:
    """A note type: ordered fields plus the templates that generate cards."""

    id: ID
    name: str
    fields: Tuple[Field, ...] = ()
    templates: Tuple[Template, ...] = ()
    type: ModelType = ModelType.STANDARD
    required_fields: Tuple[CardConstraint, ...] = ()
    tags: Tuple[str, ...] = ()
    deck_id: ID = EMPTY_ID
    sort_field: int = 0
    latex_pre: str = ""
    latex_post: str = ""
    css: str = ""
    modified: Optional[_dt.datetime] = None
    usn: int = 0

    def field_names(self) -> List[str]:
        return [f.name for f in sorted(self.fields, key=lambda f: f.ordinal)]


# ---------------------------------------------------------------------------
# col.dconf / col.decks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NewCardConfig:
    per_day: int = 0
    delays: Tuple[_dt.timedelta, ...] = ()
    bury: bool = False
    separate: bool = False
    intervals: Tuple[_dt.timedelta, ...] = ()
    initial_factor: float = 0.0
    order: NewCardOrder = NewCardOrder.DUE


@dataclass(frozen=True)
class ReviewConfig:
    per_day: int = 0
    fuzz: float = 0.0
    interval_modifier: float = 1.0
    max_interval: Optional[_dt.timedelta] = None
    easy_bonus: float = 0.0
    bury: bool = False


@dataclass(frozen=True)
class LapseConfig:
    leech_fails: int = 0
    minimum_interval: Optional[_dt.timedelta] = None
    leech_action: LeechAction = LeechAction.SUSPEND
    delays: Tuple[_dt.timedelta, ...] = ()
    multiplier: float = 0.0  # new interval after a lapse, fraction of old


@dataclass(frozen=True)
class DeckConfig:
    id: ID
    name: str
    new: NewCardConfig = field(default_factory=NewCardConfig)
    review: ReviewConfig = field(default_factory=ReviewConfig)
    lapse: LapseConfig = field(default_factory=LapseConfig)
    replay_audio: bool = False
    show_timer: bool = False
    max_answer_seconds: int = 0
    autoplay: bool = False
    modified: Optional[_dt.datetime] = None


@dataclass(frozen=True)
class Deck:
    id: ID
    name: str
    config_id: ID = EMPTY_ID
    dynamic: bool = False  # filtered deck
    description: str = ""
    modified: Optional[_dt.datetime] = None
    usn: int = 0
    collapsed: bool = False
    browser_collapsed: bool = False
    extended_new_limit: int = 0
    extended_review_limit: int = 0
    # [day, count] pairs used by custom study
    new_today: Tuple[int, int] = (0, 0)
    reviews_today: Tuple[int, int] = (0, 0)
    learn_today: Tuple[int, int] = (0, 0)
    time_today: Tuple[int, int] = (0, 0)
    config: Optional[DeckConfig] = None


# ---------------------------------------------------------------------------
# col
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Collection:
    id: ID
    created: Optional[_dt.datetime]
    modified: Optional[_dt.datetime]
    schema_modified: Optional[_dt.datetime]
    version: int
    dirty: bool  # unused upstream, kept for completeness
    usn: int
    last_sync: Optional[_dt.datetime]
    config: Config
    models: Dict[ID, Model]
    decks: Dict[ID, Deck]
    deck_configs: Dict[ID, DeckConfig]
    tags: str = ""


# ---------------------------------------------------------------------------
# notes / cards / revlog
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Note:
    id: ID
    guid: str
    model_id: ID
    modified: Optional[_dt.datetime]
    usn: int
    tags: Tuple[str, ...]
    field_values: Tuple[str, ...]
    sort_field: str  # first field, used for duplicate checks
    checksum: int  # first 8 hex digits of sha1(first field)

    @property
    def fields_blob(self) -> str:
        return FIELD_SEPARATOR.join(self.field_values)


@dataclass(frozen=True)
class Card:
    """A schedulable card.

    ``due`` and ``original_due`` are Unix seconds regardless of card type;
    new cards carry 0. ``interval`` is ``None`` for cards never reviewed.
    """

    id: ID
    note_id: ID
    deck_id: ID
    ordinal: int  # template ordinal within the note's model
    modified: Optional[_dt.datetime]
    usn: int
    type: CardType
    queue: CardQueue
    due: int
    interval: Optional[_dt.timedelta]
    factor: float
    reps: int
    lapses: int
    left: int
    original_due: int
    original_deck_id: ID
    flags: int = 0

    @property
    def due_at(self) -> Optional[_dt.datetime]:
        if not self.due:
            return None
        return _dt.datetime.fromtimestamp(self.due, tz=_dt.timezone.utc)


@dataclass(frozen=True)
class Review:
    id: ID
    reviewed_at: Optional[_dt.datetime]
    card_id: ID
    usn: int
    ease: ReviewEase
    interval: _dt.timedelta
    last_interval: _dt.timedelta
    factor: float
    time: _dt.timedelta  # time spent answering
    type: ReviewType
