"""Decoding of raw column values into domain scalars.

The same logical column can reach us as ``int``, ``float``, ``str``,
``bytes`` or ``None`` depending on the driver and on SQLite's type
affinity (``notes.sfld`` is stored as an integer when the first field is
numeric, ``col.conf`` may come back as a blob).  Everything that touches a
raw value goes through this module; callers only ever see domain types.

Every failure raises :class:`~ankipack.errors.ColumnTypeError` naming the
column (or the JSON key path inside an embedded blob) and the value.
"""
from __future__ import annotations

import datetime as _dt
import json
import logging
from typing import Any, Callable, Dict, Iterable, Tuple, Type, TypeVar, Union

from .errors import ColumnTypeError
from .models import (
    EMPTY_ID,
    FIELD_SEPARATOR,
    ID,
    CardConstraint,
    Config,
    Deck,
    DeckConfig,
    Field,
    LapseConfig,
    LeechAction,
    Model,
    ModelType,
    NewCardConfig,
    NewCardOrder,
    ReviewConfig,
    Template,
)

logger = logging.getLogger(__name__)

# the closed set of runtime types a column value may have
RawValue = Union[int, float, str, bytes, None]

E = TypeVar("E")

_EPOCH = _dt.datetime(1970, 1, 1, tzinfo=_dt.timezone.utc)


def _is_number(value: Any) -> bool:
    # bool is an int subclass but never a valid number here
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_str(value: Any, column: str, expected: str) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ColumnTypeError(column, value, expected) from exc
    raise ColumnTypeError(column, value, expected)


# ---------------------------------------------------------------------------
# scalars
# ---------------------------------------------------------------------------


def integer(value: RawValue, column: str) -> int:
    """Decode an integer that may arrive as a float or as numeric text."""
    if _is_number(value):
        if isinstance(value, float) and not value.is_integer():
            raise ColumnTypeError(column, value, "integer")
        return int(value)
    if isinstance(value, (str, bytes)):
        text_value = _as_str(value, column, "integer").strip()
        try:
            return int(text_value)
        except ValueError:
            try:
                as_float = float(text_value)
            except ValueError:
                raise ColumnTypeError(column, value, "integer") from None
            if not as_float.is_integer():
                raise ColumnTypeError(column, value, "integer")
            return int(as_float)
    raise ColumnTypeError(column, value, "integer")


def number(value: RawValue, column: str) -> float:
    if _is_number(value):
        return float(value)
    raise ColumnTypeError(column, value, "number")


def identifier(value: RawValue, column: str) -> ID:
    if value is None:
        return EMPTY_ID
    return ID(integer(value, column))


def text(value: RawValue, column: str) -> str:
    if value is None:
        return ""
    if _is_number(value):
        # numeric sort fields are stored with integer affinity
        return str(int(value)) if isinstance(value, int) or value.is_integer() else str(value)
    return _as_str(value, column, "text")


def flag(value: Any, column: str) -> bool:
    """0/1 integer (or a JSON boolean) as ``bool``; null is false."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if _is_number(value):
        return value != 0
    raise ColumnTypeError(column, value, "0/1 flag")


def enumerated(enum_cls: Type[E], value: RawValue, column: str) -> E:
    raw = integer(value, column)
    try:
        return enum_cls(raw)  # type: ignore[call-arg]
    except ValueError:
        raise ColumnTypeError(column, value, enum_cls.__name__) from None


# ---------------------------------------------------------------------------
# time
# ---------------------------------------------------------------------------


def _timestamp(value: RawValue, column: str, unit: str) -> _dt.datetime | None:
    if value is None:
        return None
    try:
        amount = integer(value, column) if not isinstance(value, float) else value
        return _EPOCH + _dt.timedelta(**{unit: amount})
    except OverflowError:
        raise ColumnTypeError(column, value, f"timestamp in {unit}") from None


def seconds_timestamp(value: RawValue, column: str) -> _dt.datetime | None:
    return _timestamp(value, column, "seconds")


def milliseconds_timestamp(value: RawValue, column: str) -> _dt.datetime | None:
    return _timestamp(value, column, "milliseconds")


def _duration(value: Any, column: str, unit: str) -> _dt.timedelta:
    if not _is_number(value):
        raise ColumnTypeError(column, value, f"duration in {unit}")
    try:
        return _dt.timedelta(**{unit: value})
    except OverflowError:
        raise ColumnTypeError(column, value, f"duration in {unit}") from None


def seconds_duration(value: Any, column: str) -> _dt.timedelta:
    return _duration(value, column, "seconds")


def minutes_duration(value: Any, column: str) -> _dt.timedelta:
    return _duration(value, column, "minutes")


def days_duration(value: Any, column: str) -> _dt.timedelta:
    return _duration(value, column, "days")


def milliseconds_duration(value: Any, column: str) -> _dt.timedelta:
    return _duration(value, column, "milliseconds")


# ---------------------------------------------------------------------------
# text lists
# ---------------------------------------------------------------------------


def tag_set(value: Any, column: str) -> Tuple[str, ...]:
    """Space-delimited tags (or a JSON list of tags), sorted."""
    if value is None:
        return ()
    if isinstance(value, list):
        return tuple(sorted(text(tag, f"{column}[{i}]") for i, tag in enumerate(value)))
    return tuple(sorted(_as_str(value, column, "tag list").split()))


def field_values(value: RawValue, column: str) -> Tuple[str, ...]:
    return tuple(_as_str(value, column, "field list").split(FIELD_SEPARATOR))


def join_field_values(values: Iterable[str]) -> str:
    return FIELD_SEPARATOR.join(values)


# ---------------------------------------------------------------------------
# embedded JSON
# ---------------------------------------------------------------------------


def json_blob(value: RawValue, column: str) -> Any:
    raw = _as_str(value, column, "JSON text")
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ColumnTypeError(column, value, f"JSON ({exc.msg})") from exc


def _object(value: Any, column: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ColumnTypeError(column, value, "JSON object")
    return value


def _list(value: Any, column: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ColumnTypeError(column, value, "JSON array")
    return value


def _pair(value: Any, column: str) -> Tuple[int, int]:
    items = _list(value, column)
    if not items:
        return (0, 0)
    if len(items) != 2:
        raise ColumnTypeError(column, value, "two-number array")
    return (integer(items[0], f"{column}[0]"), integer(items[1], f"{column}[1]"))


def _keyed(value: RawValue, column: str, decode_one: Callable[[Dict[str, Any], str], Any]) -> Dict[ID, Any]:
    """Decode ``{"<id>": {...,"id": <id>}}`` into a mapping keyed by the decoded id.

    The string keys duplicate each value's ``id`` and are discarded.
    """
    blob = _object(json_blob(value, column), column)
    result: Dict[ID, Any] = {}
    for key, item in blob.items():
        decoded = decode_one(_object(item, f"{column}[{key}]"), f"{column}[{key}]")
        if decoded.id in result:
            logger.warning("%s: duplicate id %s, keeping the last entry", column, decoded.id)
        result[decoded.id] = decoded
    return result


def decode_config(value: RawValue, column: str = "col.conf") -> Config:
    obj = _object(json_blob(value, column), column)

    def at(key: str) -> str:
        return f"{column}.{key}"

    return Config(
        next_pos=integer(obj.get("nextPos", 0), at("nextPos")),
        estimate_times=flag(obj.get("estTimes"), at("estTimes")),
        active_decks=tuple(
            identifier(d, f"{at('activeDecks')}[{i}]") for i, d in enumerate(_list(obj.get("activeDecks"), at("activeDecks")))
        ),
        sort_type=text(obj.get("sortType"), at("sortType")),
        time_limit=seconds_duration(obj.get("timeLimit", 0), at("timeLimit")),
        sort_backwards=flag(obj.get("sortBackwards"), at("sortBackwards")),
        add_to_current=flag(obj.get("addToCur"), at("addToCur")),
        current_deck=identifier(obj.get("curDeck"), at("curDeck")),
        new_bury=flag(obj.get("newBury"), at("newBury")),
        new_spread=integer(obj.get("newSpread", 0), at("newSpread")),
        due_counts=flag(obj.get("dueCounts"), at("dueCounts")),
        current_model=identifier(obj.get("curModel"), at("curModel")),
        collapse_time=integer(obj.get("collapseTime", 0), at("collapseTime")),
    )


def _decode_field(obj: Dict[str, Any], column: str) -> Field:
    return Field(
        name=text(obj.get("name"), f"{column}.name"),
        ordinal=integer(obj.get("ord"), f"{column}.ord"),
        sticky=flag(obj.get("sticky"), f"{column}.sticky"),
        rtl=flag(obj.get("rtl"), f"{column}.rtl"),
        font=text(obj.get("font"), f"{column}.font"),
        font_size=integer(obj.get("size", 0), f"{column}.size"),
    )


def _decode_template(obj: Dict[str, Any], column: str) -> Template:
    return Template(
        name=text(obj.get("name"), f"{column}.name"),
        ordinal=integer(obj.get("ord"), f"{column}.ord"),
        question_format=text(obj.get("qfmt"), f"{column}.qfmt"),
        answer_format=text(obj.get("afmt"), f"{column}.afmt"),
        browser_question_format=text(obj.get("bqfmt"), f"{column}.bqfmt"),
        browser_answer_format=text(obj.get("bafmt"), f"{column}.bafmt"),
        deck_override=identifier(obj.get("did"), f"{column}.did"),
    )


def _decode_constraint(value: Any, column: str) -> CardConstraint:
    # stored as [template index, "any"|"all", [field ordinals]]
    items = _list(value, column)
    if len(items) != 3:
        raise ColumnTypeError(column, value, "[index, match type, fields] triple")
    index, match_type, fields = items
    return CardConstraint(
        index=integer(index, f"{column}[0]"),
        match_type=text(match_type, f"{column}[1]"),
        fields=tuple(integer(f, f"{column}[2][{i}]") for i, f in enumerate(_list(fields, f"{column}[2]"))),
    )


def decode_model(obj: Dict[str, Any], column: str) -> Model:
    def each(key: str, decode: Callable[[Any, str], Any]) -> tuple:
        return tuple(decode(item, f"{column}.{key}[{i}]") for i, item in enumerate(_list(obj.get(key), f"{column}.{key}")))

    return Model(
        id=identifier(obj.get("id"), f"{column}.id"),
        name=text(obj.get("name"), f"{column}.name"),
        fields=each("flds", lambda item, col: _decode_field(_object(item, col), col)),
        templates=each("tmpls", lambda item, col: _decode_template(_object(item, col), col)),
        type=enumerated(ModelType, obj.get("type", 0), f"{column}.type"),
        required_fields=each("req", _decode_constraint),
        tags=tag_set(obj.get("tags"), f"{column}.tags"),
        deck_id=identifier(obj.get("did"), f"{column}.did"),
        sort_field=integer(obj.get("sortf", 0), f"{column}.sortf"),
        latex_pre=text(obj.get("latexPre"), f"{column}.latexPre"),
        latex_post=text(obj.get("latexPost"), f"{column}.latexPost"),
        css=text(obj.get("css"), f"{column}.css"),
        modified=seconds_timestamp(obj.get("mod"), f"{column}.mod"),
        usn=integer(obj.get("usn", 0), f"{column}.usn"),
    )


def decode_deck(obj: Dict[str, Any], column: str) -> Deck:
    return Deck(
        id=identifier(obj.get("id"), f"{column}.id"),
        name=text(obj.get("name"), f"{column}.name"),
        config_id=identifier(obj.get("conf"), f"{column}.conf"),
        dynamic=flag(obj.get("dyn"), f"{column}.dyn"),
        description=text(obj.get("desc"), f"{column}.desc"),
        modified=seconds_timestamp(obj.get("mod"), f"{column}.mod"),
        usn=integer(obj.get("usn", 0), f"{column}.usn"),
        collapsed=flag(obj.get("collapsed"), f"{column}.collapsed"),
        browser_collapsed=flag(obj.get("browserCollapsed"), f"{column}.browserCollapsed"),
        extended_new_limit=integer(obj.get("extendedNew", 0), f"{column}.extendedNew"),
        extended_review_limit=integer(obj.get("extendedRev", 0), f"{column}.extendedRev"),
        new_today=_pair(obj.get("newToday"), f"{column}.newToday"),
        reviews_today=_pair(obj.get("revToday"), f"{column}.revToday"),
        learn_today=_pair(obj.get("lrnToday"), f"{column}.lrnToday"),
        time_today=_pair(obj.get("timeToday"), f"{column}.timeToday"),
    )


def _durations(value: Any, column: str, decode: Callable[[Any, str], _dt.timedelta]) -> Tuple[_dt.timedelta, ...]:
    return tuple(decode(item, f"{column}[{i}]") for i, item in enumerate(_list(value, column)))


def _optional_days(value: Any, column: str) -> _dt.timedelta | None:
    return None if value is None else days_duration(value, column)


def decode_deck_config(obj: Dict[str, Any], column: str) -> DeckConfig:
    new = _object(obj.get("new") or {}, f"{column}.new")
    rev = _object(obj.get("rev") or {}, f"{column}.rev")
    lapse = _object(obj.get("lapse") or {}, f"{column}.lapse")
    n, r, lp = f"{column}.new", f"{column}.rev", f"{column}.lapse"
    return DeckConfig(
        id=identifier(obj.get("id"), f"{column}.id"),
        name=text(obj.get("name"), f"{column}.name"),
        new=NewCardConfig(
            per_day=integer(new.get("perDay", 0), f"{n}.perDay"),
            delays=_durations(new.get("delays"), f"{n}.delays", minutes_duration),
            bury=flag(new.get("bury"), f"{n}.bury"),
            separate=flag(new.get("separate"), f"{n}.separate"),
            intervals=_durations(new.get("ints"), f"{n}.ints", days_duration),
            initial_factor=number(new.get("initialFactor", 0), f"{n}.initialFactor"),
            order=enumerated(NewCardOrder, new.get("order", 0), f"{n}.order"),
        ),
        review=ReviewConfig(
            per_day=integer(rev.get("perDay", 0), f"{r}.perDay"),
            fuzz=number(rev.get("fuzz", 0), f"{r}.fuzz"),
            interval_modifier=number(rev.get("ivlFct", 1), f"{r}.ivlFct"),
            max_interval=_optional_days(rev.get("maxIvl"), f"{r}.maxIvl"),
            easy_bonus=number(rev.get("ease4", 0), f"{r}.ease4"),
            bury=flag(rev.get("bury"), f"{r}.bury"),
        ),
        lapse=LapseConfig(
            leech_fails=integer(lapse.get("leechFails", 0), f"{lp}.leechFails"),
            minimum_interval=_optional_days(lapse.get("minInt"), f"{lp}.minInt"),
            leech_action=enumerated(LeechAction, lapse.get("leechAction", 0), f"{lp}.leechAction"),
            delays=_durations(lapse.get("delays"), f"{lp}.delays", minutes_duration),
            multiplier=number(lapse.get("mult", 0), f"{lp}.mult"),
        ),
        replay_audio=flag(obj.get("replayq"), f"{column}.replayq"),
        show_timer=flag(obj.get("timer"), f"{column}.timer"),
        max_answer_seconds=integer(obj.get("maxTaken", 0), f"{column}.maxTaken"),
        autoplay=flag(obj.get("autoplay"), f"{column}.autoplay"),
        modified=seconds_timestamp(obj.get("mod"), f"{column}.mod"),
    )


def decode_models(value: RawValue, column: str = "col.models") -> Dict[ID, Model]:
    return _keyed(value, column, decode_model)


def decode_decks(value: RawValue, column: str = "col.decks") -> Dict[ID, Deck]:
    return _keyed(value, column, decode_deck)


def decode_deck_configs(value: RawValue, column: str = "col.dconf") -> Dict[ID, DeckConfig]:
    return _keyed(value, column, decode_deck_config)
