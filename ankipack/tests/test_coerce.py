import datetime as dt
import json

import pytest

from ankipack import coerce
from ankipack.errors import ColumnTypeError
from ankipack.models import EMPTY_ID, LeechAction, ModelType, NewCardOrder


UTC = dt.timezone.utc


@pytest.mark.parametrize("raw", [1388721680877, 1388721680877.0, "1388721680877", b"1388721680877"])
def test_identifier_accepts_every_numeric_form(raw):
    assert coerce.identifier(raw, "notes.id") == 1388721680877


def test_identifier_null_is_empty_sentinel():
    assert coerce.identifier(None, "cards.odid") == EMPTY_ID


def test_identifier_rejects_garbage_and_names_column():
    with pytest.raises(ColumnTypeError) as info:
        coerce.identifier("abc", "cards.nid")
    assert info.value.column == "cards.nid"
    assert "cards.nid" in str(info.value)
    assert isinstance(info.value, TypeError)


@pytest.mark.parametrize("raw", [2.5, "2.5", b"-0.1"])
def test_integer_rejects_fractional_values(raw):
    with pytest.raises(ColumnTypeError) as info:
        coerce.integer(raw, "cards.reps")
    assert info.value.column == "cards.reps"


def test_integer_keeps_precision_of_numeric_text():
    assert coerce.integer("9007199254740993", "notes.csum") == 9007199254740993


def test_seconds_and_milliseconds_timestamps():
    assert coerce.seconds_timestamp(1388707200, "col.crt") == dt.datetime(2014, 1, 3, tzinfo=UTC)
    assert coerce.seconds_timestamp(1388707200.0, "col.crt") == dt.datetime(2014, 1, 3, tzinfo=UTC)
    assert coerce.milliseconds_timestamp(1388707200123, "col.mod") == dt.datetime(2014, 1, 3, 0, 0, 0, 123000, tzinfo=UTC)
    assert coerce.seconds_timestamp(None, "col.crt") is None
    assert coerce.milliseconds_timestamp(None, "col.ls") is None


def test_durations():
    assert coerce.seconds_duration(90, "x") == dt.timedelta(seconds=90)
    assert coerce.minutes_duration(10, "x") == dt.timedelta(minutes=10)
    assert coerce.minutes_duration(0.5, "x") == dt.timedelta(seconds=30)
    assert coerce.days_duration(3, "x") == dt.timedelta(days=3)
    assert coerce.milliseconds_duration(4000, "revlog.time") == dt.timedelta(seconds=4)


@pytest.mark.parametrize("raw", ["10", None, b"1", True])
def test_durations_are_numeric_only(raw):
    with pytest.raises(ColumnTypeError):
        coerce.minutes_duration(raw, "dconf.new.delays[0]")


@pytest.mark.parametrize("raw, expected", [(0, False), (None, False), (1, True), (2, True), (1.0, True), (True, True)])
def test_flag(raw, expected):
    assert coerce.flag(raw, "deck.dyn") is expected


def test_flag_rejects_text():
    with pytest.raises(ColumnTypeError):
        coerce.flag("1", "col.dty")


def test_tag_set_sorted_and_order_independent():
    assert coerce.tag_set(" vocab spanish ", "notes.tags") == ("spanish", "vocab")
    assert coerce.tag_set("spanish vocab", "notes.tags") == coerce.tag_set("vocab  spanish", "notes.tags")
    assert coerce.tag_set("", "notes.tags") == ()
    assert coerce.tag_set(["b", "a"], "model.tags") == ("a", "b")


@pytest.mark.parametrize("blob", ["hola\x1fhello", "", "\x1f\x1f", "one", "a\x1f\x1fc\x1f"])
def test_field_values_rejoin_to_original_blob(blob):
    values = coerce.field_values(blob, "notes.flds")
    assert coerce.join_field_values(values) == blob


def test_field_values_keep_order_and_empties():
    assert coerce.field_values("front\x1f\x1fextra", "notes.flds") == ("front", "", "extra")
    assert coerce.field_values(b"a\x1fb", "notes.flds") == ("a", "b")


def test_text_handles_integer_affinity():
    assert coerce.text(42, "notes.sfld") == "42"
    assert coerce.text(None, "notes.sfld") == ""


def test_enumerated_rejects_unknown_value():
    with pytest.raises(ColumnTypeError) as info:
        coerce.enumerated(ModelType, 7, "model.type")
    assert "ModelType" in str(info.value)


def test_json_blob_reports_column_on_bad_json():
    with pytest.raises(ColumnTypeError) as info:
        coerce.json_blob("{not json", "col.conf")
    assert info.value.column == "col.conf"


def test_decode_config():
    conf = coerce.decode_config(
        json.dumps({"collapseTime": 1200, "curModel": "1357356563296", "activeDecks": [1, 2], "timeLimit": 60, "estTimes": True})
    )
    assert conf.collapse_time == 1200
    assert conf.current_model == 1357356563296
    assert conf.active_decks == (1, 2)
    assert conf.time_limit == dt.timedelta(seconds=60)
    assert conf.estimate_times is True
    assert conf.current_deck == EMPTY_ID


def test_keyed_collections_use_decoded_id_not_json_key():
    decks = coerce.decode_decks(json.dumps({"stale-key": {"id": 5, "name": "Five", "conf": 1}}))
    assert list(decks) == [5]
    assert decks[5].name == "Five"
    assert decks[5].config_id == 1


def test_decode_models():
    blob = {
        "10": {
            "id": 10,
            "name": "Cloze",
            "type": 1,
            "flds": [{"name": "Text", "ord": 0}, {"name": "Extra", "ord": 1}],
            "tmpls": [{"name": "Cloze", "ord": 0, "qfmt": "{{cloze:Text}}", "afmt": "{{cloze:Text}}", "did": None}],
            "req": [[0, "any", [0, 1]]],
            "mod": 1388707200,
        }
    }
    model = coerce.decode_models(json.dumps(blob).encode())[10]
    assert model.type is ModelType.CLOZE
    assert model.field_names() == ["Text", "Extra"]
    assert model.templates[0].deck_override == EMPTY_ID
    assert model.required_fields[0].match_type == "any"
    assert model.required_fields[0].fields == (0, 1)
    assert model.modified == dt.datetime(2014, 1, 3, tzinfo=UTC)


def test_decode_deck_configs():
    blob = {
        "1": {
            "id": 1,
            "name": "Default",
            "timer": 1,
            "new": {"perDay": 20, "delays": [1, 10], "ints": [1, 4, 7], "initialFactor": 2500, "order": 1},
            "rev": {"perDay": 200, "maxIvl": 36500, "ivlFct": 1.2, "ease4": 1.3},
            "lapse": {"leechFails": 8, "minInt": 1, "leechAction": 1, "delays": [10], "mult": 0.5},
        }
    }
    conf = coerce.decode_deck_configs(json.dumps(blob))[1]
    assert conf.show_timer is True
    assert conf.new.delays == (dt.timedelta(minutes=1), dt.timedelta(minutes=10))
    assert conf.new.intervals == (dt.timedelta(days=1), dt.timedelta(days=4), dt.timedelta(days=7))
    assert conf.new.order is NewCardOrder.RANDOM
    assert conf.review.max_interval == dt.timedelta(days=36500)
    assert conf.review.interval_modifier == 1.2
    assert conf.lapse.leech_action is LeechAction.TAG_ONLY
    assert conf.lapse.multiplier == 0.5


def test_nested_json_error_names_key_path():
    blob = {"1": {"id": 1, "name": "Default", "new": {"delays": ["ten"]}}}
    with pytest.raises(ColumnTypeError) as info:
        coerce.decode_deck_configs(json.dumps(blob))
    assert info.value.column == "col.dconf[1].new.delays[0]"
