"""Tests for storyloom.models."""

import time

import pytest
from pydantic import ValidationError

from storyloom.models import (
    Character,
    Choice,
    Dialogue,
    Event,
    GameConfig,
    GameState,
    SaveRecord,
)


class TestCharacter:
    def test_requested_emotion(self) -> None:
        c = Character(id="mara", name="Mara", sprites={"happy": "h.png", "neutral": "n.png"})
        assert c.get_sprite("happy") == "h.png"

    def test_falls_back_to_neutral(self) -> None:
        c = Character(id="mara", name="Mara", sprites={"happy": "h.png", "neutral": "n.png"})
        assert c.get_sprite("angry") == "n.png"

    def test_falls_back_to_first_sprite(self) -> None:
        c = Character(id="mara", name="Mara", sprites={"sad": "s.png", "happy": "h.png"})
        assert c.get_sprite("angry") == "s.png"

    def test_no_emotion_given(self) -> None:
        c = Character(id="mara", name="Mara", sprites={"neutral": "n.png"})
        assert c.get_sprite() == "n.png"

    def test_no_sprites_returns_none(self) -> None:
        c = Character(id="mara", name="Mara")
        assert c.get_sprite("happy") is None

    def test_details(self) -> None:
        c = Character(id="mara", name="Mara", details={"likes": ["tea"]})
        assert c.get_detail("likes") == ["tea"]
        assert c.get_detail("dislikes") is None

    def test_immutable(self) -> None:
        c = Character(id="mara", name="Mara")
        with pytest.raises(ValidationError):
            c.name = "Other"

    def test_name_required(self) -> None:
        with pytest.raises(ValidationError):
            Character(id="mara")


class TestChoice:
    def test_wire_names(self) -> None:
        c = Choice.model_validate({"text": "Go", "nextEvent": "end", "setFlags": {"met": True}})
        assert c.next_event == "end"
        assert c.set_flags == {"met": True}
        assert c.conditions is None

    def test_dump_uses_wire_names(self) -> None:
        c = Choice(text="Go", next_event="end")
        assert c.model_dump(by_alias=True)["nextEvent"] == "end"

    def test_flag_types_preserved(self) -> None:
        c = Choice.model_validate({
            "text": "x", "nextEvent": "y",
            "setFlags": {"b": True, "i": 1, "f": 1.5, "s": "1"},
        })
        assert c.set_flags["b"] is True
        assert type(c.set_flags["i"]) is int
        assert type(c.set_flags["f"]) is float
        assert c.set_flags["s"] == "1"


def _event(**data) -> Event:
    return Event.from_definition("e1", data)


class TestEventDialogue:
    def test_plain_string_verbatim(self) -> None:
        assert _event(dialogue="Hello.").get_dialogue_text({"a": 1}) == "Hello."

    def test_first_match_wins_not_most_specific(self) -> None:
        event = _event(dialogue={
            "default": "D",
            "conditional": [
                {"conditions": {"a": 1}, "text": "A"},
                {"conditions": {"a": 1, "b": 2}, "text": "AB"},
            ],
        })
        assert event.get_dialogue_text({"a": 1, "b": 2}) == "A"

    def test_falls_back_to_default(self) -> None:
        event = _event(dialogue={
            "default": "D",
            "conditional": [{"conditions": {"a": 1}, "text": "A"}],
        })
        assert event.get_dialogue_text({"a": 2}) == "D"

    def test_missing_default_is_empty(self) -> None:
        event = _event(dialogue={"conditional": [{"conditions": {"a": 1}, "text": "A"}]})
        assert event.get_dialogue_text({}) == ""

    def test_no_dialogue_is_empty(self) -> None:
        assert _event(dialogue=None).get_dialogue_text({}) == ""
        assert _event().get_dialogue_text({}) == ""

    def test_structured_dialogue_parsed(self) -> None:
        event = _event(dialogue={"default": "D"})
        assert isinstance(event.dialogue, Dialogue)


class TestEventChoicesAndGate:
    def test_choices_filtered_in_authored_order(self) -> None:
        event = _event(choices=[
            {"text": "1", "nextEvent": "a"},
            {"text": "2", "nextEvent": "b", "conditions": {"key": True}},
            {"text": "3", "nextEvent": "c", "conditions": {"key": False}},
            {"text": "4", "nextEvent": "d"},
        ])
        texts = [c.text for c in event.get_available_choices({"key": True})]
        assert texts == ["1", "2", "4"]

    def test_gated_choice_hidden_when_flag_missing(self) -> None:
        event = _event(choices=[{"text": "x", "nextEvent": "a", "conditions": {"k": 1}}])
        assert event.get_available_choices({}) == []

    def test_empty_conditions_always_visible(self) -> None:
        assert _event().meets_conditions({}) is True

    def test_meets_conditions(self) -> None:
        event = _event(conditions={"helped": True})
        assert event.meets_conditions({"helped": True}) is True
        assert event.meets_conditions({"helped": False}) is False

    def test_id_comes_from_key(self) -> None:
        event = Event.from_definition("intro", {"id": "ignored", "dialogue": "x"})
        assert event.id == "intro"

    def test_defaults(self) -> None:
        event = _event()
        assert event.type == "dialogue"
        assert event.choices == []
        assert event.conditions == {}
        assert event.character is None

    def test_invalid_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _event(type="cutscene")

    def test_character_ref(self) -> None:
        event = _event(character={"id": "mara", "sprite": "happy", "position": "left"})
        assert event.character.id == "mara"
        assert event.character.sprite == "happy"
        assert event.character.position == "left"


class TestGameConfig:
    def test_start_event_required(self) -> None:
        with pytest.raises(ValidationError):
            GameConfig.model_validate({"characters": "c.json"})

    def test_extra_keys_kept(self) -> None:
        config = GameConfig.model_validate({"startEvent": "s", "version": "1.0"})
        assert config.start_event == "s"
        assert config.model_extra == {"version": "1.0"}


class TestGameState:
    def test_fresh_state(self) -> None:
        state = GameState()
        assert state.current_event is None
        assert state.flags == {}
        assert state.history == []

    def test_set_and_get_flag(self) -> None:
        state = GameState()
        state.set_flag("met", True)
        state.set_flag("met", False)
        assert state.get_flag("met") is False
        assert state.get_flag("missing") is None

    def test_history_tracks_every_transition(self) -> None:
        state = GameState()
        for event_id in ["a", "b", "a", "a", "c"]:
            state.set_current_event(event_id)
        assert len(state.history) == 5
        assert state.history == ["a", "b", "a", "a", "c"]
        assert state.history[-1] == state.current_event

    def test_to_dict_shape(self) -> None:
        state = GameState()
        state.set_current_event("start")
        state.set_flag("met", True)
        before = int(time.time() * 1000)
        data = state.to_dict()
        assert set(data) == {"timestamp", "currentEvent", "flags", "history"}
        assert data["timestamp"] >= before
        assert "gameFolder" not in data

    def test_to_dict_is_a_copy(self) -> None:
        state = GameState()
        state.set_current_event("start")
        data = state.to_dict()
        state.set_flag("later", 1)
        state.set_current_event("next")
        assert data["flags"] == {}
        assert data["history"] == ["start"]

    def test_restore_reproduces_state(self) -> None:
        state = GameState()
        state.set_current_event("a")
        state.set_flag("x", 1)
        state.set_flag("y", "yes")
        state.set_current_event("b")

        restored = GameState()
        restored.restore(state.to_dict())
        assert restored.current_event == "b"
        assert restored.flags == {"x": 1, "y": "yes"}
        assert restored.history == ["a", "b"]

    def test_restore_defaults_missing_fields(self) -> None:
        state = GameState()
        state.set_flag("old", True)
        state.set_current_event("old")
        state.restore({"currentEvent": "chapter2"})
        assert state.current_event == "chapter2"
        assert state.flags == {}
        assert state.history == []

    def test_restore_from_save_record(self) -> None:
        record = SaveRecord.model_validate({
            "currentEvent": "e", "flags": {"k": "v"}, "history": ["e"], "gameFolder": "g",
        })
        state = GameState()
        state.restore(record)
        assert state.current_event == "e"
        assert state.flags == {"k": "v"}


class TestSaveRecord:
    def test_current_event_required(self) -> None:
        with pytest.raises(ValidationError):
            SaveRecord.model_validate({"invalidField": "data"})

    def test_current_event_may_be_null(self) -> None:
        assert SaveRecord.model_validate({"currentEvent": None}).current_event is None

    def test_defaults(self) -> None:
        record = SaveRecord.model_validate({"currentEvent": "e"})
        assert record.flags == {}
        assert record.history == []
        assert record.game_folder is None

    def test_unknown_keys_preserved(self) -> None:
        record = SaveRecord.model_validate({"currentEvent": "e", "label": "Before the storm"})
        assert record.to_wire()["label"] == "Before the storm"

    def test_to_wire_uses_camel_case(self) -> None:
        wire = SaveRecord(current_event="e", game_folder="g", timestamp=5).to_wire()
        assert wire["currentEvent"] == "e"
        assert wire["gameFolder"] == "g"
        assert wire["timestamp"] == 5
