"""Core domain models.

Definitions (characters, events, config) and player progress (GameState,
SaveRecord) are pydantic models; every JSON boundary validates through them.
Wire names are camelCase to stay compatible with authored game folders and
existing save files; Python attributes are snake_case.
"""

from __future__ import annotations

import time
from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field

from storyloom.conditions import evaluate

FlagValue = bool | int | float | str

EventType = Literal["dialogue", "narration", "scene", "choice"]


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Definition models
# ---------------------------------------------------------------------------

class Character(BaseModel):
    """A speaking character. Immutable once the definition is loaded."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    sprites: dict[str, str] = Field(default_factory=dict)  # emotion → asset key
    details: dict[str, Any] = Field(default_factory=dict)

    def get_sprite(self, emotion: str | None = None) -> str | None:
        """Asset key for an emotion, falling back to "neutral", then the first sprite.

        Returns None when the character has no sprites at all.
        """
        if emotion and self.sprites.get(emotion):
            return self.sprites[emotion]
        if self.sprites.get("neutral"):
            return self.sprites["neutral"]
        return next(iter(self.sprites.values()), None)

    def get_detail(self, key: str) -> Any:
        return self.details.get(key)


class CharacterRef(_Wire):
    """Which character appears in an event, and how."""

    id: str
    sprite: str | None = None  # emotion key
    position: str | None = None


class Choice(_Wire):
    """An outgoing edge of the story graph."""

    text: str
    next_event: str = Field(alias="nextEvent")
    set_flags: dict[str, FlagValue] | None = Field(default=None, alias="setFlags")
    conditions: dict[str, FlagValue] | None = None

    def is_available(self, flags: Mapping[str, Any]) -> bool:
        return evaluate(self.conditions, flags)


class ConditionalLine(BaseModel):
    conditions: dict[str, FlagValue] = Field(default_factory=dict)
    text: str = ""


class Dialogue(BaseModel):
    """Flag-dependent dialogue. First matching conditional line wins."""

    default: str = ""
    conditional: list[ConditionalLine] = Field(default_factory=list)


class Event(_Wire):
    """One node of the story graph."""

    id: str
    name: str | None = None
    type: EventType = "dialogue"
    background: str | None = None
    character: CharacterRef | None = None
    dialogue: str | Dialogue | None = ""
    choices: list[Choice] = Field(default_factory=list)
    conditions: dict[str, FlagValue] = Field(default_factory=dict)

    @classmethod
    def from_definition(cls, event_id: str, data: Mapping[str, Any]) -> Event:
        """Build an event from its entry in an ``events`` mapping; the key is the id."""
        return cls.model_validate({**data, "id": event_id})

    def meets_conditions(self, flags: Mapping[str, Any]) -> bool:
        return evaluate(self.conditions, flags)

    def get_dialogue_text(self, flags: Mapping[str, Any]) -> str:
        if self.dialogue is None:
            return ""
        if isinstance(self.dialogue, str):
            return self.dialogue
        for line in self.dialogue.conditional:
            if evaluate(line.conditions, flags):
                return line.text
        return self.dialogue.default

    def get_available_choices(self, flags: Mapping[str, Any]) -> list[Choice]:
        return [c for c in self.choices if c.is_available(flags)]


class GameConfig(_Wire):
    """Top-level definition config. Unknown keys are kept."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    start_event: str = Field(alias="startEvent")
    name: str | None = None
    characters: str | None = None  # JSON key holding {"characters": {...}}
    story: str | None = None       # JSON key holding {"events": {...}}


# ---------------------------------------------------------------------------
# Player progress
# ---------------------------------------------------------------------------

class SaveRecord(_Wire):
    """Persisted form of a GameState, as stored in a slot or a .vnsave file.

    ``currentEvent`` must be present (it may be null). Everything else is
    optional so that older saves still load. Unknown keys are preserved.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    current_event: str | None = Field(alias="currentEvent")
    flags: dict[str, Any] = Field(default_factory=dict)
    history: list[str] = Field(default_factory=list)
    game_folder: str | None = Field(default=None, alias="gameFolder")
    timestamp: int | float | str | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class GameState(BaseModel):
    """Mutable player progress: where the player is, what they decided, where they've been."""

    current_event: str | None = None
    flags: dict[str, FlagValue] = Field(default_factory=dict)
    history: list[str] = Field(default_factory=list)  # append-only, repeats allowed

    def set_flag(self, key: str, value: FlagValue) -> None:
        self.flags[key] = value

    def get_flag(self, key: str) -> FlagValue | None:
        return self.flags.get(key)

    def set_current_event(self, event_id: str) -> None:
        """Move to an event. Every transition is recorded in history."""
        self.current_event = event_id
        self.history.append(event_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": now_ms(),
            "currentEvent": self.current_event,
            "flags": dict(self.flags),
            "history": list(self.history),
        }

    def restore(self, record: SaveRecord | Mapping[str, Any]) -> None:
        if isinstance(record, SaveRecord):
            record = record.to_wire()
        self.current_event = record.get("currentEvent")
        self.flags = dict(record.get("flags") or {})
        self.history = list(record.get("history") or [])


# ---------------------------------------------------------------------------
# Presentation payload
# ---------------------------------------------------------------------------

class Frame(BaseModel):
    """An event with its dialogue resolved against the current flags."""

    event_id: str
    type: EventType
    name: str | None = None
    text: str = ""
    background: str | None = None
    character: CharacterRef | None = None
    choices: list[Choice] = Field(default_factory=list)
