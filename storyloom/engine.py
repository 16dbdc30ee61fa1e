"""Engine — drives one play session end-to-end.

Lifecycle:

    UNLOADED ──load_game──▶ LOADING ──ok──▶ READY ◀──choice / restart / load_save──┐
        ▲                      │                 └─────────────────────────────────┘
        └──────── failure ─────┘

Turn flow (READY):
  1. render_current_event() looks up GameState.current_event, checks the
     event's gate, resolves dialogue against the flags, awaits background
     and sprite images, and hands the frame + available choices to the
     presenter.
  2. The presenter calls back on_choice_selected(choice): setFlags are
     applied, GameState moves to choice.nextEvent, go to 1.

A load is all-or-nothing: the new tables are checked before they are
swapped in, and a failure anywhere up to the first render leaves the
engine UNLOADED with empty tables.

Errors that stop a render (missing event, unmet event conditions, asset
failure) are logged, shown through the presenter and raised. The engine
never auto-advances past them.
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Awaitable, Callable, NoReturn

from storyloom.assets import AssetSource
from storyloom.config import Settings
from storyloom.definitions import LoadedGame, SourceKind, load_definition
from storyloom.errors import (
    AssetError,
    DefinitionError,
    EventConditionsNotMetError,
    EventNotFoundError,
    StoryError,
    TraversalError,
)
from storyloom.models import Character, Choice, Event, Frame, GameConfig, GameState
from storyloom.presentation import Presenter
from storyloom.storage import SaveStore, qualify_slot

logger = logging.getLogger(__name__)

DefinitionLoader = Callable[[str, Settings], Awaitable[LoadedGame]]


class EngineStatus(str, enum.Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"


class Engine:
    """One play session: a loaded definition, the player's GameState and a save store.

    Args:
        presenter: Receives rendered frames, choices and errors.
        settings:  Engine settings; defaults when omitted.
        store:     Save store; built from settings when omitted.
        loader:    Coroutine resolving a source reference to a LoadedGame.
                   Defaults to storyloom.definitions.load_definition.
    """

    def __init__(
        self,
        presenter: Presenter,
        settings: Settings | None = None,
        store: SaveStore | None = None,
        loader: DefinitionLoader | None = None,
    ) -> None:
        self.presenter = presenter
        self.settings = settings or Settings()
        self.store = store or SaveStore(
            self.settings.data_dir,
            auto_backup=self.settings.auto_backup,
            max_backups=self.settings.max_backups,
        )
        self._loader = loader or load_definition

        self.status = EngineStatus.UNLOADED
        self.source_kind: SourceKind | None = None
        self.game_folder: str | None = None
        self.config: GameConfig | None = None
        self.characters: dict[str, Character] = {}
        self.events: dict[str, Event] = {}
        self.assets: AssetSource | None = None
        self.game_state = GameState()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load_game(self, source_ref: str) -> Frame:
        """Load a definition, start it at its start event and render.

        Any failure up to and including the first render leaves the engine
        UNLOADED and raises DefinitionError.
        """
        logger.info("Loading game %s", source_ref)
        self._unload()
        self.status = EngineStatus.LOADING
        try:
            loaded = await self._loader(source_ref, self.settings)
            start_event = loaded.definition.config.start_event
            if start_event not in loaded.definition.events:
                raise DefinitionError(f'Start event "{start_event}" not found')

            self.source_kind = loaded.kind
            self.game_folder = source_ref
            self.config = loaded.definition.config
            self.characters = loaded.definition.characters
            self.events = loaded.definition.events
            self.assets = loaded.assets
            self.status = EngineStatus.READY

            self.game_state.set_current_event(start_event)
            await self.preload_assets()
            return await self.render_current_event()
        except StoryError as e:
            self._unload()
            logger.error("Failed to load game %s: %s", source_ref, e)
            self.presenter.show_error(f"Failed to load game: {e}")
            if isinstance(e, DefinitionError):
                raise
            raise DefinitionError(str(e)) from e

    def _unload(self) -> None:
        self.status = EngineStatus.UNLOADED
        self.source_kind = None
        self.game_folder = None
        self.config = None
        self.characters = {}
        self.events = {}
        self.assets = None
        self.game_state = GameState()

    async def preload_assets(self) -> None:
        """Warm the asset cache with every background and sprite. Never raises."""
        if self.assets is None:
            return
        keys = [e.background for e in self.events.values() if e.background]
        for character in self.characters.values():
            keys.extend(character.sprites.values())
        await self.assets.preload_images(keys)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _fail(self, error: StoryError) -> NoReturn:
        logger.error("%s", error)
        self.presenter.show_error(str(error))
        raise error

    @property
    def current_event(self) -> Event | None:
        return self.events.get(self.game_state.current_event)

    def available_choices(self) -> list[Choice]:
        event = self.current_event
        if event is None:
            return []
        return event.get_available_choices(self.game_state.flags)

    async def render_current_event(self) -> Frame:
        if self.status is not EngineStatus.READY or self.assets is None:
            self._fail(TraversalError("No game is loaded"))

        event_id = self.game_state.current_event
        event = self.events.get(event_id)
        if event is None:
            self._fail(EventNotFoundError(f"Event not found: {event_id}", event_id))

        flags = self.game_state.flags
        if not event.meets_conditions(flags):
            self._fail(EventConditionsNotMetError(
                f"Event {event_id} conditions not met", event_id
            ))

        logger.debug("render event=%s", event_id)
        text = event.get_dialogue_text(flags)

        background: bytes | None = None
        character: Character | None = None
        character_image: bytes | None = None
        try:
            if event.background:
                background = await self.assets.load_image(event.background)
            if event.character:
                character = self.characters.get(event.character.id)
                if character is None:
                    logger.warning(
                        "Event %s references unknown character %r", event_id, event.character.id
                    )
                else:
                    sprite = character.get_sprite(event.character.sprite)
                    if sprite:
                        character_image = await self.assets.load_image(sprite)
        except AssetError as e:
            self._fail(e)

        choices = event.get_available_choices(flags)
        frame = Frame(
            event_id=event.id,
            type=event.type,
            name=event.name,
            text=text,
            background=event.background,
            character=event.character if character is not None else None,
            choices=choices,
        )
        self.presenter.render_event(frame, character, background, character_image)
        self.presenter.render_choices(choices, self.on_choice_selected)
        logger.debug("event=%s choices=%d", event_id, len(choices))
        return frame

    # ------------------------------------------------------------------
    # Player actions
    # ------------------------------------------------------------------

    async def on_choice_selected(self, choice: Choice) -> Frame:
        """Apply a choice's flag changes, move to its target event and render it."""
        if self.status is not EngineStatus.READY:
            self._fail(TraversalError("No game is loaded"))
        for key, value in (choice.set_flags or {}).items():
            self.game_state.set_flag(key, value)
        self.game_state.set_current_event(choice.next_event)
        return await self.render_current_event()

    async def choose(self, index: int) -> Frame:
        """Pick one of the current event's available choices by position."""
        choices = self.available_choices()
        if not 0 <= index < len(choices):
            raise IndexError(f"No choice at position {index}")
        return await self.on_choice_selected(choices[index])

    async def restart_game(self) -> Frame:
        """Start over at the start event, keeping the loaded definition."""
        if self.config is None:
            self._fail(TraversalError("No game is loaded"))
        self.game_state = GameState()
        self.game_state.set_current_event(self.config.start_event)
        return await self.render_current_event()

    # ------------------------------------------------------------------
    # Saves
    # ------------------------------------------------------------------

    def slot_name(self, slot: str, game_folder: str | None = None) -> str:
        """The store key for a slot; qualified by game when namespace_slots is on."""
        if not self.settings.namespace_slots:
            return slot
        return qualify_slot(slot, game_folder or self.game_folder)

    async def save_game(self, slot: str = "autosave") -> bool:
        return self.store.save(self.slot_name(slot), self.game_state, self.game_folder)

    async def load_save(self, slot: str = "autosave") -> bool:
        """Restore a slot, loading its game first if it is not the one in play.

        Returns False when the slot is empty or holds no game reference while
        nothing is loaded. A named game that fails to load raises DefinitionError.
        """
        record = self.store.load(self.slot_name(slot))
        if record is None:
            logger.info("No save in slot %r", slot)
            return False

        game_folder = record.get("gameFolder")
        if game_folder and (game_folder != self.game_folder or self.status is not EngineStatus.READY):
            await self.load_game(game_folder)

        if self.status is not EngineStatus.READY:
            logger.error("Cannot load save %r: game not loaded", slot)
            self.presenter.show_error("Cannot load save: game not loaded")
            return False

        self.game_state.restore(record)
        await self.render_current_event()
        return True

    def snapshot(self) -> dict[str, Any]:
        """Session summary for status displays."""
        return {
            "status": self.status.value,
            "sourceKind": self.source_kind.value if self.source_kind else None,
            "gameFolder": self.game_folder,
            "currentEvent": self.game_state.current_event,
            "flags": dict(self.game_state.flags),
            "history": list(self.game_state.history),
        }
