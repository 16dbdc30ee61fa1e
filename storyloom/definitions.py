"""Game definitions — config + character table + event table.

A definition comes from one of three sources, picked by the shape of the
source reference handed to the engine:

    "cloud_<id>"      remote   GET {remote_api_url}/games?gameId=<id>
    "deployed/<id>"   bundled  {bundles_dir}/<id>.json
    anything else     local    a game folder inside games_dir

Local folders hold config.json, which names the character and story files:

    config.json      {"startEvent": "intro", "characters": "characters.json", "story": "story.json"}
    characters.json  {"characters": {"<id>": {name, sprites, details}}}
    story.json       {"events": {"<id>": {type, dialogue, choices, ...}}}

Remote and bundled games arrive as one object {config, characters, events};
bundled ones may also carry {"assets": {key: data-url}} and may name the
start event "initialEvent".

Character and event collections are normalized to ordered dicts keyed by
id. A list of objects with "id" fields is accepted and converted.

validate_definition() checks a loaded definition for authoring mistakes
without playing it: missing start event, unknown characters, dangling
nextEvent targets, unreachable events, missing media files.
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import httpx
from pydantic import BaseModel, ValidationError

from storyloom.assets import (
    AssetSource,
    BundledAssetSource,
    LocalAssetSource,
    RemoteAssetSource,
)
from storyloom.config import Settings
from storyloom.errors import AssetError, DefinitionError
from storyloom.models import Character, Event, GameConfig

logger = logging.getLogger(__name__)

CLOUD_PREFIX = "cloud_"
DEPLOYED_PREFIX = "deployed/"


class SourceKind(str, enum.Enum):
    LOCAL = "local"
    REMOTE = "remote"
    BUNDLED = "bundled"


class GameDefinition(BaseModel):
    config: GameConfig
    characters: dict[str, Character]
    events: dict[str, Event]


@dataclass
class LoadedGame:
    """A definition together with the asset source that serves its media."""

    kind: SourceKind
    ref: str
    definition: GameDefinition
    assets: AssetSource


def resolve_source(source_ref: str) -> tuple[SourceKind, str]:
    """Split a source reference into its kind and the id/folder it names."""
    if source_ref.startswith(CLOUD_PREFIX):
        return SourceKind.REMOTE, source_ref[len(CLOUD_PREFIX):]
    if source_ref.startswith(DEPLOYED_PREFIX):
        return SourceKind.BUNDLED, source_ref[len(DEPLOYED_PREFIX):].split("/")[0]
    return SourceKind.LOCAL, source_ref


# ---------------------------------------------------------------------------
# Building
# ---------------------------------------------------------------------------

def _keyed(collection: Any, what: str) -> dict[str, Mapping[str, Any]]:
    if isinstance(collection, Mapping):
        return dict(collection)
    if isinstance(collection, list):
        keyed: dict[str, Mapping[str, Any]] = {}
        for item in collection:
            if not isinstance(item, Mapping) or "id" not in item:
                raise DefinitionError(f"Every entry in the {what} list needs an 'id'")
            keyed[str(item["id"])] = item
        return keyed
    raise DefinitionError(f"{what.capitalize()} must be an object keyed by id")


def build_definition(config: Any, characters: Any, events: Any) -> GameDefinition:
    """Validate raw config/characters/events into a GameDefinition."""
    if not isinstance(config, Mapping):
        raise DefinitionError("Config must be a JSON object")
    try:
        game_config = GameConfig.model_validate(config)
        character_table = {
            cid: Character.model_validate({**data, "id": cid})
            for cid, data in _keyed(characters, "characters").items()
        }
        event_table = {
            eid: Event.from_definition(eid, data)
            for eid, data in _keyed(events, "events").items()
        }
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(p) for p in first["loc"])
        raise DefinitionError(f"Invalid game data at {location}: {first['msg']}") from e
    except TypeError as e:
        raise DefinitionError(f"Malformed game data: {e}") from e
    return GameDefinition(config=game_config, characters=character_table, events=event_table)


# ---------------------------------------------------------------------------
# Loaders — one per source kind
# ---------------------------------------------------------------------------

async def load_local_game(folder: Path) -> LoadedGame:
    if not folder.is_dir():
        raise DefinitionError(f"Game folder not found: {folder}")
    assets = LocalAssetSource(folder)
    try:
        config = await assets.load_json("config.json")
        if not isinstance(config, Mapping):
            raise DefinitionError("config.json must contain a JSON object")
        characters_data = await assets.load_json(config.get("characters") or "characters.json")
        story_data = await assets.load_json(config.get("story") or "story.json")
    except AssetError as e:
        raise DefinitionError(str(e)) from e

    if not isinstance(characters_data, Mapping) or "characters" not in characters_data:
        raise DefinitionError('Characters file is missing the "characters" object')
    if not isinstance(story_data, Mapping) or "events" not in story_data:
        raise DefinitionError('Story file is missing the "events" object')

    definition = build_definition(config, characters_data["characters"], story_data["events"])
    return LoadedGame(SourceKind.LOCAL, str(folder), definition, assets)


async def fetch_remote_game(api_url: str, game_id: str, timeout: float = 30.0) -> dict[str, Any]:
    """Fetch one game object from the remote API."""
    if not api_url:
        raise DefinitionError("Cloud games are disabled: no remote_api_url configured")
    url = f"{api_url.rstrip('/')}/games"
    logger.debug("fetch remote game id=%s url=%s", game_id, url)
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.get(
                url,
                params={"gameId": game_id},
                headers={"Content-Type": "application/json"},
            )
            resp.raise_for_status()
    except httpx.ConnectError as e:
        raise DefinitionError(f"Cannot connect to game API at {api_url}") from e
    except httpx.HTTPStatusError as e:
        raise DefinitionError(
            f"Failed to load cloud game {game_id}: HTTP {e.response.status_code}"
        ) from e
    except httpx.TimeoutException as e:
        raise DefinitionError(f"Game API timed out after {timeout}s") from e

    try:
        game = resp.json()
    except ValueError as e:
        raise DefinitionError(f"Game API returned invalid JSON for {game_id}") from e
    if not isinstance(game, dict):
        raise DefinitionError(f"Unexpected response format for cloud game {game_id}")
    return game


async def load_remote_game(game_id: str, settings: Settings) -> LoadedGame:
    game = await fetch_remote_game(settings.remote_api_url, game_id, settings.remote_timeout)
    definition = build_definition(game.get("config"), game.get("characters") or {}, game.get("events") or {})
    assets = RemoteAssetSource(game, timeout=settings.remote_timeout)
    return LoadedGame(SourceKind.REMOTE, f"{CLOUD_PREFIX}{game_id}", definition, assets)


def read_bundle(bundles_dir: Path, game_id: str) -> dict[str, Any]:
    path = bundles_dir / f"{game_id}.json"
    if not path.is_file():
        raise DefinitionError("Deployed game data not found")
    try:
        game = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise DefinitionError(f"Deployed game data is not valid JSON: {e}") from e
    if not isinstance(game, dict) or not isinstance(game.get("config"), dict):
        raise DefinitionError("Deployed game data must contain a config object")
    return game


async def load_bundled_game(game_id: str, settings: Settings) -> LoadedGame:
    game = read_bundle(settings.bundles_dir, game_id)
    config = dict(game["config"])
    if "startEvent" not in config and "initialEvent" in config:
        config["startEvent"] = config["initialEvent"]
    definition = build_definition(config, game.get("characters") or {}, game.get("events") or {})
    assets = BundledAssetSource({**game, "config": config}, game.get("assets"))
    return LoadedGame(SourceKind.BUNDLED, f"{DEPLOYED_PREFIX}{game_id}", definition, assets)


async def load_definition(source_ref: str, settings: Settings) -> LoadedGame:
    """Resolve a source reference and load the full definition it names."""
    kind, ident = resolve_source(source_ref)
    if not ident:
        raise DefinitionError(f"Empty game reference: {source_ref!r}")
    if kind is SourceKind.REMOTE:
        loaded = await load_remote_game(ident, settings)
    elif kind is SourceKind.BUNDLED:
        loaded = await load_bundled_game(ident, settings)
    else:
        games_dir = settings.games_dir.resolve()
        folder = (games_dir / ident).resolve()
        if folder == games_dir or not folder.is_relative_to(games_dir):
            raise DefinitionError(f"Game folder must be inside {games_dir}: {ident}")
        loaded = await load_local_game(folder)
        loaded.ref = source_ref
    logger.info(
        "Loaded %s game %s: %d characters, %d events",
        kind.value, source_ref, len(loaded.definition.characters), len(loaded.definition.events),
    )
    return loaded


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

@dataclass
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def reachable_events(definition: GameDefinition) -> set[str]:
    """Event ids reachable from the start event by following choices."""
    start = definition.config.start_event
    if start not in definition.events:
        return set()
    visited: set[str] = set()
    stack = [start]
    while stack:
        current = stack.pop()
        if current in visited:
            continue
        visited.add(current)
        for choice in definition.events[current].choices:
            if choice.next_event in definition.events:
                stack.append(choice.next_event)
    return visited


def validate_definition(definition: GameDefinition, folder: Path | None = None) -> ValidationReport:
    """Check a definition for authoring errors. Pass folder to also check media files."""
    report = ValidationReport()
    events = definition.events
    characters = definition.characters

    if definition.config.start_event not in events:
        report.errors.append(f'Start event "{definition.config.start_event}" not found')

    for cid, character in characters.items():
        if not character.sprites:
            report.warnings.append(f"Character {cid} has no sprites")
        if folder is not None:
            for emotion, sprite in character.sprites.items():
                if not (folder / sprite).is_file():
                    report.warnings.append(f"Missing sprite for {cid} ({emotion}): {sprite}")

    for eid, event in events.items():
        if event.character and event.character.id not in characters:
            report.errors.append(f"Event {eid} references unknown character: {event.character.id}")
        for choice in event.choices:
            if choice.next_event not in events:
                report.errors.append(f"Choice in {eid} points to unknown event: {choice.next_event}")
        if folder is not None and event.background and not (folder / event.background).is_file():
            report.warnings.append(f"Missing background for {eid}: {event.background}")

    if definition.config.start_event in events:
        unreachable = sorted(set(events) - reachable_events(definition))
        for eid in unreachable:
            report.warnings.append(f"Event {eid} is unreachable from the start event")

    return report
