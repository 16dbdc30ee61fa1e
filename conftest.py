import json
from pathlib import Path

import pytest

from storyloom.config import Settings
from storyloom.presentation import RecordingPresenter
from storyloom.storage import SaveStore

# Two-event game: start → end, setting met=true on the way.
START_END_EVENTS = {
    "start": {
        "type": "dialogue",
        "dialogue": "Hi",
        "choices": [{"text": "Go", "nextEvent": "end", "setFlags": {"met": True}}],
    },
    "end": {"type": "narration", "dialogue": "Bye"},
}


def write_game(
    folder: Path,
    events: dict,
    characters: dict | None = None,
    start: str = "start",
    files: dict[str, bytes] | None = None,
) -> Path:
    """Write a local game folder (config.json, characters.json, story.json + media)."""
    folder.mkdir(parents=True, exist_ok=True)
    (folder / "config.json").write_text(json.dumps({
        "name": folder.name,
        "startEvent": start,
        "characters": "characters.json",
        "story": "story.json",
    }))
    (folder / "characters.json").write_text(json.dumps({"characters": characters or {}}))
    (folder / "story.json").write_text(json.dumps({"events": events}))
    for name, data in (files or {}).items():
        path = folder / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    return folder


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in a per-test temp directory."""
    return Settings(
        data_dir=tmp_path / "data",
        games_dir=tmp_path / "games",
        bundles_dir=tmp_path / "bundles",
        remote_api_url="http://games.test/api",
        auto_backup=False,
    )


@pytest.fixture
def store(settings: Settings) -> SaveStore:
    return SaveStore(settings.data_dir, auto_backup=False, max_backups=settings.max_backups)


@pytest.fixture
def presenter() -> RecordingPresenter:
    return RecordingPresenter()


@pytest.fixture
def start_end_game(settings: Settings) -> str:
    """A local game named "start-end" under games_dir. Returns its source reference."""
    write_game(settings.games_dir / "start-end", START_END_EVENTS)
    return "start-end"
