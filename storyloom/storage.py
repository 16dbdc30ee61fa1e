"""Save slot storage.

Slots are flat JSON files under a data directory. There is no database;
reads and writes go through small helpers that load and dump JSON.

Directory layout:

    {data_dir}/
      saves/
        {slot}.json           ← one SaveRecord per slot
      backups/
        {seq}-{slot}.vnsave   ← automatic backups, newest max_backups kept
      exports/
        {slot}.vnsave         ← single-slot exports
        all-saves-{ms}.vnbackup

Slot names are caller-chosen strings. They are percent-encoded into file
names, so any name survives the round trip ("Chapter 2/alt" included).

Reads never raise for missing or corrupt files: they log and report "no
data". Writes that fail raise StorageError.
"""

from __future__ import annotations

import json
import logging
import re
import unicodedata
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote

from pydantic import BaseModel, Field, ValidationError

from storyloom.errors import SaveParseError, StorageError
from storyloom.models import GameState, SaveRecord, now_ms

logger = logging.getLogger(__name__)

SAVE_SUFFIX = ".vnsave"
BUNDLE_SUFFIX = ".vnbackup"

_BACKUP_NAME = re.compile(r"^(\d+)-(.+)\.vnsave$")


def slugify(title: str) -> str:
    """Convert a game reference or title to a filesystem-safe slug.

    "deployed/The Cursed Tavern" → "deployed-the-cursed-tavern"
    """
    text = unicodedata.normalize("NFKD", title)
    text = text.encode("ascii", "ignore").decode("ascii")
    text = text.lower()
    text = re.sub(r"['\"]", "", text)  # strip apostrophes/quotes before hyphenation
    text = re.sub(r"[^a-z0-9]+", "-", text)
    text = text.strip("-")
    return text or "untitled"


def qualify_slot(slot: str, game_folder: str | None) -> str:
    """Prefix a slot name with its game, so slots of different games never collide."""
    if not game_folder:
        return slot
    return f"{slugify(game_folder)}.{slot}"


class SlotInfo(BaseModel):
    """Listing entry for one slot."""

    name: str
    timestamp: int | float
    game_folder: str = Field(default="unknown", serialization_alias="gameFolder")


class BackupInfo(BaseModel):
    seq: int
    slot: str
    path: Path
    record: dict[str, Any]


class SaveStore:
    def __init__(
        self,
        data_dir: Path,
        *,
        auto_backup: bool = True,
        max_backups: int = 5,
    ) -> None:
        self._saves = data_dir / "saves"
        self._backups = data_dir / "backups"
        self._exports = data_dir / "exports"
        self._saves.mkdir(parents=True, exist_ok=True)
        self.auto_backup = auto_backup
        self.max_backups = max_backups

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    def _slot_file(self, slot: str) -> Path:
        return self._saves / f"{quote(slot, safe='')}.json"

    def _read_json(self, path: Path) -> Any:
        return json.loads(path.read_text())

    def _write_json(self, path: Path, data: Any) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data, indent=2))
        except OSError as e:
            raise StorageError(f"Cannot write {path}: {e}") from e

    # ------------------------------------------------------------------
    # Slots
    # ------------------------------------------------------------------

    def save(self, slot: str, game_state: GameState, game_folder: str | None = None) -> bool:
        """Write a snapshot of game_state to a slot, then back it up if enabled."""
        record = {
            **game_state.to_dict(),
            "gameFolder": game_folder,
            "timestamp": now_ms(),
        }
        self._write_json(self._slot_file(slot), record)
        logger.debug("saved slot=%s game=%s event=%s", slot, game_folder, record["currentEvent"])

        if self.auto_backup:
            self.backup(slot, record)
        return True

    def load(self, slot: str) -> dict[str, Any] | None:
        """Return the record stored in a slot, or None if absent or unreadable."""
        path = self._slot_file(slot)
        if not path.is_file():
            return None
        try:
            return SaveRecord.model_validate(self._read_json(path)).to_wire()
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Slot %r is unreadable: %s", slot, e)
            return None
        except ValidationError as e:
            logger.warning("Slot %r does not hold save data: %d error(s)", slot, e.error_count())
            return None

    def get_save_slots(self) -> list[SlotInfo]:
        """All slots, most recently saved first."""
        slots = []
        for path in self._saves.glob("*.json"):
            try:
                data = self._read_json(path)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Skipping unreadable save %s: %s", path.name, e)
                continue
            if not isinstance(data, dict):
                continue
            timestamp = data.get("timestamp")
            if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
                timestamp = now_ms()
            slots.append(SlotInfo(
                name=unquote(path.stem),
                timestamp=timestamp,
                game_folder=data.get("gameFolder") or "unknown",
            ))
        slots.sort(key=lambda s: s.timestamp, reverse=True)
        return slots

    def delete_save(self, slot: str) -> bool:
        path = self._slot_file(slot)
        if not path.is_file():
            return False
        path.unlink()
        return True

    def clear_all_saves(self) -> None:
        for info in self.get_save_slots():
            self.delete_save(info.name)

    def has_saves(self) -> bool:
        return bool(self.get_save_slots())

    # ------------------------------------------------------------------
    # Single-slot export / import
    # ------------------------------------------------------------------

    def export_save_to_file(
        self,
        slot: str,
        record: dict[str, Any] | None = None,
        dest_dir: Path | None = None,
    ) -> Path | None:
        """Write a slot as a portable <slot>.vnsave file. None if the slot is empty."""
        if record is None:
            record = self.load(slot)
            if record is None:
                logger.error("No save data found for %r", slot)
                return None
        path = (dest_dir or self._exports) / f"{quote(slot, safe='')}{SAVE_SUFFIX}"
        self._write_json(path, record)
        return path

    def import_save_bytes(self, data: bytes | str, filename: str) -> str:
        """Store an exported save under the slot named by its file name.

        Raises SaveParseError without touching any slot if data is not save data.
        """
        record = _parse_record(data)
        slot = unquote(Path(filename).name)
        if slot.endswith(SAVE_SUFFIX):
            slot = slot[: -len(SAVE_SUFFIX)]
        if not slot:
            raise SaveParseError(f"Cannot derive a slot name from {filename!r}")
        self._write_json(self._slot_file(slot), record)
        return slot

    def import_save_from_file(self, path: Path) -> str:
        try:
            data = path.read_bytes()
        except OSError as e:
            raise SaveParseError(f"Cannot read {path}: {e}") from e
        return self.import_save_bytes(data, path.name)

    # ------------------------------------------------------------------
    # Bundles (every slot in one file)
    # ------------------------------------------------------------------

    def build_bundle(self) -> dict[str, Any]:
        saves: dict[str, Any] = {}
        for info in self.get_save_slots():
            record = self.load(info.name)
            if record is not None:
                saves[info.name] = record
        return {
            "exportDate": datetime.now(timezone.utc).isoformat(),
            "saves": saves,
        }

    def export_all_saves(self, dest_dir: Path | None = None) -> Path:
        path = (dest_dir or self._exports) / f"all-saves-{now_ms()}{BUNDLE_SUFFIX}"
        self._write_json(path, self.build_bundle())
        return path

    def import_all_saves(self, data: bytes | str) -> int:
        """Merge a bundle into the store, overwriting slots by name. Returns the count."""
        try:
            envelope = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise SaveParseError(f"Backup file is not valid JSON: {e}") from e
        if not isinstance(envelope, dict):
            raise SaveParseError("Backup file must contain a JSON object")

        saves = envelope.get("saves") or {}
        if not isinstance(saves, dict):
            raise SaveParseError("Backup 'saves' must be an object keyed by slot name")

        # Validate everything before writing anything
        records = {slot: _validate_record(raw, slot) for slot, raw in saves.items()}
        for slot, record in records.items():
            self._write_json(self._slot_file(slot), record)
        return len(records)

    # ------------------------------------------------------------------
    # Automatic backups
    # ------------------------------------------------------------------

    def backup(self, slot: str, record: dict[str, Any]) -> Path:
        """Write a backup of record, then drop all but the newest max_backups."""
        existing = self._backup_files()
        seq = existing[-1][0] + 1 if existing else 1
        path = self._backups / f"{seq:06d}-{quote(slot, safe='')}{SAVE_SUFFIX}"
        self._write_json(path, record)
        self._rotate_backups()
        return path

    def list_backups(self) -> list[BackupInfo]:
        """Kept backups, oldest first."""
        backups = []
        for seq, slot, path in self._backup_files():
            try:
                record = self._read_json(path)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Skipping unreadable backup %s: %s", path.name, e)
                continue
            backups.append(BackupInfo(seq=seq, slot=slot, path=path, record=record))
        return backups

    def _backup_files(self) -> list[tuple[int, str, Path]]:
        if not self._backups.is_dir():
            return []
        found = []
        for path in self._backups.iterdir():
            match = _BACKUP_NAME.match(path.name)
            if match:
                found.append((int(match.group(1)), unquote(match.group(2)), path))
        found.sort()
        return found

    def _rotate_backups(self) -> None:
        files = self._backup_files()
        excess = len(files) - self.max_backups
        for _, _, path in files[: max(excess, 0)]:
            path.unlink()
            logger.debug("rotated out backup %s", path.name)


# ---------------------------------------------------------------------------
# Record validation
# ---------------------------------------------------------------------------

def _parse_record(data: bytes | str) -> dict[str, Any]:
    try:
        raw = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise SaveParseError(f"Save file is not valid JSON: {e}") from e
    return _validate_record(raw)


def _validate_record(raw: Any, slot: str | None = None) -> dict[str, Any]:
    try:
        return SaveRecord.model_validate(raw).to_wire()
    except ValidationError as e:
        where = f" for slot {slot!r}" if slot else ""
        raise SaveParseError(f"Invalid save data{where}: {e.error_count()} error(s)") from e
