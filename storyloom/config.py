"""Engine settings.

Settings are resolved once and passed to the engine and its collaborators at
construction time. Resolution order, later wins:

  1. built-in defaults (_DEFAULTS)
  2. <data_dir>/config.json, if present
  3. STORYLOOM_* environment variables (a repo-root .env is loaded first)

Keys:
  data_dir         root for saves/, backups/, exports/ and config.json
  games_dir        folder holding local game folders
  bundles_dir      folder holding exported single-file definitions (<id>.json)
  remote_api_url   base URL of the remote game API ("" disables cloud games)
  remote_timeout   HTTP timeout in seconds
  auto_backup      write a backup file on every save
  max_backups      backups kept after rotation
  namespace_slots  prefix slot names with the game they belong to
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Mapping

from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

ROOT = Path(__file__).parent.parent
ENV_PREFIX = "STORYLOOM_"

_DEFAULTS: dict[str, Any] = {
    "data_dir": ROOT / "data",
    "games_dir": ROOT / "games",
    "bundles_dir": ROOT / "bundles",
    "remote_api_url": "",
    "remote_timeout": 30.0,
    "auto_backup": True,
    "max_backups": 5,
    "namespace_slots": False,
}

_TRUE = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    data_dir: Path = _DEFAULTS["data_dir"]
    games_dir: Path = _DEFAULTS["games_dir"]
    bundles_dir: Path = _DEFAULTS["bundles_dir"]
    remote_api_url: str = _DEFAULTS["remote_api_url"]
    remote_timeout: float = _DEFAULTS["remote_timeout"]
    auto_backup: bool = _DEFAULTS["auto_backup"]
    max_backups: int = Field(default=_DEFAULTS["max_backups"], ge=0)
    namespace_slots: bool = _DEFAULTS["namespace_slots"]

    @property
    def saves_dir(self) -> Path:
        return self.data_dir / "saves"

    @property
    def backups_dir(self) -> Path:
        return self.data_dir / "backups"

    @property
    def exports_dir(self) -> Path:
        return self.data_dir / "exports"


def _env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for key, default in _DEFAULTS.items():
        raw = env.get(ENV_PREFIX + key.upper())
        if raw is None or raw == "":
            continue
        if isinstance(default, bool):
            overrides[key] = raw.strip().lower() in _TRUE
        else:
            overrides[key] = raw
    return overrides


def _stored_config(data_dir: Path) -> dict[str, Any]:
    path = data_dir / "config.json"
    if not path.is_file():
        return {}
    try:
        stored = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        logger.warning("Ignoring unreadable %s: %s", path, e)
        return {}
    if not isinstance(stored, dict):
        logger.warning("Ignoring %s: expected a JSON object", path)
        return {}
    return {k: v for k, v in stored.items() if k in _DEFAULTS}


def load_settings(
    data_dir: Path | None = None,
    env: Mapping[str, str] | None = None,
    **overrides: Any,
) -> Settings:
    """Resolve settings from defaults, config.json, the environment and explicit overrides."""
    if env is None:
        load_dotenv(ROOT / ".env")
        env = os.environ

    from_env = _env_overrides(env)
    resolved_dir = Path(data_dir or from_env.get("data_dir") or _DEFAULTS["data_dir"])

    fields: dict[str, Any] = dict(_DEFAULTS)
    fields.update(_stored_config(resolved_dir))
    fields.update(from_env)
    fields["data_dir"] = resolved_dir
    fields.update(overrides)
    return Settings.model_validate(fields)

