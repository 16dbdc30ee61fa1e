"""Asset sources — where a game's JSON, images and audio come from.

The engine talks to one protocol:

    async def load_json(self, key: str) -> Any: ...
    async def load_image(self, key: str) -> bytes: ...
    async def load_audio(self, key: str) -> bytes: ...
    async def preload_images(self, keys: Iterable[str]) -> None: ...

Images and audio are returned as raw bytes; decoding them is the
presenter's business.

Three implementations, one per definition source:

    LocalAssetSource   — files under a game folder on disk.
    RemoteAssetSource  — a game fetched from the remote API; media keys are
                         absolute http(s) URLs fetched with httpx.
    BundledAssetSource — an exported single-file game; media are embedded
                         as data: URLs (or bare base64) in an assets map.

Every implementation caches by key and raises AssetError on failure.
preload_images is best-effort: failures are logged, never raised.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
from pathlib import Path
from typing import Any, Iterable, Mapping, Protocol

import httpx

from storyloom.errors import AssetError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol — every asset source must match these signatures
# ---------------------------------------------------------------------------

class AssetSource(Protocol):
    async def load_json(self, key: str) -> Any: ...

    async def load_image(self, key: str) -> bytes: ...

    async def load_audio(self, key: str) -> bytes: ...

    async def preload_images(self, keys: Iterable[str]) -> None: ...


class _CachingSource:
    """Shared cache and preload behaviour. Subclasses implement the _fetch_* hooks."""

    def __init__(self) -> None:
        self._json_cache: dict[str, Any] = {}
        self._binary_cache: dict[str, bytes] = {}

    async def _fetch_json(self, key: str) -> Any:
        raise NotImplementedError

    async def _fetch_binary(self, key: str, kind: str) -> bytes:
        raise NotImplementedError

    async def load_json(self, key: str) -> Any:
        if key not in self._json_cache:
            self._json_cache[key] = await self._fetch_json(key)
        return self._json_cache[key]

    async def load_image(self, key: str) -> bytes:
        return await self._load_binary(key, "image")

    async def load_audio(self, key: str) -> bytes:
        return await self._load_binary(key, "audio")

    async def _load_binary(self, key: str, kind: str) -> bytes:
        if key not in self._binary_cache:
            self._binary_cache[key] = await self._fetch_binary(key, kind)
        return self._binary_cache[key]

    async def preload_images(self, keys: Iterable[str]) -> None:
        unique = list(dict.fromkeys(keys))
        results = await asyncio.gather(
            *(self.load_image(k) for k in unique), return_exceptions=True
        )
        failed = [(k, r) for k, r in zip(unique, results) if isinstance(r, BaseException)]
        for key, err in failed:
            logger.warning("Preload failed for %r: %s", key, err)
        logger.debug("preloaded %d/%d images", len(unique) - len(failed), len(unique))


# ---------------------------------------------------------------------------
# LocalAssetSource — a game folder on disk
# ---------------------------------------------------------------------------

class LocalAssetSource(_CachingSource):
    """Reads keys as paths relative to a game folder.

    Keys that would escape the folder (``../secret``) are rejected.
    """

    def __init__(self, folder: Path) -> None:
        super().__init__()
        self.folder = folder.resolve()

    def _path(self, key: str) -> Path:
        path = (self.folder / key).resolve()
        if not path.is_relative_to(self.folder):
            raise AssetError(f"Asset path escapes game folder: {key}")
        return path

    async def _fetch_json(self, key: str) -> Any:
        path = self._path(key)
        try:
            return json.loads(path.read_text())
        except FileNotFoundError as e:
            raise AssetError(f"Missing file: {key}") from e
        except json.JSONDecodeError as e:
            raise AssetError(f"Invalid JSON in {key}: {e}") from e
        except OSError as e:
            raise AssetError(f"Cannot read {key}: {e}") from e

    async def _fetch_binary(self, key: str, kind: str) -> bytes:
        try:
            return self._path(key).read_bytes()
        except OSError as e:
            raise AssetError(f"Failed to load {kind}: {key}") from e


# ---------------------------------------------------------------------------
# RemoteAssetSource — a game served by the remote API
# ---------------------------------------------------------------------------

class RemoteAssetSource(_CachingSource):
    """Serves an already-fetched remote game.

    Definition JSON comes from the fetched game itself. Media keys must be
    absolute URLs (the remote store hands out public URLs); bare file names
    cannot be resolved and raise AssetError.

    Args:
        game:    The game object returned by the remote API
                 ({config, characters, events, ...}).
        timeout: HTTP timeout in seconds for media fetches.
    """

    def __init__(self, game: Mapping[str, Any], timeout: float = 30.0) -> None:
        super().__init__()
        self._game = game
        self._timeout = timeout

    async def _fetch_json(self, key: str) -> Any:
        return _definition_json(self._game, key, "Cloud")

    async def _fetch_binary(self, key: str, kind: str) -> bytes:
        if not key.startswith(("http://", "https://")):
            raise AssetError(f"Cloud {kind} filename not resolvable: {key}")

        logger.debug("fetch %s url=%s", kind, key)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(key)
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise AssetError(f"Cannot connect to fetch {kind}: {key}") from e
        except httpx.HTTPStatusError as e:
            raise AssetError(
                f"Failed to load {kind}: {key} (HTTP {e.response.status_code})"
            ) from e
        except httpx.TimeoutException as e:
            raise AssetError(f"Timed out loading {kind}: {key}") from e
        return resp.content


# ---------------------------------------------------------------------------
# BundledAssetSource — an exported single-file game
# ---------------------------------------------------------------------------

class BundledAssetSource(_CachingSource):
    """Serves a bundled game whose media are embedded in an assets map.

    Asset values are ``data:<mime>;base64,<payload>`` URLs or bare base64.
    """

    def __init__(self, game: Mapping[str, Any], assets: Mapping[str, str] | None = None) -> None:
        super().__init__()
        self._game = game
        self._assets = dict(assets or {})

    async def _fetch_json(self, key: str) -> Any:
        return _definition_json(self._game, key, "Bundled")

    async def _fetch_binary(self, key: str, kind: str) -> bytes:
        encoded = self._assets.get(key)
        if encoded is None:
            raise AssetError(f"Bundled {kind} not found: {key}")
        return decode_data_url(encoded)


def decode_data_url(value: str) -> bytes:
    """Decode a base64 data: URL, or a bare base64 string, to bytes."""
    payload = value
    if value.startswith("data:"):
        header, sep, payload = value.partition(",")
        if not sep or not header.endswith(";base64"):
            raise AssetError("Only base64 data URLs are supported")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise AssetError(f"Invalid base64 asset data: {e}") from e


def _definition_json(game: Mapping[str, Any], key: str, label: str) -> Any:
    """In-memory games answer the three definition keys a local folder would."""
    if key == "config.json":
        return game.get("config")
    if key == "characters.json":
        return {"characters": game.get("characters") or {}}
    if key in ("events.json", "story.json"):
        return {"events": game.get("events") or {}}
    raise AssetError(f"{label} JSON not found: {key}")
