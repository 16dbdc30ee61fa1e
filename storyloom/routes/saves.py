"""Save slot, export/import and backup endpoints.

Imports take the raw file as the request body; the single-save import
names the slot after the ``filename`` query parameter.
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import FileResponse

from storyloom.engine import Engine
from storyloom.errors import StoryError

from .deps import get_engine, http_error

router = APIRouter()


@router.get("/saves")
async def list_saves(engine: Engine = Depends(get_engine)):
    """All save slots, most recent first."""
    return [s.model_dump(by_alias=True) for s in engine.store.get_save_slots()]


@router.delete("/saves")
async def clear_saves(engine: Engine = Depends(get_engine)):
    """Delete every save slot."""
    engine.store.clear_all_saves()
    return {"ok": True}


@router.post("/saves/import")
async def import_save(request: Request, filename: str, engine: Engine = Depends(get_engine)):
    """Import a single .vnsave file into the slot named by filename."""
    try:
        slot = engine.store.import_save_bytes(await request.body(), filename)
    except StoryError as e:
        raise http_error(e)
    return {"name": slot, "success": True}


@router.post("/saves/{slot}")
async def save(slot: str, engine: Engine = Depends(get_engine)):
    """Save the current game state into a slot."""
    try:
        await engine.save_game(slot)
    except StoryError as e:
        raise http_error(e)
    return {"ok": True, "slot": engine.slot_name(slot)}


@router.post("/saves/{slot}/load")
async def load(slot: str, engine: Engine = Depends(get_engine)):
    """Restore a slot (loading its game first if needed)."""
    try:
        restored = await engine.load_save(slot)
    except StoryError as e:
        raise http_error(e)
    if not restored:
        raise HTTPException(404, "Save not found")
    return engine.snapshot()


@router.delete("/saves/{slot}")
async def delete_save(slot: str, engine: Engine = Depends(get_engine)):
    """Delete a single save slot."""
    if not engine.store.delete_save(engine.slot_name(slot)):
        raise HTTPException(404, "Save not found")
    return {"ok": True}


@router.get("/saves/{slot}/export")
async def export_save(slot: str, engine: Engine = Depends(get_engine)):
    """Download a slot as a .vnsave file."""
    try:
        path = engine.store.export_save_to_file(engine.slot_name(slot))
    except StoryError as e:
        raise http_error(e)
    if path is None:
        raise HTTPException(404, "Save not found")
    return FileResponse(path, filename=path.name, media_type="application/json")


@router.get("/saves-bundle")
async def export_bundle(engine: Engine = Depends(get_engine)):
    """Download every slot as one .vnbackup file."""
    try:
        path = engine.store.export_all_saves()
    except StoryError as e:
        raise http_error(e)
    return FileResponse(path, filename=path.name, media_type="application/json")


@router.post("/saves-bundle/import")
async def import_bundle(request: Request, engine: Engine = Depends(get_engine)):
    """Merge a .vnbackup file into the store, overwriting slots by name."""
    try:
        imported = engine.store.import_all_saves(await request.body())
    except StoryError as e:
        raise http_error(e)
    return {"imported": imported, "success": True}


@router.get("/backups")
async def list_backups(engine: Engine = Depends(get_engine)):
    """Automatic backups still kept, oldest first."""
    return [
        {"seq": b.seq, "slot": b.slot, "file": b.path.name, "record": b.record}
        for b in engine.store.list_backups()
    ]
