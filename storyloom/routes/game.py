"""Play endpoints: load a game, read the current frame, choose, restart, media."""

import mimetypes

from fastapi import APIRouter, Depends, HTTPException, Response

from storyloom.engine import Engine
from storyloom.errors import StoryError
from storyloom.presentation import RecordingPresenter

from .deps import get_engine, get_presenter, http_error
from .models import ChooseBody, LoadGameBody

router = APIRouter()


def _view(engine: Engine, presenter: RecordingPresenter) -> dict:
    frame = presenter.frame
    return {
        "session": engine.snapshot(),
        "frame": frame.model_dump(by_alias=True) if frame else None,
        "character": presenter.character.model_dump() if presenter.character else None,
        "choices": [c.model_dump(by_alias=True) for c in presenter.choices],
    }


@router.post("/game/load")
async def load_game(
    body: LoadGameBody,
    engine: Engine = Depends(get_engine),
    presenter: RecordingPresenter = Depends(get_presenter),
):
    """Load a game by reference (folder, cloud_<id> or deployed/<id>) and render its start."""
    try:
        await engine.load_game(body.game)
    except StoryError as e:
        raise http_error(e)
    return _view(engine, presenter)


@router.get("/game/current")
async def current(
    engine: Engine = Depends(get_engine),
    presenter: RecordingPresenter = Depends(get_presenter),
):
    """The frame currently on screen plus the session summary."""
    return _view(engine, presenter)


@router.post("/game/choose")
async def choose(
    body: ChooseBody,
    engine: Engine = Depends(get_engine),
    presenter: RecordingPresenter = Depends(get_presenter),
):
    """Pick one of the displayed choices by position."""
    try:
        await presenter.pick(body.index)
    except IndexError:
        raise HTTPException(404, "Choice not found")
    except StoryError as e:
        raise http_error(e)
    return _view(engine, presenter)


@router.post("/game/restart")
async def restart(
    engine: Engine = Depends(get_engine),
    presenter: RecordingPresenter = Depends(get_presenter),
):
    """Start the loaded game over from its start event."""
    try:
        await engine.restart_game()
    except StoryError as e:
        raise http_error(e)
    return _view(engine, presenter)


@router.get("/game/background")
async def background(presenter: RecordingPresenter = Depends(get_presenter)):
    """Background image of the current frame."""
    frame = presenter.frame
    if frame is None or presenter.background is None:
        raise HTTPException(404, "No background")
    return _media(frame.background, presenter.background)


@router.get("/game/sprite")
async def sprite(presenter: RecordingPresenter = Depends(get_presenter)):
    """Character sprite of the current frame."""
    if presenter.character is None or presenter.character_image is None:
        raise HTTPException(404, "No character sprite")
    ref = presenter.frame.character if presenter.frame else None
    key = presenter.character.get_sprite(ref.sprite if ref else None)
    return _media(key, presenter.character_image)


def _media(key: str | None, data: bytes) -> Response:
    media_type, _ = mimetypes.guess_type(key or "")
    return Response(content=data, media_type=media_type or "application/octet-stream")
