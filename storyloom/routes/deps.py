"""Shared route dependencies and error mapping."""

from fastapi import HTTPException, Request

from storyloom.engine import Engine
from storyloom.errors import (
    AssetError,
    DefinitionError,
    EventNotFoundError,
    SaveParseError,
    StoryError,
    TraversalError,
)
from storyloom.presentation import RecordingPresenter


def get_engine(request: Request) -> Engine:
    return request.app.state.engine


def get_presenter(request: Request) -> RecordingPresenter:
    return request.app.state.presenter


def http_error(error: StoryError) -> HTTPException:
    """Map an engine error to the HTTP status a client should see."""
    if isinstance(error, EventNotFoundError):
        return HTTPException(404, str(error))
    if isinstance(error, TraversalError):
        return HTTPException(409, str(error))
    if isinstance(error, (DefinitionError, SaveParseError)):
        return HTTPException(400, str(error))
    if isinstance(error, AssetError):
        return HTTPException(502, str(error))
    return HTTPException(500, str(error))
