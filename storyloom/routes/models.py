"""Pydantic request models for API endpoints."""

from pydantic import BaseModel


class LoadGameBody(BaseModel):
    game: str


class ChooseBody(BaseModel):
    index: int
