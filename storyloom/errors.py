"""Exception hierarchy.

    StoryError
      DefinitionError              config / characters / events unusable
      TraversalError               the current event cannot be shown
        EventNotFoundError
        EventConditionsNotMetError
      AssetError                   image / audio / JSON fetch failed
      StorageError                 a save write failed
        SaveParseError             import bytes are not save data
"""

from __future__ import annotations


class StoryError(Exception):
    """Base class for every error raised by storyloom."""


class DefinitionError(StoryError):
    """Raised when a game definition is missing or malformed."""


class TraversalError(StoryError):
    """Raised when the engine cannot render the current event."""

    def __init__(self, message: str, event_id: str | None = None) -> None:
        super().__init__(message)
        self.event_id = event_id


class EventNotFoundError(TraversalError):
    """The current event id does not exist in the event table."""


class EventConditionsNotMetError(TraversalError):
    """The current event is gated by conditions the flags do not satisfy."""


class AssetError(StoryError):
    """Raised when an asset source cannot supply a key."""


class StorageError(StoryError):
    """Raised when the save store cannot write."""


class SaveParseError(StorageError):
    """Raised when imported bytes are not valid serialized save data."""
