"""Presentation collaborators.

The engine hands every resolved event to a presenter matching:

    def render_event(self, frame, character, background, character_image) -> None: ...
    def render_choices(self, choices, on_select) -> None: ...
    def show_error(self, message) -> None: ...

``on_select`` is an async callback; awaiting ``on_select(choice)`` advances
the story and renders the next event. show_error withdraws any pending
choices, so a stale callback is never invoked after a failure.

Two implementations are provided:

    RecordingPresenter — keeps the last frame, its media and the pending
                         choices in memory. The HTTP API serves from it;
                         tests assert against it.
    ConsolePresenter   — prints to a terminal. Used by `main.py play`.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Protocol, TextIO

from storyloom.models import Character, Choice, Frame

OnSelect = Callable[[Choice], Awaitable[Frame]]


class Presenter(Protocol):
    def render_event(
        self,
        frame: Frame,
        character: Character | None,
        background: bytes | None,
        character_image: bytes | None,
    ) -> None: ...

    def render_choices(self, choices: list[Choice], on_select: OnSelect) -> None: ...

    def show_error(self, message: str) -> None: ...


class RecordingPresenter:
    """Records what would be on screen."""

    def __init__(self) -> None:
        self.frames: list[Frame] = []
        self.character: Character | None = None
        self.background: bytes | None = None
        self.character_image: bytes | None = None
        self.choices: list[Choice] = []
        self.errors: list[str] = []
        self._on_select: OnSelect | None = None

    @property
    def frame(self) -> Frame | None:
        return self.frames[-1] if self.frames else None

    def render_event(self, frame, character, background, character_image) -> None:
        self.frames.append(frame)
        self.character = character
        self.background = background
        self.character_image = character_image
        self.choices = []
        self._on_select = None

    def render_choices(self, choices, on_select) -> None:
        self.choices = list(choices)
        self._on_select = on_select

    def show_error(self, message: str) -> None:
        self.errors.append(message)
        self.choices = []
        self._on_select = None

    async def pick(self, index: int) -> Frame:
        """Select one of the displayed choices by position."""
        if self._on_select is None or not 0 <= index < len(self.choices):
            raise IndexError(f"No choice at position {index}")
        return await self._on_select(self.choices[index])


class ConsolePresenter:
    """Plain-text rendering for terminal play."""

    def __init__(self, out: TextIO) -> None:
        self._out = out
        self.choices: list[Choice] = []
        self.on_select: OnSelect | None = None

    def _print(self, text: str = "") -> None:
        print(text, file=self._out, flush=True)

    def render_event(self, frame, character, background, character_image) -> None:
        self._print()
        if frame.background:
            self._print(f"[{frame.background}]")
        if character is not None:
            self._print(f"{character.name}:")
        if frame.text:
            self._print(f"  {frame.text}" if character is not None else frame.text)
        self.choices = []
        self.on_select = None

    def render_choices(self, choices, on_select) -> None:
        self.choices = list(choices)
        self.on_select = on_select
        for i, choice in enumerate(self.choices, start=1):
            self._print(f"  {i}) {choice.text}")
        if not self.choices:
            self._print("  — The End —")

    def show_error(self, message: str) -> None:
        self._print(f"[!] {message}")
        self.choices = []
        self.on_select = None
