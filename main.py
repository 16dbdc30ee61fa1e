"""Storyloom — command-line launcher.

  python main.py play <game>     play a game in the terminal
  python main.py serve           run the HTTP API
  python main.py check <folder>  validate a local game folder
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from storyloom.config import load_settings
from storyloom.definitions import load_local_game, validate_definition
from storyloom.engine import Engine
from storyloom.errors import StoryError
from storyloom.presentation import ConsolePresenter


async def play(game: str, data_dir: Path | None, slot: str | None) -> int:
    settings = load_settings(data_dir)
    folder = Path(game)
    if folder.is_dir():
        # A folder given on the command line is played from where it lies
        settings = settings.model_copy(update={"games_dir": folder.resolve().parent})
        game = folder.resolve().name
    presenter = ConsolePresenter(sys.stdout)
    engine = Engine(presenter, settings)

    try:
        if slot:
            if not await engine.load_save(slot):
                print(f"No save in slot {slot!r}; starting {game}")
                await engine.load_game(game)
        else:
            await engine.load_game(game)
    except StoryError:
        return 1

    while True:
        choices = presenter.choices
        if not choices:
            return 0
        line = input("> ").strip()
        raw = line.lower()
        if raw in ("q", "quit"):
            return 0
        if raw.startswith("save"):
            name = line[4:].strip() or "autosave"
            await engine.save_game(name)
            print(f"Saved to {name!r}")
            continue
        if raw == "restart":
            try:
                await engine.restart_game()
            except StoryError:
                return 1
            continue
        if not raw.isdigit() or not 1 <= int(raw) <= len(choices):
            print("Choose a number, 'save [slot]', 'restart' or 'q'.")
            continue
        try:
            await presenter.on_select(choices[int(raw) - 1])
        except StoryError:
            return 1


def check(folder: Path) -> int:
    try:
        loaded = asyncio.run(load_local_game(folder))
    except StoryError as e:
        print(f"[ERROR] {e}")
        return 1

    report = validate_definition(loaded.definition, folder)
    definition = loaded.definition
    print(f"Game folder: {folder}")
    print(f"Characters: {len(definition.characters)}  Events: {len(definition.events)}")
    for warning in report.warnings:
        print(f"[WARNING] {warning}")
    for error in report.errors:
        print(f"[ERROR] {error}")
    if report.ok:
        print("No critical errors found.")
        return 0
    print(f"{len(report.errors)} error(s); fix them before running the game.")
    return 1


def serve(host: str, port: int, data_dir: Path | None) -> int:
    import uvicorn

    if data_dir:
        os.environ["STORYLOOM_DATA_DIR"] = str(data_dir.resolve())
    uvicorn.run("storyloom.app:create_app", factory=True, host=host, port=port)
    return 0


def main():
    parser = argparse.ArgumentParser(description="Storyloom visual-novel engine")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Save storage directory (default: ./data)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p_play = sub.add_parser("play", help="Play a game in the terminal")
    p_play.add_argument("game", help="Game folder, cloud_<id> or deployed/<id>")
    p_play.add_argument("--slot", default=None, help="Resume from a save slot")

    p_serve = sub.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"))
    p_serve.add_argument("--port", type=int, default=int(os.getenv("PORT", "13015")))

    p_check = sub.add_parser("check", help="Validate a local game folder")
    p_check.add_argument("folder", type=Path)

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "play":
        code = asyncio.run(play(args.game, args.data_dir, args.slot))
    elif args.command == "serve":
        code = serve(args.host, args.port, args.data_dir)
    else:
        code = check(args.folder)
    sys.exit(code)


if __name__ == "__main__":
    main()
