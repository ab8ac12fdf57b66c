"""Line-oriented runner for a textquest session.

Reads player input on a daemon thread and feeds it to the control loop,
which polls the session every tick and prints new transcript entries and
scene updates as they arrive.

Usage:
    python -m textquest [--debug] [--no-scene] [--env-file PATH]
"""

import argparse
import asyncio
import logging
import sys
import threading
from pathlib import Path

from textquest.config import Settings
from textquest.credentials import (
    CredentialError,
    candidate_keys,
    normalize_key,
    upsert_env_key,
    validate_api_key,
)
from textquest.models import LogEntry
from textquest.session import Session

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="textquest — narrated text adventure")
    parser.add_argument("-d", "--debug", action="store_true",
                        help="Debug logging and output diagnostics in the transcript")
    parser.add_argument("--no-scene", action="store_true",
                        help="Do not request ASCII scene renderings")
    parser.add_argument("--env-file", type=Path, default=Path(".env"),
                        help="Credential/settings file (default: ./.env)")
    return parser


def render_entry(entry: LogEntry) -> str:
    """Format one transcript entry, indenting continuation lines under the label."""
    if entry.kind == "user":
        prefix = f"{entry.speaker or 'You'}: "
    elif entry.kind == "assistant":
        prefix = f"{entry.speaker or 'Narrator'}: "
    elif entry.kind == "error":
        prefix = "Error: "
    else:
        prefix = ""
    indent = " " * len(prefix)
    lines = entry.text.split("\n") or [""]
    rendered = [prefix + lines[0]] + [indent + line for line in lines[1:]]
    return "\n".join(rendered)


async def resolve_api_key(env_path: Path, settings: Settings) -> str:
    """Return a validated API key, prompting for one if none is stored."""
    for source, key in candidate_keys(env_path):
        try:
            await validate_api_key(key, model=settings.model)
            return key
        except CredentialError as e:
            print(f"API key from {source} is invalid: {e}")

    while True:
        raw = await asyncio.to_thread(input, "API key not found. Paste your API key and press Enter: ")
        key = normalize_key(raw)
        if not key:
            print("No API key provided. Please try again.")
            continue
        print("Validating API key...")
        try:
            await validate_api_key(key, model=settings.model)
        except CredentialError as e:
            print(f"API key validation failed: {e}")
            continue
        upsert_env_key(env_path, key)
        return key


def _start_reader(loop: asyncio.AbstractEventLoop, queue: "asyncio.Queue[str | None]") -> None:
    def read() -> None:
        for line in sys.stdin:
            loop.call_soon_threadsafe(queue.put_nowait, line)
        loop.call_soon_threadsafe(queue.put_nowait, None)

    threading.Thread(target=read, name="stdin-reader", daemon=True).start()


class _Printer:
    """Prints whatever changed in the session since the last call."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.shown = 0
        self.last: LogEntry | None = None
        self.scene = session.scene_text
        self.status = session.status

    def update(self) -> None:
        session = self.session

        if session.status != self.status:
            self.status = session.status
            if self.status in ("Thinking...", "Error"):
                print(f"[{session.status_line()}]")

        # reset cleared the transcript
        if self.shown and (
            len(session.log) < self.shown or session.log[self.shown - 1] is not self.last
        ):
            self.shown = 0
        for entry in session.log[self.shown:]:
            print(render_entry(entry))
            print()
        self.shown = len(session.log)
        self.last = session.log[-1] if session.log else None

        if session.scene_text != self.scene:
            self.scene = session.scene_text
            print(self.scene)
            print()


async def run_loop(session: Session, lines: "asyncio.Queue[str | None]") -> None:
    """Poll the session each tick until the player quits or input ends.

    When input ends, outstanding turn and scene requests are awaited and
    their output printed before returning.
    """
    printer = _Printer(session)
    while True:
        session.poll()
        printer.update()

        try:
            line = await asyncio.wait_for(lines.get(), timeout=session.settings.poll_interval)
        except asyncio.TimeoutError:
            continue
        if line is None:
            break
        if session.submit(line):
            return

    session.poll()
    printer.update()
    await session.settle()
    printer.update()


async def _play(api_key: str, settings: Settings) -> None:
    session = Session.connect(api_key, settings)
    queue: asyncio.Queue[str | None] = asyncio.Queue()
    _start_reader(asyncio.get_running_loop(), queue)
    await run_loop(session, queue)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    settings = Settings.from_env(args.env_file)
    if args.debug:
        settings.verbose = True
    if args.no_scene:
        settings.scene_enabled = False

    try:
        api_key = asyncio.run(resolve_api_key(args.env_file, settings))
    except (EOFError, KeyboardInterrupt):
        print("\nNo API key available; exiting.")
        return 1

    try:
        asyncio.run(_play(api_key, settings))
    except KeyboardInterrupt:
        pass
    return 0
