"""One-shot and watch commands for headless use of the drive server."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Callable, Optional, TextIO, Tuple

import aiohttp

from oqta_client.client.config import ClientConfig
from oqta_client.client.control.http_api import DriveApi, DriveApiError
from oqta_client.client.control.session import (
    CONFIRM_UNLOAD,
    DriveSession,
    MappingLockedError,
)
from oqta_client.client.control.uploads import request_for_file, request_for_reference
from oqta_client.client.state.range_solver import MAPPING_OFF, to_wire_value
from oqta_client.client.state.reconciler import (
    MappingView,
    UiState,
    project_mapping,
    reconcile,
    rumble_hint,
)
from oqta_client.protocol import REFERENCE_PREFIX, SearchResult, WatchUpdate

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def format_ui(ui: UiState) -> str:
    lines = [f"client: {ui.client.label or '-'}"]
    for view in ui.slots:
        flag = " " if view.enabled else "*"
        lines.append(f"{flag}drive {view.slot}: {view.display_status:<14} {view.label}")
    return "\n".join(lines)


def format_mapping(mapping: MappingView) -> str:
    if mapping.start == MAPPING_OFF:
        text = "hardware drives: off"
    else:
        text = f"hardware drives: {mapping.start}-{mapping.end}"
    return text + (" (locked)" if mapping.locked else "")


class ConsoleView:
    """``DriveView`` writing to a text stream; confirmations read from ``ask``."""

    def __init__(
        self,
        out: TextIO = sys.stdout,
        *,
        assume_yes: bool = False,
        ask: Callable[[str], str] = input,
    ) -> None:
        self.out = out
        self.assume_yes = assume_yes
        self._ask = ask

    def write(self, text: str) -> None:
        print(text, file=self.out, flush=True)

    def render(self, ui: UiState) -> None:
        self.write(format_ui(ui))

    def render_mapping(self, mapping: MappingView) -> None:
        self.write(format_mapping(mapping))

    def render_rumble(self, level: Optional[int], hint: str) -> None:
        self.write(f"rumble: {hint}")

    def render_version(self, version: str) -> None:
        self.write(f"server version: {version}")

    def render_search_results(self, term: str, result: SearchResult) -> None:
        self.write(f"{result.total} matches for {term!r}")
        for hit in result.hits:
            self.write(f"  {hit}")

    def render_file_list(self, slot: int, text: str) -> None:
        self.write(text)

    def show_tab(self, name: str) -> None:
        pass

    async def confirm(self, title: str, message: str) -> bool:
        if self.assume_yes:
            return True
        self.write(f"{title}\n{message}")
        loop = asyncio.get_running_loop()
        answer = await loop.run_in_executor(None, self._ask, "[y/N] ")
        return answer.strip().lower() in ("y", "yes")

    async def pick_file(self, slot: int) -> Optional[Tuple[str, bytes]]:
        return None


# --- commands -----------------------------------------------------------------


async def cmd_ls(api: DriveApi, args: argparse.Namespace, view: ConsoleView) -> int:
    update = WatchUpdate(client=await api.status(), drives=await api.list_drives())
    view.render(reconcile(UiState(), update))
    return EXIT_OK


async def cmd_load(api: DriveApi, args: argparse.Namespace, view: ConsoleView) -> int:
    source: str = args.source
    if args.ref or source.startswith(REFERENCE_PREFIX):
        request = request_for_reference(args.slot, source)
    else:
        path = Path(source)
        request = request_for_file(args.slot, path.name, path.read_bytes())
    reply = await api.upload(request)
    view.write(reply.strip() or f"loaded {request.name!r} into drive {args.slot}")
    return EXIT_OK


async def cmd_unload(api: DriveApi, args: argparse.Namespace, view: ConsoleView) -> int:
    if not await view.confirm(*CONFIRM_UNLOAD):
        return EXIT_FAILED
    await api.unload(args.slot)
    return EXIT_OK


async def cmd_files(api: DriveApi, args: argparse.Namespace, view: ConsoleView) -> int:
    text = await api.drive_listing(args.slot)
    view.render_file_list(args.slot, f"drive {args.slot}: {text.strip()}")
    return EXIT_OK


async def cmd_map(api: DriveApi, args: argparse.Namespace, view: ConsoleView) -> int:
    session = DriveSession(api, view)
    try:
        current = await api.get_mapping()
        session.mapping = current
        if args.start is None:
            view.render_mapping(project_mapping(current))
            return EXIT_OK
        end = args.end if args.end is not None else args.start
        if not await session.set_mapping(args.start, end):
            return EXIT_FAILED
        return EXIT_OK
    finally:
        await session.close()


async def cmd_search(api: DriveApi, args: argparse.Namespace, view: ConsoleView) -> int:
    term = " ".join(args.term)
    result = await api.search(term, items=args.items)
    view.render_search_results(term, result)
    return EXIT_OK


async def cmd_config(api: DriveApi, args: argparse.Namespace, view: ConsoleView) -> int:
    if args.level is not None:
        await api.set_rumble(args.level)
    config = await api.get_rumble()
    view.render_rumble(config.rumble, rumble_hint(config.rumble))
    return EXIT_OK


async def cmd_resync(api: DriveApi, args: argparse.Namespace, view: ConsoleView) -> int:
    await api.resync()
    return EXIT_OK


async def cmd_version(api: DriveApi, args: argparse.Namespace, view: ConsoleView) -> int:
    view.render_version(await api.version())
    return EXIT_OK


async def cmd_watch(api: DriveApi, args: argparse.Namespace, view: ConsoleView, config: ClientConfig) -> int:
    session = DriveSession(api, view, config)
    try:
        await session.start()
        stop = asyncio.Event()
        await stop.wait()
    finally:
        await session.close()
    return EXIT_OK


COMMANDS = {
    "ls": cmd_ls,
    "load": cmd_load,
    "unload": cmd_unload,
    "files": cmd_files,
    "map": cmd_map,
    "search": cmd_search,
    "config": cmd_config,
    "resync": cmd_resync,
    "version": cmd_version,
}


def _mapping_value(text: str):
    if text in (MAPPING_OFF, "0", "off"):
        return MAPPING_OFF
    value = int(text)
    to_wire_value(value)
    return value


def add_commands(subparsers) -> None:
    """Register the headless subcommands on an argparse subparsers object."""
    subparsers.add_parser("ls", help="show the drive list and client status")

    p = subparsers.add_parser("load", help="load a cartridge file or repository item into a drive")
    p.add_argument("slot", type=int)
    p.add_argument("source", help="local file, or repository item with --ref / repo:// prefix")
    p.add_argument("--ref", action="store_true", help="treat SOURCE as a repository reference")

    p = subparsers.add_parser("unload", help="unload the cartridge from a drive")
    p.add_argument("slot", type=int)
    p.add_argument("-y", "--yes", action="store_true", help="do not ask for confirmation")

    p = subparsers.add_parser("files", help="list the files on a loaded cartridge")
    p.add_argument("slot", type=int)

    p = subparsers.add_parser("map", help="show or set the hardware drive range")
    p.add_argument("start", nargs="?", type=_mapping_value, help="first hardware drive, or - to disable")
    p.add_argument("end", nargs="?", type=_mapping_value, help="last hardware drive")
    p.add_argument("-y", "--yes", action="store_true", help="do not ask for confirmation")

    p = subparsers.add_parser("search", help="search the cartridge repository")
    p.add_argument("term", nargs="+")
    p.add_argument("--items", type=int, default=None, help="maximum number of hits")

    p = subparsers.add_parser("config", help="show or set the rumble level")
    p.add_argument("level", nargs="?", type=int, help="new rumble level 0..255")

    subparsers.add_parser("resync", help="force re-detection of the connected client")
    subparsers.add_parser("version", help="show the server version")
    subparsers.add_parser("watch", help="print every state update until interrupted")


async def _run_command(args: argparse.Namespace, config: ClientConfig, view: ConsoleView) -> int:
    async with DriveApi(config.address, request_timeout_s=config.request_timeout_s) as api:
        if args.command == "watch":
            return await cmd_watch(api, args, view, config)
        if args.command == "search" and args.items is None:
            args.items = config.search_items
        return await COMMANDS[args.command](api, args, view)


def run_command(args: argparse.Namespace, config: ClientConfig, out: TextIO = sys.stdout) -> int:
    """Run one headless command and return the process exit code."""
    view = ConsoleView(out, assume_yes=bool(getattr(args, "yes", False)))
    try:
        return asyncio.run(_run_command(args, config, view))
    except KeyboardInterrupt:
        return EXIT_OK
    except MappingLockedError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_FAILED
    except DriveApiError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_FAILED
    except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
        print(f"error: cannot reach {config.address}: {str(exc) or exc.__class__.__name__}", file=sys.stderr)
        return EXIT_FAILED
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_USAGE
