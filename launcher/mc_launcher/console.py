"""
console.py — Console output parsing, classification and formatting
-------------------------------------------------------------------
Turns one logical console line into a ParsedLine, maps it to a domain event
(join/leave/ready/eula-required) and renders it back for display.
"""

from __future__ import annotations
import html
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, TextIO, Union, TYPE_CHECKING

from . import events
from .logging_setup import get_logger

if TYPE_CHECKING:
    from .server import Server

logger = get_logger("mc.launcher.console")


@dataclass(frozen=True)
class ParsedLine:
    message: str
    timestamp: Optional[str] = None
    thread: Optional[str] = None
    level: Optional[str] = None
    context: Optional[str] = None


@dataclass(frozen=True)
class Join:
    name: str


@dataclass(frozen=True)
class Leave:
    name: str


@dataclass(frozen=True)
class Ready:
    duration: Optional[float] = None


@dataclass(frozen=True)
class EulaRequired:
    pass


ConsoleEvent = Union[Join, Leave, Ready, EulaRequired]


class ColorMode(str, Enum):
    TERMINAL = "terminal"
    HTML = "html"
    NONE = "none"


_ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]")

_TIME = r"(\d{1,2}:\d{2}:\d{2}(?:\.\d+)?)"

# order matters: first match wins
LINE_PATTERNS = [
    # [14:47:20] [Worker-Main-2/INFO]: Preparing spawn area: 71%
    ("standard", re.compile(_TIME + r"\] \[([^\]]+?)/(\w+)\]: (.*)", re.DOTALL)),
    # [14:47:20] [Server thread/INFO] [minecraft/DedicatedServer]: Done (3.2s)! ...
    ("extended", re.compile(_TIME + r"\] \[([^\]]+?)/(\w+)\] \[([^\]]*)\]: (.*)", re.DOTALL)),
]

JOIN_RE = re.compile(r"(\S+)(?: \(formerly known as \S+\))? joined the game")
LEAVE_RE = re.compile(r"(\S+) left the game")
READY_RE = re.compile(r'Done \((\d+(?:\.\d+)?)s\)! For help, type "help"')
EULA_RE = re.compile(r"You need to agree to the EULA in order to run the server\. Go to eula\.txt")
PLAYERS_RE = re.compile(r"There are (\d+) of a max of (\d+) players online:\s*(.*)", re.DOTALL)

MAIN_THREADS = {"main", "servermain", "server thread"}


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)


def parse(line: str) -> ParsedLine:
    text = strip_ansi(line).strip()
    if text.startswith("["):
        body = text[1:]
        for _name, pattern in LINE_PATTERNS:
            m = pattern.fullmatch(body)
            if not m:
                continue
            if len(m.groups()) == 5:
                time, thread, level, context, message = m.groups()
            else:
                time, thread, level, message = m.groups()
                context = None
            return ParsedLine(message=message.strip(), timestamp=time, thread=thread,
                              level=level, context=context)
    return ParsedLine(message=text)


def classify(parsed: ParsedLine) -> Optional[ConsoleEvent]:
    """
    Map a parsed line to a domain event, or None.

    Join/leave are checked before ready/EULA. A player whose name makes the
    message look like a ready or EULA marker is not guarded against.
    """
    msg = parsed.message

    m = JOIN_RE.fullmatch(msg)
    if m:
        return Join(m.group(1))
    m = LEAVE_RE.fullmatch(msg)
    if m:
        return Leave(m.group(1))
    m = READY_RE.match(msg)
    if m:
        return Ready(float(m.group(1)))
    if EULA_RE.match(msg) and _from_server(parsed):
        return EulaRequired()
    return None


def _from_server(parsed: ParsedLine) -> bool:
    return parsed.thread is None or parsed.thread.lower() in MAIN_THREADS


def parse_player_list(parsed: ParsedLine) -> Optional[list[str]]:
    """Names from a `list` command response, None if the line is something else."""
    m = PLAYERS_RE.fullmatch(parsed.message)
    if not m or not _from_server(parsed):
        return None
    return [n for n in (p.strip() for p in m.group(3).split(",")) if n]


def format_line(data: Union[str, ParsedLine], color_mode: ColorMode = ColorMode.NONE,
                now: Optional[datetime] = None) -> str:
    """
    Render a console line for display.
    Missing time/thread/level are filled with the current time, "Main" and "INFO".
    """
    if isinstance(data, str):
        data = parse(data)

    time = data.timestamp
    if not time:
        time = (now or datetime.now()).strftime("%H:%M:%S")
    thread = data.thread or "Main"
    level = data.level or "INFO"

    if color_mode == ColorMode.TERMINAL:
        return f"\x1b[36m[{time}]\x1b[0m \x1b[32m[{thread}/{level}]\x1b[0m: {data.message}"
    if color_mode == ColorMode.HTML:
        return (f'<span style="color: #0099ff;">[{time}]</span> '
                f'<span style="color: #00cc00;">[{html.escape(thread)}/{level}]</span>: '
                f"{html.escape(data.message)}")
    return f"[{time}] [{thread}/{level}]: {data.message}"


Middleware = Callable[[str], Union[str, bool, None]]


class ConsoleAttachment:
    """
    Mirrors a server's console to an output stream and forwards user input.

    The middleware sees each input line first: returning False drops it,
    returning a string replaces it, anything else sends it unchanged.
    """

    def __init__(self, server: "Server", output: TextIO, middleware: Optional[Middleware] = None,
                 color_mode: Optional[ColorMode] = None):
        self.server = server
        self.output = output
        self.middleware = middleware
        self.color_mode = color_mode if color_mode is not None else server.color_mode
        self._attached = True
        server.on(events.DATA, self._on_data)
        server.on(events.EXIT, self._on_exit)

    @property
    def attached(self) -> bool:
        return self._attached

    def feed(self, line: str) -> bool:
        if not self._attached:
            return False
        if self.middleware:
            result = self.middleware(line)
            if result is False:
                return False
            if isinstance(result, str):
                line = result
        return self.server.write_line(line)

    def detach(self) -> None:
        if not self._attached:
            return
        self._attached = False
        self.server.off(events.DATA, self._on_data)
        self.server.off(events.EXIT, self._on_exit)

    def _on_data(self, parsed: ParsedLine) -> None:
        self.output.write(format_line(parsed, self.color_mode) + "\n")
        try:
            self.output.flush()
        except (OSError, ValueError):
            logger.debug("Console output stream not flushable")

    def _on_exit(self, _code) -> None:
        self.detach()
