"""
server.py — Supervises one Minecraft server process
---------------------------------------------------
Launches the server, turns its console output into events (data, join,
leave, ready, eula-required, exit), tracks online players and the process
state, and offers the RCON session for the same server.
"""

from __future__ import annotations
import asyncio
import sys
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Set, TextIO, Tuple, Union

from . import events
from . import mojang
from .console import (
    ColorMode, ConsoleAttachment, EulaRequired, Join, Leave, Middleware, ParsedLine, Ready,
    classify, parse, parse_player_list,
)
from .errors import ProcessError, ResponseTimeout, ValidationError, ConnectionClosed
from .events import EventBus, Listener
from .fs_layout import Layout, build_layout, ensure_dirs, is_writable_dir
from .line_buffer import LineBuffer
from .logging_setup import get_logger
from .process_runner import ProcessHandle, ProcessRunner, Spawner
from .properties import accept_eula, eula_accepted, load_properties, save_properties
from .rcon import RconClient

logger = get_logger("mc.launcher.server")

DEFAULT_RCON_PORT = 25575


class ProcessState(str, Enum):
    OFFLINE = "offline"
    STARTING = "starting"
    READY = "ready"
    EXITED = "exited"


class Server:
    def __init__(self, path: Union[str, Path], jar_file: Optional[str] = None, *,
                 name: str = "Server",
                 java_path: str = "java",
                 memory: Tuple[int, int] = (1024, 1024),
                 version: Optional[str] = None,
                 color_mode: ColorMode = ColorMode.TERMINAL,
                 runner: Optional[Spawner] = None,
                 env: Optional[Dict[str, str]] = None,
                 players_timeout: float = 2.0,
                 rcon_timeout: float = 5.0,
                 kill_grace: float = 5.0):
        self.path = Path(path).resolve()
        self.name = name
        self.java_path = java_path
        self.memory = memory
        self.version = version
        self.color_mode = color_mode
        self.runner: Spawner = runner or ProcessRunner(name=name)
        self.env = env
        self.players_timeout = players_timeout
        self.rcon_timeout = rcon_timeout
        self.kill_grace = kill_grace
        self.jar_file = jar_file or self.get_default_jar_file()

        self.properties: Dict[str, str] = {}
        self.rcon: Optional[RconClient] = None
        self.last_exit_code: Optional[int] = None

        self._events = EventBus()
        self._state = ProcessState.OFFLINE
        self._players: Set[str] = set()
        self._handle: Optional[ProcessHandle] = None
        self._lines: Optional[LineBuffer] = None
        self._exit_future: Optional[asyncio.Future] = None
        self._launching = False
        self._kill_requested = False
        self._launch_future: Optional[asyncio.Future] = None
        self._attachment: Optional[ConsoleAttachment] = None

    # ---------------------------------------------------------------------- #
    # events

    def on(self, event: str, listener: Listener) -> Listener:
        return self._events.on(event, listener)

    def once(self, event: str, listener: Listener) -> Listener:
        return self._events.once(event, listener)

    def off(self, event: str, listener: Listener) -> bool:
        return self._events.off(event, listener)

    @property
    def events(self) -> EventBus:
        return self._events

    # ---------------------------------------------------------------------- #
    # state

    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def running(self) -> bool:
        return self._handle is not None

    @property
    def players(self) -> frozenset:
        return frozenset(self._players)

    @property
    def pid(self) -> Optional[int]:
        return getattr(self._handle, "pid", None) if self._handle else None

    def _set_state(self, new: ProcessState) -> None:
        old = self._state
        if old == new:
            return
        self._state = new
        logger.info("%s: %s -> %s", self.name, old.value, new.value)
        self._events.emit(events.STATE, old, new)

    # ---------------------------------------------------------------------- #
    # layout / install

    def get_default_jar_file(self) -> str:
        return "server.jar"

    @property
    def layout(self) -> Layout:
        return build_layout(self.path, self.jar_file)

    @property
    def jar_path(self) -> Path:
        return self.layout.jar

    def set_memory(self, minimum: int, maximum: Optional[int] = None) -> None:
        """Memory limits in MB; a single value sets both."""
        self.memory = (minimum, maximum if maximum is not None else minimum)

    def ensure_path_exists(self) -> None:
        ensure_dirs(self.layout)

    def check_installed(self) -> bool:
        return self.jar_path.is_file()

    async def install_server(self) -> None:
        """Resolve the configured version and download its server jar."""
        data = await asyncio.to_thread(mojang.resolve_version, self.version or "latest")
        self.version = data.id
        logger.info("Installing server %s from %s", data.id, data.server.url if data.server else "?")
        self.ensure_path_exists()
        await asyncio.to_thread(mojang.download_server_jar, data, self.jar_path)
        logger.info("Installed %s", self.jar_path)

    # ---------------------------------------------------------------------- #
    # properties / eula

    def load_properties(self) -> Dict[str, str]:
        self.properties = load_properties(self.layout.properties)
        return self.properties

    def save_properties(self) -> None:
        save_properties(self.layout.properties, self.properties)

    def get_property(self, key: str) -> Optional[str]:
        return self.properties.get(key)

    def set_property(self, key: str, value: str) -> None:
        self.properties[key] = str(value)

    def eula_accepted(self) -> bool:
        return eula_accepted(self.layout.eula)

    def accept_eula(self) -> None:
        accept_eula(self.layout.eula)
        logger.info("EULA accepted in %s", self.layout.eula)

    # ---------------------------------------------------------------------- #
    # process lifecycle

    def build_command(self) -> Tuple[str, List[str]]:
        lo, hi = self.memory
        return self.java_path, [
            f"-Xms{lo}M",
            f"-Xmx{hi}M",
            "-jar",
            str(self.jar_path),
            "nogui",
        ]

    async def start(self) -> None:
        if self._launching or self._state not in (ProcessState.OFFLINE, ProcessState.EXITED):
            raise ValidationError(f"Cannot start {self.name} while {self._state.value}")

        self._launching = True
        self._kill_requested = False
        launched = self._launch_future = asyncio.get_running_loop().create_future()
        try:
            if not is_writable_dir(self.path):
                raise ProcessError(f"Server directory {self.path} is missing or not writable")
            executable, args = self.build_command()
            logger.debug("Full launch command: %s %s", executable, " ".join(args))
            try:
                handle = await self.runner.spawn(executable, args, cwd=self.path, env=self.env)
            except FileNotFoundError as e:
                raise ProcessError(f"Executable not found: {executable}") from e
            except OSError as e:
                raise ProcessError(f"Failed to launch {executable}: {e}") from e
        finally:
            self._launching = False
            # waiters in kill()/stop() resume only after the handle is attached below
            launched.set_result(None)

        self._attach_handle(handle)
        if self._kill_requested:
            self._kill_requested = False
            logger.warning("%s was killed while launching", self.name)
            return
        self._set_state(ProcessState.STARTING)

    async def _wait_for_launch(self) -> None:
        fut = self._launch_future
        if self._launching and fut is not None:
            await asyncio.shield(fut)

    def _attach_handle(self, handle: ProcessHandle) -> None:
        self._handle = handle
        self._lines = LineBuffer()
        self._exit_future = asyncio.get_running_loop().create_future()
        handle.on_data(lambda chunk: self._on_data(handle, chunk))
        handle.on_exit(lambda code: self._on_exit(handle, code))

    async def stop(self, timeout: Optional[float] = None) -> Optional[int]:
        """
        Ask the server to stop and wait for it to exit.
        With a timeout, the process is killed once it elapses.
        """
        await self._wait_for_launch()
        if self._handle is None:
            return self.last_exit_code
        fut = self._exit_future
        self.write_line("stop")
        if timeout is None:
            return await asyncio.shield(fut)
        try:
            return await asyncio.wait_for(asyncio.shield(fut), timeout)
        except asyncio.TimeoutError:
            logger.warning("%s did not stop within %.1fs, killing", self.name, timeout)
            return await self.kill()

    async def kill(self) -> Optional[int]:
        if self._launching:
            self._kill_requested = True
            await self._wait_for_launch()
        handle = self._handle
        if handle is None:
            self._set_state(ProcessState.EXITED)
            return self.last_exit_code
        fut = self._exit_future
        handle.kill()
        try:
            return await asyncio.wait_for(asyncio.shield(fut), self.kill_grace)
        except asyncio.TimeoutError:
            logger.warning("%s did not report exit after kill, marking exited", self.name)
            self._on_exit(handle, None)
            return None

    async def restart(self, stop_timeout: Optional[float] = None) -> None:
        if self._handle is not None:
            await self.stop(timeout=stop_timeout)
        await self.start()

    async def wait(self) -> Optional[int]:
        """Wait for the current process to exit."""
        if self._exit_future is None or self._handle is None:
            return self.last_exit_code
        return await asyncio.shield(self._exit_future)

    def write(self, text: str) -> bool:
        if self._handle is None:
            logger.warning("%s is %s, dropping input %r", self.name, self._state.value, text)
            return False
        self._handle.write(text.encode("utf-8"))
        return True

    def write_line(self, text: str) -> bool:
        return self.write(text + "\n")

    async def get_players(self, timeout: Optional[float] = None) -> List[str]:
        """Issue `list` on the console and return the names from its response."""
        if self._handle is None:
            raise ValidationError(f"Cannot list players while {self._state.value}")
        timeout = self.players_timeout if timeout is None else timeout
        fut = asyncio.get_running_loop().create_future()

        def on_data(parsed: ParsedLine) -> None:
            names = parse_player_list(parsed)
            if names is None:
                return
            if self._events.off(events.DATA, on_data) and not fut.done():
                fut.set_result(names)

        self._events.on(events.DATA, on_data)
        try:
            self.write_line("list")
            return await asyncio.wait_for(fut, timeout)
        except asyncio.TimeoutError:
            raise ResponseTimeout(f"No player list within {timeout}s") from None
        finally:
            self._events.off(events.DATA, on_data)

    # ---------------------------------------------------------------------- #
    # output pipeline

    def _on_data(self, handle: ProcessHandle, chunk: bytes) -> None:
        if handle is not self._handle or self._lines is None:
            return
        for line in self._lines.consume(chunk):
            self._handle_line(line)

    def _handle_line(self, line: str) -> None:
        parsed = parse(line)
        event = classify(parsed)
        if isinstance(event, Join):
            self._players.add(event.name)
            self._events.emit(events.JOIN, event.name)
        elif isinstance(event, Leave):
            self._players.discard(event.name)
            self._events.emit(events.LEAVE, event.name)
        elif isinstance(event, Ready):
            if self._state == ProcessState.STARTING:
                self._set_state(ProcessState.READY)
                self._events.emit(events.READY)
        elif isinstance(event, EulaRequired):
            self._events.emit(events.EULA_REQUIRED)
        self._events.emit(events.DATA, parsed)

    def _on_exit(self, handle: ProcessHandle, code: Optional[int]) -> None:
        if handle is not self._handle:
            return
        if self._lines is not None:
            for line in self._lines.flush():
                self._handle_line(line)
        self._handle = None
        self._lines = None
        self.last_exit_code = code
        self._players.clear()
        if self.rcon is not None:
            self.rcon.close()
            self.rcon = None
        self._set_state(ProcessState.EXITED)
        fut = self._exit_future
        if fut is not None and not fut.done():
            fut.set_result(code)
        logger.info("%s exited with code %s", self.name, code)
        self._events.emit(events.EXIT, code)

    # ---------------------------------------------------------------------- #
    # console attachment

    def attach(self, output: TextIO = sys.stdout, middleware: Optional[Middleware] = None) -> ConsoleAttachment:
        self.detach()
        self._attachment = ConsoleAttachment(self, output, middleware)
        return self._attachment

    def detach(self) -> None:
        if self._attachment is not None:
            self._attachment.detach()
            self._attachment = None

    # ---------------------------------------------------------------------- #
    # rcon

    async def connect_rcon(self) -> RconClient:
        props = load_properties(self.layout.properties)
        host = props.get("server-ip") or "localhost"
        port = int(props.get("rcon.port") or DEFAULT_RCON_PORT)
        password = props.get("rcon.password")
        if not password:
            raise ValidationError("rcon.password is not set in server.properties")
        if props.get("enable-rcon", "").lower() != "true":
            logger.warning("enable-rcon is not true in server.properties, connecting anyway")

        await self.disconnect_rcon()
        handle = self._handle
        client = RconClient(timeout=self.rcon_timeout)
        await client.connect(host, port, password)
        if handle is not self._handle:
            # process generation changed while authenticating
            await client.disconnect()
            raise ConnectionClosed("Server process changed during RCON connect")
        self.rcon = client
        return client

    async def disconnect_rcon(self) -> None:
        client, self.rcon = self.rcon, None
        if client is not None:
            await client.disconnect()
