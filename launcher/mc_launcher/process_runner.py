from __future__ import annotations
import asyncio
import os
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol
from .logging_setup import get_logger

log = get_logger("mc.launcher.proc")

DataCallback = Callable[[bytes], None]
ExitCallback = Callable[[Optional[int]], None]

READ_CHUNK = 4096


class ProcessHandle(Protocol):
    pid: Optional[int]

    def write(self, data: bytes) -> None: ...
    def kill(self) -> None: ...
    def on_data(self, callback: DataCallback) -> None: ...
    def on_exit(self, callback: ExitCallback) -> None: ...


class Spawner(Protocol):
    async def spawn(self, executable: str, args: List[str], *, cwd: Optional[Path] = None,
                    env: Optional[Dict[str, str]] = None) -> ProcessHandle: ...


class AsyncProcessHandle:
    """
    Child process with merged stdout/stderr delivered as raw chunks.

    A single reader task delivers chunks in arrival order; exit callbacks run
    after the last chunk has been delivered.
    """

    def __init__(self, name: str, proc: asyncio.subprocess.Process):
        self.name = name
        self.proc = proc
        self.pid = proc.pid
        self._data_callbacks: List[DataCallback] = []
        self._exit_callbacks: List[ExitCallback] = []
        self._reader = asyncio.get_running_loop().create_task(self._pump())

    def on_data(self, callback: DataCallback) -> None:
        self._data_callbacks.append(callback)

    def on_exit(self, callback: ExitCallback) -> None:
        self._exit_callbacks.append(callback)

    def write(self, data: bytes) -> None:
        stdin = self.proc.stdin
        if stdin is None or stdin.is_closing():
            log.debug("stdin of %s is closed, dropping %d bytes", self.name, len(data))
            return
        stdin.write(data)

    def kill(self) -> None:
        if self.proc.returncode is not None:
            return
        log.info("Killing %s (pid=%s)", self.name, self.pid)
        try:
            self.proc.kill()
        except ProcessLookupError:
            pass

    async def wait(self) -> Optional[int]:
        await asyncio.shield(self._reader)
        return self.proc.returncode

    async def _pump(self) -> None:
        stdout = self.proc.stdout
        try:
            while stdout is not None:
                chunk = await stdout.read(READ_CHUNK)
                if not chunk:
                    break
                for cb in list(self._data_callbacks):
                    try:
                        cb(chunk)
                    except Exception:
                        log.exception("Data callback for %s failed", self.name)
        except OSError:
            log.exception("Error while reading output of %s", self.name)
        rc = await self.proc.wait()
        log.info("%s exited with rc=%s", self.name, rc)
        for cb in list(self._exit_callbacks):
            try:
                cb(rc)
            except Exception:
                log.exception("Exit callback for %s failed", self.name)


class ProcessRunner:
    def __init__(self, name: str = "server"):
        self.name = name

    async def spawn(self, executable: str, args: List[str], *, cwd: Optional[Path] = None,
                    env: Optional[Dict[str, str]] = None) -> AsyncProcessHandle:
        cmd = [executable] + list(args)
        log.info("Starting %s: %s", self.name, " ".join(cmd))
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=str(cwd) if cwd else None,
            env=env if env is not None else dict(os.environ),
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        return AsyncProcessHandle(self.name, proc)
