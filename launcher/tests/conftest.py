"""
Shared fakes for the process capability.
"""

import asyncio
from typing import List

import pytest


class FakeProcess:
    """In-memory stand-in for a spawned server process."""

    def __init__(self, pid: int = 4242, exit_on_kill: bool = True):
        self.pid = pid
        self.exit_on_kill = exit_on_kill
        self.written: List[bytes] = []
        self.killed = False
        self.exited = False
        self._data_cbs = []
        self._exit_cbs = []

    def on_data(self, cb):
        self._data_cbs.append(cb)

    def on_exit(self, cb):
        self._exit_cbs.append(cb)

    def write(self, data: bytes):
        self.written.append(data)

    def kill(self):
        self.killed = True
        if self.exit_on_kill:
            asyncio.get_running_loop().call_soon(self.exit, -9)

    @property
    def text(self) -> str:
        return b"".join(self.written).decode("utf-8")

    def feed(self, chunk):
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        for cb in list(self._data_cbs):
            cb(chunk)

    def exit(self, code=0):
        if self.exited:
            return
        self.exited = True
        for cb in list(self._exit_cbs):
            cb(code)


class FakeSpawner:
    def __init__(self):
        self.calls = []
        self.processes: List[FakeProcess] = []
        self.error = None
        self.exit_on_kill = True

    async def spawn(self, executable, args, *, cwd=None, env=None):
        self.calls.append((executable, list(args), cwd))
        if self.error is not None:
            raise self.error
        proc = FakeProcess(pid=4242 + len(self.processes), exit_on_kill=self.exit_on_kill)
        self.processes.append(proc)
        return proc

    @property
    def last(self) -> FakeProcess:
        return self.processes[-1]


@pytest.fixture
def spawner():
    return FakeSpawner()
