"""
Tests for Server supervision using an in-memory process (see conftest.FakeSpawner).
"""

import asyncio
import io

import pytest

from mc_launcher import events
from mc_launcher.console import ColorMode
from mc_launcher.errors import ProcessError, ResponseTimeout, ValidationError
from mc_launcher.server import ProcessState, Server


DONE = '[10:00:05] [Server thread/INFO]: Done (12.345s)! For help, type "help"\n'


@pytest.fixture
def server(tmp_path, spawner):
    return Server(tmp_path, java_path="/usr/bin/java", memory=(512, 2048),
                  color_mode=ColorMode.NONE, runner=spawner, kill_grace=0.2)


def record(server, event):
    calls = []
    server.on(event, lambda *args: calls.append(args))
    return calls


class TestLaunch:
    def test_build_command(self, server, tmp_path):
        exe, args = server.build_command()
        assert exe == "/usr/bin/java"
        assert args == ["-Xms512M", "-Xmx2048M", "-jar", str(tmp_path.resolve() / "server.jar"), "nogui"]

    @pytest.mark.asyncio
    async def test_start_spawns_in_server_dir(self, server, spawner, tmp_path):
        states = record(server, events.STATE)
        await server.start()
        assert server.state == ProcessState.STARTING
        assert server.running
        assert server.pid == spawner.last.pid
        assert spawner.calls[0][2] == tmp_path.resolve()
        assert states == [(ProcessState.OFFLINE, ProcessState.STARTING)]

    @pytest.mark.asyncio
    async def test_double_start_is_rejected(self, server, spawner):
        await server.start()
        with pytest.raises(ValidationError):
            await server.start()
        assert len(spawner.calls) == 1

    @pytest.mark.asyncio
    async def test_missing_directory(self, tmp_path, spawner):
        server = Server(tmp_path / "nope", runner=spawner)
        with pytest.raises(ProcessError):
            await server.start()
        assert server.state == ProcessState.OFFLINE
        assert spawner.calls == []

    @pytest.mark.asyncio
    async def test_missing_executable(self, server, spawner):
        spawner.error = FileNotFoundError("java")
        with pytest.raises(ProcessError):
            await server.start()
        assert server.state == ProcessState.OFFLINE
        assert not server.running
        # launch failure does not block a later attempt
        spawner.error = None
        await server.start()
        assert server.state == ProcessState.STARTING


class TestConsoleEvents:
    @pytest.mark.asyncio
    async def test_join_adds_player(self, server, spawner):
        joins = record(server, events.JOIN)
        await server.start()
        spawner.last.feed("[10:00:01] [Server thread/INFO]: Steve joined the game\n")
        assert joins == [("Steve",)]
        assert server.players == {"Steve"}

    @pytest.mark.asyncio
    async def test_leave_without_join_is_harmless(self, server, spawner):
        leaves = record(server, events.LEAVE)
        await server.start()
        spawner.last.feed("[10:00:01] [Server thread/INFO]: Ghost left the game\n")
        assert leaves == [("Ghost",)]
        assert server.players == frozenset()

    @pytest.mark.asyncio
    async def test_ready_fires_once(self, server, spawner):
        ready = record(server, events.READY)
        await server.start()
        spawner.last.feed(DONE)
        spawner.last.feed(DONE)
        assert server.state == ProcessState.READY
        assert ready == [()]

    @pytest.mark.asyncio
    async def test_line_split_across_chunks(self, server, spawner):
        data = record(server, events.DATA)
        joins = record(server, events.JOIN)
        await server.start()
        for ch in "[10:00:01] [Server thread/INFO]: Alex joined the game\r\n":
            spawner.last.feed(ch)
        assert joins == [("Alex",)]
        assert len(data) == 1
        assert data[0][0].message == "Alex joined the game"

    @pytest.mark.asyncio
    async def test_eula_required(self, server, spawner):
        eula = record(server, events.EULA_REQUIRED)
        await server.start()
        spawner.last.feed("[10:00:00] [main/INFO]: You need to agree to the EULA in order to run "
                          "the server. Go to eula.txt for more info.\n")
        assert eula == [()]

    @pytest.mark.asyncio
    async def test_unterminated_line_flushed_on_exit(self, server, spawner):
        data = record(server, events.DATA)
        await server.start()
        spawner.last.feed("last words")
        assert data == []
        spawner.last.exit(0)
        assert [d[0].message for d in data] == ["last words"]


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_exit_resets_state(self, server, spawner):
        exits = record(server, events.EXIT)
        await server.start()
        spawner.last.feed("[10:00:01] [Server thread/INFO]: Steve joined the game\n")
        spawner.last.exit(3)
        assert server.state == ProcessState.EXITED
        assert not server.running
        assert server.players == frozenset()
        assert server.last_exit_code == 3
        assert exits == [(3,)]
        assert await server.wait() == 3

    @pytest.mark.asyncio
    async def test_stop_writes_stop_and_waits(self, server, spawner):
        await server.start()
        proc = spawner.last
        task = asyncio.ensure_future(server.stop())
        await asyncio.sleep(0)
        assert proc.text == "stop\n"
        proc.exit(0)
        assert await task == 0
        assert server.state == ProcessState.EXITED

    @pytest.mark.asyncio
    async def test_stop_timeout_escalates_to_kill(self, server, spawner):
        await server.start()
        rc = await server.stop(timeout=0.05)
        assert spawner.last.killed
        assert rc == -9
        assert server.state == ProcessState.EXITED

    @pytest.mark.asyncio
    async def test_kill_without_exit_report(self, server, spawner):
        spawner.exit_on_kill = False
        await server.start()
        rc = await server.kill()
        assert rc is None
        assert server.state == ProcessState.EXITED
        assert not server.running

    @pytest.mark.asyncio
    async def test_kill_when_offline(self, server):
        assert await server.kill() is None
        assert server.state == ProcessState.EXITED

    @pytest.mark.asyncio
    async def test_restart_starts_new_process(self, server, spawner):
        await server.start()
        first = spawner.last
        task = asyncio.ensure_future(server.restart())
        await asyncio.sleep(0)
        first.exit(0)
        await task
        assert len(spawner.processes) == 2
        assert server.state == ProcessState.STARTING
        # output from the old process is ignored
        first.feed("[10:00:01] [Server thread/INFO]: Steve joined the game\n")
        assert server.players == frozenset()

    @pytest.mark.asyncio
    async def test_start_after_exit(self, server, spawner):
        await server.start()
        spawner.last.exit(0)
        await server.start()
        assert server.state == ProcessState.STARTING

    def test_write_when_offline(self, server):
        assert server.write_line("say hi") is False

    @pytest.mark.asyncio
    async def test_write_when_running(self, server, spawner):
        await server.start()
        assert server.write_line("say hi") is True
        assert spawner.last.text == "say hi\n"


class TestGetPlayers:
    @pytest.mark.asyncio
    async def test_returns_names(self, server, spawner):
        await server.start()
        baseline = server.events.listener_count(events.DATA)
        task = asyncio.ensure_future(server.get_players(timeout=1))
        await asyncio.sleep(0)
        assert spawner.last.text == "list\n"
        spawner.last.feed("[10:00:00] [Server thread/INFO]: There are 2 of a max of 20 players online: Steve, Alex\n")
        assert await task == ["Steve", "Alex"]
        assert server.events.listener_count(events.DATA) == baseline

    @pytest.mark.asyncio
    async def test_timeout_removes_listener(self, server, spawner):
        await server.start()
        baseline = server.events.listener_count(events.DATA)
        with pytest.raises(ResponseTimeout):
            await server.get_players(timeout=0.05)
        assert server.events.listener_count(events.DATA) == baseline

    @pytest.mark.asyncio
    async def test_requires_running_server(self, server):
        with pytest.raises(ValidationError):
            await server.get_players()


class TestFiles:
    def test_properties_roundtrip(self, server, tmp_path):
        (tmp_path / "server.properties").write_text("motd=Hello\nmax-players=20\n")
        assert server.load_properties()["motd"] == "Hello"
        server.set_property("max-players", 5)
        server.save_properties()
        assert "max-players=5" in (tmp_path / "server.properties").read_text()

    def test_eula(self, server):
        assert not server.eula_accepted()
        server.accept_eula()
        assert server.eula_accepted()

    def test_set_memory(self, server):
        server.set_memory(4096)
        assert server.memory == (4096, 4096)

    def test_check_installed(self, server, tmp_path):
        assert not server.check_installed()
        (tmp_path / "server.jar").write_bytes(b"jar")
        assert server.check_installed()


@pytest.mark.asyncio
async def test_attach_mirrors_console(server, spawner):
    out = io.StringIO()
    await server.start()
    attachment = server.attach(out)
    spawner.last.feed("[10:00:00] [Server thread/INFO]: hello\n")
    attachment.feed("say hi")
    assert out.getvalue() == "[10:00:00] [Server thread/INFO]: hello\n"
    assert spawner.last.text == "say hi\n"
    spawner.last.exit(0)
    assert not attachment.attached


def gate_spawner(spawner):
    """Hold spawn() until the returned event is set."""
    gate = asyncio.Event()
    spawn = spawner.spawn

    async def gated(*args, **kwargs):
        await gate.wait()
        return await spawn(*args, **kwargs)

    spawner.spawn = gated
    return gate


class TestDuringLaunch:
    @pytest.mark.asyncio
    async def test_kill_while_launching_kills_new_process(self, server, spawner):
        gate = gate_spawner(spawner)
        states = record(server, events.STATE)
        start = asyncio.ensure_future(server.start())
        await asyncio.sleep(0)
        kill = asyncio.ensure_future(server.kill())
        await asyncio.sleep(0)
        assert not kill.done()

        gate.set()
        await start
        assert await kill == -9
        assert spawner.last.killed
        assert server.state == ProcessState.EXITED
        assert not server.running
        assert (ProcessState.OFFLINE, ProcessState.STARTING) not in states

    @pytest.mark.asyncio
    async def test_kill_while_launch_fails(self, server, spawner):
        gate = gate_spawner(spawner)
        spawner.error = FileNotFoundError("java")
        start = asyncio.ensure_future(server.start())
        await asyncio.sleep(0)
        kill = asyncio.ensure_future(server.kill())
        await asyncio.sleep(0)
        gate.set()
        with pytest.raises(ProcessError):
            await start
        assert await kill is None
        assert server.state == ProcessState.EXITED

    @pytest.mark.asyncio
    async def test_stop_while_launching_stops_new_process(self, server, spawner):
        gate = gate_spawner(spawner)
        start = asyncio.ensure_future(server.start())
        await asyncio.sleep(0)
        stop = asyncio.ensure_future(server.stop())
        await asyncio.sleep(0)
        gate.set()
        await start
        while not spawner.last.written:
            await asyncio.sleep(0.01)
        assert spawner.last.text == "stop\n"
        spawner.last.exit(0)
        assert await stop == 0
        assert server.state == ProcessState.EXITED

    @pytest.mark.asyncio
    async def test_chat_cannot_answer_player_list(self, server, spawner):
        await server.start()
        task = asyncio.ensure_future(server.get_players(timeout=1))
        await asyncio.sleep(0)
        spawner.last.feed("[10:00:00] [Server thread/INFO]: <Steve> There are 9 of a max of 9 players online: a, b\n")
        await asyncio.sleep(0)
        assert not task.done()
        spawner.last.feed("[10:00:01] [Server thread/INFO]: There are 1 of a max of 20 players online: Steve\n")
        assert await task == ["Steve"]
