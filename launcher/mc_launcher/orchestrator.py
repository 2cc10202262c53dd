from __future__ import annotations
import asyncio
from typing import Optional
from .console import ColorMode
from .errors import ValidationError
from .forge import ForgeServer
from .logging_setup import get_logger
from .mod_catalog import ModCatalogClient
from .models import ModFile
from .server import Server
from .settings import Settings

log = get_logger("mc.launcher.orch")


def build_server(settings: Settings) -> Server:
    kwargs = dict(
        java_path=settings.java_path,
        memory=(settings.memory_min, settings.memory_max),
        version=settings.version,
        color_mode=ColorMode(settings.color_mode.lower()),
        players_timeout=settings.players_timeout,
        rcon_timeout=settings.rcon_timeout,
    )
    flavor = settings.flavor.lower()
    if flavor == "forge":
        return ForgeServer(settings.server_root, settings.jar_file, **kwargs)
    if flavor != "vanilla":
        raise ValueError(f"Unknown server flavor {settings.flavor!r} (expected vanilla or forge)")
    return Server(settings.server_root, settings.jar_file, **kwargs)


class Orchestrator:
    def __init__(self, settings: Settings, server: Optional[Server] = None):
        self.settings = settings
        self.server = server or build_server(settings)

    def prepare_environment(self) -> None:
        self.server.ensure_path_exists()
        if not self.server.check_installed():
            log.warning("Server jar not found at %s (run install first).", self.server.jar_path)

    async def ensure_installed(self) -> None:
        if self.server.check_installed():
            log.info("Server present: %s", self.server.jar_path)
            return
        log.info("Server missing, installing version %s", self.server.version or "latest")
        await self.server.install_server()

    async def install_mod(self, mod_id: int, file_id: Optional[int] = None) -> ModFile:
        if not self.settings.curseforge_api_key:
            raise ValidationError("CURSEFORGE_API_KEY is required to install mods")
        client = ModCatalogClient(self.settings.curseforge_api_key)
        mod_file = await asyncio.to_thread(client.resolve_file, mod_id, file_id)
        await asyncio.to_thread(client.download, mod_file, self.server.layout.mods)
        return mod_file

    async def run(self) -> int:
        """Start the server and wait for it to exit; returns its exit code."""
        await self.server.start()
        rc = await self.server.wait()
        log.info("Server exited with rc=%s", rc)
        return int(rc if rc is not None else 0)

    async def shutdown(self) -> None:
        if self.server.running:
            await self.server.stop(timeout=self.settings.stop_timeout)
        await self.server.disconnect_rcon()

    def status(self) -> dict:
        s = self.server
        return {
            "name": s.name,
            "state": s.state.value,
            "pid": s.pid,
            "version": s.version,
            "players": sorted(s.players),
            "last_exit_code": s.last_exit_code,
            "installed": s.check_installed(),
            "rcon_connected": bool(s.rcon and s.rcon.connected),
        }
