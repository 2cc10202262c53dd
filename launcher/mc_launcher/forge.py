from __future__ import annotations
import asyncio
import os
import re
import secrets
import tempfile
from pathlib import Path
from typing import List, Optional, Tuple

from . import mojang
from .errors import InstallError, ProcessError
from .logging_setup import get_logger
from .server import Server

log = get_logger("mc.launcher.forge")

JVM_ARGS_FILE = "user_jvm_args.txt"
_JAVA_LINE_RE = re.compile(r"^.*java\s", re.MULTILINE)


class ForgeServer(Server):
    """
    Forge server, launched through the run script its installer generates.

    Memory limits go to user_jvm_args.txt and the java invocation in the
    run script is rewritten to use java_path.
    """

    def __init__(self, *args, forge_version: Optional[str] = None, install_timeout: float = 15.0,
                 poll_interval: float = 1.0, **kwargs):
        self.forge_version = forge_version
        self.install_timeout = install_timeout
        self.poll_interval = poll_interval
        super().__init__(*args, **kwargs)

    @property
    def run_script(self) -> Path:
        return self.path / ("run.bat" if os.name == "nt" else "run.sh")

    def get_default_jar_file(self) -> str:
        jars = sorted(p.name for p in self.path.glob("*.jar")) if self.path.is_dir() else []
        if jars:
            return jars[0]
        return super().get_default_jar_file()

    def check_installed(self) -> bool:
        return self.run_script.is_file() and (self.path / JVM_ARGS_FILE).is_file()

    def build_command(self) -> Tuple[str, List[str]]:
        script = self.run_script
        if not script.is_file():
            raise ProcessError(f"Forge run script not found: {script}")
        text = script.read_text(encoding="utf-8")
        script.write_text(_JAVA_LINE_RE.sub(self.java_path + " ", text), encoding="utf-8")

        lo, hi = self.memory
        (self.path / JVM_ARGS_FILE).write_text(f"-Xms{lo}M -Xmx{hi}M", encoding="utf-8")
        return str(script), ["nogui"]

    async def _resolve_versions(self) -> Tuple[str, str]:
        mc_version = self.version or "latest"
        if mc_version in ("latest", "latest-snapshot"):
            manifest = await asyncio.to_thread(mojang.fetch_version_manifest)
            mc_version = manifest.latest.release if mc_version == "latest" else manifest.latest.snapshot
        forge_version = self.forge_version
        if not forge_version:
            versions = await asyncio.to_thread(mojang.get_forge_versions, mc_version)
            if not versions:
                raise InstallError(f"No Forge builds found for Minecraft {mc_version}")
            forge_version = versions[0]
        return mc_version, forge_version

    def _installed_jar(self) -> Optional[str]:
        if not (self.path / JVM_ARGS_FILE).is_file():
            return None
        jars = sorted(p.name for p in self.path.glob("*.jar"))
        return jars[0] if jars else None

    async def install_server(self) -> None:
        mc_version, forge_version = await self._resolve_versions()
        self.ensure_path_exists()
        url = mojang.forge_installer_url(mc_version, forge_version)
        tmp = Path(tempfile.gettempdir()) / f"{secrets.token_hex(4)}_forge-installer.jar"
        log.info("Installing Forge %s-%s into %s", mc_version, forge_version, self.path)
        await asyncio.to_thread(mojang.download_file, url, tmp)

        try:
            proc = await asyncio.create_subprocess_exec(
                self.java_path, "-jar", str(tmp), "--installServer", str(self.path),
                cwd=str(self.path),
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise InstallError(f"Failed to run Forge installer: {e}") from e

        try:
            waited = 0.0
            while waited < self.install_timeout:
                await asyncio.sleep(self.poll_interval)
                waited += self.poll_interval
                jar = self._installed_jar()
                if jar:
                    self.jar_file = jar
                    self.version = mc_version
                    self.forge_version = forge_version
                    await proc.wait()
                    log.info("Forge installed, server jar %s", jar)
                    return
                if proc.returncode is not None:
                    raise InstallError(f"Forge installer exited with rc={proc.returncode} before finishing")
            if proc.returncode is None:
                proc.kill()
            raise InstallError(f"Server not installed. Timeout after {self.install_timeout:.0f} seconds.")
        finally:
            tmp.unlink(missing_ok=True)
