from __future__ import annotations

import hashlib
import json
import re
import urllib.error
import urllib.request
from pathlib import Path
from typing import List, Optional
from .errors import DownloadError, VersionResolutionError
from .logging_setup import get_logger
from .models import VersionData, VersionManifest

log = get_logger("mc.launcher.mojang")

VERSION_MANIFEST_URL = "https://launchermeta.mojang.com/mc/game/version_manifest.json"
FORGE_INDEX_URL = "https://files.minecraftforge.net/net/minecraftforge/forge/index_{mc}.html"
FORGE_MAVEN_URL = "https://maven.minecraftforge.net/net/minecraftforge/forge/{mc}-{forge}/forge-{mc}-{forge}-installer.jar"

HTTP_TIMEOUT = 30


def _get(url: str) -> bytes:
    req = urllib.request.Request(url, headers={"User-Agent": "mc-launcher"})
    with urllib.request.urlopen(req, timeout=HTTP_TIMEOUT) as response:
        return response.read()


def _get_json(url: str) -> dict:
    try:
        return json.loads(_get(url).decode("utf-8"))
    except urllib.error.URLError as e:
        raise VersionResolutionError(f"Network error fetching {url}: {e}") from e
    except json.JSONDecodeError as e:
        raise VersionResolutionError(f"Invalid JSON from {url}: {e}") from e


def fetch_version_manifest() -> VersionManifest:
    return VersionManifest.model_validate(_get_json(VERSION_MANIFEST_URL))


def resolve_version(version: str = "latest", manifest: Optional[VersionManifest] = None) -> VersionData:
    """
    Resolve "latest", "latest-snapshot" or an explicit id to its version data.
    """
    manifest = manifest or fetch_version_manifest()
    version_id = version
    if version == "latest":
        version_id = manifest.latest.release
    elif version == "latest-snapshot":
        version_id = manifest.latest.snapshot

    entry = manifest.find(version_id)
    if entry is None:
        raise VersionResolutionError(f"Version {version!r} not found in manifest")

    log.info("Resolved version %s -> %s", version, entry.id)
    data = VersionData.model_validate(_get_json(entry.url))
    if data.server is None:
        raise VersionResolutionError(f"Version {entry.id} has no server download")
    return data


def download_file(url: str, dest: Path, *, sha1: Optional[str] = None) -> Path:
    log.info("Downloading %s -> %s", url, dest)
    try:
        payload = _get(url)
    except urllib.error.URLError as e:
        raise DownloadError(f"Download failed for {url}: {e}") from e

    if sha1:
        digest = hashlib.sha1(payload).hexdigest()
        if digest.lower() != sha1.lower():
            raise DownloadError(f"Checksum mismatch for {url}: expected {sha1}, got {digest}")

    dest.parent.mkdir(parents=True, exist_ok=True)
    temp_path = dest.with_suffix(dest.suffix + ".part")
    temp_path.write_bytes(payload)
    temp_path.replace(dest)
    return dest


def download_server_jar(data: VersionData, dest: Path) -> Path:
    server = data.server
    if server is None:
        raise DownloadError(f"Version {data.id} has no server download")
    return download_file(server.url, dest, sha1=server.sha1)


def get_forge_versions(mc_version: str, manifest: Optional[VersionManifest] = None) -> List[str]:
    """Forge builds available for a Minecraft version, scraped from the Forge index page."""
    if mc_version == "latest":
        mc_version = (manifest or fetch_version_manifest()).latest.release

    url = FORGE_INDEX_URL.format(mc=mc_version)
    try:
        page = _get(url).decode("utf-8", errors="replace")
    except urllib.error.URLError as e:
        raise VersionResolutionError(f"Failed to fetch Forge versions: {e}") from e

    pattern = re.compile(rf"forge-{re.escape(mc_version)}-([\d.]+)-installer\.jar")
    seen: List[str] = []
    for m in pattern.finditer(page):
        if m.group(1) not in seen:
            seen.append(m.group(1))
    return seen


def forge_installer_url(mc_version: str, forge_version: str) -> str:
    return FORGE_MAVEN_URL.format(mc=mc_version, forge=forge_version)
