from __future__ import annotations

import json
import urllib.error
import urllib.parse
import urllib.request
from pathlib import Path
from typing import Iterator, Optional
from .errors import DownloadError, VersionResolutionError
from .logging_setup import get_logger
from .models import FilePage, ModFile
from .mojang import download_file

log = get_logger("mc.launcher.mod_catalog")

CATALOG_API_URL = "https://api.curseforge.com/v1"
PAGE_SIZE = 50


class ModCatalogClient:
    """Resolve catalog mod files ("latest" or a specific file id) to download URLs."""

    def __init__(self, api_key: str, base_url: str = CATALOG_API_URL, *, timeout: float = 30):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _get_json(self, path: str, params: Optional[dict] = None) -> dict:
        url = f"{self.base_url}{path}"
        if params:
            url += "?" + urllib.parse.urlencode(params)
        req = urllib.request.Request(url, headers={
            "Accept": "application/json",
            "x-api-key": self.api_key,
        })
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                return json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            if e.code == 404:
                raise VersionResolutionError(f"Not found in mod catalog: {path}") from e
            raise DownloadError(f"Mod catalog request failed ({e.code}): {path}") from e
        except urllib.error.URLError as e:
            raise DownloadError(f"Network error talking to mod catalog: {e}") from e

    def list_files(self, mod_id: int, index: int = 0, page_size: int = PAGE_SIZE) -> FilePage:
        raw = self._get_json(f"/mods/{mod_id}/files", {"index": index, "pageSize": page_size})
        return FilePage.model_validate(raw)

    def iter_files(self, mod_id: int, page_size: int = PAGE_SIZE) -> Iterator[ModFile]:
        index = 0
        while True:
            page = self.list_files(mod_id, index=index, page_size=page_size)
            yield from page.data
            if not page.has_more:
                return
            index += len(page.data)

    def get_download_url(self, mod_id: int, file_id: int) -> str:
        raw = self._get_json(f"/mods/{mod_id}/files/{file_id}/download-url")
        url = raw.get("data")
        if not url:
            raise DownloadError(f"Mod {mod_id} file {file_id} has no download URL (distribution disabled?)")
        return url

    def resolve_file(self, mod_id: int, file_id: Optional[int] = None) -> ModFile:
        if file_id is None:
            files = list(self.iter_files(mod_id))
            if not files:
                raise VersionResolutionError(f"Mod {mod_id} has no files")
            chosen = max(files, key=lambda f: f.id)
        else:
            raw = self._get_json(f"/mods/{mod_id}/files/{file_id}")
            if not raw.get("data"):
                raise VersionResolutionError(f"Mod {mod_id} has no file {file_id}")
            chosen = ModFile.model_validate(raw["data"])

        if not chosen.download_url:
            chosen = chosen.model_copy(update={"download_url": self.get_download_url(mod_id, chosen.id)})
        log.info("Resolved mod %s -> file %s (%s)", mod_id, chosen.id, chosen.file_name)
        return chosen

    def download(self, mod_file: ModFile, dest_dir: Path) -> Path:
        if not mod_file.download_url:
            raise DownloadError(f"No download URL for {mod_file.file_name}")
        return download_file(mod_file.download_url, dest_dir / Path(mod_file.file_name).name)
