from __future__ import annotations
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class LatestVersions(BaseModel):
    release: str
    snapshot: str

class VersionEntry(BaseModel):
    id: str
    type: str = "release"
    url: str
    time: Optional[str] = None
    releaseTime: Optional[str] = None

class VersionManifest(BaseModel):
    latest: LatestVersions
    versions: List[VersionEntry] = Field(default_factory=list)

    def find(self, version_id: str) -> Optional[VersionEntry]:
        return next((v for v in self.versions if v.id == version_id), None)

class DownloadInfo(BaseModel):
    url: str
    sha1: Optional[str] = None
    size: Optional[int] = None

class VersionDownloads(BaseModel):
    model_config = ConfigDict(extra="ignore")
    server: Optional[DownloadInfo] = None

class VersionData(BaseModel):
    """Version metadata as served by the per-version JSON document."""
    model_config = ConfigDict(extra="ignore")
    id: str
    downloads: VersionDownloads = Field(default_factory=VersionDownloads)

    @property
    def server(self) -> Optional[DownloadInfo]:
        return self.downloads.server


class ModFile(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)
    id: int
    file_name: str = Field(alias="fileName")
    download_url: Optional[str] = Field(default=None, alias="downloadUrl")
    file_date: Optional[str] = Field(default=None, alias="fileDate")

class Pagination(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)
    index: int = 0
    page_size: int = Field(default=50, alias="pageSize")
    result_count: int = Field(default=0, alias="resultCount")
    total_count: int = Field(default=0, alias="totalCount")

class FilePage(BaseModel):
    data: List[ModFile] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)

    @property
    def has_more(self) -> bool:
        p = self.pagination
        return bool(self.data) and p.index + len(self.data) < p.total_count
