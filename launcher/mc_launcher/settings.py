from __future__ import annotations
from pathlib import Path
from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    server_root: Path = Field(default=Path("/minecraft"), alias="MC_ROOT")
    jar_file: Optional[str] = Field(default=None, alias="MC_JAR")
    version: str = Field(default="latest", alias="MC_VERSION")
    flavor: str = Field(default="vanilla", alias="MC_FLAVOR")
    java_path: str = Field(default="java", alias="JAVA_PATH")
    memory_min: int = Field(default=1024, alias="MC_MEMORY_MIN")
    memory_max: int = Field(default=1024, alias="MC_MEMORY_MAX")
    color_mode: str = Field(default="terminal", alias="MC_COLOR_MODE")

    players_timeout: float = Field(default=2.0, alias="PLAYERS_TIMEOUT")
    stop_timeout: float = Field(default=60.0, alias="STOP_TIMEOUT")
    rcon_timeout: float = Field(default=5.0, alias="RCON_TIMEOUT")

    curseforge_api_key: str = Field(default="", alias="CURSEFORGE_API_KEY")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")
    log_max_bytes: int = Field(default=5_000_000, alias="LOG_MAX_BYTES")
    log_backup_count: int = Field(default=3, alias="LOG_BACKUP_COUNT")

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    @property
    def logs_dir(self) -> Path:
        return self.server_root / "launcher-logs"
