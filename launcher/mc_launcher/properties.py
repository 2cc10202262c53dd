"""
Flat key=value files used by the server (server.properties, eula.txt).

Only the first "=" splits key from value; there is no other escaping.
"""

from __future__ import annotations
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Mapping, Optional
from .logging_setup import get_logger

log = get_logger("mc.launcher.properties")

HEADER = [
    "Minecraft server properties",
    "Edited by mc-launcher",
]


def parse_properties(text: str) -> Dict[str, str]:
    props: Dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or line.startswith("!"):
            continue
        key, sep, value = line.partition("=")
        props[key.strip()] = value if sep else ""
    return props


def dump_properties(props: Mapping[str, str], now: Optional[datetime] = None,
                    header: Optional[list] = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).isoformat()
    lines = [f"# {h}" for h in (header if header is not None else HEADER)]
    lines.append(f"# {stamp}")
    for key, value in props.items():
        lines.append(f"{key}={value}")
    return "\n".join(lines) + "\n"


def load_properties(path: Path) -> Dict[str, str]:
    if not path.exists():
        log.warning("Properties file not found: %s", path)
        return {}
    return parse_properties(path.read_text(encoding="utf-8"))


def save_properties(path: Path, props: Mapping[str, str], *, header: Optional[list] = None) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    # Atomic write: temp file, then rename
    temp_path = path.with_suffix(path.suffix + ".tmp")
    temp_path.write_text(dump_properties(props, header=header), encoding="utf-8")
    temp_path.replace(path)
    log.info("Saved %d properties: %s", len(props), path)


def eula_accepted(path: Path) -> bool:
    if not path.exists():
        return False
    return load_properties(path).get("eula", "").strip().lower() == "true"


def accept_eula(path: Path) -> None:
    save_properties(path, {"eula": "true"}, header=[
        "By changing the setting below to TRUE you are indicating your agreement to the EULA "
        "(https://aka.ms/MinecraftEULA).",
    ])
