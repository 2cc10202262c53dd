from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path

@dataclass(frozen=True)
class Layout:
    root: Path
    jar: Path
    properties: Path
    eula: Path
    mods: Path
    logs: Path

def build_layout(root: Path, jar_file: str) -> Layout:
    return Layout(
        root=root,
        jar=root / jar_file,
        properties=root / "server.properties",
        eula=root / "eula.txt",
        mods=root / "mods",
        logs=root / "logs",
    )

def ensure_dirs(layout: Layout) -> None:
    for p in [layout.root, layout.mods]:
        p.mkdir(parents=True, exist_ok=True)

def is_writable_dir(path: Path) -> bool:
    return path.is_dir() and os.access(path, os.W_OK | os.X_OK)
