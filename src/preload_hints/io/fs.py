from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable

def read_text_utf8(p: Path) -> str:
    data = p.read_bytes()
    return data.decode("utf-8")

def write_text_utf8(p: Path, s: str) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(s, encoding="utf-8", newline="")

def read_documents(paths: Iterable[Path]) -> Dict[str, str]:
    """Map each path (as given, posix form) to its contents; order follows `paths`."""
    out: Dict[str, str] = {}
    for p in paths:
        out[Path(p).as_posix()] = read_text_utf8(Path(p))
    return out
