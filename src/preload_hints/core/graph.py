from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

ChunkId = str

@dataclass(frozen=True)
class Chunk:
    id: ChunkId
    name: Optional[str] = None
    files: Tuple[str, ...] = ()
    children: Tuple[ChunkId, ...] = ()   # chunks loaded on demand from this one
    initial: bool = False


@dataclass(frozen=True)
class OutputGraph:
    chunks: Tuple[Chunk, ...]
    public_path: str = ""
    entrypoints: Tuple[ChunkId, ...] = field(default=())

    def by_id(self) -> Dict[ChunkId, Chunk]:
        return {c.id: c for c in self.chunks}

    def is_initial(self, chunk: Chunk) -> bool:
        return chunk.initial or chunk.id in self.entrypoints

    def initial_ids(self) -> Set[ChunkId]:
        return {c.id for c in self.chunks if self.is_initial(c)}

    def async_ids(self) -> Set[ChunkId]:
        """
        Chunks reachable through at least one on-demand edge, starting from
        the initial chunks. Initial chunks never count as async, even when an
        async edge also points at them.
        """
        index = self.by_id()
        initial = self.initial_ids()

        reached: Set[ChunkId] = set()
        stack: List[ChunkId] = []
        for cid in initial:
            stack.extend(index[cid].children)

        while stack:
            cid = stack.pop()
            if cid in reached or cid not in index:
                continue
            reached.add(cid)
            stack.extend(index[cid].children)

        return reached - initial


def _as_id(v: Any) -> ChunkId:
    return str(v)

def _str_list(v: Any, where: str) -> List[str]:
    if v is None:
        return []
    if isinstance(v, str):
        return [v]
    if not isinstance(v, (list, tuple)):
        raise ValueError(f"Malformed stats: {where} must be a list")
    return [str(x) for x in v]

def _uniq(xs: Iterable[str]) -> Tuple[str, ...]:
    out: List[str] = []
    seen = set()
    for x in xs:
        if x not in seen:
            out.append(x)
            seen.add(x)
    return tuple(out)

def graph_from_stats(stats: Dict[str, Any]) -> OutputGraph:
    """
    Build an OutputGraph from a webpack-style stats document:

      {"publicPath": "/", "chunks": [{"id": 0, "names": ["main"], "files": [...],
                                       "initial": true, "entry": true, "children": [1]}]}
    """
    if not isinstance(stats, dict):
        raise ValueError("Malformed stats: top-level must be a mapping")

    raw_chunks = stats.get("chunks", [])
    if not isinstance(raw_chunks, list):
        raise ValueError("Malformed stats: 'chunks' must be a list")

    chunks: List[Chunk] = []
    entrypoints: List[ChunkId] = []
    for i, raw in enumerate(raw_chunks):
        where = f"chunks[{i}]"
        if not isinstance(raw, dict):
            raise ValueError(f"Malformed stats: {where} must be a mapping")
        if "id" not in raw:
            raise ValueError(f"Malformed stats: {where} has no 'id'")

        names = _str_list(raw.get("names", None), f"{where}.names")
        name = raw.get("name", None)
        if name is None and names:
            name = names[0]

        chunk = Chunk(
            id=_as_id(raw["id"]),
            name=None if name is None else str(name),
            files=_uniq(_str_list(raw.get("files", None), f"{where}.files")),
            children=tuple(_as_id(c) for c in _str_list(raw.get("children", None), f"{where}.children")),
            initial=bool(raw.get("initial", False)),
        )
        if raw.get("entry", False):
            entrypoints.append(chunk.id)
        chunks.append(chunk)

    public_path = stats.get("publicPath", None)
    return OutputGraph(
        chunks=tuple(chunks),
        public_path="" if public_path is None else str(public_path),
        entrypoints=tuple(entrypoints),
    )

def load_graph(path: Path) -> OutputGraph:
    path = Path(path).expanduser()
    try:
        obj = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"Malformed stats file {path}: {e}") from e
    return graph_from_stats(obj)
