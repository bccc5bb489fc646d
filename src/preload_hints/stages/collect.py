from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional

from preload_hints.config import INCLUDE_ALL, INCLUDE_ASYNC, INCLUDE_INITIAL, Include
from preload_hints.core.graph import Chunk, OutputGraph

@dataclass(frozen=True)
class Candidate:
    file: str
    chunk_name: Optional[str] = None

def _chunk_predicate(graph: OutputGraph, include: Include) -> Callable[[Chunk], bool]:
    if include == INCLUDE_ALL:
        return lambda c: True
    if include == INCLUDE_INITIAL:
        return graph.is_initial
    if include == INCLUDE_ASYNC:
        async_ids = graph.async_ids()
        return lambda c: c.id in async_ids
    # explicit chunk names
    names = frozenset(include)
    return lambda c: c.name is not None and c.name in names

def collect(graph: OutputGraph, include: Include) -> List[Candidate]:
    """
    Emitted files of the selected chunks, in chunk order. A file shared by
    several chunks is reported once, under the first chunk that emits it.
    """
    wanted = _chunk_predicate(graph, include)

    out: List[Candidate] = []
    seen = set()
    for chunk in graph.chunks:
        if not wanted(chunk):
            continue
        for f in chunk.files:
            if f in seen:
                continue
            out.append(Candidate(file=f, chunk_name=chunk.name))
            seen.add(f)
    return out
