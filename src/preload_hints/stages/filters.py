from __future__ import annotations

import re
from typing import List, Sequence

from preload_hints.logging import get_logger
from preload_hints.stages.collect import Candidate

log = get_logger()

def is_blacklisted(file: str, patterns: Sequence[re.Pattern]) -> bool:
    return any(p.search(file) for p in patterns)

def filter_candidates(candidates: Sequence[Candidate], patterns: Sequence[re.Pattern]) -> List[Candidate]:
    out: List[Candidate] = []
    for c in candidates:
        if is_blacklisted(c.file, patterns):
            log.debug(f"blacklisted: {c.file}")
            continue
        out.append(c)
    return out
