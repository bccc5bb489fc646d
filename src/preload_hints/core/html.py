from __future__ import annotations

import re
from typing import List, Optional, Sequence

from preload_hints.logging import get_logger

log = get_logger()

_RE_HEAD_CLOSE = re.compile(r"</head\s*>", flags=re.IGNORECASE)
_RE_BODY_CLOSE = re.compile(r"</body\s*>", flags=re.IGNORECASE)

def _insertion_point(html: str) -> Optional[int]:
    m = _RE_HEAD_CLOSE.search(html)
    if m:
        return m.start()
    # last </body>, not the first: inline scripts may contain the literal string
    last = None
    for m in _RE_BODY_CLOSE.finditer(html):
        last = m
    if last:
        return last.start()
    return None

def splice(html: str, fragments: Sequence[str]) -> str:
    """
    Insert fragments, in order and one per line, right before </head>;
    fall back to </body>, then to the end of the document.
    """
    if not fragments:
        return html

    block: List[str] = [f"{f}\n" for f in fragments]
    text = "".join(block)

    at = _insertion_point(html)
    if at is None:
        log.warning("no </head> or </body> found; appending resource hints at end of document")
        if html and not html.endswith("\n"):
            text = "\n" + text
        return html + text

    return html[:at] + text + html[at:]
