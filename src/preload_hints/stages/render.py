from __future__ import annotations

import html
import inspect
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from preload_hints.config import AsSpec, ComputedAs, HintConfig, LiteralAs
from preload_hints.logging import get_logger
from preload_hints.stages.collect import Candidate

log = get_logger()

@dataclass(frozen=True)
class HintTag:
    rel: str
    href: str
    as_: Optional[str] = None

    def to_html(self) -> str:
        attrs = [f'rel="{html.escape(self.rel)}"', f'href="{html.escape(self.href)}"']
        if self.as_:
            attrs.append(f'as="{html.escape(self.as_)}"')
        return f"<link {' '.join(attrs)}>"

def resolve_public_path(graph_public_path: Optional[str], override: Optional[str] = None) -> str:
    p = override if override is not None else graph_public_path
    p = (p or "").strip()
    if not p:
        return ""
    return p.rstrip("/") + "/"

def _clean_as(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None

def _call_as(spec: ComputedAs, cand: Candidate) -> Any:
    try:
        return spec.fn(cand.file, cand.chunk_name)
    except Exception as e:
        log.warning(f"'as' mapping failed for {cand.file}: {e!r}; omitting as attribute")
        return None

def _literal_or_none(spec: AsSpec) -> Optional[str]:
    if isinstance(spec, LiteralAs):
        return _clean_as(spec.value)
    return None

def raw_as_values(candidates: Sequence[Candidate], spec: AsSpec) -> List[Any]:
    """
    One raw 'as' value per candidate. A computed mapping may hand back
    awaitables (coroutine functions, async __call__, or plain functions
    returning a coroutine/future); settle them before building tags.
    """
    if not isinstance(spec, ComputedAs):
        value = _literal_or_none(spec)
        return [value for _ in candidates]
    return [_call_as(spec, c) for c in candidates]

def has_awaitables(values: Sequence[Any]) -> bool:
    return any(inspect.isawaitable(v) for v in values)

def settle_as_values(candidates: Sequence[Candidate], values: Sequence[Any]) -> List[Optional[str]]:
    out: List[Optional[str]] = []
    for cand, value in zip(candidates, values):
        if inspect.isawaitable(value):
            if inspect.iscoroutine(value):
                value.close()
            log.warning(f"'as' mapping returned an awaitable for {cand.file} outside async rendering; omitting as attribute")
            value = None
        out.append(_clean_as(value))
    return out

async def settle_as_values_async(candidates: Sequence[Candidate], values: Sequence[Any]) -> List[Optional[str]]:
    out: List[Optional[str]] = []
    for cand, value in zip(candidates, values):
        if inspect.isawaitable(value):
            try:
                value = await value
            except Exception as e:
                log.warning(f"'as' mapping failed for {cand.file}: {e!r}; omitting as attribute")
                value = None
        out.append(_clean_as(value))
    return out

def build_tags(
    candidates: Sequence[Candidate],
    cfg: HintConfig,
    public_path: str,
    as_values: Sequence[Optional[str]],
) -> List[HintTag]:
    out: List[HintTag] = []
    seen = set()
    for cand, as_value in zip(candidates, as_values):
        tag = HintTag(rel=cfg.rel, href=f"{public_path}{cand.file}", as_=as_value)
        if tag.href not in seen:
            out.append(tag)
            seen.add(tag.href)
    return out

def render_tags(candidates: Sequence[Candidate], cfg: HintConfig, public_path: str) -> List[HintTag]:
    values = raw_as_values(candidates, cfg.as_spec)
    return build_tags(candidates, cfg, public_path, settle_as_values(candidates, values))

async def render_tags_async(candidates: Sequence[Candidate], cfg: HintConfig, public_path: str) -> List[HintTag]:
    values = raw_as_values(candidates, cfg.as_spec)
    return build_tags(candidates, cfg, public_path, await settle_as_values_async(candidates, values))
