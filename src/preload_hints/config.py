from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Tuple, Union

import yaml

from preload_hints.logging import get_logger

log = get_logger()

RELS = ("preload", "prefetch")

INCLUDE_ASYNC = "asyncChunks"
INCLUDE_ALL = "allChunks"
INCLUDE_INITIAL = "initial"
_INCLUDE_ALIASES = {"all": INCLUDE_ALL}
INCLUDE_MODES = (INCLUDE_ASYNC, INCLUDE_ALL, INCLUDE_INITIAL)

MAP_FILE_PATTERN = re.compile(r"\.map$")

KNOWN_OPTIONS = ("rel", "as", "include", "fileBlacklist", "publicPath")


class ConfigurationError(ValueError):
    pass


@dataclass(frozen=True)
class LiteralAs:
    value: str


@dataclass(frozen=True)
class ComputedAs:
    fn: Callable[[str, Optional[str]], Any]


AsSpec = Union[LiteralAs, ComputedAs, None]
Include = Union[str, FrozenSet[str]]


@dataclass(frozen=True)
class HintConfig:
    rel: str = "preload"
    as_spec: AsSpec = None
    include: Include = INCLUDE_ASYNC           # mode name, or a frozenset of chunk names
    file_blacklist: Tuple[re.Pattern, ...] = (MAP_FILE_PATTERN,)
    public_path: Optional[str] = None          # overrides the compilation's public path


def _resolve_as(value: Any) -> AsSpec:
    if value is None:
        return None
    if callable(value):
        return ComputedAs(fn=value)
    if isinstance(value, str):
        value = value.strip()
        return LiteralAs(value=value) if value else None
    raise ConfigurationError(f"'as' must be a string or a callable, got {type(value).__name__}")


def _resolve_include(value: Any) -> Include:
    if value is None:
        return INCLUDE_ASYNC
    if isinstance(value, str):
        mode = _INCLUDE_ALIASES.get(value, value)
        if mode not in INCLUDE_MODES:
            raise ConfigurationError(
                f"unknown include mode {value!r}; expected one of {', '.join(INCLUDE_MODES)}, "
                "'all', or a list of chunk names"
            )
        return mode
    if isinstance(value, (list, tuple, set, frozenset)):
        return frozenset(str(v) for v in value)
    raise ConfigurationError(f"'include' must be a mode name or a list of chunk names, got {value!r}")


def _resolve_blacklist(value: Any) -> Tuple[re.Pattern, ...]:
    """
    Custom patterns are added after the source-map pattern, never instead of it.
    Strings are compiled as regular expressions.
    """
    if value is None:
        value = []
    if isinstance(value, (str, re.Pattern)):
        value = [value]

    out = [MAP_FILE_PATTERN]
    seen = {MAP_FILE_PATTERN.pattern}
    for p in value:
        if isinstance(p, re.Pattern):
            rx = p
        else:
            try:
                rx = re.compile(str(p))
            except re.error as e:
                raise ConfigurationError(f"invalid fileBlacklist pattern {p!r}: {e}") from e
        if rx.pattern in seen:
            continue
        seen.add(rx.pattern)
        out.append(rx)
    return tuple(out)


def resolve_config(options: Optional[Mapping[str, Any]] = None) -> HintConfig:
    opts: Dict[str, Any] = dict(options or {})

    for key in opts:
        if key not in KNOWN_OPTIONS:
            log.debug(f"ignoring unrecognized option: {key}")

    rel = opts.get("rel", None) or "preload"
    if rel not in RELS:
        raise ConfigurationError(f"invalid rel {rel!r}; expected 'preload' or 'prefetch'")

    public_path = opts.get("publicPath", None)
    if public_path is not None:
        public_path = str(public_path)

    return HintConfig(
        rel=rel,
        as_spec=_resolve_as(opts.get("as", None)),
        include=_resolve_include(opts.get("include", None)),
        file_blacklist=_resolve_blacklist(opts.get("fileBlacklist", None)),
        public_path=public_path,
    )


def load_options(path: Path) -> Dict[str, Any]:
    path = Path(path).expanduser()
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Malformed options file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Malformed options file {path}: top-level must be a mapping")
    return data
