from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Dict

from preload_hints.config import INCLUDE_MODES, ConfigurationError, load_options
from preload_hints.core.graph import load_graph
from preload_hints.io.fs import read_documents, write_text_utf8
from preload_hints.logging import get_logger
from preload_hints.pipeline.host import Compilation, HookError, Lifecycle, run_compilation
from preload_hints.pipeline.inject import HintInjector

log = get_logger()

def _include_arg(s: str):
    s = s.strip()
    if s in INCLUDE_MODES or s == "all":
        return s
    return [p.strip() for p in s.split(",") if p.strip()]

def _options(args) -> Dict[str, Any]:
    opts: Dict[str, Any] = {}
    if args.config:
        opts.update(load_options(Path(args.config)))
    if args.rel is not None:
        opts["rel"] = args.rel
    if args.as_ is not None:
        opts["as"] = args.as_
    if args.include is not None:
        opts["include"] = _include_arg(args.include)
    if args.blacklist:
        base = opts.get("fileBlacklist", None) or []
        if isinstance(base, str):
            base = [base]
        opts["fileBlacklist"] = list(base) + list(args.blacklist)
    if args.public_path is not None:
        opts["publicPath"] = args.public_path
    return opts

def main(argv=None) -> int:
    p = argparse.ArgumentParser(prog="preload-hints")
    sub = p.add_subparsers(dest="cmd", required=True)

    i = sub.add_parser("inject", help="Add preload/prefetch hints for build chunks to HTML files")
    i.add_argument("stats", help="Path to the bundler's stats JSON (chunks, files, publicPath)")
    i.add_argument("--html", action="append", required=True, help="HTML file to annotate (repeatable)")
    i.add_argument("--config", default=None, help="YAML options file (rel, as, include, fileBlacklist, publicPath)")
    i.add_argument("--rel", default=None, help="preload or prefetch (default: preload)")
    i.add_argument("--as", dest="as_", default=None, help="Value of the as attribute (default: omitted)")
    i.add_argument("--include", default=None, help="asyncChunks, allChunks, initial, or comma-separated chunk names")
    i.add_argument("--blacklist", action="append", default=[], help="Regex of files to skip (repeatable; .map always skipped)")
    i.add_argument("--public-path", default=None, help="Override the stats publicPath")
    i.add_argument("--dry-run", action="store_true", help="No writes; report actions")

    args = p.parse_args(argv)

    try:
        injector = HintInjector(_options(args))
        graph = load_graph(Path(args.stats).expanduser())
    except (ConfigurationError, ValueError, OSError) as e:
        log.error(str(e))
        return 2

    html_paths = [Path(h).expanduser() for h in args.html]
    for h in html_paths:
        if h.suffix.lower() != ".html":
            log.warning(f"not an .html file, skipped: {h}")

    try:
        docs = read_documents(h for h in html_paths if h.suffix.lower() == ".html")
    except (OSError, UnicodeDecodeError) as e:
        log.error(f"cannot read HTML: {e}")
        return 2

    lifecycle = Lifecycle()
    injector.apply(lifecycle)
    compilation = Compilation(graph=graph, assets=docs)
    try:
        run_compilation(lifecycle, compilation)
    except HookError as e:
        log.error(str(e))
        return 1

    for name in compilation.html_assets():
        if args.dry_run:
            log.info(f"[dry-run] would write: {name}")
        else:
            write_text_utf8(Path(name), compilation.assets[name])

    log.info(
        "done: documents=%d rel=%s include=%s public_path=%r dry_run=%s",
        len(compilation.html_assets()), injector.config.rel,
        _include_label(injector.config.include), injector.public_path(graph), bool(args.dry_run),
    )
    return 0

def _include_label(include) -> str:
    if isinstance(include, str):
        return include
    return ",".join(sorted(include))

if __name__ == "__main__":
    raise SystemExit(main())
