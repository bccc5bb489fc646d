from __future__ import annotations

import asyncio
import weakref
from typing import Any, List, Mapping, Optional

from preload_hints.config import HintConfig, resolve_config
from preload_hints.core.graph import OutputGraph
from preload_hints.core.html import splice
from preload_hints.logging import get_logger
from preload_hints.pipeline.host import GRAPH_READY, HTML_BEFORE_EMIT, Compilation, Done, HtmlDocument, Lifecycle
from preload_hints.stages.collect import Candidate, collect
from preload_hints.stages.filters import filter_candidates
from preload_hints.stages.render import (
    build_tags,
    has_awaitables,
    raw_as_values,
    render_tags,
    render_tags_async,
    resolve_public_path,
    settle_as_values,
    settle_as_values_async,
)

log = get_logger()


class GraphUnavailableError(RuntimeError):
    pass


def _require_graph(compilation: Compilation) -> OutputGraph:
    if compilation.graph is None:
        raise GraphUnavailableError("compilation has no output graph")
    return compilation.graph


class HintInjector:
    """
    Adds <link rel="preload|prefetch"> hints for emitted chunk files to every
    HTML document of a compilation.

    The two on_* methods are the pure core; apply() binds them to a host
    Lifecycle under the graph-ready and html-before-emit signals.
    """

    name = "preload-hints"

    def __init__(self, options: Optional[Mapping[str, Any]] = None) -> None:
        self.config: HintConfig = resolve_config(options)
        # per-compilation candidates; gone with the compilation
        self._candidates: "weakref.WeakKeyDictionary[Compilation, List[Candidate]]" = weakref.WeakKeyDictionary()

    def public_path(self, graph: OutputGraph) -> str:
        return resolve_public_path(graph.public_path, self.config.public_path)

    # ---- core ----

    def on_graph_ready(self, graph: OutputGraph) -> List[Candidate]:
        candidates = collect(graph, self.config.include)
        return filter_candidates(candidates, self.config.file_blacklist)

    def on_document_finalize(self, html: str, candidates: List[Candidate], public_path: str) -> str:
        tags = render_tags(candidates, self.config, public_path)
        return splice(html, [t.to_html() for t in tags])

    async def on_document_finalize_async(self, html: str, candidates: List[Candidate], public_path: str) -> str:
        tags = await render_tags_async(candidates, self.config, public_path)
        return splice(html, [t.to_html() for t in tags])

    # ---- host adapters ----

    def apply(self, lifecycle: Lifecycle) -> None:
        lifecycle.tap(GRAPH_READY, self.name, self._handle_graph_ready)
        lifecycle.tap(HTML_BEFORE_EMIT, self.name, self._handle_html)

    def _handle_graph_ready(self, compilation: Compilation, done: Done) -> None:
        try:
            candidates = self.on_graph_ready(_require_graph(compilation))
        except Exception as e:
            done(e, None)
            return
        self._candidates[compilation] = candidates
        log.debug(f"{len(candidates)} hint candidates")
        done(None, compilation)

    def _handle_html(self, doc: HtmlDocument, done: Done) -> None:
        # the 'as' mapping runs once per candidate; its results decide whether
        # this document completes now or after awaiting them
        try:
            graph = _require_graph(doc.compilation)
            candidates = self._candidates.get(doc.compilation)
            if candidates is None:
                candidates = self.on_graph_ready(graph)
            public_path = self.public_path(graph)
            values = raw_as_values(candidates, self.config.as_spec)
            pending = has_awaitables(values)
            if not pending:
                tags = build_tags(candidates, self.config, public_path, settle_as_values(candidates, values))
                doc.html = splice(doc.html, [t.to_html() for t in tags])
        except Exception as e:
            done(e, None)
            return

        if pending:
            self._finish_async(doc, candidates, public_path, values, done)
        else:
            done(None, doc)

    async def _settle_and_splice(self, html: str, candidates: List[Candidate], public_path: str, values: List[Any]) -> str:
        as_values = await settle_as_values_async(candidates, values)
        tags = build_tags(candidates, self.config, public_path, as_values)
        return splice(html, [t.to_html() for t in tags])

    def _finish_async(
        self,
        doc: HtmlDocument,
        candidates: List[Candidate],
        public_path: str,
        values: List[Any],
        done: Done,
    ) -> None:
        coro = self._settle_and_splice(doc.html, candidates, public_path, values)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            try:
                doc.html = asyncio.run(coro)
            except Exception as e:
                done(e, None)
                return
            done(None, doc)
            return

        def _finished(task: asyncio.Task) -> None:
            if task.cancelled():
                done(asyncio.CancelledError(f"{self.name}: rendering {doc.name} was cancelled"), None)
                return
            err = task.exception()
            if err is not None:
                done(err, None)
                return
            doc.html = task.result()
            done(None, doc)

        loop.create_task(coro).add_done_callback(_finished)
