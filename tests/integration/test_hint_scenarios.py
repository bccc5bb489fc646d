import asyncio

import pytest

from preload_hints.core.graph import Chunk, OutputGraph
from preload_hints.pipeline.host import (
    GRAPH_READY,
    HTML_BEFORE_EMIT,
    Compilation,
    HookError,
    Lifecycle,
    run_compilation,
    run_compilation_async,
)
from preload_hints.pipeline.inject import GraphUnavailableError, HintInjector

INDEX = "<!DOCTYPE html>\n<html>\n<head>\n<meta charset=\"UTF-8\">\n<title>App</title>\n</head>\n<body>\n<script src=\"bundle.js\"></script>\n</body>\n</html>\n"

def _async_split_graph(*, source_maps: bool = False, chunk_name=None, chunk_file="chunk.5f1c2d.js") -> OutputGraph:
    entry_files = ("bundle.js", "bundle.js.map") if source_maps else ("bundle.js",)
    chunk_files = (chunk_file, f"{chunk_file}.map") if source_maps else (chunk_file,)
    return OutputGraph(
        chunks=(
            Chunk(id="0", name="js", files=entry_files, children=("1",), initial=True),
            Chunk(id="1", name=chunk_name, files=chunk_files),
        ),
        public_path="",
        entrypoints=("0",),
    )

def _build(graph: OutputGraph, options=None, assets=None) -> Compilation:
    lifecycle = Lifecycle()
    HintInjector(options).apply(lifecycle)
    compilation = Compilation(graph=graph, assets=dict(assets or {"index.html": INDEX}))
    return run_compilation(lifecycle, compilation)

def test_adds_preload_tags_to_async_chunks() -> None:
    html = _build(_async_split_graph()).assets["index.html"]
    assert '<link rel="preload" href="chunk.' in html
    assert '<link rel="preload" href="bundle.' not in html

def test_adds_prefetch_tags_to_async_chunks() -> None:
    html = _build(_async_split_graph(), {"rel": "prefetch"}).assets["index.html"]
    assert '<link rel="prefetch" href="chunk.' in html

def test_preloads_normal_chunks_with_include_all() -> None:
    html = _build(_async_split_graph(), {"rel": "preload", "as": "script", "include": "all"}).assets["index.html"]
    assert '<link rel="preload" href="chunk' in html
    assert '<link rel="preload" href="bundle.js" as="script">' in html

def test_filters_chunks_by_name() -> None:
    graph = _async_split_graph(chunk_name="home", chunk_file="home.31ab9e.js")
    html = _build(graph, {"rel": "preload", "as": "script", "include": ["home"]}).assets["index.html"]
    assert '<link rel="preload" href="home' in html
    assert '<link rel="preload" href="bundle.js"' not in html

def test_does_not_preload_map_files() -> None:
    html = _build(_async_split_graph(source_maps=True), {"include": "all"}).assets["index.html"]
    assert '<link rel="preload" href="chunk.' in html
    assert '.map"' not in html

def test_public_path_prefixes_hrefs() -> None:
    graph = OutputGraph(chunks=_async_split_graph().chunks, public_path="/static", entrypoints=("0",))
    html = _build(graph).assets["index.html"]
    assert '<link rel="preload" href="/static/chunk.5f1c2d.js">' in html
    html = _build(graph, {"publicPath": "https://cdn.example.com/"}).assets["index.html"]
    assert '<link rel="preload" href="https://cdn.example.com/chunk.5f1c2d.js">' in html

def test_tags_land_before_head_close_of_every_document() -> None:
    assets = {"index.html": INDEX, "about.html": "<html><head></head><body></body></html>", "app.css": "body{}"}
    out = _build(_async_split_graph(), assets=assets).assets
    tag = '<link rel="preload" href="chunk.5f1c2d.js">\n</head>'
    assert tag in out["index.html"]
    assert tag in out["about.html"]
    assert out["index.html"].count("chunk.5f1c2d.js") == 1
    assert out["app.css"] == "body{}"

def test_other_plugins_see_spliced_html() -> None:
    lifecycle = Lifecycle()
    HintInjector().apply(lifecycle)
    seen = []

    def after(doc, done):
        seen.append(doc.html)
        done(None, None)

    lifecycle.tap(HTML_BEFORE_EMIT, "after", after)
    run_compilation(lifecycle, Compilation(graph=_async_split_graph(), assets={"index.html": INDEX}))
    assert '<link rel="preload" href="chunk.' in seen[0]
    assert lifecycle.taps(GRAPH_READY) == ["preload-hints"]

def test_missing_graph_propagates_through_host() -> None:
    lifecycle = Lifecycle()
    HintInjector().apply(lifecycle)
    compilation = Compilation(graph=None, assets={"index.html": INDEX})
    with pytest.raises(HookError) as exc:
        run_compilation(lifecycle, compilation)
    assert isinstance(exc.value.__cause__, GraphUnavailableError)
    assert isinstance(compilation.errors[0], GraphUnavailableError)
    assert compilation.assets["index.html"] == INDEX

def test_coroutine_as_mapping_without_running_loop() -> None:
    async def as_for(file, chunk_name):
        await asyncio.sleep(0)
        return "script"

    html = _build(_async_split_graph(), {"as": as_for}).assets["index.html"]
    assert '<link rel="preload" href="chunk.5f1c2d.js" as="script">' in html

def test_coroutine_as_mapping_inside_event_loop() -> None:
    async def as_for(file, chunk_name):
        await asyncio.sleep(0)
        if chunk_name == "broken":
            raise RuntimeError("lookup failed")
        return "script"

    async def go() -> Compilation:
        lifecycle = Lifecycle()
        HintInjector({"as": as_for, "include": "all"}).apply(lifecycle)
        graph = OutputGraph(
            chunks=(
                Chunk(id="0", name="main", files=("bundle.js",), children=("1",), initial=True),
                Chunk(id="1", name="broken", files=("broken.js",)),
            ),
        )
        return await run_compilation_async(lifecycle, Compilation(graph=graph, assets={"index.html": INDEX}))

    html = asyncio.run(go()).assets["index.html"]
    assert '<link rel="preload" href="bundle.js" as="script">' in html
    assert '<link rel="preload" href="broken.js">' in html

def test_candidates_are_not_shared_between_compilations() -> None:
    lifecycle = Lifecycle()
    HintInjector().apply(lifecycle)
    first = run_compilation(lifecycle, Compilation(graph=_async_split_graph(), assets={"index.html": INDEX}))
    second = run_compilation(
        lifecycle,
        Compilation(graph=_async_split_graph(chunk_file="chunk.9e9e9e.js"), assets={"index.html": INDEX}),
    )
    assert "chunk.5f1c2d.js" in first.assets["index.html"]
    assert "chunk.5f1c2d.js" not in second.assets["index.html"]
    assert "chunk.9e9e9e.js" in second.assets["index.html"]

def test_prefetches_entry_and_async_chunks_with_include_all() -> None:
    graph = OutputGraph(
        chunks=(
            Chunk(id="1", name="main", files=("main.js",), children=("0",), initial=True),
            Chunk(id="0", files=("0.js",)),
        ),
        entrypoints=("1",),
    )
    html = _build(graph, {"rel": "prefetch", "include": "all"}).assets["index.html"]
    assert '<link rel="prefetch" href="0' in html
    assert '<link rel="prefetch" href="main.js"' in html

async def _lookup(file: str) -> str:
    await asyncio.sleep(0)
    return "style" if file.endswith(".css") else "script"

class AsLookup:
    async def __call__(self, file, chunk_name):
        return await _lookup(file)

def test_callable_object_with_async_call_is_awaited() -> None:
    html = _build(_async_split_graph(), {"as": AsLookup()}).assets["index.html"]
    assert '<link rel="preload" href="chunk.5f1c2d.js" as="script">' in html

def test_plain_function_returning_coroutine_is_awaited() -> None:
    html = _build(_async_split_graph(), {"as": lambda f, n: _lookup(f)}).assets["index.html"]
    assert '<link rel="preload" href="chunk.5f1c2d.js" as="script">' in html

def test_mixed_sync_and_awaitable_results_inside_event_loop() -> None:
    def as_for(file, chunk_name):
        if file.endswith(".css"):
            return "style"
        return _lookup(file)

    async def go() -> Compilation:
        lifecycle = Lifecycle()
        HintInjector({"as": as_for, "include": "all"}).apply(lifecycle)
        graph = OutputGraph(
            chunks=(
                Chunk(id="0", name="main", files=("bundle.js", "bundle.css"), children=("1",), initial=True),
                Chunk(id="1", files=("lazy.js",)),
            ),
        )
        return await run_compilation_async(lifecycle, Compilation(graph=graph, assets={"index.html": INDEX}))

    html = asyncio.run(go()).assets["index.html"]
    assert '<link rel="preload" href="bundle.js" as="script">\n<link rel="preload" href="bundle.css" as="style">\n' in html
    assert '<link rel="preload" href="lazy.js" as="script">' in html
