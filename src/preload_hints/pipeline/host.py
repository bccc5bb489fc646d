from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from preload_hints.core.graph import OutputGraph


GRAPH_READY = "graph-ready"
HTML_BEFORE_EMIT = "html-before-emit"

Done = Callable[[Optional[BaseException], Any], None]
Tap = Callable[[Any, Done], None]


class HookError(RuntimeError):
    """A tap reported an error through its continuation; the original is __cause__."""


@dataclass(eq=False)
class Compilation:
    graph: Optional[OutputGraph]
    assets: Dict[str, str] = field(default_factory=dict)   # name -> source
    errors: List[BaseException] = field(default_factory=list)

    def html_assets(self) -> List[str]:
        return [name for name in self.assets if name.lower().endswith(".html")]


@dataclass(eq=False)
class HtmlDocument:
    compilation: Compilation
    name: str
    html: str


class _Continuation:
    def __init__(self, signal: str, tap_name: str) -> None:
        self.signal = signal
        self.tap_name = tap_name
        self.called = False
        self.error: Optional[BaseException] = None
        self.result: Any = None
        self.future: Optional[asyncio.Future] = None

    def __call__(self, error: Optional[BaseException] = None, result: Any = None) -> None:
        if self.called:
            raise HookError(f"{self.tap_name} completed {self.signal} twice")
        self.called = True
        self.error = error
        self.result = result
        if self.future is not None and not self.future.done():
            self.future.set_result(None)


class Lifecycle:
    """
    Serial callback registry. Each tap receives (payload, done) and must call
    done(error, result) exactly once; a non-None result replaces the payload
    for the following taps.
    """

    def __init__(self) -> None:
        self._taps: Dict[str, List[Tuple[str, Tap]]] = defaultdict(list)

    def tap(self, signal: str, name: str, fn: Tap) -> None:
        self._taps[signal].append((name, fn))

    def taps(self, signal: str) -> List[str]:
        return [name for name, _ in self._taps.get(signal, [])]

    @staticmethod
    def _settle(cont: _Continuation, payload: Any) -> Any:
        if cont.error is not None:
            raise HookError(f"{cont.tap_name} failed during {cont.signal}: {cont.error}") from cont.error
        return payload if cont.result is None else cont.result

    def call(self, signal: str, payload: Any) -> Any:
        for name, fn in self._taps.get(signal, []):
            cont = _Continuation(signal, name)
            fn(payload, cont)
            if not cont.called:
                raise HookError(f"{name} did not complete {signal} synchronously; use acall()")
            payload = self._settle(cont, payload)
        return payload

    async def acall(self, signal: str, payload: Any) -> Any:
        loop = asyncio.get_running_loop()
        for name, fn in self._taps.get(signal, []):
            cont = _Continuation(signal, name)
            cont.future = loop.create_future()
            fn(payload, cont)
            if not cont.called:
                await cont.future
            payload = self._settle(cont, payload)
        return payload


def _record(compilation: Compilation, e: HookError) -> None:
    compilation.errors.append(e.__cause__ or e)

def run_compilation(lifecycle: Lifecycle, compilation: Compilation) -> Compilation:
    try:
        lifecycle.call(GRAPH_READY, compilation)
        for name in compilation.html_assets():
            doc = lifecycle.call(HTML_BEFORE_EMIT, HtmlDocument(compilation, name, compilation.assets[name]))
            compilation.assets[name] = doc.html
    except HookError as e:
        _record(compilation, e)
        raise
    return compilation

async def run_compilation_async(lifecycle: Lifecycle, compilation: Compilation) -> Compilation:
    try:
        await lifecycle.acall(GRAPH_READY, compilation)
        for name in compilation.html_assets():
            doc = await lifecycle.acall(HTML_BEFORE_EMIT, HtmlDocument(compilation, name, compilation.assets[name]))
            compilation.assets[name] = doc.html
    except HookError as e:
        _record(compilation, e)
        raise
    return compilation
