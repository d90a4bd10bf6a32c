"""Analysis adapter: drives the async engine from synchronous worker threads.

Each worker leases one long-lived event loop from an EngineContextPool and
keeps using it for every track it handles, so loops are created once per
worker instead of once per track.
"""

import asyncio
import contextlib
import queue
from collections.abc import Iterator

import structlog

from setbreak.analysis.engine import AnalysisEngine, EngineConfig
from setbreak.audio.decode import DecodedAudio
from setbreak.errors import EngineError
from setbreak.models.analysis import AnalysisResult

log = structlog.get_logger()


class EngineContext:
    """A private event loop for one worker."""

    def __init__(self) -> None:
        self.loop = asyncio.new_event_loop()

    def run(self, coro):  # type: ignore[no-untyped-def]
        return self.loop.run_until_complete(coro)

    def close(self) -> None:
        self.loop.close()


class EngineContextPool:
    """Fixed arena of engine contexts, one per worker.

    A context is handed to exactly one thread at a time; lease() blocks
    until one is free.
    """

    def __init__(self, size: int) -> None:
        if size < 1:
            raise ValueError("pool size must be at least 1")
        self._contexts = [EngineContext() for _ in range(size)]
        self._free: queue.Queue[EngineContext] = queue.Queue()
        for ctx in self._contexts:
            self._free.put(ctx)

    @property
    def size(self) -> int:
        return len(self._contexts)

    @contextlib.contextmanager
    def lease(self) -> Iterator[EngineContext]:
        ctx = self._free.get()
        try:
            yield ctx
        finally:
            self._free.put(ctx)

    def close(self) -> None:
        for ctx in self._contexts:
            ctx.close()

    def __enter__(self) -> "EngineContextPool":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class AnalysisAdapter:
    """Runs the engine with a fixed config and normalizes its failures."""

    def __init__(
        self,
        engine: AnalysisEngine,
        config: EngineConfig,
        pool: EngineContextPool,
    ) -> None:
        self.engine = engine
        self.config = config
        self.pool = pool

    def analyze(self, audio: DecodedAudio) -> AnalysisResult:
        """Analyze one decoded buffer.

        Raises:
            EngineError: Carrying the engine's message unchanged.
        """
        with self.pool.lease() as ctx:
            try:
                return ctx.run(self.engine.analyze(audio, self.config))
            except EngineError:
                raise
            except Exception as e:
                log.debug("engine_failed", error=str(e), exc_info=True)
                raise EngineError(str(e) or type(e).__name__) from e
