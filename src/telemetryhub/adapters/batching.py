"""Bounded log buffer with a periodic flush task."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

from telemetryhub.core.config import DEFAULT_BATCH_TIMEOUT, parse_duration
from telemetryhub.core.encoding.loki import LogStream, StreamBuilder
from telemetryhub.core.errors import ConfigurationError, StreamPushError
from telemetryhub.core.models import LogEntry

logger = logging.getLogger(__name__)

PushStream = Callable[[LogStream], Awaitable[None]]


class LogBatcher:
    """Buffers log entries and pushes them as label-grouped streams.

    Entries accumulate until the buffer is full or the flush interval
    elapses. Draining swaps the buffer out under the lock and pushes the
    batch after releasing it, so writers never wait on the network while
    holding the lock.

    Example:
        ```python
        batcher = LogBatcher(push_stream, buffer_size=500, batch_timeout="5s")
        batcher.start()
        await batcher.write(entries)
        await batcher.close()  # final flush
        ```

    Args:
        push_stream: Coroutine function delivering one stream.
        builder: Label policy used to group entries into streams.
        buffer_size: Maximum number of buffered entries.
        batch_timeout: Flush interval as a duration string or seconds.
        name: Owner name used in log records.
    """

    def __init__(
        self,
        push_stream: PushStream,
        builder: StreamBuilder | None = None,
        buffer_size: int = 1000,
        batch_timeout: str | float = "10s",
        name: str = "loki",
    ) -> None:
        if buffer_size <= 0:
            raise ConfigurationError(f"buffer_size must be positive, got {buffer_size}")
        self._push_stream = push_stream
        self._builder = builder or StreamBuilder()
        self._buffer_size = buffer_size
        self._interval = parse_duration(batch_timeout, DEFAULT_BATCH_TIMEOUT)
        self._name = name
        self._buffer: list[LogEntry] = []
        self._flush_count = 0
        self._closed = False
        self._task: asyncio.Task[None] | None = None
        self._lock: asyncio.Lock | None = None
        self._stop: asyncio.Event | None = None

    def _get_lock(self) -> asyncio.Lock:
        """Get or create the buffer lock (lazy to avoid event loop issues)."""
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def _get_stop(self) -> asyncio.Event:
        if self._stop is None:
            self._stop = asyncio.Event()
        return self._stop

    @property
    def pending(self) -> int:
        """Number of buffered entries not yet pushed."""
        return len(self._buffer)

    @property
    def flush_count(self) -> int:
        """Number of non-empty batches pushed so far."""
        return self._flush_count

    @property
    def buffer_size(self) -> int:
        return self._buffer_size

    @property
    def interval(self) -> float:
        """Seconds between timer flushes."""
        return self._interval

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Start the periodic flush task. Later calls do nothing.

        Must be called from a running event loop.
        """
        if self._task is not None or self._closed:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"{self._name}-log-batcher"
        )

    async def write(self, entries: Iterable[LogEntry]) -> None:
        """Buffer entries, pushing any batch that fills the buffer.

        After ``close`` the entries are pushed immediately instead.

        Raises:
            StreamPushError: If a drained batch could not be pushed.
        """
        if self._closed:
            await self.send_now(entries)
            return
        drained: list[list[LogEntry]] = []
        async with self._get_lock():
            for entry in entries:
                if len(self._buffer) >= self._buffer_size:
                    drained.append(self._swap())
                self._buffer.append(entry)
        failures: dict[str, Exception] = {}
        for batch in drained:
            try:
                await self._flush_batch(batch)
            except StreamPushError as exc:
                failures.update(exc.failures)
        if failures:
            raise StreamPushError("flush", failures)

    async def flush(self) -> None:
        """Push everything buffered so far.

        Raises:
            StreamPushError: If any stream could not be pushed. Entries of
                failed streams are dropped.
        """
        async with self._get_lock():
            batch = self._swap()
        await self._flush_batch(batch)

    async def send_now(self, entries: Iterable[LogEntry]) -> None:
        """Push entries immediately, bypassing the buffer."""
        await self._deliver(list(entries))

    async def close(self) -> None:
        """Stop the flush task and push what is left. Idempotent.

        Raises:
            StreamPushError: If the final flush fails.
        """
        if self._closed:
            return
        self._closed = True
        task, self._task = self._task, None
        if task is None:
            await self.flush()
            return
        self._get_stop().set()
        await task

    def _swap(self) -> list[LogEntry]:
        batch, self._buffer = self._buffer, []
        return batch

    async def _flush_batch(self, batch: list[LogEntry]) -> None:
        if not batch:
            return
        self._flush_count += 1
        await self._deliver(batch)

    async def _deliver(self, entries: list[LogEntry]) -> None:
        if not entries:
            return
        streams = self._builder.build(entries)
        results = await asyncio.gather(
            *(self._push_stream(stream) for stream in streams), return_exceptions=True
        )
        failures: dict[str, Exception] = {}
        for stream, result in zip(streams, results):
            if isinstance(result, Exception):
                failures[stream.key] = result
            elif isinstance(result, BaseException):
                raise result
        if failures:
            raise StreamPushError("push", failures)
        logger.debug(
            "Pushed log streams",
            extra={
                "integration": self._name,
                "streams": len(streams),
                "entries": len(entries),
            },
        )

    async def _run(self) -> None:
        stop = self._get_stop()
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
            if stop.is_set():
                break
            try:
                await self.flush()
            except StreamPushError:
                logger.exception(
                    "Periodic log flush failed", extra={"integration": self._name}
                )
        # Final flush on shutdown; errors propagate to close().
        await self.flush()
