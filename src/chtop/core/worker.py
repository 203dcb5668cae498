"""Update bus: one worker thread that owns all queries to the server.

Schedulers and user actions ``send()`` events into a capacity-1 queue. The
worker thread runs its own asyncio loop, executes one event at a time and
reports back to the UI exclusively through typed commands on the context's
sink.
"""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
from collections.abc import Awaitable, Callable
from typing import Any

from ..clickhouse import sql
from ..common.formatting import with_settings
from ..common.stopwatch import Stopwatch
from ..contracts.error import EnvelopeError
from ..views.text_log import log_lines_from_block
from .commands import (
    SetStatus,
    ShowError,
    ShowFlamegraph,
    ShowInfo,
    ShowText,
    UiCommand,
    UpdateView,
)
from .context import Context, ContextSnapshot
from .events import (
    Event,
    Explain,
    KillQuery,
    LiveQueryFlameGraph,
    ProcessList,
    QueryFlameGraph,
    QueryLog,
    ServerFlameGraph,
    TextLog,
    UpdateSummary,
    ViewQuery,
)
from .flamegraph import stacks_from_block
from .query import records_from_block
from .summary import ServerSummary

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.03
SLOW_PROCESSING_HINT = " (Processing takes too long, consider increasing --delay-interval)"

Handler = Callable[[Any, ContextSnapshot], Awaitable[list[UiCommand]]]


class Worker:
    """Single consumer of the update bus."""

    def __init__(self, context: Context, *, poll_interval: float = POLL_INTERVAL) -> None:
        self._context = context
        self._poll_interval = poll_interval
        self._queue: queue.Queue[Event] = queue.Queue(maxsize=1)
        self._closed = threading.Event()
        self._thread: threading.Thread | None = None
        self._slow_processing = False
        self._handlers: dict[type[Event], Handler] = {
            ProcessList: self._process_list,
            QueryLog: self._query_log,
            TextLog: self._text_log,
            ServerFlameGraph: self._server_flamegraph,
            QueryFlameGraph: self._query_flamegraph,
            LiveQueryFlameGraph: self._live_flamegraph,
            UpdateSummary: self._summary,
            KillQuery: self._kill_query,
            Explain: self._explain,
            ViewQuery: self._view_query,
        }

    # -- producer side -------------------------------------------------------

    def send(self, event: Event) -> bool:
        """Enqueue ``event`` without blocking; ``False`` when it had to be dropped."""

        if self._closed.is_set():
            logger.warning("Worker is closed, dropping %s", event.label)
            return False
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            logger.error(
                "Cannot send %s: update queue is full, processing is slower than the "
                "refresh interval (consider increasing --delay-interval)",
                event.label,
            )
            return False
        return True

    @property
    def slow_processing(self) -> bool:
        return self._slow_processing

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    # -- lifecycle -------------------------------------------------------------

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("worker already started")
        self._thread = threading.Thread(target=self._run, name="chtop-worker", daemon=True)
        self._thread.start()

    def close(self) -> None:
        """Stop accepting events; the consumer drains what is queued and exits."""

        self._closed.set()

    def join(self, timeout: float | None = None) -> None:
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self) -> None:
        asyncio.run(self.serve())

    async def serve(self) -> None:
        """Consume events until the bus is closed and empty."""

        await self._fetch_server_version()
        while True:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                if self._closed.is_set():
                    break
                await asyncio.sleep(self._poll_interval)
                continue
            await self.dispatch(event)
        logger.info("Worker finished")

    # -- dispatch --------------------------------------------------------------

    def _status(self, text: str) -> SetStatus:
        return SetStatus(text + SLOW_PROCESSING_HINT if self._slow_processing else text)

    async def dispatch(self, event: Event) -> None:
        snapshot = self._context.snapshot()
        sink = snapshot.sink
        sink.post(self._status(f"Processing {event.label}..."))
        stopwatch = Stopwatch()
        try:
            handler = self._handlers[type(event)]
            commands = await handler(event, snapshot)
        except EnvelopeError as exc:
            logger.warning("%s failed: %s", event.label, exc)
            message = str(exc) if not exc.hint else f"{exc}\n\n{exc.hint}"
            commands = [ShowError(message)]
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error while processing %s", event.label)
            commands = [ShowError(f"{type(exc).__name__}: {exc}")]
        elapsed = stopwatch.elapsed()
        if elapsed.total_seconds() > snapshot.options.delay_interval:
            self._slow_processing = True
        for command in commands:
            sink.post(command)
        sink.post(self._status(f"Processing {event.label} took {stopwatch.elapsed_ms()} ms."))

    async def _fetch_server_version(self) -> None:
        snapshot = self._context.snapshot()
        try:
            block = await snapshot.client.execute("SELECT version() AS version")
            version = block.get_str(0, "version") if block.row_count() else ""
        except EnvelopeError as exc:
            logger.warning("Cannot determine server version: %s", exc)
            return
        except Exception:  # noqa: BLE001
            logger.exception("Unexpected error while determining the server version")
            return
        logger.info("Connected to ClickHouse %s at %s", version, snapshot.client.url)
        self._context.set_server_version(version)

    # -- handlers ----------------------------------------------------------------

    async def _process_list(self, event: ProcessList, ctx: ContextSnapshot) -> list[UiCommand]:
        query = sql.processes_query(
            filter_text=event.filter_text, limit=event.limit, cluster=ctx.options.cluster
        )
        block = await ctx.client.execute(query)
        return [UpdateView(event.view_name, records_from_block(block, running=True))]

    async def _query_log(self, event: QueryLog, ctx: ContextSnapshot) -> list[UiCommand]:
        query = sql.query_log_query(
            event.kind,
            filter_text=event.filter_text,
            start=event.start,
            end=event.end,
            limit=event.limit,
            cluster=ctx.options.cluster,
        )
        block = await ctx.client.execute(query)
        return [UpdateView(event.view_name, records_from_block(block, running=False))]

    async def _text_log(self, event: TextLog, ctx: ContextSnapshot) -> list[UiCommand]:
        query = sql.text_log_query(
            query_ids=event.query_ids,
            since_microseconds=event.since_microseconds,
            start=event.start,
            end=event.end,
            limit=event.limit,
            cluster=ctx.options.cluster,
        )
        block = await ctx.client.execute(query)
        return [UpdateView(event.view_name, log_lines_from_block(block))]

    async def _flamegraph(self, title: str, query: str, ctx: ContextSnapshot) -> list[UiCommand]:
        block = await ctx.client.execute(query, settings=sql.INTROSPECTION_SETTINGS)
        stacks = stacks_from_block(block)
        if not stacks:
            return [ShowInfo(f"{title}: no samples found")]
        return [ShowFlamegraph(title, stacks)]

    async def _server_flamegraph(
        self, event: ServerFlameGraph, ctx: ContextSnapshot
    ) -> list[UiCommand]:
        query = sql.trace_log_flamegraph_query(
            event.trace_type,
            query_ids=None,
            start=event.start,
            end=event.end,
            cluster=ctx.options.cluster,
        )
        return await self._flamegraph(f"Server {event.trace_type} flamegraph", query, ctx)

    async def _query_flamegraph(
        self, event: QueryFlameGraph, ctx: ContextSnapshot
    ) -> list[UiCommand]:
        query = sql.trace_log_flamegraph_query(
            event.trace_type,
            query_ids=event.query_ids,
            start=event.start,
            end=event.end,
            cluster=ctx.options.cluster,
        )
        return await self._flamegraph(f"Query {event.trace_type} flamegraph", query, ctx)

    async def _live_flamegraph(
        self, event: LiveQueryFlameGraph, ctx: ContextSnapshot
    ) -> list[UiCommand]:
        query = sql.live_flamegraph_query(event.query_ids or None, cluster=ctx.options.cluster)
        return await self._flamegraph("Live flamegraph", query, ctx)

    async def _summary(self, event: UpdateSummary, ctx: ContextSnapshot) -> list[UiCommand]:
        block = await ctx.client.execute(sql.summary_query(ctx.options.cluster))
        return [UpdateView(event.view_name, ServerSummary.from_block(block))]

    async def _kill_query(self, event: KillQuery, ctx: ContextSnapshot) -> list[UiCommand]:
        await ctx.client.execute(sql.kill_query(event.query_id, cluster=ctx.options.cluster))
        return [ShowInfo(f"Query {event.query_id} killed")]

    async def _explain(self, event: Explain, ctx: ContextSnapshot) -> list[UiCommand]:
        query = sql.explain_query(event.kind, event.query)
        if event.settings:
            query = with_settings(query, dict(event.settings))
        block = await ctx.client.execute(query, database=event.database or None)
        text = "\n".join(str(row[0]) for row in block.rows if row)
        return [ShowText(f"EXPLAIN {event.kind.upper()}", text)]

    async def _view_query(self, event: ViewQuery, ctx: ContextSnapshot) -> list[UiCommand]:
        block = await ctx.client.execute(event.query)
        return [UpdateView(event.view_name, block)]


__all__ = ["POLL_INTERVAL", "SLOW_PROCESSING_HINT", "Worker"]
