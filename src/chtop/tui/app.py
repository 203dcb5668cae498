"""Textual dashboard: renders view state and turns key presses into bus events."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import DataTable, Footer, Header, RichLog, Static

from .._safe_subprocess import SubprocessError
from ..clickhouse.sql import TraceType
from ..common.relative_datetime import RelativeDateTime
from ..config import AppConfig
from ..contracts.error import EnvelopeError, PolicyError
from ..core.background_runner import BackgroundRunner
from ..core.commands import (
    QueueSink,
    SetStatus,
    ShowError,
    ShowFlamegraph,
    ShowInfo,
    ShowText,
    UiCommand,
    UpdateView,
)
from ..core.context import Context
from ..core.events import (
    SUMMARY_VIEW,
    Event,
    Explain,
    KillQuery,
    LiveQueryFlameGraph,
    QueryFlameGraph,
    ServerFlameGraph,
    UpdateSummary,
)
from ..core.flamegraph import open_in_viewer, top_stacks_report, viewer_available
from ..core.summary import ServerSummary, SummaryTracker, format_summary
from ..core.worker import Worker
from ..views.queries import QueriesViewState
from ..views.registry import VIEWS, ViewEntry, ViewKind, get_view
from ..views.sql_view import SqlQueryViewState
from ..views.text_log import LogLine, TextLogState
from .screens import ConfirmDialog, ErrorDialog, LogDialog, PromptDialog, TextDialog, ViewPicker

logger = logging.getLogger(__name__)

DRAIN_INTERVAL = 0.05
QUERY_LOGS_VIEW = "query_logs"

ViewState = QueriesViewState | SqlQueryViewState | TextLogState


@dataclass(slots=True)
class LogWindow:
    """A log dialog together with the state and runner feeding it."""

    dialog: LogDialog
    state: TextLogState
    runner: BackgroundRunner | None = None


class ChTopApp(App[None]):
    """Top-like dashboard for a ClickHouse server or cluster."""

    TITLE = "chtop"

    CSS = """
    Screen { layout: vertical; }
    #summary { height: auto; padding: 0 1; background: $panel; color: $text; }
    #view-title { height: 1; padding: 0 1; text-style: bold; }
    #table { height: 1fr; }
    #server-log { height: 1fr; display: none; }
    #status { height: 1; padding: 0 1; background: $boost; color: $text-muted; }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("r", "refresh", "Refresh"),
        Binding("f2", "pick_view", "Views"),
        Binding("F", "server_flamegraph", "Server flamegraph"),
        Binding("space", "toggle_select", "Select", show=False),
        Binding("slash", "filter", "Filter"),
        Binding("minus,underscore", "show_grouped", "All queries", show=False),
        Binding("plus", "show_subqueries", "Shards", show=False),
        Binding("left_parenthesis", "change_limit(20)", "Limit +20", show=False),
        Binding("right_parenthesis", "change_limit(-20)", "Limit -20", show=False),
        Binding("K", "kill", "Kill"),
        Binding("D", "details", "Details", show=False),
        Binding("l", "logs", "Logs"),
        Binding("s", "explain('syntax')", "Explain syntax", show=False),
        Binding("e", "explain('plan')", "Explain plan", show=False),
        Binding("E", "explain('pipeline')", "Explain pipeline", show=False),
        Binding("I", "explain('indexes')", "Explain indexes", show=False),
        Binding("C", "flamegraph('CPU')", "CPU flamegraph", show=False),
        Binding("R", "flamegraph('Real')", "Real flamegraph", show=False),
        Binding("M", "flamegraph('Memory')", "Memory flamegraph", show=False),
        Binding("L", "live_flamegraph", "Live flamegraph", show=False),
    ]

    def __init__(self, config: AppConfig, *, start_worker: bool = True) -> None:
        super().__init__()
        self.config = config
        self.sink = QueueSink()
        self.context = Context.from_config(config, self.sink)
        self.worker = Worker(self.context)
        self._start_worker = start_worker
        self._summary = SummaryTracker()
        self._summary_runner: BackgroundRunner | None = None
        self._view_runner: BackgroundRunner | None = None
        self._entry: ViewEntry | None = None
        self._state: ViewState | None = None
        self._header: list[str] = []
        self._log_windows: dict[str, LogWindow] = {}
        self._log_serial = 0
        self._error_dialog: ErrorDialog | None = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Static("Connecting...", id="summary")
        yield Static("", id="view-title")
        table: DataTable[str] = DataTable(id="table", zebra_stripes=True)
        table.cursor_type = "row"
        yield table
        yield RichLog(id="server-log", wrap=True, markup=False, highlight=False)
        yield Static("", id="status")
        yield Footer()

    def on_mount(self) -> None:
        if self._start_worker:
            self.worker.start()
        self.set_interval(DRAIN_INTERVAL, self.drain_commands)
        self._summary_runner = self._start_runner("summary", self._send_summary)
        self.switch_view(self.config.view.start_view)
        self.query_one("#table", DataTable).focus()

    def on_unmount(self) -> None:
        self._stop_background()

    def _stop_background(self) -> None:
        runners = [self._summary_runner, self._view_runner]
        runners.extend(window.runner for window in self._log_windows.values())
        for runner in runners:
            if runner is not None:
                runner.stop(timeout=5.0)
        self._summary_runner = self._view_runner = None
        self._log_windows.clear()
        self.worker.close()
        self.sink.close()
        self.worker.join(timeout=1.0)

    # -- scheduling ---------------------------------------------------------------

    def _start_runner(self, name: str, send: Callable[[], object]) -> BackgroundRunner:
        interval = self.context.options.delay_interval
        runner = BackgroundRunner(interval, self.context.signal, name=name)
        runner.start(lambda _forced: send())
        return runner

    def _send(self, event: Event) -> bool:
        return self.worker.send(event)

    def _send_summary(self) -> None:
        self._send(UpdateSummary())

    def switch_view(self, name: str) -> None:
        entry = get_view(name)
        if self._view_runner is not None:
            self._view_runner.stop(timeout=5.0)
            self._view_runner = None
        options = self.context.options
        state: ViewState
        if entry.kind is ViewKind.QUERIES:
            state = QueriesViewState(
                entry.name, options=options, running=entry.running, log_kind=entry.log_kind
            )
        elif entry.kind is ViewKind.SQL and entry.sql is not None:
            state = SqlQueryViewState(
                entry.sql, cluster=options.cluster, start=options.start, end=options.end
            )
        else:
            state = TextLogState(
                entry.name,
                start=options.start,
                end=options.end,
                limit=options.logs_limit * 100,
                show_hosts=options.cluster is not None,
                strip_hostnames=not options.no_strip_hostname_suffix,
            )
        self._entry = entry
        self._state = state
        self._header = []
        self._show_widgets(entry.kind)
        self._render_title()
        self._render_current()
        logger.info("Switched to view %s", entry.name)
        if isinstance(state, TextLogState) and not state.needs_polling:
            self._send(state.next_event())
            return
        self._view_runner = self._start_runner(entry.name, lambda: self._send(state.next_event()))

    def _show_widgets(self, kind: ViewKind) -> None:
        table = self.query_one("#table", DataTable)
        log = self.query_one("#server-log", RichLog)
        table.display = kind is not ViewKind.TEXT_LOG
        log.display = kind is ViewKind.TEXT_LOG
        table.clear(columns=True)
        log.clear()

    # -- UI command mailbox ---------------------------------------------------------

    def drain_commands(self) -> None:
        for command in self.sink.drain(max_items=256):
            try:
                self.apply(command)
            except EnvelopeError as exc:
                logger.warning("Cannot apply %s: %s", type(command).__name__, exc)
                self.show_error(str(exc) if not exc.hint else f"{exc}\n\n{exc.hint}")

    def apply(self, command: UiCommand) -> None:
        if isinstance(command, UpdateView):
            self.update_view(command.name, command.payload)
        elif isinstance(command, ShowError):
            self.show_error(command.message)
        elif isinstance(command, ShowInfo):
            self.notify(command.message)
        elif isinstance(command, SetStatus):
            self.query_one("#status", Static).update(command.text)
        elif isinstance(command, ShowText):
            self.push_screen(TextDialog(command.title, command.text))
        elif isinstance(command, ShowFlamegraph):
            self.show_flamegraph(command.title, command.stacks)

    def update_view(self, name: str, payload: Any) -> None:
        if name == SUMMARY_VIEW:
            summary: ServerSummary = payload
            rates = self._summary.update(summary)
            self.query_one("#summary", Static).update(format_summary(summary, rates))
            return
        window = self._log_windows.get(name)
        if window is not None:
            lines: list[LogLine] = payload
            added = window.state.update(lines)
            if added:
                window.dialog.append(window.state.rendered(window.state.lines[-added:]))
            return
        state = self._state
        if state is None or self._entry is None or self._entry.name != name:
            logger.debug("Dropping update for inactive view %s", name)
            return
        if isinstance(state, TextLogState):
            added = state.update(payload)
            if added:
                log = self.query_one("#server-log", RichLog)
                for line in state.rendered(state.lines[-added:]):
                    log.write(line)
            return
        state.update(payload)
        self._render_current()

    def show_error(self, message: str) -> None:
        dialog = self._error_dialog
        if dialog is not None and dialog in self.screen_stack:
            dialog.set_message(message)
            return

        def _closed(_: None) -> None:
            self._error_dialog = None

        self._error_dialog = ErrorDialog(message)
        self.push_screen(self._error_dialog, _closed)

    def show_flamegraph(self, title: str, stacks: tuple[tuple[str, int], ...]) -> None:
        if viewer_available():
            try:
                with self.suspend():
                    open_in_viewer(stacks)
                return
            except SubprocessError as exc:
                logger.warning("Flamegraph viewer failed: %s", exc)
        self.push_screen(TextDialog(title, top_stacks_report(stacks)))

    # -- rendering ---------------------------------------------------------------------

    def _render_title(self) -> None:
        entry, state = self._entry, self._state
        if entry is None:
            return
        parts = [entry.title]
        if isinstance(state, QueriesViewState):
            if state.filter_text:
                parts.append(f"filter: {state.filter_text}")
            if state.drill_down:
                parts.append(f"subqueries of {state.drill_down}")
            parts.append(f"limit: {state.limit}")
        self.query_one("#view-title", Static).update(" | ".join(parts))

    def _render_current(self) -> None:
        state = self._state
        if not isinstance(state, QueriesViewState | SqlQueryViewState):
            return
        table = self.query_one("#table", DataTable)
        header = state.header()
        if header != self._header:
            table.clear(columns=True)
            table.add_columns(*header)
            self._header = header
        else:
            table.clear()
        for row in state.table.rows:
            table.add_row(*state.cells(row))  # type: ignore[arg-type]
        index = state.table.focused_index
        if index is not None:
            table.move_cursor(row=index)

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        state = self._state
        if isinstance(state, QueriesViewState | SqlQueryViewState):
            state.table.focus(event.cursor_row)

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        state = self._state
        if isinstance(state, QueriesViewState | SqlQueryViewState):
            state.table.focus(event.cursor_row)
        self.action_details()

    # -- actions ------------------------------------------------------------------------

    def _queries(self) -> QueriesViewState:
        if not isinstance(self._state, QueriesViewState):
            raise PolicyError("This action is only available in the query views")
        return self._state

    def run_action_safely(self, action: Any, *args: Any) -> None:
        try:
            action(*args)
        except EnvelopeError as exc:
            self.notify(str(exc), severity="warning")

    def action_refresh(self) -> None:
        self.context.trigger_view_refresh()

    def action_pick_view(self) -> None:
        current = self._entry.name if self._entry else None

        def _picked(name: str | None) -> None:
            if name:
                self.switch_view(name)

        self.push_screen(ViewPicker(((e.name, e.title) for e in VIEWS), current), _picked)

    def action_toggle_select(self) -> None:
        self.run_action_safely(self._toggle_select)

    def _toggle_select(self) -> None:
        self._queries().toggle_selection()
        self._render_current()

    def action_filter(self) -> None:
        self.run_action_safely(self._filter)

    def _filter(self) -> None:
        state = self._queries()

        def _apply(text: str | None) -> None:
            if text is None:
                return
            state.set_filter(text)
            self._render_title()
            if self._view_runner is not None:
                self._view_runner.schedule()

        self.push_screen(PromptDialog("Filter", state.filter_text), _apply)

    def action_show_grouped(self) -> None:
        self.run_action_safely(self._show_grouped)

    def _show_grouped(self) -> None:
        self._queries().show_grouped()
        self._render_title()
        self._render_current()

    def action_show_subqueries(self) -> None:
        self.run_action_safely(self._show_subqueries)

    def _show_subqueries(self) -> None:
        self._queries().show_all_subqueries()
        self._render_title()
        self._render_current()

    def action_change_limit(self, delta: int) -> None:
        self.run_action_safely(self._change_limit, delta)

    def _change_limit(self, delta: int) -> None:
        self._queries().change_limit(delta)
        self._render_title()
        if self._view_runner is not None:
            self._view_runner.schedule()

    def action_kill(self) -> None:
        self.run_action_safely(self._kill)

    def _kill(self) -> None:
        record = self._queries().focused_record()

        def _confirmed(answer: bool | None) -> None:
            if answer:
                self._send(KillQuery(record.query_id))

        question = f"Are you sure you want to KILL QUERY with query_id = {record.query_id}?"
        self.push_screen(ConfirmDialog(question), _confirmed)

    def action_details(self) -> None:
        self.run_action_safely(self._details)

    def _details(self) -> None:
        state = self._state
        if isinstance(state, QueriesViewState):
            record = state.focused_record()
            self.push_screen(TextDialog(f"Query {record.query_id}", record.details()))
        elif isinstance(state, SqlQueryViewState):
            row = state.table.focused
            if row is None:
                raise PolicyError("No row selected")
            self.push_screen(TextDialog(state.definition.title, state.row_details(row)))

    def action_explain(self, kind: str) -> None:
        self.run_action_safely(self._explain, kind)

    def _explain(self, kind: str) -> None:
        record = self._queries().focused_record()
        database, query = record.current_database, record.original_query
        if kind == "syntax":
            event = Explain.syntax(database, query, record.settings)
        elif kind == "plan":
            event = Explain.plan(database, query)
        elif kind == "pipeline":
            event = Explain.pipeline(database, query)
        else:
            event = Explain.indexes(database, query)
        self._send(event)

    def action_flamegraph(self, trace_type: str) -> None:
        self.run_action_safely(self._flamegraph, TraceType(trace_type))

    def _flamegraph(self, trace_type: TraceType) -> None:
        query_ids, start, end = self._queries().query_ids_for_action()
        self._send(
            QueryFlameGraph(
                trace_type,
                tuple(query_ids),
                start=RelativeDateTime(date_time=start),
                end=RelativeDateTime(date_time=end) if end is not None else RelativeDateTime(),
            )
        )

    def action_live_flamegraph(self) -> None:
        self.run_action_safely(self._live_flamegraph)

    def _live_flamegraph(self) -> None:
        query_ids, _, _ = self._queries().query_ids_for_action()
        self._send(LiveQueryFlameGraph(tuple(query_ids)))

    def action_server_flamegraph(self) -> None:
        options = self.context.options
        self._send(ServerFlameGraph(TraceType.CPU, options.start, options.end))

    def action_logs(self) -> None:
        self.run_action_safely(self._logs)

    def _logs(self) -> None:
        state = self._state
        if isinstance(state, QueriesViewState):
            query_ids, start, end = state.query_ids_for_action()
            title = f"Logs of {', '.join(query_ids[:3])}{'...' if len(query_ids) > 3 else ''}"
            self.open_logs(title, query_ids, start, end)
        elif isinstance(state, SqlQueryViewState):
            row = state.table.focused
            request = state.log_request(row) if row is not None else None
            if request is None:
                raise PolicyError("No logs for this row")
            query_id, start = request
            self.open_logs(f"Logs of {query_id}", [query_id], start, None)
        else:
            raise PolicyError("This view has no per-row logs")

    def open_logs(
        self, title: str, query_ids: list[str], start: datetime, end: datetime | None
    ) -> None:
        self._log_serial += 1
        name = f"{QUERY_LOGS_VIEW}_{self._log_serial}"
        options = self.context.options
        state = TextLogState(
            name,
            start=RelativeDateTime(date_time=start),
            end=RelativeDateTime(date_time=end) if end is not None else None,
            query_ids=query_ids,
            show_hosts=options.cluster is not None,
            strip_hostnames=not options.no_strip_hostname_suffix,
        )
        dialog = LogDialog(name, title)
        window = LogWindow(dialog, state)
        self._log_windows[name] = window

        def _closed(_: None) -> None:
            closed = self._log_windows.pop(name, None)
            if closed is not None and closed.runner is not None:
                closed.runner.stop(timeout=5.0)

        self.push_screen(dialog, _closed)
        if state.needs_polling:
            window.runner = self._start_runner(name, lambda: self._send(state.next_event()))
        else:
            self._send(state.next_event())


def run_tui(config: AppConfig) -> None:
    """Launch the dashboard and block until it exits."""

    app = ChTopApp(config)
    app.run()


__all__ = ["ChTopApp", "run_tui"]
