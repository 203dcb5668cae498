"""Modal dialogs pushed by the dashboard."""

from __future__ import annotations

from collections.abc import Iterable

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, OptionList, RichLog, Static
from textual.widgets.option_list import Option

DIALOG_CSS = """
.dialog {
    width: 90%;
    height: auto;
    max-height: 90%;
    padding: 1 2;
    border: round $accent;
    background: $panel;
}
.dialog-title { text-style: bold; padding-bottom: 1; }
.dialog-error { border: round $error; }
.dialog-buttons { height: auto; padding-top: 1; align-horizontal: right; }
.dialog-body { height: auto; max-height: 40; }
"""


class ErrorDialog(ModalScreen[None]):
    """Shows one error; a newer error replaces the text instead of stacking dialogs."""

    DEFAULT_CSS = DIALOG_CSS
    BINDINGS = [Binding("escape,enter,q", "close", "Close")]

    def __init__(self, message: str) -> None:
        super().__init__()
        self.message = message

    def compose(self) -> ComposeResult:
        with Vertical(classes="dialog dialog-error"):
            yield Label("Error", classes="dialog-title")
            with VerticalScroll(classes="dialog-body"):
                yield Static(self.message, id="error-message", markup=False)
            with Horizontal(classes="dialog-buttons"):
                yield Button("OK", variant="error", id="ok")

    def set_message(self, message: str) -> None:
        self.message = message
        if self.is_mounted:
            self.query_one("#error-message", Static).update(message)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        event.stop()
        self.dismiss(None)

    def action_close(self) -> None:
        self.dismiss(None)


class TextDialog(ModalScreen[None]):
    DEFAULT_CSS = DIALOG_CSS
    BINDINGS = [Binding("escape,q", "close", "Close")]

    def __init__(self, title: str, text: str) -> None:
        super().__init__()
        self.title_text = title
        self.text = text

    def compose(self) -> ComposeResult:
        with Vertical(classes="dialog"):
            yield Label(self.title_text, classes="dialog-title")
            with VerticalScroll(classes="dialog-body"):
                yield Static(self.text, markup=False)

    def action_close(self) -> None:
        self.dismiss(None)


class ConfirmDialog(ModalScreen[bool]):
    DEFAULT_CSS = DIALOG_CSS
    BINDINGS = [
        Binding("y", "answer(True)", "Yes"),
        Binding("n,escape", "answer(False)", "No"),
    ]

    def __init__(self, question: str) -> None:
        super().__init__()
        self.question = question

    def compose(self) -> ComposeResult:
        with Vertical(classes="dialog"):
            yield Static(self.question, markup=False)
            with Horizontal(classes="dialog-buttons"):
                yield Button("Yes", variant="error", id="yes")
                yield Button("No", variant="primary", id="no")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        event.stop()
        self.dismiss(event.button.id == "yes")

    def action_answer(self, answer: bool) -> None:
        self.dismiss(answer)


class PromptDialog(ModalScreen[str | None]):
    """Single-line input; dismisses with the text, or ``None`` on escape."""

    DEFAULT_CSS = DIALOG_CSS
    BINDINGS = [Binding("escape", "cancel", "Cancel")]

    def __init__(self, prompt: str, value: str = "") -> None:
        super().__init__()
        self.prompt = prompt
        self.value = value

    def compose(self) -> ComposeResult:
        with Vertical(classes="dialog"):
            yield Label(self.prompt, classes="dialog-title")
            yield Input(value=self.value, id="prompt-input")

    def on_mount(self) -> None:
        self.query_one("#prompt-input", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        event.stop()
        self.dismiss(event.value)

    def action_cancel(self) -> None:
        self.dismiss(None)


class ViewPicker(ModalScreen[str | None]):
    DEFAULT_CSS = DIALOG_CSS
    BINDINGS = [Binding("escape,q", "cancel", "Cancel")]

    def __init__(self, views: Iterable[tuple[str, str]], current: str | None = None) -> None:
        super().__init__()
        self.views = list(views)
        self.current = current

    def compose(self) -> ComposeResult:
        with Vertical(classes="dialog"):
            yield Label("Views", classes="dialog-title")
            yield OptionList(*(Option(title, id=name) for name, title in self.views))

    def on_mount(self) -> None:
        options = self.query_one(OptionList)
        names = [name for name, _ in self.views]
        if self.current in names:
            options.highlighted = names.index(self.current)
        options.focus()

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        event.stop()
        self.dismiss(event.option.id)

    def action_cancel(self) -> None:
        self.dismiss(None)


class LogDialog(ModalScreen[None]):
    """Log lines of one query (or part, backup...), appended as they arrive."""

    DEFAULT_CSS = DIALOG_CSS + """
    LogDialog RichLog { height: 30; }
    """
    BINDINGS = [Binding("escape,q", "close", "Close")]

    def __init__(self, view_name: str, title: str) -> None:
        super().__init__()
        self.view_name = view_name
        self.title_text = title
        self._pending: list[str] = []
        self._ready = False

    def compose(self) -> ComposeResult:
        with Vertical(classes="dialog"):
            yield Label(self.title_text, classes="dialog-title")
            yield RichLog(id="log-lines", wrap=True, markup=False, highlight=False)

    def on_mount(self) -> None:
        self._ready = True
        pending, self._pending = self._pending, []
        self.append(pending)

    def append(self, lines: Iterable[str]) -> None:
        if not self._ready:
            self._pending.extend(lines)
            return
        log = self.query_one("#log-lines", RichLog)
        for line in lines:
            log.write(line)

    def action_close(self) -> None:
        self.dismiss(None)


__all__ = [
    "ConfirmDialog",
    "ErrorDialog",
    "LogDialog",
    "PromptDialog",
    "TextDialog",
    "ViewPicker",
]
