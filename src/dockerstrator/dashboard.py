"""TUI Dashboard for dockerstrator."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from rich.markup import escape
from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.message import Message
from textual.reactive import reactive
from textual.screen import ModalScreen, Screen
from textual.widgets import (
    Button,
    Footer,
    Header,
    Input,
    Label,
    OptionList,
    RichLog,
    SelectionList,
    Static,
)
from textual.widgets.option_list import Option

from .actions import DISPATCH_ACTIONS, MENU, Action, confirm_question, format_summary
from .compose import ComposeMode
from .config import Config, SessionOverrides, parse_depth_input, save_config
from .discovery import ALWAYS_EXCLUDED, Unit, discover_units
from .executor import CommandFactory, Executor, UnitStatus
from .relay import LiveRelay, RelayOutcome

DASHBOARD_CSS = """
#summary {
    padding: 1 2 0 2;
}

#menu {
    height: auto;
    max-height: 12;
    margin: 1 2;
}

#output {
    height: 1fr;
    border: solid $primary;
    margin: 0 2;
}

StatusBar {
    dock: bottom;
    height: 1;
    background: $surface;
    padding: 0 1;
}

.dialog {
    width: 70;
    height: auto;
    max-height: 90%;
    border: thick $primary;
    background: $surface;
    padding: 1 2;
}

.dialog SelectionList, .dialog OptionList {
    height: auto;
    max-height: 20;
}

.dialog .help {
    color: $text-muted;
}

.buttons {
    height: auto;
    margin-top: 1;
}

.buttons Button {
    margin-right: 2;
}

ModalScreen {
    align: center middle;
}

#relay-log {
    height: 1fr;
}

#settings-info {
    padding: 1 2;
}
"""


class StatusBar(Static):
    """Bottom status bar showing overall progress."""

    completed: reactive[int] = reactive(0)
    total: reactive[int] = reactive(0)
    running: reactive[bool] = reactive(False)
    command: reactive[str] = reactive(ComposeMode.PLUGIN.value)

    def render(self) -> str:
        status = "Running..." if self.running else "Idle"
        return (
            f"Progress: {self.completed}/{self.total} services complete | {status} | "
            f"{self.command} | Press 'q' to quit"
        )


class UnitOutput(Message):
    """Message for unit output."""

    def __init__(self, label: str, line: str) -> None:
        super().__init__()
        self.label = label
        self.line = line


class UnitStatusChange(Message):
    """Message for unit status change."""

    def __init__(self, label: str, status: UnitStatus) -> None:
        super().__init__()
        self.label = label
        self.status = status


class ChoiceScreen(ModalScreen[str | None]):
    """Single choice prompt. Dismisses with the chosen option id."""

    BINDINGS = [Binding("escape", "cancel", "Cancel")]

    def __init__(self, title: str, choices: Sequence[tuple[str, str]], **kwargs) -> None:
        super().__init__(**kwargs)
        self.title_text = title
        self.choices = list(choices)

    def compose(self) -> ComposeResult:
        with Vertical(classes="dialog"):
            yield Label(Text(self.title_text, style="bold cyan"))
            yield OptionList(
                *[Option(Text(prompt), id=choice_id) for choice_id, prompt in self.choices]
            )
            yield Label("↑↓ navigate  ENTER choose  ESC cancel", classes="help")

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        event.stop()
        self.dismiss(event.option.id)

    def action_cancel(self) -> None:
        self.dismiss(None)


class SelectUnitsScreen(ModalScreen[list[Unit] | None]):
    """Multiple choice prompt over units."""

    BINDINGS = [
        Binding("escape", "cancel", "Cancel"),
        Binding("ctrl+a", "toggle_all", "Toggle all"),
    ]

    def __init__(self, units: Sequence[Unit], title: str = "Select services:", **kwargs) -> None:
        super().__init__(**kwargs)
        self.units = list(units)
        self.title_text = title

    def compose(self) -> ComposeResult:
        with Vertical(classes="dialog"):
            yield Label(Text(self.title_text, style="bold cyan"))
            yield SelectionList[int](
                *[(Text(unit.display_label()), i) for i, unit in enumerate(self.units)],
                id="units",
            )
            yield Label("↑↓ navigate  SPACE select  TAB to buttons  ESC cancel", classes="help")
            with Horizontal(classes="buttons"):
                yield Button("Run", variant="primary", id="run")
                yield Button("Cancel", id="cancel")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id != "run":
            self.dismiss(None)
            return
        selected = self.query_one("#units", SelectionList).selected
        self.dismiss([self.units[i] for i in sorted(selected)])

    def action_toggle_all(self) -> None:
        selection = self.query_one("#units", SelectionList)
        if len(selection.selected) == len(self.units):
            selection.deselect_all()
        else:
            selection.select_all()

    def action_cancel(self) -> None:
        self.dismiss(None)


class ConfirmScreen(ModalScreen[bool]):
    """Yes/no confirmation."""

    BINDINGS = [
        Binding("y", "answer(True)", "Yes"),
        Binding("n", "answer(False)", "No"),
        Binding("escape", "answer(False)", "Cancel"),
    ]

    def __init__(self, question: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.question = question

    def compose(self) -> ComposeResult:
        with Vertical(classes="dialog"):
            yield Label(Text(self.question))
            with Horizontal(classes="buttons"):
                yield Button("Yes", variant="error", id="yes")
                yield Button("No", variant="primary", id="no")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "yes")

    def action_answer(self, answer: bool) -> None:
        self.dismiss(answer)


class InputScreen(ModalScreen[str | None]):
    """Free text prompt."""

    BINDINGS = [Binding("escape", "cancel", "Cancel")]

    def __init__(self, prompt: str, placeholder: str = "", **kwargs) -> None:
        super().__init__(**kwargs)
        self.prompt = prompt
        self.placeholder = placeholder

    def compose(self) -> ComposeResult:
        with Vertical(classes="dialog"):
            yield Label(Text(self.prompt, style="bold"))
            yield Input(placeholder=self.placeholder)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.dismiss(event.value)

    def action_cancel(self) -> None:
        self.dismiss(None)


class LogsScreen(Screen):
    """Streams ``logs -f`` for one or all units until cancelled."""

    BINDINGS = [
        Binding("escape", "stop", "Back to menu"),
        Binding("ctrl+c", "stop", "Back to menu", priority=True),
    ]

    def __init__(
        self,
        units: Sequence[Unit],
        mode: ComposeMode,
        command_factory: CommandFactory | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.units = list(units)
        self.relay = LiveRelay(
            mode,
            on_stdout=self._write_stdout,
            on_stderr=self._write_stderr,
            command_factory=command_factory,
        )
        self.cancel_requested = False
        self.outcome: RelayOutcome | None = None

    def compose(self) -> ComposeResult:
        yield Header()
        yield Label(
            Text("Streaming logs (Esc or Ctrl+C to return to menu)...", style="yellow")
        )
        yield RichLog(id="relay-log", wrap=True, auto_scroll=True)
        yield Footer()

    def on_mount(self) -> None:
        self.run_worker(self._stream(), exclusive=True)

    async def _stream(self) -> None:
        if len(self.units) == 1:
            outcome = await self.relay.follow(self.units[0], self._is_cancelled)
        else:
            outcome = await self.relay.follow_all(self.units, self._is_cancelled)
        self.outcome = outcome
        if outcome is RelayOutcome.CANCELLED:
            self.app.pop_screen()
        else:
            self._write_stdout("-- log stream ended, press Esc to return --")

    def _is_cancelled(self) -> bool:
        return self.cancel_requested

    def _write_stdout(self, line: str) -> None:
        self.query_one("#relay-log", RichLog).write(Text(line))

    def _write_stderr(self, line: str) -> None:
        self.query_one("#relay-log", RichLog).write(Text(line, style="red"))

    def action_stop(self) -> None:
        if self.outcome is not None:
            self.app.pop_screen()
        else:
            self.cancel_requested = True


class SettingsScreen(Screen):
    """Edit and persist the user's settings."""

    BINDINGS = [Binding("escape", "back", "Back")]

    OPTIONS = [
        ("depth", "Set max search depth"),
        ("exclude-add", "Add excluded directory"),
        ("exclude-remove", "Remove excluded directory"),
        ("exclude-clear", "Clear excluded directories"),
        ("toggle", "Toggle docker command (docker compose / docker-compose)"),
        ("reset", "Reset to defaults"),
        ("back", "Back"),
    ]

    def __init__(self, config: Config, **kwargs) -> None:
        super().__init__(**kwargs)
        self.config = config

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static(self._describe(), id="settings-info")
        yield OptionList(*[Option(Text(prompt), id=oid) for oid, prompt in self.OPTIONS])
        yield Footer()

    def _describe(self) -> str:
        depth = "Unlimited" if self.config.max_depth is None else str(self.config.max_depth)
        excluded = ", ".join(self.config.excluded_dirs) or "None"
        always = ", ".join(sorted(ALWAYS_EXCLUDED))
        return (
            "[bold]Current configuration:[/bold]\n"
            f"  Max search depth: [yellow]{depth}[/yellow]\n"
            f"  Excluded dirs: [yellow]{escape(excluded)}[/yellow]\n"
            f"  Docker command: [yellow]{self.config.compose_mode.value}[/yellow]\n"
            f"[dim](always excluded: hidden dirs, {always})[/dim]"
        )

    def _save(self, message: str) -> None:
        try:
            save_config(self.config)
        except OSError as e:
            self.notify(f"Error saving config: {e}", severity="error")
            return
        self.query_one("#settings-info", Static).update(self._describe())
        self.notify(f"Saved. {message}")

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        event.stop()
        handler = getattr(self, f"_option_{(event.option.id or '').replace('-', '_')}", None)
        if handler is not None:
            handler()

    def _option_depth(self) -> None:
        def on_input(value: str | None) -> None:
            if value is None:
                return
            try:
                self.config.max_depth = parse_depth_input(value)
            except ValueError:
                self.notify("Invalid number!", severity="error")
                return
            depth = self.config.max_depth
            self._save("Max depth set to " + ("unlimited" if depth is None else str(depth)))

        self.app.push_screen(
            InputScreen("Max search depth (leave empty for unlimited):"), on_input
        )

    def _option_exclude_add(self) -> None:
        def on_input(value: str | None) -> None:
            name = (value or "").strip()
            if not name:
                return
            if name in self.config.excluded_dirs:
                self.notify("Directory already excluded!", severity="warning")
                return
            self.config.excluded_dirs.append(name)
            self._save(f"'{name}' added to exclusions!")

        self.app.push_screen(InputScreen("Directory name to exclude:"), on_input)

    def _option_exclude_remove(self) -> None:
        if not self.config.excluded_dirs:
            self.notify("No excluded directories to remove!", severity="warning")
            return

        def on_choice(choice: str | None) -> None:
            if choice is None:
                return
            name = self.config.excluded_dirs[int(choice)]
            self.config.excluded_dirs.remove(name)
            self._save(f"'{name}' removed from exclusions!")

        choices = [(str(i), name) for i, name in enumerate(self.config.excluded_dirs)]
        self.app.push_screen(ChoiceScreen("Select directory to remove:", choices), on_choice)

    def _option_exclude_clear(self) -> None:
        if not self.config.excluded_dirs:
            self.notify("No excluded directories to clear!", severity="warning")
            return

        def on_answer(answer: bool | None) -> None:
            if answer:
                self.config.excluded_dirs.clear()
                self._save("All exclusions cleared!")

        self.app.push_screen(ConfirmScreen("Clear all excluded directories?"), on_answer)

    def _option_toggle(self) -> None:
        self.config.legacy_compose = not self.config.legacy_compose
        self._save(f"Docker command set to: {self.config.compose_mode.value}")

    def _option_reset(self) -> None:
        def on_answer(answer: bool | None) -> None:
            if answer:
                self.config.reset()
                self._save("Settings reset to defaults!")

        self.app.push_screen(ConfirmScreen("Reset all settings to defaults?"), on_answer)

    def _option_back(self) -> None:
        self.action_back()

    def action_back(self) -> None:
        self.dismiss(None)


class Dashboard(App):
    """Main TUI Dashboard application."""

    TITLE = "Docker Services Orchestrator"
    CSS = DASHBOARD_CSS

    BINDINGS = [Binding(key, name, title) for key, name, title in MENU]

    def __init__(
        self,
        root: Path,
        config: Config,
        units: Sequence[Unit],
        command_factory: CommandFactory | None = None,
        overrides: SessionOverrides | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.scan_root = root
        # Persisted settings, edited and saved by the settings screen
        self.config = config
        self.overrides = overrides or SessionOverrides()
        self.units = list(units)
        self.command_factory = command_factory
        self.last_results: dict[str, bool] = {}
        self.last_summary = ""
        self.last_statuses: dict[str, bool] = {}
        self._busy = False

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Label(self._summary(), id="summary")
        yield OptionList(
            *[Option(Text(f"[{key}] {title}"), id=name) for key, name, title in MENU],
            id="menu",
        )
        yield RichLog(id="output", markup=True, wrap=True, auto_scroll=True)
        yield StatusBar(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        self.sub_title = str(self.scan_root)
        self._status_bar().command = self.session_config.compose_mode.value
        self.query_one("#menu", OptionList).focus()

    @property
    def session_config(self) -> Config:
        """Settings in effect: the saved ones with command line overrides applied."""
        return self.overrides.apply(self.config)

    def _summary(self) -> str:
        return f"Services found: {len(self.units)}"

    def _status_bar(self) -> StatusBar:
        return self.query_one("#status-bar", StatusBar)

    def _log(self, text: str) -> None:
        self.query_one("#output", RichLog).write(text)

    def _is_ready(self) -> bool:
        """Menu actions only run from the main screen while nothing is dispatching."""
        return not self._busy and len(self.screen_stack) == 1

    def _make_executor(self) -> Executor:
        settings = self.session_config
        return Executor(
            settings.compose_mode,
            on_output=self._on_output,
            on_status=self._on_status,
            log_dir=settings.log_dir,
            command_factory=self.command_factory,
        )

    def _on_output(self, label: str, line: str) -> None:
        self.post_message(UnitOutput(label, line))

    def _on_status(self, label: str, status: UnitStatus) -> None:
        self.post_message(UnitStatusChange(label, status))

    def on_unit_output(self, message: UnitOutput) -> None:
        line = escape(message.line)
        if message.line.startswith("STDERR:") or message.line.startswith("ERROR:"):
            line = f"[red]{line}[/red]"
        elif message.line.startswith("$ "):
            line = f"[bold cyan]{line}[/bold cyan]"
        else:
            line = f"[dim]{line}[/dim]"
        self._log(f"[cyan]\\[{escape(message.label)}][/cyan] {line}")

    def on_unit_status_change(self, message: UnitStatusChange) -> None:
        if message.status in (UnitStatus.SUCCESS, UnitStatus.FAILED):
            self._status_bar().completed += 1

    async def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        if event.option_list.id == "menu" and event.option.id:
            await self.run_action(event.option.id)

    # Menu actions

    def action_start(self) -> None:
        self._select_and_dispatch(DISPATCH_ACTIONS["start"], self.units)

    def action_restart(self) -> None:
        self._select_and_dispatch(DISPATCH_ACTIONS["restart"], self.units)

    def action_cleanup(self) -> None:
        self._select_and_dispatch(DISPATCH_ACTIONS["cleanup"], self.units)

    def action_stop(self) -> None:
        if self._is_ready():
            self._busy = True
            self.run_worker(self._stop_flow(), group="dispatch")

    def action_status(self) -> None:
        if self._is_ready():
            self._busy = True
            self.run_worker(self._show_status(), group="dispatch")

    def action_logs(self) -> None:
        if not self._is_ready() or not self.units:
            return
        choices = [(str(i), unit.display_label()) for i, unit in enumerate(self.units)]
        choices.append(("all", "All"))

        def on_choice(choice: str | None) -> None:
            if choice is None:
                return
            units = self.units if choice == "all" else [self.units[int(choice)]]
            self.push_screen(
                LogsScreen(units, self.session_config.compose_mode, command_factory=self.command_factory)
            )

        self.push_screen(ChoiceScreen("Which service?", choices), on_choice)

    def action_settings(self) -> None:
        if self._is_ready():
            self.push_screen(SettingsScreen(self.config), lambda _: self._settings_closed())

    def action_rescan(self) -> None:
        if not self._is_ready():
            return
        settings = self.session_config
        self.units = discover_units(
            self.scan_root,
            max_depth=settings.max_depth,
            excluded_names=settings.excluded_dirs,
        )
        self.query_one("#summary", Label).update(self._summary())
        if self.units:
            self._log(f"[green]Rescanned: {len(self.units)} services found[/green]")
        else:
            self._log("[red]No docker-compose.yml found in this directory structure.[/red]")

    async def action_quit(self) -> None:
        """Quit the application."""
        if len(self.screen_stack) == 1:
            self.exit()

    def _settings_closed(self) -> None:
        self._status_bar().command = self.session_config.compose_mode.value

    # Flows

    def _select_and_dispatch(self, action: Action, candidates: Sequence[Unit]) -> None:
        if not self._is_ready() or not candidates:
            return

        def on_selected(selected: list[Unit] | None) -> None:
            if not selected:
                return
            if not action.confirm:
                self._start_dispatch(action, selected)
                return

            def on_answer(answer: bool | None) -> None:
                if answer:
                    self._start_dispatch(action, selected)

            labels = [unit.display_label() for unit in selected]
            self.push_screen(ConfirmScreen(confirm_question(action, labels)), on_answer)

        self.push_screen(SelectUnitsScreen(candidates), on_selected)

    def _start_dispatch(self, action: Action, units: list[Unit]) -> None:
        self._busy = True
        self.run_worker(self._dispatch(action, units), group="dispatch")

    async def _dispatch(self, action: Action, units: list[Unit]) -> None:
        status_bar = self._status_bar()
        status_bar.completed = 0
        status_bar.total = len(units)
        status_bar.running = True
        self._log(f"\n[bold yellow]{action.progress}[/bold yellow]")
        try:
            results = await self._make_executor().run_all(units, action.args)
        finally:
            status_bar.running = False
            self._busy = False

        self.last_results = results
        for unit in units:
            label = unit.display_label()
            outcome = "[green]OK[/green]" if results[label] else "[red]ERROR[/red]"
            self._log(f"  [cyan]{escape(label)}[/cyan] ... {outcome}")
        self.last_summary = format_summary(action, results)
        self._log(f"[green]{self.last_summary}[/green]")

    async def _show_status(self) -> None:
        self._log("\n[bold cyan]Services Status:[/bold cyan]")
        try:
            statuses = await self._make_executor().check_statuses(self.units)
        finally:
            self._busy = False
        self.last_statuses = statuses
        for unit in self.units:
            label = unit.display_label()
            state = "[green]UP[/green]" if statuses[label] else "[red]DOWN[/red]"
            self._log(f"  [cyan]{escape(label)}[/cyan]: {state}")

    async def _stop_flow(self) -> None:
        self._log("[dim]Checking service status...[/dim]")
        try:
            statuses = await self._make_executor().check_statuses(self.units)
        finally:
            self._busy = False
        self.last_statuses = statuses
        running = [unit for unit in self.units if statuses[unit.display_label()]]
        if not running:
            self._log("[yellow]No services are currently running.[/yellow]")
            return
        self._select_and_dispatch(DISPATCH_ACTIONS["stop"], running)
