"""
interfaces/cli.py — Ergodic CLI Interface

Interactive REPL that hosts a WalkScheduler against a Markdown vault.
Uses rich for terminal rendering and aioconsole for async input.

Each jump picks a random eligible note and renders it (path, tags and a
Markdown preview). A timed walk jumps again every interval until it is
stopped, a jump fails (no eligible notes), or the REPL exits.

Features:
  - /walk toggles the timed walk (interval 0 → single jump)
  - /jump opens one random note without a timer
  - /next jumps now and restarts the countdown, /reset restarts it without jumping
  - Pressing Enter on an empty line stops a running walk
  - Graceful Ctrl+C / Ctrl+D handling; the scheduler is shut down on exit

Usage:
    python main.py
    python main.py --vault ~/notes --log-level DEBUG
"""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine, Optional

import aioconsole
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich import box

from config.settings import Settings
from exceptions import VaultReadError, WalkError
from observability.logger import bind_vault, get_logger
from vault.notes import Note, extract_tags, split_front_matter
from vault.picker import NotePicker
from walk.clock import Clock
from walk.scheduler import WalkConfig, WalkScheduler, interval_ms_of

log = get_logger(__name__)

# ── Constants ─────────────────────────────────────────────────────────────────

_PREVIEW_CHARS = 1200

_HELP_TEXT = """
## Ergodic CLI Commands

| Command | Description |
|---------|-------------|
| `/walk` | Start a timed random walk, or stop the running one |
| `/jump` | Open one random note (no timer) |
| `/stop` | Stop the running walk |
| `/next` | Jump now and restart the countdown |
| `/reset` | Restart the countdown without jumping |
| `/interval <seconds>` | Set the walk interval for this session (0 disables timed walks) |
| `/status` | Show walk and vault status |
| `/help` | Show this help message |
| *Enter* | Stop the running walk |
| `exit` / `quit` / Ctrl+D | Exit Ergodic |
"""


class CLIInterface:

    def __init__(
        self,
        settings: Settings,
        picker: Optional[NotePicker] = None,
        console: Optional[Console] = None,
        clock: Optional[Clock] = None,
    ):
        self.settings = settings
        self.console = console or Console()
        self._picker = picker
        self._interval_s = settings.walk.jump_interval_s
        self._scheduler = WalkScheduler(
            on_step=self._jump,
            on_state_change=self._on_walk_state,
            clock=clock,
        )
        self._background: set[asyncio.Task] = set()
        self._last_note: Optional[Note] = None
        self._jump_count = 0
        self._jump_lock = asyncio.Lock()

    @property
    def scheduler(self) -> WalkScheduler:
        return self._scheduler

    # ── Startup ───────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Build the picker then run the REPL loop."""
        self._init_components()
        self._print_banner()
        try:
            await self._repl_loop()
        finally:
            await self._cleanup()

    def _init_components(self) -> None:
        if self._picker is None:
            self._picker = NotePicker.from_settings(self.settings)
        bind_vault(str(self._picker.root))
        log.info(
            "cli.initialized",
            interval_s=self._interval_s,
            excluded_paths=self._picker.excluded_paths,
            excluded_tags=sorted(self._picker.excluded_tags),
        )

    def _print_banner(self) -> None:
        interval = f"every {self._interval_s}s" if self._interval_s > 0 else "timer off"
        self.console.print(
            Panel(
                f"[bold cyan]Ergodic[/]  ·  Vault: [cyan]{self._picker.root}[/]  ·  "
                f"Walk: [cyan]{interval}[/]\n\n"
                f"Type [bold]/walk[/] to start, [bold]/help[/] for commands. "
                f"[bold]exit[/] or Ctrl+D to quit.",
                border_style="cyan",
                padding=(0, 2),
            )
        )

    def _print_help(self) -> None:
        self.console.print(Markdown(_HELP_TEXT))

    # ── REPL Loop ─────────────────────────────────────────────────────────────

    async def _repl_loop(self) -> None:
        while True:
            try:
                raw = await aioconsole.ainput(self._build_prompt())
            except (EOFError, KeyboardInterrupt):
                self.console.print("\n[dim]Goodbye.[/]")
                break
            if not await self.handle_line(raw):
                self.console.print("[dim]Goodbye.[/]")
                break

    def _build_prompt(self) -> str:
        if self._scheduler.is_active:
            seconds = interval_ms_of(self._scheduler.config) // 1000
            return f"\033[36mErgodic[walking {seconds}s]\033[0m> "
        return "Ergodic> "

    async def handle_line(self, raw: str) -> bool:
        """Process one line of input. Returns False when the user asked to exit."""
        line = raw.strip()
        if not line:
            # Any input while walking stops the walk.
            if self._scheduler.is_active:
                self._scheduler.stop()
            return True
        if line.lower() in ("exit", "quit"):
            return False
        await self._dispatch(line)
        return True

    async def _dispatch(self, raw: str) -> None:
        if not raw.startswith("/"):
            self.console.print("[yellow]Commands start with '/'. Type /help for commands.[/]")
            return

        parts = raw.split(maxsplit=1)
        cmd = parts[0].lower()
        arg = parts[1].strip() if len(parts) > 1 else ""

        handlers = {
            "/help":     lambda _: self._print_help(),
            "/walk":     lambda _: self._cmd_walk(),
            "/jump":     lambda _: self._cmd_jump(),
            "/stop":     lambda _: self._cmd_stop(),
            "/next":     lambda _: self._cmd_next(),
            "/reset":    lambda _: self._cmd_reset(),
            "/interval": self._cmd_interval,
            "/status":   lambda _: self._cmd_status(),
        }

        handler = handlers.get(cmd)
        if handler:
            result = handler(arg)
            if asyncio.iscoroutine(result):
                await result
        else:
            self.console.print(
                f"[yellow]Unknown command: {cmd}. Type /help for commands.[/]"
            )

    # ── Commands ──────────────────────────────────────────────────────────────

    def _walk_config(self) -> WalkConfig:
        if self._interval_s <= 0:
            raise WalkError("Timed walk is disabled (interval is 0).")
        return self.settings.walk_config(self._interval_s)

    def _cmd_walk(self) -> None:
        """Toggle the timed walk."""
        if self._scheduler.is_active:
            self._scheduler.stop()
            return
        try:
            config = self._walk_config()
        except WalkError as e:
            self.console.print(f"[dim]{e} Opening a single note instead.[/]")
            self._spawn(self._single_jump())
            return
        # Runs in the background so Enter / /stop can interrupt the first jump.
        self._spawn(self._scheduler.start(config))

    async def _cmd_jump(self) -> None:
        await self._single_jump()

    def _cmd_stop(self) -> None:
        if not self._scheduler.is_active:
            self.console.print("[dim]No walk is running.[/]")
            return
        self._scheduler.stop()

    def _cmd_next(self) -> None:
        if not self._scheduler.is_active:
            self.console.print("[dim]No walk is running. Use /walk or /jump.[/]")
            return
        self._spawn(self._scheduler.force_next())

    def _cmd_reset(self) -> None:
        if not self._scheduler.is_active:
            self.console.print("[dim]No walk is running.[/]")
            return
        if self._scheduler.step_in_flight:
            self.console.print("[dim]A jump is in progress; the countdown restarts when it finishes.[/]")
            return
        self._scheduler.reset_timer()
        self.console.print(f"[dim]⏱ Countdown restarted ({self._interval_s}s).[/]")

    def _cmd_interval(self, arg: str) -> None:
        if not arg:
            self.console.print(f"[dim]Interval: {self._interval_s}s. Usage: /interval <seconds>[/]")
            return
        try:
            seconds = int(arg)
        except ValueError:
            self.console.print(f"[yellow]Not a whole number of seconds: '{arg}'[/]")
            return
        if seconds < 0:
            self.console.print("[yellow]Interval must be >= 0.[/]")
            return
        self._interval_s = seconds
        log.info("cli.interval_set", interval_s=seconds)
        suffix = " Applies to the next walk." if self._scheduler.is_active else ""
        if seconds == 0:
            self.console.print(f"[green]✓ Timed walk disabled; /walk opens a single note.{suffix}[/]")
        else:
            self.console.print(f"[green]✓ Interval set to {seconds}s.{suffix}[/]")

    def _cmd_status(self) -> None:
        table = Table(box=box.SIMPLE, show_header=False)
        table.add_column("key", style="dim")
        table.add_column("value")

        if self._scheduler.is_active:
            seconds = interval_ms_of(self._scheduler.config) / 1000
            table.add_row("Walk", f"[green]active[/] (every {seconds:g}s)")
        else:
            table.add_row("Walk", "idle")
        table.add_row("Interval", f"{self._interval_s}s")
        table.add_row("Vault", str(self._picker.root))
        table.add_row("Eligible notes", str(len(self._picker.eligible_notes())))
        table.add_row("Excluded paths", ", ".join(self._picker.excluded_paths) or "—")
        table.add_row("Excluded tags", ", ".join(sorted(self._picker.excluded_tags)) or "—")
        table.add_row("Jumps", str(self._jump_count))
        table.add_row("Last note", self._last_note.rel_path if self._last_note else "—")
        self.console.print(table)

    # ── Walk callbacks ────────────────────────────────────────────────────────

    async def _single_jump(self) -> bool:
        """Stop any walk, wait for its jump to settle, then jump once."""
        self._scheduler.stop()
        await self._scheduler.join()
        return await self._jump(None)

    async def _jump(self, config: Any) -> bool:
        """Step action: open one random eligible note. False = nothing to open."""
        # One jump at a time, whether from a walk step or a single jump.
        async with self._jump_lock:
            return await self._open_random_note(config)

    async def _open_random_note(self, config: Any) -> bool:
        note = await asyncio.to_thread(self._picker.pick)
        if note is None:
            self.console.print("[yellow]No eligible notes found to open.[/]")
            return False
        try:
            text = await asyncio.to_thread(note.read_text)
        except VaultReadError as e:
            log.warning("cli.note_read_failed", note=note.rel_path, error=str(e))
            self.console.print(f"[red]✗ {e}[/]")
            return False

        self._last_note = note
        self._jump_count += 1
        self._render_note(note, text)
        if getattr(config, "show_timer_bar", False):
            self.console.rule(f"[dim]next jump in {interval_ms_of(config) / 1000:g}s[/]", style="cyan")
        return True

    def _on_walk_state(self, active: bool, config: Any) -> None:
        """Observer: status line for walk start/stop."""
        if active:
            seconds = interval_ms_of(config) / 1000
            self.console.print(f"[bold cyan]🎲 Ergodic walk active ({seconds:g}s)[/]")
        else:
            self.console.print("[dim]Ergodic random walk stopped.[/]")
        log.info("cli.walk_state", active=active)

    def _render_note(self, note: Note, text: str) -> None:
        _, body = split_front_matter(text)
        body = body.strip()
        if len(body) > _PREVIEW_CHARS:
            body = body[:_PREVIEW_CHARS].rstrip() + "\n\n…"
        tags = extract_tags(text)
        subtitle = " ".join(f"#{t}" for t in sorted(tags)) if tags else None
        self.console.print(
            Panel(
                Markdown(body) if body else "[dim](empty note)[/]",
                title=f"[bold]{note.rel_path}[/]",
                subtitle=subtitle,
                border_style="magenta",
                padding=(0, 2),
            )
        )

    # ── Background tasks ──────────────────────────────────────────────────────

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def wait_background(self) -> None:
        """Wait for spawned walk starts / single jumps to finish."""
        while self._background:
            await asyncio.wait(set(self._background))

    # ── Cleanup ───────────────────────────────────────────────────────────────

    async def _cleanup(self) -> None:
        """Stop the walk and wait for any in-flight jump before returning."""
        await self._scheduler.shutdown()
        await self.wait_background()
        # A background start may have re-armed the walk after shutdown().
        await self._scheduler.shutdown()
        log.info("cli.shutdown", jumps=self._jump_count)


# ── Public entry points ───────────────────────────────────────────────────────


async def run_cli(settings: Settings, log) -> None:
    """
    Entry point called from main.py.

    Args:
        settings:  Loaded Ergodic settings.
        log:       Application-level logger.
    """
    cli = CLIInterface(settings=settings)

    log.info("cli.starting")
    try:
        await cli.start()
    except KeyboardInterrupt:
        log.info("cli.interrupted")


async def run_single_jump(settings: Settings, console: Optional[Console] = None) -> int:
    """Open one random note and exit. Returns a process exit code."""
    cli = CLIInterface(settings=settings, console=console)
    cli._init_components()
    ok = await cli._jump(None)
    return 0 if ok else 1
