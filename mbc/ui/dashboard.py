import threading
import time
from typing import Optional

from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from mbc.domain.models import BatchState, ItemProgress, ItemStatus
from mbc.ui.state import UIState
from mbc.utils.format_utils import format_file_size, format_ratio

STATE_STYLES = {
    BatchState.IDLE: ("IDLE", "dim"),
    BatchState.PREPARING: ("PREPARING", "cyan"),
    BatchState.PROCESSING: ("PROCESSING", "cyan"),
    BatchState.COMPLETED: ("COMPLETED", "green"),
    BatchState.PARTIAL_FAILURE: ("PARTIAL FAILURE", "yellow"),
    BatchState.ALL_FAILED: ("ALL FAILED", "red"),
    BatchState.CANCELLED: ("CANCELLED", "yellow"),
}


class Dashboard:
    """Live batch view: overall bar, the item in flight and the latest outcomes."""

    def __init__(self, state: UIState, console: Optional[Console] = None):
        self.state = state
        self.console = console or Console()
        self._live: Optional[Live] = None
        self._refresh_thread: Optional[threading.Thread] = None
        self._stop_refresh = threading.Event()
        self._ui_lock = threading.Lock()

    # --- Formatters ---

    def format_time(self, seconds: float) -> str:
        """Format time: 59s, 01m 01s, 1h 01m."""
        if seconds < 60:
            return f"{int(seconds)}s"
        if seconds < 3600:
            return f"{int(seconds // 60):02d}m {int(seconds % 60):02d}s"
        return f"{int(seconds // 3600)}h {int((seconds % 3600) // 60):02d}m"

    def _truncate(self, name: str, max_len: int = 40) -> str:
        if len(name) <= max_len:
            return name
        return name[: max_len - 1] + "…"

    # --- Sections ---

    def _generate_header(self) -> RenderableType:
        with self.state._lock:
            label, style = STATE_STYLES[self.state.batch_state]
            if self.state.cancel_requested and not self.state.finished:
                label, style = "CANCELLING", "yellow"
            header = Text()
            header.append(f"{self.state.title} ", style="bold")
            header.append(f"[{label}]", style=f"bold {style}")
            if self.state.settings_line:
                header.append(f"  {self.state.settings_line}", style="dim")
            header.append(f"  {self.format_time(self.state.elapsed_seconds)}", style="dim")
            return header

    def _generate_progress(self) -> RenderableType:
        with self.state._lock:
            fraction = self.state.overall_fraction
            table = Table.grid(expand=True, padding=(0, 1))
            table.add_column(ratio=1)
            table.add_column(justify="right", width=24)
            table.add_row(
                ProgressBar(total=1000, completed=int(fraction * 1000), width=None),
                f"{fraction * 100:5.1f}%  {self.state.processed_count}/{self.state.total}",
            )
            current = self.state.current_item
            if current is not None:
                table.add_row(
                    ProgressBar(total=1000, completed=int(self.state.current_fraction * 1000), width=None,
                                complete_style="cyan"),
                    self._truncate(current.item.display_name, 24),
                )
            return table

    def _render_item(self, progress: ItemProgress):
        if progress.status == ItemStatus.COMPLETED and progress.result is not None:
            result = progress.result
            size = format_file_size(result.compressed_size or result.output_size or 0)
            detail = result.output_name
            if result.compression_ratio is not None:
                detail = f"{detail} (-{format_ratio(result.compression_ratio)})"
            return Text("✓", style="green"), self._truncate(progress.item.display_name), detail, size
        message = progress.error_message or "failed"
        return Text("✗", style="red"), self._truncate(progress.item.display_name), Text(message, style="red"), ""

    def _generate_recent(self) -> RenderableType:
        table = Table(show_header=False, box=None, padding=(0, 1), expand=True)
        table.add_column(width=1)
        table.add_column(ratio=2, no_wrap=True)
        table.add_column(ratio=3, overflow="fold")
        table.add_column(justify="right", width=10)
        for progress in self.state.recent():
            table.add_row(*self._render_item(progress))
        return table

    def _generate_footer(self) -> RenderableType:
        with self.state._lock:
            footer = Text()
            footer.append(f"{self.state.completed_count} succeeded", style="green")
            footer.append(", ")
            footer.append(f"{self.state.failed_count} failed", style="red" if self.state.failed_count else "dim")
            if self.state.space_saved_bytes:
                footer.append(f"  saved {format_file_size(self.state.space_saved_bytes)}", style="dim")
            if not self.state.gallery_permission and self.state.batch_state != BatchState.IDLE:
                footer.append("  (outputs kept in app storage only)", style="dim")
            if not self.state.finished:
                footer.append("  Ctrl+C to cancel after current file", style="dim")
            return footer

    def create_display(self) -> RenderableType:
        return Panel(
            Group(
                self._generate_header(),
                self._generate_progress(),
                self._generate_recent(),
                self._generate_footer(),
            ),
            border_style="cyan",
        )

    def _refresh_loop(self):
        while not self._stop_refresh.is_set():
            if self._live:
                display = self.create_display()
                with self._ui_lock:
                    self._live.update(display)
            time.sleep(0.25)

    def start(self):
        self._live = Live(self.create_display(), console=self.console, refresh_per_second=4)
        self._live.start()
        self._stop_refresh.clear()
        self._refresh_thread = threading.Thread(target=self._refresh_loop, daemon=True)
        self._refresh_thread.start()
        return self

    def stop(self):
        self._stop_refresh.set()
        if self._refresh_thread:
            self._refresh_thread.join(timeout=1.0)
        if self._live:
            # Final update so the terminal state stays on screen
            with self._ui_lock:
                self._live.update(self.create_display())
            self._live.stop()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
