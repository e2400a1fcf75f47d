import logging
import threading
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from mbc.config.loader import load_config
from mbc.config.models import AppConfig
from mbc.config.presets import (
    AUDIO_PRESETS,
    CONVERSION_OPTIONS,
    IMAGE_PRESETS,
    estimate_compressed_size,
    estimated_audio_reduction,
    get_format_option,
    get_optimal_settings,
    get_preset,
)
from mbc.domain.errors import FFmpegNotAvailableError, MbcError
from mbc.domain.events import CancelRequested, InputRejected, RejectedInput
from mbc.domain.models import BatchJob, BatchSettings, BatchState, BatchSummary, MediaType, Operation
from mbc.infrastructure.event_bus import EventBus
from mbc.infrastructure.export import export_file, mime_type_for
from mbc.infrastructure.ffmpeg import FFmpegAdapter, FFmpegRuntime
from mbc.infrastructure.ffprobe import FFprobeAdapter
from mbc.infrastructure.file_validation import FileValidator, item_from_path, resolve_source
from mbc.infrastructure.history_store import HistoryStore
from mbc.infrastructure.housekeeping import HousekeepingService
from mbc.infrastructure.logging import setup_logging
from mbc.infrastructure.media_library import MediaLibrary
from mbc.infrastructure.permissions import PermissionGate
from mbc.infrastructure.storage import JsonKeyValueStorage
from mbc.pipeline.cancellation import CancellationToken
from mbc.pipeline.recorder import OutcomeRecorder
from mbc.pipeline.runner import BatchRunner
from mbc.processors.registry import ProcessorRegistry
from mbc.ui.dashboard import Dashboard
from mbc.ui.manager import UIManager
from mbc.ui.state import UIState
from mbc.utils.format_utils import format_file_size, format_relative_time

app = typer.Typer(help="MBC (Media Batch Converter) - convert and compress files in batches")

DEFAULT_CONFIG = Path("conf/mbc.yaml")

EXIT_CODES = {
    BatchState.COMPLETED: 0,
    BatchState.PARTIAL_FAILURE: 1,
    BatchState.ALL_FAILED: 1,
    BatchState.CANCELLED: 130,
}


def _load(config_path: Optional[Path], log_path: Optional[Path] = None, debug: bool = False) -> AppConfig:
    """Loads the config (defaults when the default file is absent) and applies CLI overrides."""
    try:
        if config_path is not None and (config_path.exists() or config_path != DEFAULT_CONFIG):
            config = load_config(config_path)
        else:
            config = AppConfig()
    except (FileNotFoundError, MbcError) as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    if log_path is not None:
        config.general.log_path = str(log_path)
    if debug:
        config.general.debug = True
    return config


def _history_store(config: AppConfig) -> HistoryStore:
    storage = JsonKeyValueStorage(Path(config.history.path))
    return HistoryStore(storage, key=config.history.key, max_items=config.history.max_items)


def _print_summary(summary: BatchSummary):
    color = typer.colors.GREEN if summary.state == BatchState.COMPLETED else typer.colors.YELLOW
    if summary.state == BatchState.ALL_FAILED:
        color = typer.colors.RED
    typer.secho(f"{summary.completed} succeeded, {summary.failed} failed", fg=color)
    if summary.state == BatchState.CANCELLED:
        typer.secho(f"Cancelled: {summary.pending} file(s) not processed", fg=typer.colors.YELLOW)
    if summary.bytes_saved:
        typer.echo(f"Space saved: {format_file_size(summary.bytes_saved)}")
    for progress in summary.items:
        if progress.error_message:
            typer.secho(f"  ✗ {progress.item.display_name}: {progress.error_message}", fg=typer.colors.RED)


def _run_batch(config: AppConfig, files: List[str], settings: BatchSettings):
    output_dir = config.general.output_path
    log_path_value = Path(config.general.log_path) if config.general.log_path else None
    logger = setup_logging(output_dir, debug=config.general.debug, log_path=log_path_value)
    logger.info(
        f"MBC started: {settings.operation.value} {settings.media_type.value} -> {settings.output_format}, "
        f"files={len(files)}"
    )

    housekeeper = HousekeepingService()
    removed = housekeeper.cleanup_temp_files(output_dir)
    if removed:
        logger.info(f"Removed {removed} stale .tmp file(s) from {output_dir}")

    bus = EventBus()

    validator = FileValidator(limits=config.limits, extensions=config.extensions)
    items = [item_from_path(f) for f in files]
    valid, rejected, total_size = validator.validate_files(items, settings.media_type)
    if rejected:
        typer.secho(f"Skipping {len(rejected)} file(s):", fg=typer.colors.YELLOW, err=True)
        for entry in rejected:
            typer.secho(f"  - {entry.item.display_name}: {entry.error}", fg=typer.colors.YELLOW, err=True)
    bus.publish(InputRejected(
        rejected=[RejectedInput(item=r.item, error_message=r.error) for r in rejected],
        accepted=len(valid),
        total_size=total_size,
    ))
    if not valid:
        typer.secho("Error: No valid files selected.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    ffmpeg = None
    ffprobe = None
    if settings.media_type in (MediaType.AUDIO, MediaType.VIDEO):
        try:
            runtime = FFmpegRuntime.initialize(config.ffmpeg)
        except FFmpegNotAvailableError as exc:
            typer.secho(f"Error: {exc.user_message}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)
        ffmpeg = FFmpegAdapter(runtime, timeout_s=config.general.item_timeout_s)
        ffprobe = FFprobeAdapter(runtime.ffprobe_binary)

    registry = ProcessorRegistry.default(ffmpeg=ffmpeg, ffprobe=ffprobe)
    processor = registry.get(settings.media_type, settings.operation)

    gallery_dir = config.general.gallery_path
    media_library = MediaLibrary(gallery_dir, config.general.album_name) if gallery_dir else None

    ui_state = UIState(recent_items_max=config.ui.recent_items_max)
    ui_state.settings_line = (
        f"{settings.operation.value} {settings.media_type.value} → {settings.output_format.upper()} "
        f"({format_file_size(total_size)})"
    )
    UIManager(bus, ui_state)

    cancel_token = CancellationToken()
    runner = BatchRunner(
        job=BatchJob(items=tuple(valid), settings=settings),
        processor=processor,
        event_bus=bus,
        recorder=OutcomeRecorder(_history_store(config)),
        output_dir=output_dir,
        permission_gate=PermissionGate(gallery_dir),
        media_library=media_library,
        cancel_token=cancel_token,
    )

    outcome = {}

    def _worker():
        try:
            outcome["summary"] = runner.run()
        except Exception as e:
            logger.exception("Batch runner crashed")
            outcome["error"] = e

    worker = threading.Thread(target=_worker, name="batch-runner", daemon=True)
    dashboard = Dashboard(ui_state)
    with dashboard:
        worker.start()
        while worker.is_alive():
            try:
                worker.join(timeout=0.2)
            except KeyboardInterrupt:
                if not cancel_token.cancelled:
                    runner.cancel()
                    bus.publish(CancelRequested())

    if "error" in outcome:
        raise outcome["error"]

    summary = outcome["summary"]
    _print_summary(summary)
    logger.info(f"MBC finished: state={summary.state.value}")
    raise typer.Exit(code=EXIT_CODES.get(summary.state, 1))


def _execute(config: AppConfig, files: Optional[List[str]], settings: BatchSettings):
    if not files:
        typer.secho("Error: No files selected.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    try:
        _run_batch(config, files, settings)
    except typer.Exit:
        raise
    except KeyboardInterrupt:
        typer.secho("\n✓ Conversion stopped by user (Ctrl+C)", fg=typer.colors.YELLOW)
        raise typer.Exit(code=130)
    except Exception as e:
        logging.getLogger(__name__).exception("Fatal error")
        typer.secho(f"Fatal Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@app.command()
def convert(
    files: Optional[List[str]] = typer.Argument(None, help="Files (paths or file:// URIs) to convert"),
    media_type: MediaType = typer.Option(..., "--type", "-t", case_sensitive=False, help="Media type of the inputs"),
    output_format: str = typer.Option(..., "--to", "-f", help="Output format (see `mbc formats`)"),
    quality: Optional[int] = typer.Option(None, "--quality", "-q", min=1, max=100, help="Quality 1-100 for lossy formats"),
    bitrate: Optional[int] = typer.Option(None, "--bitrate", "-b", help="Audio bitrate in kbps"),
    resolution: Optional[int] = typer.Option(None, "--resolution", "-r", help="Video output height (re-encodes)"),
    sample_rate: Optional[int] = typer.Option(None, "--sample-rate", help="Audio sample rate in Hz"),
    font_family: str = typer.Option("Arial", "--font-family", help="Font for HTML documents"),
    font_size: int = typer.Option(12, "--font-size", help="Font size for HTML documents"),
    config_path: Optional[Path] = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to YAML config"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (overrides config)"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Convert files to another format, one at a time."""
    config = _load(config_path, log_path, debug)
    option = get_format_option(media_type, output_format)
    if option is None:
        available = ", ".join(o.name for o in CONVERSION_OPTIONS[media_type])
        typer.secho(
            f"Error: Unsupported output format '{output_format}' for {media_type.value}. Available: {available}",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)

    settings = BatchSettings(
        media_type=media_type,
        operation=Operation.CONVERT,
        output_format=option.extension,
        quality=quality,
        bitrate=bitrate,
        resolution=resolution,
        sample_rate=sample_rate,
        font_family=font_family,
        font_size=font_size,
    )
    _execute(config, files, settings)


@app.command()
def compress(
    files: Optional[List[str]] = typer.Argument(None, help="Image or audio files to compress"),
    media_type: MediaType = typer.Option(MediaType.IMAGE, "--type", "-t", case_sensitive=False, help="image or audio"),
    preset: Optional[str] = typer.Option(None, "--preset", "-p", help="Preset id (see `mbc formats`)"),
    quality: Optional[int] = typer.Option(None, "--quality", "-q", min=1, max=100, help="Image quality 1-100"),
    max_width: Optional[int] = typer.Option(None, "--max-width", help="Downscale images wider than this"),
    max_height: Optional[int] = typer.Option(None, "--max-height", help="Downscale images taller than this"),
    output_format: Optional[str] = typer.Option(None, "--format", "-f", help="jpeg/png/webp or mp3/aac"),
    bitrate: Optional[int] = typer.Option(None, "--bitrate", "-b", help="Audio bitrate in kbps"),
    target_kb: Optional[int] = typer.Option(None, "--target-kb", min=1, help="Pick image quality/width for this size"),
    sample_rate: Optional[int] = typer.Option(None, "--sample-rate", help="Audio sample rate in Hz"),
    config_path: Optional[Path] = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to YAML config"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (overrides config)"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Compress images or audio with a preset, optionally overriding single settings."""
    if media_type not in (MediaType.IMAGE, MediaType.AUDIO):
        typer.secho("Error: Compression is available for image and audio only.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    config = _load(config_path, log_path, debug)

    try:
        chosen = get_preset(media_type, preset or ("balanced" if media_type == MediaType.IMAGE else "medium"))
    except ValueError as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    values = dict(chosen.settings)
    preset_format = str(values.pop("format"))
    fmt = (output_format or preset_format).lower()
    allowed = ("jpeg", "jpg", "png", "webp") if media_type == MediaType.IMAGE else ("mp3", "aac")
    if fmt not in allowed:
        typer.secho(
            f"Error: Unsupported compression format '{fmt}'. Available: {', '.join(allowed)}",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)

    if target_kb and media_type == MediaType.IMAGE:
        sizes = [resolve_source(f).stat().st_size for f in files or [] if resolve_source(f).is_file()]
        if sizes:
            values.update(get_optimal_settings(max(sizes), target_kb))

    if media_type == MediaType.IMAGE:
        settings = BatchSettings(
            media_type=media_type,
            operation=Operation.COMPRESS,
            output_format=fmt,
            quality=quality or values.get("quality"),
            max_width=max_width or values.get("max_width"),
            max_height=max_height,
        )
    else:
        settings = BatchSettings(
            media_type=media_type,
            operation=Operation.COMPRESS,
            output_format=fmt,
            bitrate=bitrate or values.get("bitrate"),
            sample_rate=sample_rate or values.get("sample_rate"),
        )
    _execute(config, files, settings)


@app.command()
def history(
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Number of entries to show"),
    media_type: Optional[MediaType] = typer.Option(None, "--type", "-t", case_sensitive=False, help="Filter by type"),
    successful: bool = typer.Option(False, "--successful", help="Only successful conversions"),
    config_path: Optional[Path] = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to YAML config"),
):
    """Show recent conversions, newest first."""
    store = _history_store(_load(config_path))
    if media_type is not None:
        entries = store.get_by_type(media_type)
    elif successful:
        entries = store.get_successful()
    else:
        entries = store.get_history()
    if successful:
        entries = [e for e in entries if e.success]
    entries = entries[:limit]

    if not entries:
        typer.echo("No conversions yet.")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="dim")
    table.add_column("When")
    table.add_column("Input")
    table.add_column("Output")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Size", justify="right")
    for e in entries:
        table.add_row(
            e.id,
            format_relative_time(e.timestamp),
            e.input_file_name,
            e.output_file_name,
            e.conversion_type.value,
            "[green]ok[/green]" if e.success else "[red]failed[/red]",
            format_file_size(e.file_size) if e.file_size else "-",
        )
    Console().print(table)


@app.command("history-stats")
def history_stats(
    config_path: Optional[Path] = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to YAML config"),
):
    """Show totals from the conversion history."""
    stats = _history_store(_load(config_path)).get_stats()
    typer.echo(f"Total: {stats.total}")
    typer.echo(f"Successful: {stats.successful}")
    typer.echo(f"Failed: {stats.failed}")
    for media, count in stats.by_type.items():
        typer.echo(f"  {media}: {count}")


@app.command("history-remove")
def history_remove(
    entry_id: str = typer.Argument(..., help="History entry ID"),
    config_path: Optional[Path] = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to YAML config"),
):
    """Remove one entry from the conversion history."""
    try:
        removed = _history_store(_load(config_path)).remove(entry_id)
    except MbcError as exc:
        typer.secho(f"Error: {exc.user_message}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    if not removed:
        typer.secho(f"Error: No history entry with id {entry_id}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Removed {entry_id}")


@app.command("history-clear")
def history_clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    config_path: Optional[Path] = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to YAML config"),
):
    """Delete the whole conversion history."""
    store = _history_store(_load(config_path))
    if not yes:
        typer.confirm("Clear all conversion history?", abort=True)
    try:
        store.clear()
    except MbcError as exc:
        typer.secho(f"Error: {exc.user_message}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    typer.echo("History cleared")


@app.command()
def formats(
    media_type: Optional[MediaType] = typer.Option(None, "--type", "-t", case_sensitive=False, help="Only this type"),
):
    """List output formats, quality choices and compression presets."""
    types = [media_type] if media_type else list(MediaType)
    for media in types:
        typer.secho(f"{media.value}:", bold=True)
        for option in CONVERSION_OPTIONS[media]:
            if isinstance(option.quality, list):
                unit = "p" if media == MediaType.VIDEO else "k"
                extra = f" ({', '.join(f'{q}{unit}' for q in option.quality)})"
            elif option.quality:
                extra = " (quality 1-100)"
            else:
                extra = ""
            typer.echo(f"  {option.id:<6}{option.name}{extra}")
        presets = IMAGE_PRESETS if media == MediaType.IMAGE else AUDIO_PRESETS if media == MediaType.AUDIO else []
        for p in presets:
            if media == MediaType.IMAGE:
                estimate = 100 - estimate_compressed_size(100, int(p.settings["quality"]), int(p.settings["max_width"]),
                                                          str(p.settings["format"]))
            else:
                estimate = round(estimated_audio_reduction(int(p.settings["bitrate"])))
            typer.echo(f"  preset {p.id:<14}{p.description} (~{estimate}% smaller)")


@app.command()
def export(
    entry_id: str = typer.Argument(..., help="History entry ID"),
    dest_dir: Path = typer.Argument(..., help="Directory to copy the output into"),
    config_path: Optional[Path] = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to YAML config"),
):
    """Copy the output of a past conversion somewhere else."""
    store = _history_store(_load(config_path))
    entry = next((e for e in store.get_history() if e.id == entry_id), None)
    if entry is None or not entry.output_path:
        typer.secho(f"Error: No exportable output for {entry_id}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    try:
        target = export_file(Path(entry.output_path), dest_dir)
    except OSError as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Exported {target} ({mime_type_for(target)})")


if __name__ == "__main__":
    app()
