import logging
import time
from typing import List, Optional

import click
from rich.console import Console, Group
from rich.live import Live
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from shared.config import load_config, save_config
from shared.constants import DEFAULT_ACCENT_COLOR, DEFAULT_CANVAS_HEIGHT, DEFAULT_CANVAS_WIDTH
from shared.errors import EmptyListError, PlayerError
from shared.models import PlayerConfig, StorageProvider, Track, TransportState
from storage.provider_factory import StorageProviderFactory
from .analyzer import SpectrumAnalyzer
from .canvas import TerminalCanvas, parse_hex_color, to_rich_color
from .sink import ClockSink, MediaSink
from .transport import TransportController

console = Console()
logger = logging.getLogger(__name__)

STATE_LABELS = {
    TransportState.IDLE: ("■ Stopped", "grey50"),
    TransportState.LOADING: ("… Loading", "yellow"),
    TransportState.READY_PAUSED: ("❚❚ Paused", "cyan"),
    TransportState.READY_PLAYING: ("▶ Playing", "bold green"),
}


def configure_logging(verbose: bool) -> None:
    """Route log records through rich so they don't tear the live view."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
        datefmt="%H:%M:%S",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def format_time(seconds: float) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


def filter_tracks(tracks: List[Track], query: Optional[str]) -> List[Track]:
    """
    Case-insensitive match on title, artist or mood.

    Raises:
        EmptyListError: If nothing is left to play
    """
    playlist = tracks
    if query:
        needle = query.lower()
        playlist = [
            t for t in tracks
            if needle in t.title.lower() or needle in t.artist.lower() or needle in (t.mood or "").lower()
        ]
    if not playlist:
        raise EmptyListError(f"No tracks match '{query}'" if query else "Library is empty")
    return playlist


def _load_catalog():
    config = load_config()
    if config is None:
        raise click.ClickException("No configuration found. Run 'cloudwave configure' first.")
    try:
        catalog, source = StorageProviderFactory.create(config)
        tracks = catalog.fetch_tracks()
    except PlayerError as e:
        raise click.ClickException(f"Failed to sync library: {e}")
    return config, source, tracks


def build_sink(no_audio: bool) -> MediaSink:
    """mpv output, or a silent clock-driven sink when asked or when libmpv is missing."""
    if no_audio:
        return ClockSink()
    try:
        from .sink import MpvSink
        return MpvSink()
    except (ImportError, OSError) as e:
        console.print(Panel.fit(
            "[red bold]libmpv not available[/red bold]\n\n"
            f"{e}\n\n"
            "Continuing without audio output. Install it with:\n"
            "• Ubuntu/Debian: [green]sudo apt install libmpv2[/green]\n"
            "• Fedora: [green]sudo dnf install mpv-libs[/green]\n"
            "• Arch: [green]sudo pacman -S mpv[/green]",
            border_style="red"
        ))
        return ClockSink()


def now_playing(controller: TransportController, canvas: TerminalCanvas, accent: str,
                errors: List[str]) -> Panel:
    state, track, position, duration = controller.snapshot()
    accent = to_rich_color(accent)
    label, style = STATE_LABELS[state]

    header = Text()
    if track:
        header.append(f"{track.title}\n", style="bold white")
        header.append(track.artist.upper(), style="grey70")
        if track.mood:
            header.append(f"   ✦ {track.mood}", style=accent)
    else:
        header.append("Nothing playing", style="grey50")

    width = DEFAULT_CANVAS_WIDTH - 12
    filled = int(width * position / duration) if duration else 0
    progress = Text()
    progress.append(f"{format_time(position)} ", style="cyan")
    progress.append("━" * filled, style=accent)
    progress.append("─" * (width - filled), style="grey30")
    progress.append(f" {format_time(duration)}", style="cyan")

    footer = Text(label, style=style)
    if errors:
        footer.append(f"   {errors[-1]}", style="red")

    return Panel(Group(header, Text(), canvas, Text(), progress, footer),
                 title="Now Playing", border_style=accent, width=DEFAULT_CANVAS_WIDTH + 4)


@click.group()
@click.option('--verbose', '-v', is_flag=True, help="Show debug logging.")
def cli(verbose):
    """🎵 Cloudwave cloud music player"""
    configure_logging(verbose)


@cli.command(name="list")
def list_tracks():
    """List tracks in the library."""
    _, _, tracks = _load_catalog()
    if not tracks:
        console.print("[yellow]Library is empty.[/yellow]")
        return

    table = Table(title=f"Library ({len(tracks)} tracks)")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="bold white")
    table.add_column("Artist", style="green")
    table.add_column("Mood", style="magenta")
    table.add_column("Duration", style="yellow")

    for t in tracks:
        table.add_row(t.id[:8], t.title, t.artist, t.mood or "", format_time(t.duration) if t.duration else "")

    console.print(table)


@cli.command()
@click.argument('query', required=False)
@click.option('--no-audio', is_flag=True, help="Visualize without audio output.")
@click.option('--start', default=0, show_default=True, help="Index of the first track to play.")
def play(query, no_audio, start):
    """Play music with a live spectrum. Optionally filter by QUERY."""
    config, source, tracks = _load_catalog()
    try:
        playlist = filter_tracks(tracks, query)
    except EmptyListError as e:
        console.print(f"[yellow]{e}.[/yellow]")
        return

    sink = build_sink(no_audio or not config.use_audio_output)
    controller = TransportController(source, sink, playlist)
    canvas = TerminalCanvas(DEFAULT_CANVAS_WIDTH, DEFAULT_CANVAS_HEIGHT)
    analyzer = SpectrumAnalyzer(canvas)
    analyzer.attach(sink)

    errors: List[str] = []

    def accent() -> str:
        track = controller.current_track
        for candidate in ((track and track.theme_color), config.accent_color):
            if candidate:
                try:
                    parse_hex_color(candidate)
                    return candidate
                except ValueError:
                    logger.debug("Ignoring invalid colour %r", candidate)
        return DEFAULT_ACCENT_COLOR

    def on_state(state: TransportState):
        analyzer.render(state == TransportState.READY_PLAYING, accent())

    controller.add_state_listener(on_state)
    controller.add_track_listener(lambda track: on_state(controller.state))
    controller.add_error_listener(lambda e: errors.append(str(e)))

    controller.play(playlist[start % len(playlist)])
    try:
        with Live(now_playing(controller, canvas, accent(), errors), console=console,
                  refresh_per_second=20) as live:
            while True:
                live.update(now_playing(controller, canvas, accent(), errors))
                time.sleep(1 / 20)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped.[/yellow]")
    finally:
        analyzer.close()
        controller.close()
        sink.close()


@cli.command()
@click.option('--provider', type=click.Choice([p.value for p in StorageProvider]), required=True)
@click.option('--endpoint', default="", help="S3 endpoint URL, or the music folder for 'local'.")
@click.option('--bucket', default="", help="S3 bucket name.")
@click.option('--token', default="", help="Google Drive OAuth access token.")
@click.option('--access-key', default="", help="S3 access key id.")
@click.option('--secret-key', default="", help="S3 secret access key.")
@click.option('--region', default=None)
@click.option('--accent', default=None, help="Default accent colour, e.g. '#6366f1'.")
@click.option('--no-audio', is_flag=True, help="Never open an audio device.")
def configure(provider, endpoint, bucket, token, access_key, secret_key, region, accent, no_audio):
    """Write the player configuration."""
    config = PlayerConfig(
        provider=StorageProvider(provider),
        endpoint=endpoint,
        bucket=bucket,
        access_key_id=access_key,
        secret_access_key=secret_key,
        access_token=token,
        region=region,
        use_audio_output=not no_audio,
        accent_color=accent,
    )
    path = save_config(config)
    name = StorageProviderFactory.get_provider_name(config.provider)
    console.print(f"[green]✓ Saved {name} configuration to {path}[/green]")


if __name__ == '__main__':
    cli()
