"""Main CLI entry point for SetBreak."""

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from setbreak import __version__
from setbreak.config import Settings, load_settings
from setbreak.db.database import Database
from setbreak.errors import StorageError
from setbreak.log import configure_logging

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="setbreak")
@click.option(
    "--db-path",
    type=click.Path(path_type=Path),
    envvar="SETBREAK_DB_PATH",
    help="Database file (default: ~/.local/share/setbreak/setbreak.db)",
)
@click.option("-v", "--verbose", count=True, help="Increase log output (-v info, -vv debug)")
@click.pass_context
def main(ctx: click.Context, db_path: Path | None, verbose: int) -> None:
    """SetBreak - analysis and scoring for live-concert recordings.

    Decode and analyze tracks, derive jam scores, and calibrate them
    against recording loudness across shows.
    """
    configure_logging(verbose)
    ctx.obj = load_settings(db_path=db_path)


def _open_db(settings: Settings) -> Database:
    try:
        return Database(settings.db_path)
    except StorageError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise SystemExit(1) from e


@main.command()
@click.option("-j", "--jobs", type=click.IntRange(min=1), help="Parallel workers (default: 2)")
@click.option("--force", is_flag=True, help="Re-analyze tracks that already have results")
@click.option("--filter", "path_filter", help="Only tracks whose path contains this text")
@click.pass_obj
def analyze(settings: Settings, jobs: int | None, force: bool, path_filter: str | None) -> None:
    """Analyze tracks and store features and jam scores.

    Only tracks without results are processed unless --force is given.
    """
    from setbreak.pipeline import analyze_tracks

    if jobs is not None:
        settings = settings.model_copy(update={"jobs": jobs})
    db = _open_db(settings)

    console.print(f"[bold blue]SetBreak[/bold blue] v{__version__}")
    console.print(f"Database: [green]{settings.db_path}[/green]")
    console.print()

    try:
        result = analyze_tracks(db, settings, force=force, filter=path_filter)
    except StorageError as e:
        console.print(f"[bold red]Could not read track list:[/bold red] {e}")
        raise SystemExit(1) from e
    finally:
        db.close()

    if result.total == 0:
        console.print("Nothing to analyze.")
        return

    console.print(
        f"[bold green]Done.[/bold green] Analyzed: {result.analyzed}, "
        f"failed: [{'red' if result.failed else 'green'}]{result.failed}[/]"
    )
    for error in result.errors:
        console.print(f"  [red]-[/red] {error}")


@main.command()
@click.option("--dry-run", is_flag=True, help="Show bias slopes without writing scores")
@click.pass_obj
def calibrate(settings: Settings, dry_run: bool) -> None:
    """Remove recording-loudness bias from stored scores."""
    from setbreak.calibrate import calibrate_scores, score_name

    db = _open_db(settings)
    try:
        result = calibrate_scores(db, dry_run=dry_run, settings=settings)
    finally:
        db.close()

    if result.total_tracks == 0:
        console.print("No calibration data (need analyzed tracks with loudness and scores).")
        return

    console.print(
        f"Calibration: {result.total_tracks} tracks across {result.show_count} shows, "
        f"corpus median LUFS = {result.corpus_median_lufs:.1f}"
    )

    table = Table(show_header=True, header_style="bold")
    table.add_column("Score")
    table.add_column("β", justify="right")
    table.add_column("Effect")
    for column, beta in result.betas.items():
        if beta > settings.beta_threshold:
            effect = "louder tapes score higher: reduce loud, boost quiet"
        elif beta < -settings.beta_threshold:
            effect = "quieter tapes score higher: reduce quiet, boost loud"
        else:
            effect = "[dim]negligible, no correction[/dim]"
        table.add_row(score_name(column), f"{beta:+.4f}", effect)
    console.print(table)

    if dry_run:
        console.print("[yellow]DRY RUN - no changes written.[/yellow]")
    else:
        console.print(f"[bold green]Calibrated {result.calibrated} tracks.[/bold green]")
    if result.skipped_no_show:
        console.print(f"Skipped {result.skipped_no_show} tracks without a show date.")


@main.command()
@click.pass_obj
def rescore(settings: Settings) -> None:
    """Recompute jam and emotion scores from stored analysis data."""
    from setbreak.rescore import rescore_tracks

    db = _open_db(settings)
    try:
        count = rescore_tracks(db)
    finally:
        db.close()
    console.print(f"[bold green]Rescored {count} tracks.[/bold green]")


@main.command()
@click.pass_obj
def info(settings: Settings) -> None:
    """Show current configuration and detected tools."""
    console.print("[bold]Configuration[/bold]")
    console.print(f"  Database: {settings.db_path}")
    console.print(f"  Temp directory: {settings.temp_dir}")
    console.print(f"  Workers: {settings.jobs} (chunk size {settings.jobs * settings.chunk_factor})")
    console.print(
        f"  Pitch detection: {settings.pitch_threshold_count} thresholds, "
        f"hop x{settings.pitch_hop_multiplier}"
    )
    console.print(
        f"  Calibration: min {settings.calibration_min_points} points, "
        f"|β| >= {settings.beta_threshold}"
    )
    console.print()

    console.print("[bold]Tool availability[/bold]")
    _check_tool(settings.transcoder, f"{settings.transcoder} -version")


def _check_tool(name: str, command: str) -> None:
    """Check if a tool is available."""
    import subprocess

    try:
        result = subprocess.run(
            command.split(),
            capture_output=True,
            timeout=5,
        )
        if result.returncode == 0:
            console.print(f"  [green]{name}[/green]: available")
        else:
            console.print(f"  [red]{name}[/red]: not working")
    except FileNotFoundError:
        console.print(f"  [red]{name}[/red]: not found")
    except subprocess.TimeoutExpired:
        console.print(f"  [yellow]{name}[/yellow]: timeout")


if __name__ == "__main__":
    main()
