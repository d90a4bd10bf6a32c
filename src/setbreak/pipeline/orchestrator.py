"""Batch orchestrator for SetBreak.

Tracks are processed in chunks. Every track in a chunk runs through the
stage pipeline on a bounded thread pool; once the whole chunk is back, the
successful results are written to the database one track at a time before
the next chunk starts. A crash therefore loses at most one chunk of work.
"""

import time
from concurrent.futures import ThreadPoolExecutor

import structlog
from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from setbreak.analysis.adapter import AnalysisAdapter, EngineContextPool
from setbreak.analysis.engine import AnalysisEngine, EngineConfig, LibrosaEngine
from setbreak.audio.decode import AudioDecoder
from setbreak.config import Settings
from setbreak.db.database import Database
from setbreak.errors import StorageError
from setbreak.models.pipeline import AnalyzeResult, TrackContext, TrackOutcome, TrackRef, TrackState
from setbreak.pipeline.base import PipelineStage

console = Console()
log = structlog.get_logger()


class TrackPipeline:
    """Runs the stages for one track, stopping at the first failure."""

    def __init__(self, stages: list[PipelineStage]) -> None:
        """Initialize the pipeline.

        Args:
            stages: Ordered list of stages to execute.
        """
        self.stages = stages

    def run(self, track: TrackRef) -> TrackOutcome:
        """Run every stage on a track.

        Never raises; failures are reported in the returned outcome.
        """
        start_time = time.time()
        context = TrackContext(track=track)
        outcome = TrackOutcome(track=track, state=TrackState.PENDING)

        for stage in self.stages:
            stage_result = stage.run(context)

            if stage_result.success:
                outcome.stages_completed.append(stage.name)
                for warning in stage_result.warnings:
                    log.warning("stage_warning", track_id=track.id, stage=stage.name, warning=warning)
                log.debug(
                    "stage_done",
                    track_id=track.id,
                    stage=stage.name,
                    seconds=round(stage_result.duration_seconds, 2),
                )
            else:
                context.state = TrackState.FAILED
                context.error_message = stage_result.error_message
                outcome.failed_stage = stage.name
                outcome.error_message = stage_result.error_message
                break

        context.release_audio()
        outcome.state = context.state
        if outcome.failed_stage is None:
            outcome.extraction = context.extraction
        outcome.total_duration = time.time() - start_time
        return outcome


def create_track_pipeline(decoder: AudioDecoder, adapter: AnalysisAdapter) -> TrackPipeline:
    """Create a pipeline with all default stages."""
    from setbreak.stages import AnalyzeStage, DecodeStage, ExtractStage, ScoreStage

    stages: list[PipelineStage] = [
        DecodeStage(decoder),
        AnalyzeStage(adapter),
        ExtractStage(),
        ScoreStage(),
    ]

    return TrackPipeline(stages)


def select_tracks(db: Database, force: bool, filter: str | None) -> list[TrackRef]:
    """Unanalyzed tracks (or all of them when forced), optionally path-filtered.

    The filter is a case-insensitive substring of the file path.
    """
    tracks = db.list_all() if force else db.list_unanalyzed()
    if filter:
        needle = filter.lower()
        tracks = [t for t in tracks if needle in str(t.file_path).lower()]
    return tracks


def _chunks(tracks: list[TrackRef], size: int) -> list[list[TrackRef]]:
    return [tracks[i:i + size] for i in range(0, len(tracks), size)]


def _commit(db: Database, outcome: TrackOutcome, result: AnalyzeResult) -> None:
    track = outcome.track
    if not outcome.success or outcome.extraction is None:
        result.failed += 1
        result.errors.append(f"{track.file_path.name}: {outcome.failed_stage}: {outcome.error_message}")
        log.warning(
            "track_failed",
            track_id=track.id,
            path=str(track.file_path),
            stage=outcome.failed_stage,
            error=outcome.error_message,
        )
        return

    extraction = outcome.extraction
    try:
        db.store_full_analysis(
            extraction.analysis,
            extraction.chords,
            extraction.segments,
            extraction.tension_points,
            extraction.transitions,
        )
    except StorageError as e:
        outcome.state = TrackState.FAILED
        result.failed += 1
        result.errors.append(f"{track.file_path.name}: store: {e}")
        log.warning("track_store_failed", track_id=track.id, path=str(track.file_path), error=str(e))
        return

    outcome.state = TrackState.STORED
    result.analyzed += 1
    log.info(
        "track_stored",
        track_id=track.id,
        path=str(track.file_path),
        seconds=round(outcome.total_duration, 2),
    )


def analyze_tracks(
    db: Database,
    settings: Settings,
    force: bool = False,
    jobs: int | None = None,
    filter: str | None = None,
    engine: AnalysisEngine | None = None,
) -> AnalyzeResult:
    """Analyze pending tracks and store their features and scores.

    Args:
        db: Open database; read for the track list and written per track.
        settings: Application settings.
        force: Re-analyze every track, not only unanalyzed ones.
        jobs: Worker count (defaults to settings.jobs).
        filter: Case-insensitive path substring restricting the batch.
        engine: Analysis engine (defaults to LibrosaEngine).

    Returns:
        AnalyzeResult with analyzed and failed counts.

    Raises:
        StorageError: The track list could not be read.
    """
    jobs = jobs or settings.jobs
    tracks = select_tracks(db, force, filter)
    result = AnalyzeResult()

    if not tracks:
        log.info("nothing_to_analyze", force=force, filter=filter)
        return result

    chunk_size = jobs * settings.chunk_factor
    chunks = _chunks(tracks, chunk_size)
    log.info("analysis_start", tracks=len(tracks), jobs=jobs, chunks=len(chunks), force=force)

    decoder = AudioDecoder(settings)
    config = EngineConfig.batch(settings)
    engine = engine or LibrosaEngine()
    start_time = time.time()

    with (
        EngineContextPool(jobs) as pool,
        ThreadPoolExecutor(max_workers=jobs, thread_name_prefix="setbreak") as executor,
        Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
            disable=not settings.show_progress,
        ) as progress,
    ):
        pipeline = create_track_pipeline(decoder, AnalysisAdapter(engine, config, pool))
        task = progress.add_task("[cyan]analyzing[/cyan]", total=len(tracks))

        for index, chunk in enumerate(chunks, start=1):
            # Parallel phase: results come back in submission order
            outcomes = list(executor.map(pipeline.run, chunk))

            # Commit phase: sequential, one transaction per track
            for outcome in outcomes:
                _commit(db, outcome, result)

            progress.update(task, advance=len(chunk))
            log.info(
                "chunk_committed",
                chunk=index,
                of=len(chunks),
                analyzed=result.analyzed,
                failed=result.failed,
            )

    log.info(
        "analysis_done",
        analyzed=result.analyzed,
        failed=result.failed,
        seconds=round(time.time() - start_time, 1),
    )
    return result
