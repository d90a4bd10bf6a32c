"""Pipeline processing models for SetBreak.

These models track state as a single track moves through decode, analysis,
extraction and scoring, and summarize a whole batch run.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from setbreak.models.analysis import AnalysisResult

if TYPE_CHECKING:
    from setbreak.analysis.features import ExtractionResult
    from setbreak.audio.decode import DecodedAudio


class TrackState(str, Enum):
    """Where a track is in its pipeline run. STORED and FAILED are terminal."""

    PENDING = "pending"
    DECODING = "decoding"
    ANALYZING = "analyzing"
    EXTRACTING = "extracting"
    SCORING = "scoring"
    STORED = "stored"
    FAILED = "failed"


@dataclass(frozen=True)
class TrackRef:
    """Read-only view of a scanned track, as handed out by the track provider."""

    id: int
    file_path: Path
    format: str
    artist: str | None = None
    parsed_band: str | None = None
    parsed_date: str | None = None


@dataclass
class TrackContext:
    """Mutable state passed through pipeline stages for one track."""

    track: TrackRef
    state: TrackState = TrackState.PENDING

    # Decode
    audio: "DecodedAudio | None" = None

    # Analyze
    result: AnalysisResult | None = None

    # Extract + score
    extraction: "ExtractionResult | None" = None

    error_message: str | None = None

    def release_audio(self) -> None:
        """Drop the decoded sample buffer once analysis no longer needs it."""
        self.audio = None


@dataclass
class StageResult:
    """Result of a pipeline stage execution."""

    success: bool
    stage_name: str
    duration_seconds: float
    error_message: str | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass
class TrackOutcome:
    """Final result of running every stage on one track."""

    track: TrackRef
    state: TrackState
    extraction: "ExtractionResult | None" = None
    failed_stage: str | None = None
    error_message: str | None = None
    stages_completed: list[str] = field(default_factory=list)
    total_duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.extraction is not None and self.failed_stage is None


@dataclass
class AnalyzeResult:
    """Counts reported at the end of a batch analysis run."""

    analyzed: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.analyzed + self.failed
