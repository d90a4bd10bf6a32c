"""Analyze stage - runs the analysis engine on the decoded samples."""

from setbreak.analysis.adapter import AnalysisAdapter
from setbreak.models.pipeline import StageResult, TrackContext, TrackState
from setbreak.pipeline.base import PipelineStage


class AnalyzeStage(PipelineStage):
    """Stage 2: Analyze.

    The decoded buffer is dropped as soon as the engine returns; later
    stages only need the analysis result.
    """

    def __init__(self, adapter: AnalysisAdapter) -> None:
        self.adapter = adapter

    @property
    def name(self) -> str:
        return "analyze"

    def execute(self, context: TrackContext) -> StageResult:
        context.state = TrackState.ANALYZING

        if context.audio is None:
            return StageResult(
                success=False,
                stage_name=self.name,
                duration_seconds=0,
                error_message="No decoded audio",
            )

        try:
            context.result = self.adapter.analyze(context.audio)
        finally:
            context.release_audio()

        return StageResult(success=True, stage_name=self.name, duration_seconds=0)
