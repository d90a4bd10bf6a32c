"""Score stage - fills the jam and emotion score columns."""

from setbreak.analysis.jam_scores import StructureSummary, apply_scores
from setbreak.models.pipeline import StageResult, TrackContext, TrackState
from setbreak.pipeline.base import PipelineStage


class ScoreStage(PipelineStage):
    @property
    def name(self) -> str:
        return "score"

    def execute(self, context: TrackContext) -> StageResult:
        context.state = TrackState.SCORING

        if context.extraction is None or context.result is None:
            return StageResult(
                success=False,
                stage_name=self.name,
                duration_seconds=0,
                error_message="Nothing to score",
            )

        apply_scores(context.extraction.analysis, StructureSummary.from_result(context.result))
        # Only the flattened records travel on to storage
        context.result = None

        return StageResult(success=True, stage_name=self.name, duration_seconds=0)
