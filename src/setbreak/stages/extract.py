"""Extract stage - flattens the analysis result into storable records."""

from setbreak.analysis.features import extract
from setbreak.models.pipeline import StageResult, TrackContext, TrackState
from setbreak.pipeline.base import PipelineStage


class ExtractStage(PipelineStage):
    @property
    def name(self) -> str:
        return "extract"

    def execute(self, context: TrackContext) -> StageResult:
        context.state = TrackState.EXTRACTING

        if context.result is None:
            return StageResult(
                success=False,
                stage_name=self.name,
                duration_seconds=0,
                error_message="No analysis result",
            )

        context.extraction = extract(context.track.id, context.result)
        return StageResult(success=True, stage_name=self.name, duration_seconds=0)
