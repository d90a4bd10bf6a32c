"""Decode stage - turns the track's file into PCM samples."""

from setbreak.audio.decode import AudioDecoder
from setbreak.models.pipeline import StageResult, TrackContext, TrackState
from setbreak.pipeline.base import PipelineStage


class DecodeStage(PipelineStage):
    """Stage 1: Decode.

    - Validates the file exists
    - Dispatches on extension to libsndfile or the transcoder
    """

    def __init__(self, decoder: AudioDecoder) -> None:
        self.decoder = decoder

    @property
    def name(self) -> str:
        return "decode"

    def execute(self, context: TrackContext) -> StageResult:
        context.state = TrackState.DECODING
        path = context.track.file_path

        if not path.exists():
            return StageResult(
                success=False,
                stage_name=self.name,
                duration_seconds=0,
                error_message=f"File not found: {path}",
            )

        context.audio = self.decoder.decode(path)

        warnings: list[str] = []
        if context.audio.samples.shape[0] == 0:
            warnings.append("Decoded audio is empty")

        return StageResult(
            success=True,
            stage_name=self.name,
            duration_seconds=0,
            warnings=warnings,
        )
