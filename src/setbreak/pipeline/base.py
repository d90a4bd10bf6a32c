"""Base classes for pipeline stages."""

from abc import ABC, abstractmethod
import time

import structlog

from setbreak.errors import SetbreakError
from setbreak.models.pipeline import StageResult, TrackContext

log = structlog.get_logger()


class PipelineStage(ABC):
    """Abstract base class for pipeline stages.

    Each stage implements execute() which receives a TrackContext,
    performs its work (mutating the context), and returns a StageResult.
    Stages raise SetbreakError subclasses for expected per-track failures.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name for this stage."""
        ...

    @abstractmethod
    def execute(self, context: TrackContext) -> StageResult:
        """Execute this stage.

        Args:
            context: Mutable track context that accumulates results.

        Returns:
            StageResult indicating success/failure and any warnings.
        """
        ...

    def run(self, context: TrackContext) -> StageResult:
        """Run the stage with timing.

        This is the public entry point that wraps execute() with timing
        and error handling. No exception escapes: a failing track must never
        take its worker down.
        """
        start_time = time.time()
        try:
            result = self.execute(context)
            result.duration_seconds = time.time() - start_time
            return result
        except SetbreakError as e:
            return StageResult(
                success=False,
                stage_name=self.name,
                duration_seconds=time.time() - start_time,
                error_message=str(e),
            )
        except Exception as e:
            log.debug("stage_crashed", stage=self.name, track_id=context.track.id, exc_info=True)
            return StageResult(
                success=False,
                stage_name=self.name,
                duration_seconds=time.time() - start_time,
                error_message=f"Unexpected error: {e}",
            )
