"""Pipeline module for SetBreak."""

from setbreak.pipeline.base import PipelineStage
from setbreak.pipeline.orchestrator import TrackPipeline, analyze_tracks, create_track_pipeline

__all__ = ["PipelineStage", "TrackPipeline", "analyze_tracks", "create_track_pipeline"]
