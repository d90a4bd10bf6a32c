"""Data models for SetBreak."""

from setbreak.models.analysis import (
    AnalysisResult,
    AudioSegment,
    ChordInfo,
    ChordProgression,
    EnergyShape,
    SectionType,
    SegmentLabel,
    StructuralSection,
    TensionChange,
    TransitionType,
)
from setbreak.models.pipeline import (
    AnalyzeResult,
    StageResult,
    TrackContext,
    TrackOutcome,
    TrackRef,
    TrackState,
)

__all__ = [
    "AnalysisResult",
    "AnalyzeResult",
    "AudioSegment",
    "ChordInfo",
    "ChordProgression",
    "EnergyShape",
    "SectionType",
    "SegmentLabel",
    "StageResult",
    "StructuralSection",
    "TensionChange",
    "TrackContext",
    "TrackOutcome",
    "TrackRef",
    "TrackState",
    "TransitionType",
]
