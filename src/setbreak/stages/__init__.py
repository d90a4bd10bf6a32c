"""Pipeline stages for SetBreak."""

from setbreak.stages.analyze import AnalyzeStage
from setbreak.stages.decode import DecodeStage
from setbreak.stages.extract import ExtractStage
from setbreak.stages.score import ScoreStage

__all__ = [
    "AnalyzeStage",
    "DecodeStage",
    "ExtractStage",
    "ScoreStage",
]
