"""Tests for the batch orchestrator, the track pipeline and the analysis adapter."""

from pathlib import Path
from unittest.mock import patch

import numpy as np
import pytest

from conftest import FakeEngine, write_fake_transcoder, write_wav
from setbreak.analysis.adapter import AnalysisAdapter, EngineContextPool
from setbreak.analysis.engine import EngineConfig
from setbreak.audio.decode import DecodedAudio
from setbreak.config import Settings
from setbreak.db.database import Database
from setbreak.db.models import FlatAnalysis, Segment
from setbreak.errors import EngineError, StorageError
from setbreak.models.pipeline import StageResult, TrackContext, TrackRef, TrackState
from setbreak.pipeline import TrackPipeline, analyze_tracks
from setbreak.pipeline.base import PipelineStage
from setbreak.pipeline.orchestrator import select_tracks


def _library(tmp_path: Path, db: Database) -> list[int]:
    """Three WAV tracks, one unsupported file and one shorten file."""
    music = tmp_path / "music"
    music.mkdir()
    paths = [
        write_wav(music / "gd77-05-08d1t01.wav"),
        write_wav(music / "gd77-05-08d1t02.wav"),
        write_wav(music / "gd77-05-08d2t01.wav"),
        music / "liner-notes.xyz",
        write_wav(music / "gd77-05-08d2t02.shn"),
    ]
    paths[3].write_text("not audio")
    return [db.add_track(p, parsed_band="gd", parsed_date="1977-05-08") for p in paths]


class TestAnalyzeTracks:
    """End-to-end batch runs with a fake engine."""

    def test_partial_failures_then_forced_rerun(self, tmp_path: Path, db: Database, settings: Settings):
        """Failed tracks do not block the batch; a forced rerun overwrites."""
        _library(tmp_path, db)

        result = analyze_tracks(db, settings, jobs=2, engine=FakeEngine())

        assert result.analyzed == 3
        assert result.failed == 2
        assert any("Unsupported format" in e for e in result.errors)
        assert any("not found" in e for e in result.errors)
        assert db.count_rows(FlatAnalysis) == 3

        tool = write_fake_transcoder(tmp_path / "ffmpeg")
        with_tool = settings.model_copy(update={"transcoder": str(tool)})
        rerun = analyze_tracks(db, with_tool, force=True, jobs=2, engine=FakeEngine())

        assert rerun.analyzed == 4
        assert rerun.failed == 1
        assert db.count_rows(FlatAnalysis) == 4
        assert db.count_rows(Segment) == 16

    def test_unforced_run_skips_analyzed(self, tmp_path: Path, db: Database, settings: Settings):
        _library(tmp_path, db)
        analyze_tracks(db, settings, jobs=2, engine=FakeEngine())
        engine = FakeEngine()

        result = analyze_tracks(db, settings, jobs=2, engine=engine)

        assert result.analyzed == 0
        assert result.failed == 2
        assert engine.calls == 0

    def test_storage_failure_is_per_track(self, tmp_path: Path, db: Database, settings: Settings):
        """One failing write is counted as failed and the rest of the chunk is stored."""
        ids = _library(tmp_path, db)
        original = db.store_full_analysis

        def flaky_store(analysis, *details):
            if analysis.track_id == ids[2]:
                raise StorageError("database is locked")
            return original(analysis, *details)

        with patch.object(db, "store_full_analysis", side_effect=flaky_store):
            result = analyze_tracks(db, settings, jobs=2, engine=FakeEngine())

        assert result.analyzed == 2
        assert result.failed == 3
        assert any("database is locked" in e for e in result.errors)
        assert db.get_analysis(ids[2]) is None
        assert db.get_analysis(ids[0]) is not None
        assert db.get_analysis(ids[1]) is not None

    def test_engine_failure_message_is_kept(self, tmp_path: Path, db: Database, settings: Settings):
        _library(tmp_path, db)
        engine = FakeEngine(error=EngineError("pyin: frame_length too small {n=3}"))

        result = analyze_tracks(db, settings, filter="d1t01", engine=engine)

        assert result.failed == 1
        assert result.errors == ["gd77-05-08d1t01.wav: analyze: pyin: frame_length too small {n=3}"]

    def test_unexpected_engine_exception(self, tmp_path: Path, db: Database, settings: Settings):
        _library(tmp_path, db)

        result = analyze_tracks(db, settings, filter=".wav", engine=FakeEngine(error=RuntimeError("boom")))

        assert result.analyzed == 0
        assert result.failed == 3
        assert all(e.endswith("analyze: boom") for e in result.errors)

    def test_small_chunks(self, tmp_path: Path, db: Database, settings: Settings):
        """Chunk boundaries do not change the outcome."""
        _library(tmp_path, db)
        one_per_chunk = settings.model_copy(update={"chunk_factor": 1})

        result = analyze_tracks(db, one_per_chunk, jobs=1, engine=FakeEngine())

        assert (result.analyzed, result.failed) == (3, 2)

    def test_nothing_to_do(self, db: Database, settings: Settings):
        result = analyze_tracks(db, settings, engine=FakeEngine())
        assert result.total == 0


class TestSelectTracks:
    def test_filter_is_case_insensitive(self, tmp_path: Path, db: Database):
        _library(tmp_path, db)

        tracks = select_tracks(db, force=False, filter="D2T")

        assert [t.file_path.name for t in tracks] == ["gd77-05-08d2t01.wav", "gd77-05-08d2t02.shn"]

    def test_no_filter(self, tmp_path: Path, db: Database):
        _library(tmp_path, db)
        assert len(select_tracks(db, force=True, filter=None)) == 5


class _Passing(PipelineStage):
    def __init__(self, name: str) -> None:
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def execute(self, context: TrackContext) -> StageResult:
        return StageResult(success=True, stage_name=self.name, duration_seconds=0)


class _Crashing(_Passing):
    def execute(self, context: TrackContext) -> StageResult:
        raise KeyError("segments")


class TestTrackPipeline:
    """Tests for TrackPipeline."""

    def _track(self) -> TrackRef:
        return TrackRef(id=1, file_path=Path("/music/a.wav"), format="wav")

    def test_stops_at_first_failure(self):
        pipeline = TrackPipeline([_Passing("one"), _Crashing("two"), _Passing("three")])

        outcome = pipeline.run(self._track())

        assert outcome.stages_completed == ["one"]
        assert outcome.failed_stage == "two"
        assert outcome.state == TrackState.FAILED
        assert "Unexpected error" in outcome.error_message
        assert outcome.success is False

    def test_all_stages_pass(self):
        outcome = TrackPipeline([_Passing("one"), _Passing("two")]).run(self._track())

        assert outcome.stages_completed == ["one", "two"]
        assert outcome.failed_stage is None


class TestAnalysisAdapter:
    """Tests for AnalysisAdapter and EngineContextPool."""

    def _audio(self) -> DecodedAudio:
        return DecodedAudio(samples=np.zeros((8000, 1), dtype=np.float32), sample_rate=8000)

    def test_returns_engine_result(self):
        with EngineContextPool(1) as pool:
            adapter = AnalysisAdapter(FakeEngine(), EngineConfig.batch(), pool)
            result = adapter.analyze(self._audio())

        assert result.summary.duration == 90.0

    def test_wraps_foreign_exceptions(self):
        with EngineContextPool(1) as pool:
            adapter = AnalysisAdapter(FakeEngine(error=ValueError("bad shape")), EngineConfig(), pool)
            with pytest.raises(EngineError, match="^bad shape$"):
                adapter.analyze(self._audio())

    def test_empty_message_uses_type_name(self):
        with EngineContextPool(1) as pool:
            adapter = AnalysisAdapter(FakeEngine(error=MemoryError()), EngineConfig(), pool)
            with pytest.raises(EngineError, match="MemoryError"):
                adapter.analyze(self._audio())

    def test_context_reused(self):
        """A worker keeps its event loop between tracks."""
        with EngineContextPool(1) as pool:
            with pool.lease() as first:
                pass
            with pool.lease() as second:
                pass
            assert first is second
            assert not first.loop.is_closed()
        assert first.loop.is_closed()

    def test_pool_size(self):
        with pytest.raises(ValueError):
            EngineContextPool(0)
        with EngineContextPool(3) as pool:
            assert pool.size == 3

    def test_batch_config(self, settings: Settings):
        config = EngineConfig.batch(settings)

        assert config.skip_visualization is True
        assert config.skip_fingerprinting is True
        assert config.skip_segment_classification is True
        assert config.pitch_threshold_count == 20
        assert config.pitch_hop_multiplier == 4
