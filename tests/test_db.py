"""Tests for the SQLite storage layer."""

from pathlib import Path

import pytest

from setbreak.analysis.features import extract
from setbreak.analysis.jam_scores import StructureSummary, apply_scores
from setbreak.db.database import CalibrationRow, Database
from setbreak.db.models import ChordEvent, FlatAnalysis, Segment, TensionPoint, Transition


def _store(db: Database, track_id: int, result) -> None:
    extraction = extract(track_id, result)
    apply_scores(extraction.analysis, StructureSummary.from_result(result))
    db.store_full_analysis(
        extraction.analysis,
        extraction.chords,
        extraction.segments,
        extraction.tension_points,
        extraction.transitions,
    )


class TestTracks:
    """Tests for track registration and listing."""

    def test_add_track_is_upsert(self, db: Database):
        first = db.add_track("/music/gd77-05-08d1t01.flac", parsed_band="gd")
        second = db.add_track("/music/gd77-05-08d1t01.flac", parsed_band="gd", parsed_date="1977-05-08")

        assert first == second
        tracks = db.list_all()
        assert len(tracks) == 1
        assert tracks[0].format == "flac"
        assert tracks[0].parsed_date == "1977-05-08"
        assert tracks[0].file_path == Path("/music/gd77-05-08d1t01.flac")

    def test_list_unanalyzed(self, db: Database, analysis_result):
        done = db.add_track("/music/a.flac")
        pending = db.add_track("/music/b.flac")
        _store(db, done, analysis_result)

        assert [t.id for t in db.list_unanalyzed()] == [pending]
        assert [t.id for t in db.list_all()] == [done, pending]

    def test_file_database(self, tmp_path: Path):
        path = tmp_path / "nested" / "setbreak.db"
        database = Database(path)
        database.add_track("/music/a.flac")
        database.close()

        reopened = Database(path)
        assert len(reopened.list_all()) == 1
        reopened.close()


class TestStoreFullAnalysis:
    """Tests for store_full_analysis."""

    def test_stores_row_and_details(self, db: Database, analysis_result):
        track_id = db.add_track("/music/a.flac")

        _store(db, track_id, analysis_result)

        stored = db.get_analysis(track_id)
        assert stored is not None
        assert stored.duration == 240.0
        assert stored.energy_score is not None
        assert stored.analyzed_at is not None
        assert db.count_rows(ChordEvent, track_id) == 4
        assert db.count_rows(Segment, track_id) == 4
        assert db.count_rows(TensionPoint, track_id) == 4
        assert db.count_rows(Transition, track_id) == 3

    def test_reanalysis_replaces_rows(self, db: Database, analysis_result):
        """Storing twice overwrites, never duplicates."""
        track_id = db.add_track("/music/a.flac")
        _store(db, track_id, analysis_result)

        analysis_result.segments.segments = analysis_result.segments.segments[:2]
        analysis_result.summary.duration = 120.0
        _store(db, track_id, analysis_result)

        assert db.count_rows(FlatAnalysis) == 1
        assert db.get_analysis(track_id).duration == 120.0
        assert db.count_rows(Segment, track_id) == 2
        assert db.count_rows(ChordEvent, track_id) == 4

    def test_details_are_per_track(self, db: Database, analysis_result):
        a = db.add_track("/music/a.flac")
        b = db.add_track("/music/b.flac")
        _store(db, a, analysis_result)
        _store(db, b, analysis_result)

        _store(db, a, analysis_result)

        assert db.count_rows(Segment) == 8
        assert db.count_rows(Segment, b) == 4

    def test_get_details(self, db: Database, analysis_result):
        track_id = db.add_track("/music/a.flac")
        _store(db, track_id, analysis_result)

        details = db.get_details(track_id)

        assert [s.section_type for s in details.segments] == ["Intro", "Solo", "Solo", "Outro"]
        assert [t.transition_type for t in details.transitions] == ["Smooth", "Build", "KeyChange"]
        assert [c.chord for c in details.chords] == ["Am", "G", "Am", "F"]

    def test_store_analysis_scalar_only(self, db: Database, analysis_result):
        track_id = db.add_track("/music/a.flac")

        db.store_analysis(extract(track_id, analysis_result).analysis)

        assert db.get_analysis(track_id) is not None
        assert db.count_rows(Segment, track_id) == 0


class TestScores:
    """Tests for score reads and writes."""

    def test_update_scores_touches_only_scores(self, db: Database, analysis_result):
        track_id = db.add_track("/music/a.flac")
        _store(db, track_id, analysis_result)
        before = db.get_analysis(track_id)

        db.update_scores(track_id, {"energy_score": 12.5, "valence_score": 80.0})

        after = db.get_analysis(track_id)
        assert after.energy_score == 12.5
        assert after.valence_score == 80.0
        assert after.groove_score == before.groove_score
        assert after.lufs_integrated == before.lufs_integrated
        assert after.analyzed_at == before.analyzed_at

    def test_update_scores_rejects_other_columns(self, db: Database):
        with pytest.raises(ValueError, match="lufs_integrated"):
            db.update_scores(1, {"lufs_integrated": -10.0})

    def test_calibration_rows(self, db: Database, analysis_result):
        scored = db.add_track("/music/a.flac", parsed_band="gd", parsed_date="1977-05-08")
        db.add_track("/music/b.flac")
        _store(db, scored, analysis_result)

        rows = db.get_calibration_rows()

        assert len(rows) == 1
        assert rows[0].lufs == -18.0
        assert rows[0].show_key == "gd|1977-05-08"
        assert rows[0].scores["energy_score"] is not None

    def test_unscored_rows_excluded(self, db: Database, analysis_result):
        track_id = db.add_track("/music/a.flac", parsed_date="1977-05-08")
        db.store_analysis(extract(track_id, analysis_result).analysis)

        assert db.get_calibration_rows() == []


class TestShowKey:
    def test_band_and_date(self):
        row = CalibrationRow(track_id=1, lufs=-18.0, scores={}, parsed_band="phish", parsed_date="1997-11-22")
        assert row.show_key == "phish|1997-11-22"

    def test_date_only(self):
        row = CalibrationRow(track_id=1, lufs=-18.0, scores={}, parsed_date="1997-11-22")
        assert row.show_key == "1997-11-22"

    def test_no_date(self):
        row = CalibrationRow(track_id=1, lufs=-18.0, scores={}, parsed_band="phish")
        assert row.show_key is None
