"""Tests for the jam-score and emotion-score heuristics."""

import pytest

from conftest import make_analysis_result
from setbreak.analysis.features import extract
from setbreak.analysis.jam_scores import (
    StructureSummary,
    apply_scores,
    build_quality_score,
    compute_emotion_scores,
    compute_jam_scores,
    energy_score,
    exploratory_score,
    improvisation_score,
    score,
    sweet_spot,
    transcendence_score,
)
from setbreak.db.models import FlatAnalysis, JAM_SCORE_COLUMNS, SCORE_COLUMNS


def _silence() -> FlatAnalysis:
    return FlatAnalysis(
        track_id=1,
        duration=300.0,
        rms_level=0.0,
        lufs_integrated=-60.0,
        spectral_centroid_mean=0.0,
        spectral_flux_mean=0.0,
        spectral_flux_std=0.0,
        dynamic_range=0.0,
        loudness_range=0.0,
        tempo_stability=0.0,
        rhythmic_complexity=0.0,
        beat_count=0,
        onset_count=0,
    )


def _extreme() -> FlatAnalysis:
    return FlatAnalysis(
        track_id=1,
        duration=3600.0,
        rms_level=5.0,
        lufs_integrated=10.0,
        spectral_centroid_mean=1e6,
        spectral_flux_mean=1e6,
        spectral_flux_std=-1e6,
        dynamic_range=1e3,
        loudness_range=1e3,
        tempo_stability=7.0,
        rhythmic_complexity=-3.0,
        beat_count=10**6,
        onset_count=1,
        repetition_count=-5,
        repetition_similarity=2.0,
        harmonic_complexity=9.0,
        chord_count=500,
        temporal_complexity=-1.0,
        pitch_range_low=1.0,
        pitch_range_high=1e9,
        coherence_score=5.0,
        energy_shape="Building",
        tension_build_count=1000,
        tension_release_count=0,
        energy_variance=1.0,
        key_confidence=-2.0,
        key_alternatives_count=100,
        transition_count=10**4,
        energy_level=0.0,
        peak_energy=1e3,
        peak_tension=50.0,
        tonality=-4.0,
        tempo_bpm=900.0,
    )


def _all_scores(a: FlatAnalysis, structure: StructureSummary) -> list[float]:
    apply_scores(a, structure)
    return [getattr(a, column) for column in SCORE_COLUMNS]


class TestSweetSpot:
    """Tests for sweet_spot."""

    def test_inside_band(self):
        assert sweet_spot(0.45, 0.3, 0.6, 0.4) == 1.0

    def test_ramp_up(self):
        assert sweet_spot(0.15, 0.3, 0.6, 0.4) == pytest.approx(0.5)

    def test_falloff(self):
        assert sweet_spot(0.8, 0.3, 0.6, 0.4) == pytest.approx(0.5)
        assert sweet_spot(5.0, 0.3, 0.6, 0.4) == 0.0

    def test_negative_input(self):
        assert sweet_spot(-1.0, 0.3, 0.6, 0.4) == 0.0


class TestScoreRanges:
    """Every score stays within [0, 100] whatever the input."""

    def test_realistic_input(self, analysis_result):
        a = extract(1, analysis_result).analysis
        scores = _all_scores(a, StructureSummary.from_result(analysis_result))
        assert all(0.0 <= s <= 100.0 for s in scores)
        assert any(s > 0.0 for s in scores)

    def test_all_null_input(self):
        scores = _all_scores(FlatAnalysis(track_id=1), StructureSummary())
        assert all(0.0 <= s <= 100.0 for s in scores)

    def test_extreme_input(self):
        structure = StructureSummary(
            segment_energies=[1e9, -1e9, 0.0],
            transition_types=["KeyChange"] * 50,
            section_types=["Intro", "Solo", "Outro"],
        )
        scores = _all_scores(_extreme(), structure)
        assert all(0.0 <= s <= 100.0 for s in scores)

    def test_silence_scores_low(self):
        """Silence never reads as energetic, intense or grooving."""
        jam = score(_silence(), StructureSummary())

        assert jam.energy < 10
        assert jam.intensity < 10
        assert jam.groove < 10


class TestIndividualScores:
    def test_energy_saturates(self):
        a = FlatAnalysis(
            track_id=1, rms_level=0.18, lufs_integrated=-33.0, spectral_centroid_mean=8000.0
        )
        assert energy_score(a) == pytest.approx(100.0)

    def test_missing_loudness_defaults_low(self):
        a = FlatAnalysis(track_id=1, rms_level=0.0, spectral_centroid_mean=0.0)
        assert energy_score(a) == 0.0

    def test_unknown_shape_is_neutral(self):
        """An unrecognized shape tag scores as 0.5 of its weight."""
        a = FlatAnalysis(track_id=1, energy_shape="Wobbly")
        assert build_quality_score(a, StructureSummary()) == pytest.approx(15.0)

    def test_arc_bonus(self):
        a = FlatAnalysis(track_id=1, energy_shape="Flat")
        with_arc = StructureSummary(section_types=["Intro", "Instrumental", "Outro"])
        without = StructureSummary(section_types=["Verse", "Chorus"])

        assert build_quality_score(a, with_arc) - build_quality_score(a, without) == pytest.approx(10.0)

    def test_repetition_suppresses_improvisation(self):
        fresh = FlatAnalysis(track_id=1, repetition_count=0, repetition_similarity=None)
        repetitive = FlatAnalysis(track_id=1, repetition_count=40, repetition_similarity=1.0)

        assert improvisation_score(fresh) == pytest.approx(30.0)
        assert improvisation_score(repetitive) == 0.0

    def test_modulations_count_once(self):
        """Key changes already sit inside transition_count."""
        a = FlatAnalysis(track_id=1, duration=120.0, transition_count=5)
        modulating = StructureSummary(transition_types=["KeyChange"] * 5)

        # 5 transitions over 2 minutes is half the saturating density
        assert exploratory_score(a) == pytest.approx(20.0)
        assert score(a, modulating).exploratory == pytest.approx(20.0)

    def test_short_track_has_no_transcendence(self, analysis_result):
        a = extract(1, analysis_result).analysis
        a.duration = 59.0
        structure = StructureSummary.from_result(analysis_result)

        assert transcendence_score(a, structure, groove=100.0, energy=100.0) == 0.0

    def test_compute_jam_scores(self, analysis_result):
        a = extract(1, analysis_result).analysis

        jam = compute_jam_scores(a, analysis_result)

        assert set(jam.as_columns()) == set(JAM_SCORE_COLUMNS)
        assert jam.transcendence > 0.0


class TestStructureSummary:
    def test_records_match_live_result(self, analysis_result):
        """Rebuilding from stored rows gives the same structure facts."""
        extraction = extract(1, analysis_result)

        live = StructureSummary.from_result(analysis_result)
        stored = StructureSummary.from_records(extraction.segments, extraction.transitions)

        assert stored == live

    def test_section_without_segments(self, analysis_result):
        """A section that owns no segment is ignored on both paths."""
        analysis_result.segments.structure[0].segment_indices = []
        extraction = extract(1, analysis_result)

        live = StructureSummary.from_result(analysis_result)
        stored = StructureSummary.from_records(extraction.segments, extraction.transitions)

        assert live.section_types == ["Solo", "Outro"]
        assert stored == live
        assert build_quality_score(extraction.analysis, live) == pytest.approx(
            build_quality_score(extraction.analysis, stored)
        )

    def test_sections_follow_segment_order(self, analysis_result):
        """Section order comes from the segments they own, not their listing order."""
        analysis_result.segments.structure.reverse()

        live = StructureSummary.from_result(analysis_result)

        assert live.section_types == ["Intro", "Solo", "Outro"]


class TestEmotionScores:
    def test_major_is_happier_than_minor(self):
        major = FlatAnalysis(track_id=1, estimated_key="D major")
        minor = FlatAnalysis(track_id=1, estimated_key="B minor")

        assert compute_emotion_scores(major)[0] - compute_emotion_scores(minor)[0] == pytest.approx(30.0)

    def test_range(self):
        valence, arousal = compute_emotion_scores(_extreme())
        assert 0.0 <= valence <= 100.0
        assert 0.0 <= arousal <= 100.0

    def test_apply_scores_fills_columns(self):
        a = make_analysis_result()
        analysis = extract(1, a).analysis

        apply_scores(analysis, StructureSummary.from_result(a))

        assert all(getattr(analysis, column) is not None for column in SCORE_COLUMNS)
