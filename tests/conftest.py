"""Pytest fixtures for SetBreak tests."""

import stat
from pathlib import Path

import numpy as np
import pytest
import soundfile as sf

from setbreak.config import Settings
from setbreak.db.database import Database
from setbreak.models.analysis import (
    AnalysisResult,
    AudioSegment,
    ChordInfo,
    ChordProgression,
    Classification,
    EnergyProfile,
    EnergyShape,
    KeyEstimate,
    MusicalFeatures,
    PerceptualFeatures,
    PitchFeatures,
    PitchFrame,
    Quality,
    QualityMetrics,
    RepetitionPattern,
    SectionFeatures,
    SectionType,
    SegmentAnalysis,
    SegmentLabel,
    SegmentPatterns,
    SpectralFeatures,
    StructuralSection,
    Summary,
    TemporalFeatures,
    TensionChange,
    TensionPoint,
    TimeSignature,
    Transition,
    TransitionType,
)


def make_analysis_result(duration: float = 240.0) -> AnalysisResult:
    """A plausible, fully populated engine result for a four-minute jam."""
    frames = 50
    segments = [
        AudioSegment(
            start_time=i * duration / 4,
            duration=duration / 4,
            label=SegmentLabel.MUSIC,
            energy=energy,
            spectral_centroid=2500.0,
            zcr=0.05,
            dynamic_range=12.0,
            confidence=0.8,
            key="A minor",
            tempo=120.0,
        )
        for i, energy in enumerate([0.02, 0.05, 0.09, 0.04])
    ]
    features = SectionFeatures(
        harmonic_stability=0.7,
        rhythmic_density=0.5,
        avg_brightness=0.4,
        dynamic_variation=0.3,
    )
    structure = [
        StructuralSection(SectionType.INTRO, 0.0, 60.0, [0], features),
        StructuralSection(SectionType.SOLO, 60.0, 180.0, [1, 2], features),
        StructuralSection(SectionType.OUTRO, 180.0, 240.0, [3], features),
    ]
    return AnalysisResult(
        summary=Summary(
            duration=duration,
            sample_rate=44100,
            channels=2,
            peak_amplitude=0.9,
            rms_level=0.12,
            dynamic_range=18.0,
        ),
        spectral=SpectralFeatures(
            spectral_centroid=[2000.0 + 10 * i for i in range(frames)],
            spectral_flux=[10.0 + (i % 5) for i in range(frames)],
            spectral_rolloff=[4000.0] * frames,
            spectral_flatness=[0.1] * frames,
            spectral_bandwidth=[1800.0] * frames,
            zero_crossing_rate=[0.05] * frames,
            sub_band_energy_bass=[0.4] * frames,
            sub_band_energy_mid=[0.3] * frames,
            sub_band_energy_high=[0.2] * frames,
            sub_band_energy_presence=[0.1] * frames,
            mfcc=[[float(c)] * frames for c in range(13)],
        ),
        temporal=TemporalFeatures(
            tempo=120.0,
            beats=[0.5 * i for i in range(480)],
            onsets=[0.25 * i for i in range(960)],
            tempo_stability=0.85,
            rhythmic_complexity=0.45,
        ),
        pitch=PitchFeatures(
            mean_pitch=220.0,
            pitch_range=(110.0, 880.0),
            pitch_stability=0.6,
            dominant_pitch=220.0,
            frames=[
                PitchFrame(time=0.1 * i, frequency=220.0 if i % 2 else None,
                           confidence=0.9 if i % 2 else 0.1, clarity=0.8)
                for i in range(10)
            ],
        ),
        perceptual=PerceptualFeatures(
            loudness_lufs=-18.0,
            loudness_range=8.0,
            true_peak_dbfs=-1.0,
            crest_factor=7.5,
            energy_level=0.05,
            short_term_loudness=[-20.0, -18.0, -16.0],
            momentary_loudness=[-22.0, -14.0, -19.0],
        ),
        musical=MusicalFeatures(
            key=KeyEstimate(key="A minor", confidence=0.7,
                            alternatives=[("C major", 0.6), ("E minor", 0.4)]),
            chord_progression=ChordProgression(chords=[
                ChordInfo(chord="Am", start_time=0.0, duration=30.0, confidence=0.8),
                ChordInfo(chord="G", start_time=30.0, duration=30.0, confidence=0.7),
                ChordInfo(chord="Am", start_time=60.0, duration=60.0, confidence=0.8),
                ChordInfo(chord="F", start_time=120.0, duration=120.0, confidence=0.6),
            ]),
            chroma_vector=[1.0] + [0.5] * 11,
            time_signature=TimeSignature(4, 4),
            tonality=0.7,
            harmonic_complexity=0.5,
            mode_clarity=0.3,
        ),
        quality=Quality(
            overall_score=0.8,
            metrics=QualityMetrics(snr_db=40.0, clipping_ratio=0.0, noise_floor_db=-60.0),
        ),
        segments=SegmentAnalysis(
            patterns=SegmentPatterns(
                energy_profile=EnergyProfile(
                    shape=EnergyShape.BUILDING,
                    peaks=[(150.0, 0.09)],
                    valleys=[(10.0, 0.02)],
                    variance=0.005,
                ),
                tension_profile=[
                    TensionPoint(30.0, 0.3, TensionChange.BUILD),
                    TensionPoint(90.0, 0.8, TensionChange.SUDDEN_BUILD),
                    TensionPoint(150.0, 0.9, TensionChange.PEAK),
                    TensionPoint(210.0, 0.4, TensionChange.GRADUAL_RELEASE),
                ],
                repetitions=[RepetitionPattern(first_index=0, repeat_index=3, similarity=0.92)],
            ),
            segments=segments,
            structure=structure,
            transitions=[
                Transition(60.0, TransitionType.SMOOTH, 0.3, 2.0),
                Transition(120.0, TransitionType.BUILD, 0.6, 4.0),
                Transition(180.0, TransitionType.KEY_CHANGE, 0.5, 1.0),
            ],
            temporal_complexity=0.4,
            coherence_score=0.75,
        ),
        classification=Classification(music_score=0.95, hnr=12.0),
    )


def write_wav(path: Path, seconds: float = 1.0, sample_rate: int = 8000, channels: int = 1) -> Path:
    """Write a quiet sine tone as 16-bit PCM WAV, whatever the file extension."""
    t = np.arange(int(seconds * sample_rate)) / sample_rate
    tone = 0.25 * np.sin(2 * np.pi * 440.0 * t)
    data = np.column_stack([tone] * channels)
    sf.write(str(path), data, sample_rate, subtype="PCM_16", format="WAV")
    return path


def write_fake_transcoder(path: Path) -> Path:
    """An executable that answers -version and copies its input to its last argument.

    Good enough to stand in for ffmpeg when the "compressed" input is already WAV.
    """
    path.write_text(
        "#!/bin/sh\n"
        'if [ "$1" = "-version" ]; then echo "fake transcoder"; exit 0; fi\n'
        'for last; do :; done\n'
        'cp "$2" "$last"\n'
    )
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


class FakeEngine:
    """Engine stand-in returning a canned result, or raising a given error."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls = 0

    async def analyze(self, audio, config) -> AnalysisResult:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return make_analysis_result(duration=max(audio.duration, 90.0))


@pytest.fixture
def analysis_result() -> AnalysisResult:
    return make_analysis_result()


@pytest.fixture
def db():
    """A fresh in-memory database."""
    database = Database.in_memory()
    yield database
    database.close()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated to the test's temp directory, without a progress bar."""
    return Settings(
        db_path=tmp_path / "setbreak.db",
        temp_dir=tmp_path,
        show_progress=False,
        transcoder=str(tmp_path / "missing-ffmpeg"),
    )


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()
