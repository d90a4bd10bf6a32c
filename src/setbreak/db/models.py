"""ORM models for tracks, flat analysis rows and per-track detail records."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Score columns in calibration order: eight jam scores, then the two emotion scores
JAM_SCORE_COLUMNS = (
    "energy_score",
    "intensity_score",
    "groove_score",
    "improvisation_score",
    "tightness_score",
    "build_quality_score",
    "exploratory_score",
    "transcendence_score",
)
EMOTION_SCORE_COLUMNS = ("valence_score", "arousal_score")
SCORE_COLUMNS = JAM_SCORE_COLUMNS + EMOTION_SCORE_COLUMNS


class Base(DeclarativeBase):
    pass


class Track(Base):
    """A scanned audio file. Owned by the scanner; read-only for analysis."""

    __tablename__ = "tracks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_path: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    format: Mapped[str] = mapped_column(String(16), nullable=False)

    # Tags
    title: Mapped[Optional[str]] = mapped_column(String)
    artist: Mapped[Optional[str]] = mapped_column(String, index=True)
    album: Mapped[Optional[str]] = mapped_column(String)

    # Filename parsing
    parsed_band: Mapped[Optional[str]] = mapped_column(String, index=True)
    parsed_date: Mapped[Optional[str]] = mapped_column(String(10), index=True)  # YYYY-MM-DD
    parsed_title: Mapped[Optional[str]] = mapped_column(String)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    def __repr__(self) -> str:
        return f"Track(id={self.id!r}, file_path={self.file_path!r})"


class FlatAnalysis(Base):
    """Scalar summary of one track's analysis, plus derived scores.

    Exactly one row per analyzed track. Re-analysis overwrites it in place.
    """

    __tablename__ = "analysis_results"

    track_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tracks.id", ondelete="CASCADE"), primary_key=True
    )

    # Summary
    duration: Mapped[Optional[float]] = mapped_column(Float)
    sample_rate: Mapped[Optional[int]] = mapped_column(Integer)
    channels: Mapped[Optional[int]] = mapped_column(Integer)
    peak_amplitude: Mapped[Optional[float]] = mapped_column(Float)
    rms_level: Mapped[Optional[float]] = mapped_column(Float)
    dynamic_range: Mapped[Optional[float]] = mapped_column(Float)

    # Spectral (mean/std over frames)
    spectral_centroid_mean: Mapped[Optional[float]] = mapped_column(Float)
    spectral_centroid_std: Mapped[Optional[float]] = mapped_column(Float)
    spectral_flux_mean: Mapped[Optional[float]] = mapped_column(Float)
    spectral_flux_std: Mapped[Optional[float]] = mapped_column(Float)
    spectral_rolloff_mean: Mapped[Optional[float]] = mapped_column(Float)
    spectral_rolloff_std: Mapped[Optional[float]] = mapped_column(Float)
    spectral_flatness_mean: Mapped[Optional[float]] = mapped_column(Float)
    spectral_flatness_std: Mapped[Optional[float]] = mapped_column(Float)
    spectral_bandwidth_mean: Mapped[Optional[float]] = mapped_column(Float)
    spectral_bandwidth_std: Mapped[Optional[float]] = mapped_column(Float)
    zcr_mean: Mapped[Optional[float]] = mapped_column(Float)
    zcr_std: Mapped[Optional[float]] = mapped_column(Float)
    sub_band_bass_mean: Mapped[Optional[float]] = mapped_column(Float)
    sub_band_bass_std: Mapped[Optional[float]] = mapped_column(Float)
    sub_band_mid_mean: Mapped[Optional[float]] = mapped_column(Float)
    sub_band_mid_std: Mapped[Optional[float]] = mapped_column(Float)
    sub_band_high_mean: Mapped[Optional[float]] = mapped_column(Float)
    sub_band_high_std: Mapped[Optional[float]] = mapped_column(Float)
    sub_band_presence_mean: Mapped[Optional[float]] = mapped_column(Float)
    sub_band_presence_std: Mapped[Optional[float]] = mapped_column(Float)

    # MFCC (13 coefficients)
    mfcc_0_mean: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_0_std: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_1_mean: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_1_std: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_2_mean: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_2_std: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_3_mean: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_3_std: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_4_mean: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_4_std: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_5_mean: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_5_std: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_6_mean: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_6_std: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_7_mean: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_7_std: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_8_mean: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_8_std: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_9_mean: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_9_std: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_10_mean: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_10_std: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_11_mean: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_11_std: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_12_mean: Mapped[Optional[float]] = mapped_column(Float)
    mfcc_12_std: Mapped[Optional[float]] = mapped_column(Float)

    # Temporal
    tempo_bpm: Mapped[Optional[float]] = mapped_column(Float, index=True)
    beat_count: Mapped[Optional[int]] = mapped_column(Integer)
    onset_count: Mapped[Optional[int]] = mapped_column(Integer)
    tempo_stability: Mapped[Optional[float]] = mapped_column(Float)
    rhythmic_complexity: Mapped[Optional[float]] = mapped_column(Float)

    # Pitch
    mean_pitch: Mapped[Optional[float]] = mapped_column(Float)
    pitch_range_low: Mapped[Optional[float]] = mapped_column(Float)
    pitch_range_high: Mapped[Optional[float]] = mapped_column(Float)
    pitch_stability: Mapped[Optional[float]] = mapped_column(Float)
    dominant_pitch: Mapped[Optional[float]] = mapped_column(Float)
    vibrato_presence: Mapped[Optional[float]] = mapped_column(Float)
    vibrato_rate: Mapped[Optional[float]] = mapped_column(Float)
    pitch_confidence_mean: Mapped[Optional[float]] = mapped_column(Float)

    # Perceptual
    lufs_integrated: Mapped[Optional[float]] = mapped_column(Float)
    loudness_range: Mapped[Optional[float]] = mapped_column(Float)
    true_peak_dbfs: Mapped[Optional[float]] = mapped_column(Float)
    crest_factor: Mapped[Optional[float]] = mapped_column(Float)
    energy_level: Mapped[Optional[float]] = mapped_column(Float)

    # Musical
    estimated_key: Mapped[Optional[str]] = mapped_column(String(32), index=True)
    key_confidence: Mapped[Optional[float]] = mapped_column(Float)
    tonality: Mapped[Optional[float]] = mapped_column(Float)
    harmonic_complexity: Mapped[Optional[float]] = mapped_column(Float)
    chord_count: Mapped[Optional[int]] = mapped_column(Integer)
    chord_change_rate: Mapped[Optional[float]] = mapped_column(Float)
    mode_clarity: Mapped[Optional[float]] = mapped_column(Float)
    key_alternatives_count: Mapped[Optional[int]] = mapped_column(Integer)
    time_sig_numerator: Mapped[Optional[int]] = mapped_column(Integer)
    time_sig_denominator: Mapped[Optional[int]] = mapped_column(Integer)
    chroma_vector: Mapped[Optional[str]] = mapped_column(Text)  # JSON list of 12 floats

    # Recording quality
    recording_quality_score: Mapped[Optional[float]] = mapped_column(Float)
    snr_db: Mapped[Optional[float]] = mapped_column(Float)
    clipping_ratio: Mapped[Optional[float]] = mapped_column(Float)
    noise_floor_db: Mapped[Optional[float]] = mapped_column(Float)

    # Segmentation
    segment_count: Mapped[Optional[int]] = mapped_column(Integer)
    temporal_complexity: Mapped[Optional[float]] = mapped_column(Float)
    coherence_score: Mapped[Optional[float]] = mapped_column(Float)

    # Energy / tension profile
    energy_shape: Mapped[Optional[str]] = mapped_column(String(32))
    peak_energy: Mapped[Optional[float]] = mapped_column(Float)
    energy_variance: Mapped[Optional[float]] = mapped_column(Float)
    tension_build_count: Mapped[Optional[int]] = mapped_column(Integer)
    tension_release_count: Mapped[Optional[int]] = mapped_column(Integer)

    # Structure
    repetition_count: Mapped[Optional[int]] = mapped_column(Integer)
    repetition_similarity: Mapped[Optional[float]] = mapped_column(Float)
    solo_section_count: Mapped[Optional[int]] = mapped_column(Integer)
    solo_section_ratio: Mapped[Optional[float]] = mapped_column(Float)
    transition_count: Mapped[Optional[int]] = mapped_column(Integer)

    # Classification
    classification_music_score: Mapped[Optional[float]] = mapped_column(Float)
    hnr: Mapped[Optional[float]] = mapped_column(Float)

    # Derived from per-frame data
    loudness_std: Mapped[Optional[float]] = mapped_column(Float)
    peak_loudness: Mapped[Optional[float]] = mapped_column(Float)
    spectral_flux_skewness: Mapped[Optional[float]] = mapped_column(Float)
    spectral_centroid_slope: Mapped[Optional[float]] = mapped_column(Float)
    spectral_centroid_kurtosis: Mapped[Optional[float]] = mapped_column(Float)
    energy_buildup_ratio: Mapped[Optional[float]] = mapped_column(Float)
    onset_interval_entropy: Mapped[Optional[float]] = mapped_column(Float)
    beat_regularity: Mapped[Optional[float]] = mapped_column(Float)
    pitched_frame_ratio: Mapped[Optional[float]] = mapped_column(Float)
    pitch_clarity_mean: Mapped[Optional[float]] = mapped_column(Float)
    peak_tension: Mapped[Optional[float]] = mapped_column(Float)
    tension_range: Mapped[Optional[float]] = mapped_column(Float)
    energy_peak_count: Mapped[Optional[int]] = mapped_column(Integer)

    # Emotion (Russell circumplex)
    valence_score: Mapped[Optional[float]] = mapped_column(Float)
    arousal_score: Mapped[Optional[float]] = mapped_column(Float)

    # Jam scores (0-100)
    energy_score: Mapped[Optional[float]] = mapped_column(Float, index=True)
    intensity_score: Mapped[Optional[float]] = mapped_column(Float)
    groove_score: Mapped[Optional[float]] = mapped_column(Float)
    improvisation_score: Mapped[Optional[float]] = mapped_column(Float)
    tightness_score: Mapped[Optional[float]] = mapped_column(Float)
    build_quality_score: Mapped[Optional[float]] = mapped_column(Float)
    exploratory_score: Mapped[Optional[float]] = mapped_column(Float)
    transcendence_score: Mapped[Optional[float]] = mapped_column(Float)

    analyzed_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class ChordEvent(Base):
    __tablename__ = "track_chords"
    __table_args__ = (UniqueConstraint("track_id", "start_time"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    track_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    chord: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    start_time: Mapped[float] = mapped_column(Float, nullable=False)
    duration: Mapped[float] = mapped_column(Float, nullable=False)
    confidence: Mapped[Optional[float]] = mapped_column(Float)


class Segment(Base):
    __tablename__ = "track_segments"
    __table_args__ = (UniqueConstraint("track_id", "segment_index"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    track_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    segment_index: Mapped[int] = mapped_column(Integer, nullable=False)
    label: Mapped[str] = mapped_column(String(32), nullable=False)
    section_type: Mapped[Optional[str]] = mapped_column(String(32), index=True)
    start_time: Mapped[float] = mapped_column(Float, nullable=False)
    duration: Mapped[float] = mapped_column(Float, nullable=False)
    energy: Mapped[Optional[float]] = mapped_column(Float)
    spectral_centroid: Mapped[Optional[float]] = mapped_column(Float)
    zcr: Mapped[Optional[float]] = mapped_column(Float)
    key: Mapped[Optional[str]] = mapped_column(String(32))
    tempo: Mapped[Optional[float]] = mapped_column(Float)
    dynamic_range: Mapped[Optional[float]] = mapped_column(Float)
    confidence: Mapped[Optional[float]] = mapped_column(Float)

    # From the structural section containing this segment, when there is one
    harmonic_stability: Mapped[Optional[float]] = mapped_column(Float)
    rhythmic_density: Mapped[Optional[float]] = mapped_column(Float)
    avg_brightness: Mapped[Optional[float]] = mapped_column(Float)
    dynamic_variation: Mapped[Optional[float]] = mapped_column(Float)


class TensionPoint(Base):
    __tablename__ = "track_tension_points"
    __table_args__ = (Index("ix_tension_track_time", "track_id", "time"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    track_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False
    )
    time: Mapped[float] = mapped_column(Float, nullable=False)
    tension: Mapped[float] = mapped_column(Float, nullable=False)
    change_type: Mapped[str] = mapped_column(String(32), nullable=False)


class Transition(Base):
    __tablename__ = "track_transitions"
    __table_args__ = (Index("ix_transition_track_time", "track_id", "time"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    track_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False
    )
    time: Mapped[float] = mapped_column(Float, nullable=False)
    transition_type: Mapped[str] = mapped_column(String(32), nullable=False)
    strength: Mapped[Optional[float]] = mapped_column(Float)
    duration: Mapped[Optional[float]] = mapped_column(Float)
