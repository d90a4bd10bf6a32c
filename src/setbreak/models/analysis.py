"""Analysis engine result models.

These dataclasses describe the structured result returned by the analysis
engine for one decoded track. They are ephemeral: the feature extractor
flattens them into database rows and the result is then discarded.

Tag enums are ``str`` enums whose values are the canonical strings written to
the database. Adding a member here is the only way a new tag reaches storage.
"""

from dataclasses import dataclass, field
from enum import Enum


class SegmentLabel(str, Enum):
    """Content label of an audio segment."""

    MUSIC = "Music"
    SPEECH = "Speech"
    APPLAUSE = "Applause"
    SILENCE = "Silence"
    NOISE = "Noise"
    UNCLASSIFIED = "Unclassified"


class SectionType(str, Enum):
    """Structural role of a section within a track."""

    INTRO = "Intro"
    VERSE = "Verse"
    CHORUS = "Chorus"
    BRIDGE = "Bridge"
    SOLO = "Solo"
    INSTRUMENTAL = "Instrumental"
    BREAKDOWN = "Breakdown"
    OUTRO = "Outro"
    UNKNOWN = "Unknown"


class TransitionType(str, Enum):
    """How one segment hands over to the next."""

    SMOOTH = "Smooth"
    GRADUAL = "Gradual"
    FADE = "Fade"
    ABRUPT = "Abrupt"
    BUILD = "Build"
    DROP = "Drop"
    KEY_CHANGE = "KeyChange"
    TEMPO_CHANGE = "TempoChange"


class EnergyShape(str, Enum):
    """Overall shape of a track's energy curve."""

    FLAT = "Flat"
    BUILDING = "Building"
    DECAYING = "Decaying"
    PEAK = "Peak"
    VALLEY = "Valley"
    OSCILLATING = "Oscillating"
    COMPLEX = "Complex"


class TensionChange(str, Enum):
    """Direction of tension movement at a tension-profile point."""

    BUILD = "Build"
    SUDDEN_BUILD = "SuddenBuild"
    RELEASE = "Release"
    GRADUAL_RELEASE = "GradualRelease"
    SUSTAIN = "Sustain"
    PEAK = "Peak"


@dataclass
class Summary:
    """Whole-track level summary."""

    duration: float  # seconds
    sample_rate: int
    channels: int
    peak_amplitude: float
    rms_level: float
    dynamic_range: float  # dB


@dataclass
class SpectralFeatures:
    """Per-frame spectral sequences."""

    spectral_centroid: list[float] = field(default_factory=list)
    spectral_flux: list[float] = field(default_factory=list)
    spectral_rolloff: list[float] = field(default_factory=list)
    spectral_flatness: list[float] = field(default_factory=list)
    spectral_bandwidth: list[float] = field(default_factory=list)
    zero_crossing_rate: list[float] = field(default_factory=list)
    sub_band_energy_bass: list[float] = field(default_factory=list)
    sub_band_energy_mid: list[float] = field(default_factory=list)
    sub_band_energy_high: list[float] = field(default_factory=list)
    sub_band_energy_presence: list[float] = field(default_factory=list)
    mfcc: list[list[float]] = field(default_factory=list)  # [coefficient][frame]


@dataclass
class TemporalFeatures:
    """Tempo, beats and onsets."""

    tempo: float | None = None  # BPM
    beats: list[float] = field(default_factory=list)  # seconds
    onsets: list[float] = field(default_factory=list)  # seconds
    tempo_stability: float = 0.0  # 0.0-1.0
    rhythmic_complexity: float = 0.0  # 0.0-1.0


@dataclass
class PitchFrame:
    """One frame of the pitch track."""

    time: float
    frequency: float | None  # Hz, None when unvoiced
    confidence: float  # 0.0-1.0
    clarity: float  # 0.0-1.0


@dataclass
class Vibrato:
    """Detected vibrato."""

    presence: float  # 0.0-1.0
    rate: float  # Hz


@dataclass
class PitchFeatures:
    """Pitch statistics and the frame-level pitch track."""

    mean_pitch: float | None = None
    pitch_range: tuple[float, float] = (0.0, 0.0)  # (low Hz, high Hz)
    pitch_stability: float = 0.0
    dominant_pitch: float | None = None
    vibrato: Vibrato | None = None
    frames: list[PitchFrame] = field(default_factory=list)


@dataclass
class PerceptualFeatures:
    """Perceptual loudness measures."""

    loudness_lufs: float
    loudness_range: float  # LU
    true_peak_dbfs: float
    crest_factor: float
    energy_level: float
    short_term_loudness: list[float] = field(default_factory=list)
    momentary_loudness: list[float] = field(default_factory=list)


@dataclass
class KeyEstimate:
    """Estimated key with ranked alternatives."""

    key: str  # e.g. "A minor"
    confidence: float
    alternatives: list[tuple[str, float]] = field(default_factory=list)


@dataclass
class ChordInfo:
    """One chord event in a progression."""

    chord: str
    start_time: float
    duration: float
    confidence: float


@dataclass
class ChordProgression:
    """Detected chord progression."""

    chords: list[ChordInfo] = field(default_factory=list)


@dataclass
class TimeSignature:
    numerator: int
    denominator: int


@dataclass
class MusicalFeatures:
    """Key, harmony and meter."""

    key: KeyEstimate
    chord_progression: ChordProgression | None = None
    chroma_vector: list[float] = field(default_factory=lambda: [0.0] * 12)
    time_signature: TimeSignature | None = None
    tonality: float = 0.0
    harmonic_complexity: float = 0.0
    mode_clarity: float = 0.0


@dataclass
class QualityMetrics:
    snr_db: float
    clipping_ratio: float
    noise_floor_db: float


@dataclass
class Quality:
    """Recording quality assessment."""

    overall_score: float
    metrics: QualityMetrics


@dataclass
class AudioSegment:
    """A contiguous region of the track."""

    start_time: float
    duration: float
    label: SegmentLabel
    energy: float
    spectral_centroid: float
    zcr: float
    dynamic_range: float
    confidence: float
    key: str | None = None
    tempo: float | None = None


@dataclass
class SectionFeatures:
    harmonic_stability: float
    rhythmic_density: float
    avg_brightness: float
    dynamic_variation: float


@dataclass
class StructuralSection:
    """A labeled structural region made of one or more segments."""

    section_type: SectionType
    start_time: float
    end_time: float
    segment_indices: list[int]
    features: SectionFeatures


@dataclass
class EnergyProfile:
    """Shape of the energy curve."""

    shape: EnergyShape
    peaks: list[tuple[float, float]] = field(default_factory=list)  # (time, energy)
    valleys: list[tuple[float, float]] = field(default_factory=list)
    variance: float = 0.0


@dataclass
class TensionPoint:
    time: float
    tension: float
    change_type: TensionChange


@dataclass
class RepetitionPattern:
    """A repeated passage and how closely it matches its source."""

    first_index: int
    repeat_index: int
    similarity: float


@dataclass
class Transition:
    time: float
    transition_type: TransitionType
    strength: float
    duration: float


@dataclass
class SegmentPatterns:
    energy_profile: EnergyProfile
    tension_profile: list[TensionPoint] = field(default_factory=list)
    repetitions: list[RepetitionPattern] = field(default_factory=list)


@dataclass
class SegmentAnalysis:
    """Segmentation and structure."""

    patterns: SegmentPatterns
    segments: list[AudioSegment] = field(default_factory=list)
    structure: list[StructuralSection] = field(default_factory=list)
    transitions: list[Transition] = field(default_factory=list)
    temporal_complexity: float = 0.0
    coherence_score: float = 0.0


@dataclass
class Classification:
    """Content classification of the whole track."""

    music_score: float
    hnr: float  # harmonic-to-noise ratio, dB


@dataclass
class AnalysisResult:
    """Root object returned by the analysis engine."""

    summary: Summary
    spectral: SpectralFeatures
    temporal: TemporalFeatures
    pitch: PitchFeatures
    perceptual: PerceptualFeatures
    musical: MusicalFeatures
    quality: Quality
    segments: SegmentAnalysis
    classification: Classification
