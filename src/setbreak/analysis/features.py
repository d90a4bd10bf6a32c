"""Feature extraction: flatten an AnalysisResult into storable records.

Everything here is a pure function of the analysis result. Per-frame
sequences become (mean, std) pairs and a handful of shape statistics; the
segment, chord, tension and transition lists become detail rows.
"""

import json
from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np

from setbreak.db.models import ChordEvent, FlatAnalysis, Segment, TensionPoint, Transition
from setbreak.models.analysis import AnalysisResult, PitchFrame, SectionType

N_MFCC = 13

# Frames below this pitch confidence count as unpitched
PITCH_CONFIDENCE_THRESHOLD = 0.5

# Inter-onset interval histogram: 20 bins over 0-500 ms
IOI_BIN_COUNT = 20
IOI_RANGE = 0.5

SOLO_SECTION_TYPES = {SectionType.SOLO, SectionType.INSTRUMENTAL}


@dataclass
class ExtractionResult:
    """Scalar row plus detail records for one track."""

    analysis: FlatAnalysis
    chords: list[ChordEvent] = field(default_factory=list)
    segments: list[Segment] = field(default_factory=list)
    tension_points: list[TensionPoint] = field(default_factory=list)
    transitions: list[Transition] = field(default_factory=list)


def mean_std(values: Sequence[float]) -> tuple[float, float]:
    """Mean and population standard deviation. Empty input gives (0, 0)."""
    if len(values) == 0:
        return 0.0, 0.0
    arr = np.asarray(values, dtype=np.float64)
    return float(arr.mean()), float(arr.std())


def skewness(values: Sequence[float]) -> float | None:
    """Skewness of a series. Positive means occasional large spikes."""
    if len(values) < 3:
        return None
    arr = np.asarray(values, dtype=np.float64)
    dev = arr - arr.mean()
    std = float(np.sqrt(np.mean(dev**2)))
    if std < 1e-10:
        return 0.0
    return float(np.mean(dev**3) / std**3)


def kurtosis(values: Sequence[float]) -> float | None:
    """Excess kurtosis (normal distribution = 0)."""
    if len(values) < 4:
        return None
    arr = np.asarray(values, dtype=np.float64)
    dev = arr - arr.mean()
    m2 = float(np.mean(dev**2))
    if m2 < 1e-12:
        return None
    return float(np.mean(dev**4) / (m2 * m2) - 3.0)


def linear_slope(values: Sequence[float]) -> float | None:
    """Least-squares slope over the series with time normalized to [0, 1).

    Non-finite frames (e.g. -inf loudness on silence) are ignored.
    """
    if len(values) < 2:
        return None
    y = np.asarray(values, dtype=np.float64)
    x = np.arange(len(y), dtype=np.float64) / len(y)
    valid = np.isfinite(y)
    x, y = x[valid], y[valid]
    if len(y) < 2:
        return None
    n = len(y)
    denom = n * np.sum(x * x) - np.sum(x) ** 2
    if abs(denom) < 1e-10:
        return 0.0
    return float((n * np.sum(x * y) - np.sum(x) * np.sum(y)) / denom)


def buildup_ratio(values: Sequence[float]) -> float | None:
    """Mean of the last third over mean of the first third, capped at 10."""
    if len(values) < 6:
        return None
    arr = np.asarray(values, dtype=np.float64)
    third = len(arr) // 3
    first = float(arr[:third].mean())
    last = float(arr[-third:].mean())
    if first < 1e-10:
        return 10.0 if last > 1e-10 else 1.0
    return min(last / first, 10.0)


def onset_interval_entropy(onsets: Sequence[float]) -> float | None:
    """Normalized Shannon entropy of inter-onset intervals.

    0 is a perfectly repeating rhythm, 1 is evenly spread over every bin.
    """
    if len(onsets) < 10:
        return None
    iois = np.diff(np.asarray(onsets, dtype=np.float64))
    iois = iois[(iois > 0.01) & (iois < 5.0)]
    if len(iois) < 5:
        return None

    bin_width = IOI_RANGE / IOI_BIN_COUNT
    idx = np.minimum((iois / bin_width).astype(int), IOI_BIN_COUNT - 1)
    counts = np.bincount(idx, minlength=IOI_BIN_COUNT)
    p = counts[counts > 0] / len(iois)
    entropy = float(-np.sum(p * np.log(p)))
    return entropy / float(np.log(IOI_BIN_COUNT))


def interval_cv(times: Sequence[float]) -> float | None:
    """Coefficient of variation of the gaps between successive events."""
    if len(times) < 4:
        return None
    intervals = np.diff(np.asarray(times, dtype=np.float64))
    mean = float(intervals.mean())
    if mean < 1e-10:
        return None
    return float(intervals.std()) / mean


def pitched_frame_ratio(frames: Sequence[PitchFrame]) -> float | None:
    if not frames:
        return None
    pitched = sum(
        1 for f in frames
        if f.confidence > PITCH_CONFIDENCE_THRESHOLD and f.frequency is not None
    )
    return pitched / len(frames)


def _mean_or_none(values: Sequence[float]) -> float | None:
    if len(values) == 0:
        return None
    return float(np.mean(np.asarray(values, dtype=np.float64)))


def _max_or_none(values: Sequence[float]) -> float | None:
    if len(values) == 0:
        return None
    return float(np.max(np.asarray(values, dtype=np.float64)))


def _std_or_none(values: Sequence[float]) -> float | None:
    if len(values) == 0:
        return None
    return mean_std(values)[1]


def _opt(value: float | None) -> float | None:
    return None if value is None else float(value)


def extract(track_id: int, result: AnalysisResult) -> ExtractionResult:
    """Flatten one analysis result.

    Valence, arousal and the jam-score columns are left empty for the
    scoring step to fill.
    """
    spectral = result.spectral
    temporal = result.temporal
    pitch = result.pitch
    perceptual = result.perceptual
    musical = result.musical
    patterns = result.segments.patterns
    duration = float(result.summary.duration)

    columns: dict[str, object] = {
        "track_id": track_id,
        # Summary
        "duration": duration,
        "sample_rate": int(result.summary.sample_rate),
        "channels": int(result.summary.channels),
        "peak_amplitude": float(result.summary.peak_amplitude),
        "rms_level": float(result.summary.rms_level),
        "dynamic_range": float(result.summary.dynamic_range),
    }

    # Spectral
    for name, values in (
        ("spectral_centroid", spectral.spectral_centroid),
        ("spectral_flux", spectral.spectral_flux),
        ("spectral_rolloff", spectral.spectral_rolloff),
        ("spectral_flatness", spectral.spectral_flatness),
        ("spectral_bandwidth", spectral.spectral_bandwidth),
        ("zcr", spectral.zero_crossing_rate),
        ("sub_band_bass", spectral.sub_band_energy_bass),
        ("sub_band_mid", spectral.sub_band_energy_mid),
        ("sub_band_high", spectral.sub_band_energy_high),
        ("sub_band_presence", spectral.sub_band_energy_presence),
    ):
        columns[f"{name}_mean"], columns[f"{name}_std"] = mean_std(values)

    for i in range(N_MFCC):
        coefficient = spectral.mfcc[i] if i < len(spectral.mfcc) else []
        columns[f"mfcc_{i}_mean"], columns[f"mfcc_{i}_std"] = mean_std(coefficient)

    # Temporal
    columns.update(
        tempo_bpm=_opt(temporal.tempo),
        beat_count=len(temporal.beats),
        onset_count=len(temporal.onsets),
        tempo_stability=float(temporal.tempo_stability),
        rhythmic_complexity=float(temporal.rhythmic_complexity),
    )

    # Pitch
    columns.update(
        mean_pitch=_opt(pitch.mean_pitch),
        pitch_range_low=float(pitch.pitch_range[0]),
        pitch_range_high=float(pitch.pitch_range[1]),
        pitch_stability=float(pitch.pitch_stability),
        dominant_pitch=_opt(pitch.dominant_pitch),
        vibrato_presence=_opt(pitch.vibrato.presence) if pitch.vibrato else None,
        vibrato_rate=_opt(pitch.vibrato.rate) if pitch.vibrato else None,
        pitch_confidence_mean=_mean_or_none([f.confidence for f in pitch.frames]),
    )

    # Perceptual
    columns.update(
        lufs_integrated=float(perceptual.loudness_lufs),
        loudness_range=float(perceptual.loudness_range),
        true_peak_dbfs=float(perceptual.true_peak_dbfs),
        crest_factor=float(perceptual.crest_factor),
        energy_level=float(perceptual.energy_level),
    )

    # Musical
    chords, chord_count, chord_change_rate = _extract_chords(track_id, result)
    time_sig = musical.time_signature
    columns.update(
        estimated_key=musical.key.key,
        key_confidence=float(musical.key.confidence),
        tonality=float(musical.tonality),
        harmonic_complexity=float(musical.harmonic_complexity),
        chord_count=chord_count,
        chord_change_rate=chord_change_rate,
        mode_clarity=float(musical.mode_clarity),
        key_alternatives_count=len(musical.key.alternatives),
        time_sig_numerator=time_sig.numerator if time_sig else None,
        time_sig_denominator=time_sig.denominator if time_sig else None,
        chroma_vector=json.dumps([float(v) for v in musical.chroma_vector]),
    )

    # Quality
    columns.update(
        recording_quality_score=float(result.quality.overall_score),
        snr_db=float(result.quality.metrics.snr_db),
        clipping_ratio=float(result.quality.metrics.clipping_ratio),
        noise_floor_db=float(result.quality.metrics.noise_floor_db),
    )

    # Segmentation, energy and tension profile
    tension_points, build_count, release_count = _extract_tension(track_id, result)
    profile = patterns.energy_profile
    repetitions = patterns.repetitions
    solo_count, solo_ratio = _solo_sections(result, duration)
    columns.update(
        segment_count=len(result.segments.segments),
        temporal_complexity=float(result.segments.temporal_complexity),
        coherence_score=float(result.segments.coherence_score),
        energy_shape=profile.shape.value,
        peak_energy=float(profile.peaks[0][1]) if profile.peaks else None,
        energy_variance=float(profile.variance),
        tension_build_count=build_count,
        tension_release_count=release_count,
        repetition_count=len(repetitions),
        repetition_similarity=_mean_or_none([r.similarity for r in repetitions]),
        solo_section_count=solo_count,
        solo_section_ratio=solo_ratio,
        transition_count=len(result.segments.transitions),
        classification_music_score=float(result.classification.music_score),
        hnr=float(result.classification.hnr),
    )

    # Derived per-frame statistics
    tensions = [tp.tension for tp in patterns.tension_profile]
    columns.update(
        loudness_std=_std_or_none(perceptual.short_term_loudness),
        peak_loudness=_max_or_none(perceptual.momentary_loudness),
        spectral_flux_skewness=skewness(spectral.spectral_flux),
        spectral_centroid_slope=linear_slope(spectral.spectral_centroid),
        spectral_centroid_kurtosis=kurtosis(spectral.spectral_centroid),
        energy_buildup_ratio=buildup_ratio(spectral.spectral_flux),
        onset_interval_entropy=onset_interval_entropy(temporal.onsets),
        beat_regularity=interval_cv(temporal.onsets),
        pitched_frame_ratio=pitched_frame_ratio(pitch.frames),
        pitch_clarity_mean=_mean_or_none([f.clarity for f in pitch.frames]),
        peak_tension=_max_or_none(tensions),
        tension_range=(max(tensions) - min(tensions)) if tensions else None,
        energy_peak_count=len(profile.peaks),
    )

    return ExtractionResult(
        analysis=FlatAnalysis(**columns),
        chords=chords,
        segments=_extract_segments(track_id, result),
        tension_points=tension_points,
        transitions=[
            Transition(
                track_id=track_id,
                time=float(t.time),
                transition_type=t.transition_type.value,
                strength=float(t.strength),
                duration=float(t.duration),
            )
            for t in result.segments.transitions
        ],
    )


def _extract_chords(track_id: int, result: AnalysisResult) -> tuple[list[ChordEvent], int, float]:
    """Chord rows, distinct chord count and chord events per minute."""
    progression = result.musical.chord_progression
    if progression is None:
        return [], 0, 0.0

    records = [
        ChordEvent(
            track_id=track_id,
            chord=c.chord,
            start_time=float(c.start_time),
            duration=float(c.duration),
            confidence=float(c.confidence),
        )
        for c in progression.chords
    ]
    chord_count = len({c.chord for c in progression.chords})

    duration = float(result.summary.duration)
    if duration > 0 and records:
        change_rate = len(records) / (duration / 60.0)
    else:
        change_rate = 0.0
    return records, chord_count, change_rate


def _extract_segments(track_id: int, result: AnalysisResult) -> list[Segment]:
    """Segment rows, joined to the structural section that lists their index."""
    structure = result.segments.structure
    records = []
    for i, seg in enumerate(result.segments.segments):
        section = next((s for s in structure if i in s.segment_indices), None)
        features = section.features if section else None
        records.append(
            Segment(
                track_id=track_id,
                segment_index=i,
                label=seg.label.value,
                section_type=section.section_type.value if section else None,
                start_time=float(seg.start_time),
                duration=float(seg.duration),
                energy=float(seg.energy),
                spectral_centroid=float(seg.spectral_centroid),
                zcr=float(seg.zcr),
                key=seg.key,
                tempo=_opt(seg.tempo),
                dynamic_range=float(seg.dynamic_range),
                confidence=float(seg.confidence),
                harmonic_stability=_opt(features.harmonic_stability) if features else None,
                rhythmic_density=_opt(features.rhythmic_density) if features else None,
                avg_brightness=_opt(features.avg_brightness) if features else None,
                dynamic_variation=_opt(features.dynamic_variation) if features else None,
            )
        )
    return records


def _extract_tension(track_id: int, result: AnalysisResult) -> tuple[list[TensionPoint], int, int]:
    """Tension rows plus build and release counts.

    Counting matches substrings of the stored tag, so a tag naming both
    directions counts toward both.
    """
    build_count = 0
    release_count = 0
    records = []
    for tp in result.segments.patterns.tension_profile:
        tag = tp.change_type.value
        if "Build" in tag:
            build_count += 1
        if "Release" in tag:
            release_count += 1
        records.append(
            TensionPoint(
                track_id=track_id,
                time=float(tp.time),
                tension=float(tp.tension),
                change_type=tag,
            )
        )
    return records, build_count, release_count


def _solo_sections(result: AnalysisResult, duration: float) -> tuple[int, float]:
    """Number of solo/instrumental sections and their share of the track."""
    count = 0
    solo_duration = 0.0
    for section in result.segments.structure:
        if section.section_type in SOLO_SECTION_TYPES:
            count += 1
            solo_duration += section.end_time - section.start_time
    ratio = solo_duration / duration if duration > 0 else 0.0
    return count, float(ratio)
