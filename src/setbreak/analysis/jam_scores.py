"""Jam scores: eight 0-100 heuristics describing a live performance.

Every score is a weighted sum of sub-contributions. Each sub-contribution is
normalized to [0, 1] before its weight is applied and the total is clamped to
[0, 100]. Missing inputs fall back to neutral defaults, so scoring never
fails on a sparse analysis row.

Scores are computed from the flat analysis row plus a small StructureSummary
of the track's segments, sections and transitions. The summary can be built
from a live AnalysisResult or from stored detail rows, which lets rescoring
run without re-analysing audio.
"""

import math
from collections.abc import Sequence
from dataclasses import asdict, dataclass, field

from setbreak.db.models import FlatAnalysis, Segment, Transition
from setbreak.models.analysis import AnalysisResult, EnergyShape, SectionType, TransitionType

# How well each energy-curve shape supports a satisfying build
SHAPE_QUALITY = {
    EnergyShape.BUILDING.value: 1.0,
    EnergyShape.PEAK.value: 0.9,
    EnergyShape.OSCILLATING.value: 0.7,
    EnergyShape.COMPLEX.value: 0.6,
    EnergyShape.VALLEY.value: 0.4,
    EnergyShape.DECAYING.value: 0.3,
    EnergyShape.FLAT.value: 0.1,
}
UNKNOWN_SHAPE_QUALITY = 0.5

SMOOTH_TRANSITIONS = {
    TransitionType.SMOOTH.value,
    TransitionType.GRADUAL.value,
    TransitionType.FADE.value,
}

# Repeats x similarity at which repetition fully suppresses the improvisation term
REPETITION_PRESSURE_SCALE = 20.0

# Tracks shorter than this never score for transcendence
MIN_TRANSCENDENCE_DURATION = 60.0


@dataclass
class StructureSummary:
    """Per-segment and per-transition facts the flat row does not keep."""

    segment_energies: list[float] = field(default_factory=list)
    transition_types: list[str] = field(default_factory=list)
    section_types: list[str] = field(default_factory=list)  # in time order

    @classmethod
    def from_result(cls, result: AnalysisResult) -> "StructureSummary":
        """Build from a live result, matching what from_records sees after storage.

        Each segment takes the first section listing its index; sections that
        own no segment are not stored and so are left out here too.
        """
        structure = result.segments.structure
        owners = []
        for i in range(len(result.segments.segments)):
            section = next((s for s in structure if i in s.segment_indices), None)
            owners.append(section.section_type.value if section else None)
        return cls(
            segment_energies=[float(s.energy) for s in result.segments.segments],
            transition_types=[t.transition_type.value for t in result.segments.transitions],
            section_types=_collapse(owners),
        )

    @classmethod
    def from_records(
        cls, segments: Sequence[Segment], transitions: Sequence[Transition]
    ) -> "StructureSummary":
        """Rebuild from stored rows. Adjacent segments of one section collapse to one entry."""
        ordered = sorted(segments, key=lambda s: s.segment_index)
        return cls(
            segment_energies=[s.energy for s in segments if s.energy is not None],
            transition_types=[t.transition_type for t in transitions],
            section_types=_collapse([s.section_type for s in ordered]),
        )


def _collapse(section_types: Sequence[str | None]) -> list[str]:
    """Drop unknown entries and merge runs of the same section type."""
    collapsed: list[str] = []
    for section_type in section_types:
        if section_type and (not collapsed or collapsed[-1] != section_type):
            collapsed.append(section_type)
    return collapsed


@dataclass
class JamScores:
    energy: float
    intensity: float
    groove: float
    improvisation: float
    tightness: float
    build_quality: float
    exploratory: float
    transcendence: float

    def as_columns(self) -> dict[str, float]:
        """Map onto the FlatAnalysis score column names."""
        return {f"{name}_score": value for name, value in asdict(self).items()}


def clamp01(x: float) -> float:
    return min(max(x, 0.0), 1.0)


def sweet_spot(x: float, low: float, high: float, falloff: float) -> float:
    """Piecewise-linear preference for a middle band.

    Rises linearly from 0 at x=0 to 1 at ``low``, stays at 1 up to ``high``,
    then decays linearly to 0 over ``falloff`` units.
    """
    if x < low:
        return clamp01(x / low) if low > 0 else 0.0
    if x <= high:
        return 1.0
    return clamp01(1.0 - (x - high) / falloff)


def _val(a: FlatAnalysis, name: str, default: float = 0.0) -> float:
    value = getattr(a, name)
    return default if value is None else float(value)


def _total(*contributions: float) -> float:
    return min(max(sum(contributions), 0.0), 100.0)


def _pitch_breadth(a: FlatAnalysis) -> float:
    """Pitch range in octaves, 4 octaves = 1."""
    low = _val(a, "pitch_range_low")
    high = _val(a, "pitch_range_high")
    if low <= 0 or high <= low:
        return 0.0
    return clamp01(math.log2(high / low) / 4.0)


def _chord_variety(a: FlatAnalysis) -> float:
    return clamp01((_val(a, "chord_count") - 3.0) / 18.0)


def energy_score(a: FlatAnalysis) -> float:
    rms = clamp01(_val(a, "rms_level") / 0.18)
    lufs = clamp01((_val(a, "lufs_integrated", -60.0) + 55.0) / 22.0)
    brightness = clamp01((_val(a, "spectral_centroid_mean") - 2000.0) / 6000.0)
    return _total(rms * 40, lufs * 40, brightness * 20)


def intensity_score(a: FlatAnalysis) -> float:
    flux = clamp01(_val(a, "spectral_flux_std") / 50.0)
    dr = clamp01(_val(a, "dynamic_range") / 30.0)
    lr = clamp01(_val(a, "loudness_range") / 20.0)
    return _total(flux * 40, dr * 30, lr * 30)


def groove_score(a: FlatAnalysis) -> float:
    duration = max(_val(a, "duration", 1.0), 1.0)
    stability = clamp01(_val(a, "tempo_stability"))
    complexity = sweet_spot(_val(a, "rhythmic_complexity"), 0.3, 0.6, 0.4)
    beat_rate = sweet_spot(_val(a, "beat_count") / duration, 1.5, 2.5, 1.5)
    return _total(stability * 40, complexity * 30, beat_rate * 30)


def improvisation_score(a: FlatAnalysis) -> float:
    pressure = clamp01(
        _val(a, "repetition_count") * _val(a, "repetition_similarity") / REPETITION_PRESSURE_SCALE
    )
    return _total(
        (1.0 - pressure) * 30,
        clamp01(_val(a, "harmonic_complexity")) * 20,
        _chord_variety(a) * 20,
        clamp01(_val(a, "temporal_complexity")) * 15,
        _pitch_breadth(a) * 15,
    )


def tightness_score(a: FlatAnalysis) -> float:
    flux_mean = _val(a, "spectral_flux_mean")
    flux_cv = _val(a, "spectral_flux_std") / flux_mean if flux_mean > 0.5 else 2.0
    steadiness = clamp01(1.0 - (flux_cv - 0.3) / 1.2)

    onsets = max(_val(a, "onset_count"), 1.0)
    beat_onset = sweet_spot(_val(a, "beat_count") / onsets, 0.2, 0.8, 0.5)

    return _total(
        clamp01(_val(a, "tempo_stability")) * 35,
        clamp01(_val(a, "coherence_score")) * 25,
        steadiness * 20,
        beat_onset * 20,
    )


def build_quality_score(a: FlatAnalysis, structure: StructureSummary) -> float:
    shape = SHAPE_QUALITY.get(a.energy_shape or "", UNKNOWN_SHAPE_QUALITY)

    builds = _val(a, "tension_build_count")
    releases = _val(a, "tension_release_count")
    most = max(builds, releases)
    balance = min(builds, releases) / most if most > 0 else 0.0
    tension = 0.5 * balance + 0.5 * clamp01((builds + releases) / 10.0)

    variance = clamp01(_val(a, "energy_variance") / 0.01)

    transitions = structure.transition_types
    smooth = (
        sum(1 for t in transitions if t in SMOOTH_TRANSITIONS) / len(transitions)
        if transitions
        else 0.0
    )

    sections = structure.section_types
    arc = 0.0
    if sections and sections[0] == SectionType.INTRO.value:
        arc += 1 / 3
    if any(s in (SectionType.SOLO.value, SectionType.INSTRUMENTAL.value) for s in sections):
        arc += 1 / 3
    if sections and sections[-1] == SectionType.OUTRO.value:
        arc += 1 / 3

    return _total(shape * 30, tension * 25, variance * 20, smooth * 15, arc * 10)


def exploratory_score(a: FlatAnalysis) -> float:
    ambiguity = 0.5 * (1.0 - clamp01(_val(a, "key_confidence"))) + 0.5 * clamp01(
        _val(a, "key_alternatives_count") / 5.0
    )

    minutes = max(_val(a, "duration", 1.0), 1.0) / 60.0
    # KeyChange transitions are part of transition_count
    density = clamp01(_val(a, "transition_count") / minutes / 5.0)

    return _total(
        _pitch_breadth(a) * 20,
        _chord_variety(a) * 20,
        ambiguity * 20,
        clamp01(_val(a, "harmonic_complexity")) * 20,
        density * 20,
    )


def transcendence_score(
    a: FlatAnalysis, structure: StructureSummary, groove: float, energy: float
) -> float:
    if _val(a, "duration") < MIN_TRANSCENDENCE_DURATION:
        return 0.0

    avg_energy = max(_val(a, "energy_level", 0.001), 0.001)
    peak_ratio = clamp01((_val(a, "peak_energy") / avg_energy - 0.05) / 0.8)

    energies = structure.segment_energies
    if energies:
        mean = sum(energies) / len(energies)
        above = sum(1 for e in energies if e > mean) / len(energies)
    else:
        above = 0.0

    synergy = math.sqrt(clamp01(groove / 100.0) * clamp01(energy / 100.0))
    richness = clamp01(_val(a, "harmonic_complexity") * _val(a, "tonality"))

    return _total(
        peak_ratio * 30,
        clamp01(above / 0.6) * 20,
        clamp01(_val(a, "peak_tension")) * 20,
        synergy * 15,
        richness * 15,
    )


def score(a: FlatAnalysis, structure: StructureSummary) -> JamScores:
    """All eight jam scores for one analysis row."""
    energy = energy_score(a)
    groove = groove_score(a)
    return JamScores(
        energy=energy,
        intensity=intensity_score(a),
        groove=groove,
        improvisation=improvisation_score(a),
        tightness=tightness_score(a),
        build_quality=build_quality_score(a, structure),
        exploratory=exploratory_score(a),
        transcendence=transcendence_score(a, structure, groove, energy),
    )


def compute_jam_scores(analysis: FlatAnalysis, result: AnalysisResult) -> JamScores:
    return score(analysis, StructureSummary.from_result(result))


def valence_score(a: FlatAnalysis) -> float:
    """Happy (high) to sad (low): mode, tempo, brightness and harmonic simplicity."""
    key = (a.estimated_key or "").lower()
    if "major" in key:
        mode = 1.0
    elif "minor" in key:
        mode = 0.0
    else:
        mode = 0.5
    tempo = clamp01((_val(a, "tempo_bpm", 120.0) - 60.0) / 120.0)
    brightness = clamp01((_val(a, "spectral_centroid_mean") - 500.0) / 4500.0)
    simplicity = 1.0 - clamp01(_val(a, "harmonic_complexity", 0.5))
    return _total(mode * 30, tempo * 25, brightness * 25, simplicity * 20)


def arousal_score(a: FlatAnalysis) -> float:
    """Energetic (high) to calm (low): energy, tempo, spectral change and loudness."""
    energy = clamp01(_val(a, "energy_level"))
    tempo = clamp01((_val(a, "tempo_bpm", 120.0) - 60.0) / 120.0)
    flux = clamp01(_val(a, "spectral_flux_mean") / 50.0)
    lufs = clamp01((_val(a, "lufs_integrated", -40.0) + 40.0) / 40.0)
    return _total(energy * 30, tempo * 25, flux * 20, lufs * 25)


def compute_emotion_scores(analysis: FlatAnalysis) -> tuple[float, float]:
    """(valence, arousal) on the Russell circumplex, each 0-100."""
    return valence_score(analysis), arousal_score(analysis)


def apply_scores(analysis: FlatAnalysis, structure: StructureSummary) -> JamScores:
    """Fill the jam and emotion score columns of an analysis row in place."""
    scores = score(analysis, structure)
    for column, value in scores.as_columns().items():
        setattr(analysis, column, value)
    analysis.valence_score, analysis.arousal_score = compute_emotion_scores(analysis)
    return scores
