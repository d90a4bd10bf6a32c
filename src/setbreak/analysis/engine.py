"""Analysis engine interface and the bundled librosa-based engine.

The pipeline talks to any object with an ``async analyze(audio, config)``
method returning an AnalysisResult. LibrosaEngine is the engine shipped with
SetBreak: a fast, approximate analysis built from librosa and numpy
primitives, good enough to rank performances within one library.
"""

from dataclasses import dataclass
from typing import Protocol

import librosa
import numpy as np
import structlog

from setbreak.audio.decode import DecodedAudio
from setbreak.config import Settings
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
    Vibrato,
)

log = structlog.get_logger()

SR = 22050
N_FFT = 2048
HOP_LEN = 512
N_MFCC = 13
EPS = 1e-12

KEYS = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]

# Krumhansl-Schmuckler key profiles
_KS_MAJOR = np.array([6.35, 2.23, 3.48, 2.33, 4.38, 4.09, 2.52, 5.19, 2.39, 3.66, 2.29, 2.88])
_KS_MINOR = np.array([6.33, 2.68, 3.52, 5.38, 2.60, 3.53, 2.54, 4.75, 3.98, 2.69, 3.34, 3.17])

# Sub-band edges in Hz: bass | mid | high | presence
BAND_EDGES = (250.0, 2000.0, 6000.0)

# Segments are roughly this long on average
SEGMENT_SECONDS = 15.0
MAX_SEGMENTS = 16

CHORD_WINDOW_SECONDS = 0.5
REPETITION_THRESHOLD = 0.9


@dataclass(frozen=True)
class EngineConfig:
    """Knobs the pipeline passes to the engine."""

    skip_visualization: bool = False
    skip_fingerprinting: bool = False
    skip_segment_classification: bool = False
    pitch_threshold_count: int = 100
    pitch_hop_multiplier: int = 1

    @classmethod
    def batch(cls, settings: Settings | None = None) -> "EngineConfig":
        """Throughput-tuned profile for library-wide analysis.

        Optional stages nothing downstream reads are switched off, and pitch
        tracking trades precision for speed (fewer thresholds, coarser hop).
        """
        settings = settings or Settings()
        return cls(
            skip_visualization=True,
            skip_fingerprinting=True,
            skip_segment_classification=True,
            pitch_threshold_count=settings.pitch_threshold_count,
            pitch_hop_multiplier=settings.pitch_hop_multiplier,
        )


class AnalysisEngine(Protocol):
    async def analyze(self, audio: DecodedAudio, config: EngineConfig) -> AnalysisResult:
        ...


def _clamp01(x: float) -> float:
    return float(min(max(x, 0.0), 1.0))


def _db(x: float) -> float:
    return float(20.0 * np.log10(x + EPS))


def _cosine(a: np.ndarray, b: np.ndarray) -> float:
    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denom < EPS:
        return 0.0
    return float(np.dot(a, b) / denom)


class LibrosaEngine:
    """Reference engine built on librosa.

    It renders no visualizations and computes no fingerprints, so the
    matching config flags have nothing to skip here.
    """

    async def analyze(self, audio: DecodedAudio, config: EngineConfig) -> AnalysisResult:
        return self._analyze(audio, config)

    def _analyze(self, audio: DecodedAudio, config: EngineConfig) -> AnalysisResult:
        y = np.ascontiguousarray(audio.mono(), dtype=np.float32)
        if audio.sample_rate != SR and len(y) > 0:
            y = librosa.resample(y, orig_sr=audio.sample_rate, target_sr=SR)
        if len(y) < N_FFT:
            y = np.pad(y, (0, N_FFT - len(y)))
        duration = audio.duration

        S = np.abs(librosa.stft(y, n_fft=N_FFT, hop_length=HOP_LEN))
        rms = librosa.feature.rms(S=S, frame_length=N_FFT, hop_length=HOP_LEN)[0]
        frame_times = librosa.frames_to_time(np.arange(S.shape[1]), sr=SR, hop_length=HOP_LEN)

        peak = float(np.max(np.abs(audio.samples))) if audio.samples.size else 0.0
        rms_level = float(np.sqrt(np.mean(y.astype(np.float64) ** 2)))

        summary = Summary(
            duration=duration,
            sample_rate=audio.sample_rate,
            channels=audio.channels,
            peak_amplitude=peak,
            rms_level=rms_level,
            dynamic_range=self._dynamic_range(rms),
        )
        spectral = self._spectral(y, S)
        temporal = self._temporal(y)
        pitch = self._pitch(y, config, spectral.spectral_flatness)
        perceptual = self._perceptual(y, peak, rms_level, rms)
        musical = self._musical(S, duration, len(temporal.beats))
        quality = self._quality(audio.samples, rms)

        segments = self._segments(
            y, S, rms, frame_times, spectral, temporal, config
        )

        flatness_mean = float(np.mean(spectral.spectral_flatness)) if spectral.spectral_flatness else 0.0
        classification = Classification(
            music_score=_clamp01(0.5 * musical.tonality + 0.5 * (1.0 - flatness_mean)),
            hnr=self._hnr(S),
        )

        log.debug(
            "engine_analysis_done",
            duration=round(duration, 2),
            tempo=temporal.tempo,
            key=musical.key.key,
            segments=len(segments.segments),
        )
        return AnalysisResult(
            summary=summary,
            spectral=spectral,
            temporal=temporal,
            pitch=pitch,
            perceptual=perceptual,
            musical=musical,
            quality=quality,
            segments=segments,
            classification=classification,
        )

    # -- summary --------------------------------------------------------------

    def _dynamic_range(self, rms: np.ndarray) -> float:
        """Spread between loud and quiet frames in dB (95th vs 5th percentile)."""
        loud = float(np.percentile(rms, 95))
        quiet = float(np.percentile(rms, 5))
        if loud < 1e-6:
            return 0.0
        return max(_db(loud) - _db(max(quiet, 1e-6)), 0.0)

    # -- spectral -------------------------------------------------------------

    def _spectral(self, y: np.ndarray, S: np.ndarray) -> SpectralFeatures:
        power = S**2
        freqs = librosa.fft_frequencies(sr=SR, n_fft=N_FFT)
        total = power.sum(axis=0) + EPS

        low, mid, high = BAND_EDGES
        bands = [
            power[freqs < low].sum(axis=0) / total,
            power[(freqs >= low) & (freqs < mid)].sum(axis=0) / total,
            power[(freqs >= mid) & (freqs < high)].sum(axis=0) / total,
            power[freqs >= high].sum(axis=0) / total,
        ]

        flux = np.sqrt(np.sum(np.maximum(np.diff(S, axis=1), 0.0) ** 2, axis=0))
        flux = np.concatenate([[0.0], flux])

        mel = librosa.feature.melspectrogram(S=power, sr=SR)
        mfcc = librosa.feature.mfcc(S=librosa.power_to_db(mel), n_mfcc=N_MFCC)

        return SpectralFeatures(
            spectral_centroid=librosa.feature.spectral_centroid(S=S, sr=SR)[0].tolist(),
            spectral_flux=flux.tolist(),
            spectral_rolloff=librosa.feature.spectral_rolloff(S=S, sr=SR)[0].tolist(),
            spectral_flatness=librosa.feature.spectral_flatness(S=S)[0].tolist(),
            spectral_bandwidth=librosa.feature.spectral_bandwidth(S=S, sr=SR)[0].tolist(),
            zero_crossing_rate=librosa.feature.zero_crossing_rate(
                y, frame_length=N_FFT, hop_length=HOP_LEN
            )[0].tolist(),
            sub_band_energy_bass=bands[0].tolist(),
            sub_band_energy_mid=bands[1].tolist(),
            sub_band_energy_high=bands[2].tolist(),
            sub_band_energy_presence=bands[3].tolist(),
            mfcc=mfcc.tolist(),
        )

    # -- temporal -------------------------------------------------------------

    def _temporal(self, y: np.ndarray) -> TemporalFeatures:
        onset_env = librosa.onset.onset_strength(y=y, sr=SR, hop_length=HOP_LEN)
        tempo, beat_frames = librosa.beat.beat_track(
            onset_envelope=onset_env, sr=SR, hop_length=HOP_LEN
        )
        beats = librosa.frames_to_time(beat_frames, sr=SR, hop_length=HOP_LEN)
        onsets = librosa.onset.onset_detect(
            onset_envelope=onset_env, sr=SR, hop_length=HOP_LEN, units="time"
        )

        bpm = float(np.atleast_1d(tempo)[0])
        stability = 0.0
        if len(beats) >= 3:
            intervals = np.diff(beats)
            stability = _clamp01(1.0 - float(intervals.std()) / (float(intervals.mean()) + EPS))

        complexity = 0.0
        if len(onsets) >= 3:
            iois = np.diff(onsets)
            complexity = _clamp01(float(iois.std()) / (float(iois.mean()) + EPS))

        return TemporalFeatures(
            tempo=bpm if len(beats) > 0 and bpm > 0 else None,
            beats=beats.tolist(),
            onsets=np.asarray(onsets).tolist(),
            tempo_stability=stability,
            rhythmic_complexity=complexity,
        )

    # -- pitch ----------------------------------------------------------------

    def _pitch(self, y: np.ndarray, config: EngineConfig, flatness: list[float]) -> PitchFeatures:
        hop = HOP_LEN * config.pitch_hop_multiplier
        f0, voiced_flag, voiced_prob = librosa.pyin(
            y,
            fmin=librosa.note_to_hz("C2"),
            fmax=librosa.note_to_hz("C7"),
            sr=SR,
            frame_length=N_FFT,
            hop_length=hop,
            n_thresholds=config.pitch_threshold_count,
        )
        times = librosa.times_like(f0, sr=SR, hop_length=hop)
        voiced_prob = np.nan_to_num(voiced_prob)

        frames = []
        for i, t in enumerate(times):
            voiced = bool(voiced_flag[i]) and not np.isnan(f0[i])
            spectral_idx = min(i * config.pitch_hop_multiplier, len(flatness) - 1)
            clarity = _clamp01(1.0 - flatness[spectral_idx]) if flatness else 0.0
            frames.append(
                PitchFrame(
                    time=float(t),
                    frequency=float(f0[i]) if voiced else None,
                    confidence=float(voiced_prob[i]),
                    clarity=clarity,
                )
            )

        voiced_f0 = f0[voiced_flag & ~np.isnan(f0)]
        if len(voiced_f0) == 0:
            return PitchFeatures(frames=frames)

        midi = librosa.hz_to_midi(voiced_f0)
        pitch_classes = np.round(midi).astype(int)
        dominant_midi = int(np.bincount(pitch_classes - pitch_classes.min()).argmax() + pitch_classes.min())

        return PitchFeatures(
            mean_pitch=float(np.mean(voiced_f0)),
            pitch_range=(float(np.min(voiced_f0)), float(np.max(voiced_f0))),
            pitch_stability=_clamp01(1.0 - float(np.std(midi)) / 12.0),
            dominant_pitch=float(librosa.midi_to_hz(dominant_midi)),
            vibrato=self._vibrato(midi, hop),
            frames=frames,
        )

    def _vibrato(self, midi: np.ndarray, hop: int) -> Vibrato | None:
        """Small periodic wobble around a smoothed pitch contour."""
        if len(midi) < 10:
            return None
        smooth = np.convolve(midi, np.ones(5) / 5, mode="same")
        deviation = (midi - smooth)[2:-2]
        presence = float(np.mean(np.abs(deviation) > 0.2))
        crossings = int(np.sum(np.diff(np.sign(deviation)) != 0))
        seconds = len(deviation) * hop / SR
        rate = crossings / (2.0 * seconds) if seconds > 0 else 0.0
        return Vibrato(presence=presence, rate=float(rate))

    # -- loudness -------------------------------------------------------------

    def _block_loudness(self, y: np.ndarray, block_seconds: float, step_seconds: float) -> np.ndarray:
        block = max(int(block_seconds * SR), 1)
        step = max(int(step_seconds * SR), 1)
        if len(y) <= block:
            blocks = [y]
        else:
            blocks = [y[i:i + block] for i in range(0, len(y) - block + 1, step)]
        ms = np.array([np.mean(b.astype(np.float64) ** 2) for b in blocks])
        return -0.691 + 10.0 * np.log10(ms + EPS)

    def _perceptual(
        self, y: np.ndarray, peak: float, rms_level: float, rms: np.ndarray
    ) -> PerceptualFeatures:
        """Gated loudness in the style of BS.1770, without K-weighting."""
        momentary = self._block_loudness(y, 0.4, 0.1)
        short_term = self._block_loudness(y, 3.0, 1.0)

        gated = momentary[momentary > -70.0]
        if len(gated):
            relative = 10.0 * np.log10(np.mean(10.0 ** (gated / 10.0))) - 10.0
            gated = gated[gated > relative]
        if len(gated):
            integrated = float(10.0 * np.log10(np.mean(10.0 ** (gated / 10.0))))
        else:
            integrated = -70.0

        st = short_term[short_term > -70.0]
        if len(st):
            st = st[st > integrated - 20.0]
        lra = float(np.percentile(st, 95) - np.percentile(st, 10)) if len(st) >= 2 else 0.0

        return PerceptualFeatures(
            loudness_lufs=integrated,
            loudness_range=lra,
            true_peak_dbfs=_db(peak),
            crest_factor=float(peak / rms_level) if rms_level > EPS else 0.0,
            energy_level=float(np.mean(rms)),
            short_term_loudness=np.maximum(short_term, -70.0).tolist(),
            momentary_loudness=np.maximum(momentary, -70.0).tolist(),
        )

    # -- harmony --------------------------------------------------------------

    def _key_scores(self, chroma_mean: np.ndarray) -> list[tuple[str, float]]:
        """Correlation of the chroma profile with all 24 rotated key profiles."""
        scores = []
        if float(np.std(chroma_mean)) < EPS:
            return [(f"{KEYS[0]} major", 0.0)]
        for i in range(12):
            scores.append((f"{KEYS[i]} major", float(np.corrcoef(np.roll(_KS_MAJOR, i), chroma_mean)[0, 1])))
            scores.append((f"{KEYS[i]} minor", float(np.corrcoef(np.roll(_KS_MINOR, i), chroma_mean)[0, 1])))
        return sorted(scores, key=lambda s: s[1], reverse=True)

    def _musical(self, S: np.ndarray, duration: float, beat_count: int) -> MusicalFeatures:
        chroma = librosa.feature.chroma_stft(S=S**2, sr=SR, n_fft=N_FFT, hop_length=HOP_LEN)
        chroma_mean = chroma.mean(axis=1)
        chroma_vector = (chroma_mean / (chroma_mean.max() + EPS)).tolist()

        ranked = self._key_scores(chroma_mean)
        best_key, best_score = ranked[0]
        alternatives = [(k, s) for k, s in ranked[1:5] if s > best_score - 0.15]
        best_major = max((s for k, s in ranked if k.endswith("major")), default=0.0)
        best_minor = max((s for k, s in ranked if k.endswith("minor")), default=0.0)

        p = chroma_mean / (chroma_mean.sum() + EPS)
        p = p[p > 0]
        entropy = float(-np.sum(p * np.log(p)) / np.log(12)) if len(p) else 0.0

        return MusicalFeatures(
            key=KeyEstimate(key=best_key, confidence=_clamp01(best_score), alternatives=alternatives),
            chord_progression=self._chords(chroma, S),
            chroma_vector=chroma_vector,
            time_signature=TimeSignature(4, 4) if beat_count >= 8 else None,
            tonality=_clamp01(best_score),
            harmonic_complexity=_clamp01(entropy),
            mode_clarity=_clamp01(abs(best_major - best_minor)),
        )

    def _chords(self, chroma: np.ndarray, S: np.ndarray) -> ChordProgression | None:
        """Template-match major and minor triads over short windows.

        Consecutive windows with the same chord merge into one event.
        """
        window = max(int(CHORD_WINDOW_SECONDS * SR / HOP_LEN), 1)
        energy = S.sum(axis=0)
        loud_enough = float(np.percentile(energy, 90)) * 0.05

        templates = []
        for root in range(12):
            for suffix, third in (("", 4), ("m", 3)):
                t = np.zeros(12)
                t[root] = 1.0
                t[(root + third) % 12] = 0.8
                t[(root + 7) % 12] = 0.9
                templates.append((f"{KEYS[root]}{suffix}", t))

        events: list[ChordInfo] = []
        window_seconds = window * HOP_LEN / SR
        for start in range(0, chroma.shape[1], window):
            if float(energy[start:start + window].mean()) < loud_enough:
                continue
            cm = chroma[:, start:start + window].mean(axis=1)
            label, score = max(((name, _cosine(t, cm)) for name, t in templates), key=lambda x: x[1])
            start_time = start * HOP_LEN / SR
            if events and events[-1].chord == label and abs(
                events[-1].start_time + events[-1].duration - start_time
            ) < 1e-6:
                prev = events[-1]
                prev.confidence = (prev.confidence * prev.duration + score * window_seconds) / (
                    prev.duration + window_seconds
                )
                prev.duration += window_seconds
            else:
                events.append(ChordInfo(label, start_time, window_seconds, score))

        return ChordProgression(chords=events) if events else None

    # -- quality / classification ---------------------------------------------

    def _quality(self, samples: np.ndarray, rms: np.ndarray) -> Quality:
        noise_floor = _db(float(np.percentile(rms, 10)))
        signal = _db(float(np.percentile(rms, 90)))
        snr = max(signal - noise_floor, 0.0)
        clipping = float(np.mean(np.abs(samples) >= 0.999)) if samples.size else 0.0
        overall = 0.7 * _clamp01(snr / 60.0) + 0.3 * (1.0 - _clamp01(clipping * 100.0))
        return Quality(
            overall_score=overall,
            metrics=QualityMetrics(snr_db=snr, clipping_ratio=clipping, noise_floor_db=noise_floor),
        )

    def _hnr(self, S: np.ndarray) -> float:
        harmonic, percussive = librosa.decompose.hpss(S)
        h = float(np.sum(harmonic**2))
        p = float(np.sum(percussive**2))
        return float(10.0 * np.log10((h + EPS) / (p + EPS)))

    # -- segmentation ---------------------------------------------------------

    def _segments(
        self,
        y: np.ndarray,
        S: np.ndarray,
        rms: np.ndarray,
        frame_times: np.ndarray,
        spectral: SpectralFeatures,
        temporal: TemporalFeatures,
        config: EngineConfig,
    ) -> SegmentAnalysis:
        n_frames = S.shape[1]
        chroma = librosa.feature.chroma_stft(S=S**2, sr=SR, n_fft=N_FFT, hop_length=HOP_LEN)
        mfcc = np.asarray(spectral.mfcc)
        feats = np.vstack([mfcc, chroma])

        duration = len(y) / SR
        k = int(min(max(duration // SEGMENT_SECONDS + 1, 1), MAX_SEGMENTS, n_frames))
        bounds = librosa.segment.agglomerative(feats, k) if k > 1 else np.array([0])
        bounds = sorted(set(int(b) for b in bounds) | {0})
        edges = bounds + [n_frames]

        centroid = np.asarray(spectral.spectral_centroid)
        zcr = np.asarray(spectral.zero_crossing_rate)
        flatness = np.asarray(spectral.spectral_flatness)
        onsets = np.asarray(temporal.onsets)

        segments: list[AudioSegment] = []
        vectors: list[np.ndarray] = []
        chroma_means: list[np.ndarray] = []
        densities: list[float] = []
        section_features: list[SectionFeatures] = []
        for start, end in zip(edges[:-1], edges[1:]):
            if end <= start:
                continue
            seg_rms = rms[start:end]
            t0 = float(frame_times[start])
            t1 = float(frame_times[end]) if end < n_frames else duration
            seg_duration = max(t1 - t0, 0.0)
            energy = float(seg_rms.mean())

            if config.skip_segment_classification:
                label = SegmentLabel.UNCLASSIFIED
            elif energy < 1e-3:
                label = SegmentLabel.SILENCE
            elif float(flatness[start:end].mean()) > 0.5:
                label = SegmentLabel.NOISE
            else:
                label = SegmentLabel.MUSIC

            segments.append(
                AudioSegment(
                    start_time=t0,
                    duration=seg_duration,
                    label=label,
                    energy=energy,
                    spectral_centroid=float(centroid[start:end].mean()),
                    zcr=float(zcr[start:end].mean()),
                    dynamic_range=self._dynamic_range(seg_rms),
                    confidence=1.0 if config.skip_segment_classification else 0.6,
                )
            )
            vectors.append(feats[:, start:end].mean(axis=1))
            cm = chroma[:, start:end].mean(axis=1)
            chroma_means.append(cm)
            n_onsets = int(np.sum((onsets >= t0) & (onsets < t1))) if len(onsets) else 0
            density = n_onsets / seg_duration if seg_duration > 0 else 0.0
            densities.append(density)
            section_features.append(
                SectionFeatures(
                    harmonic_stability=_clamp01(1.0 - float(chroma[:, start:end].std(axis=1).mean())),
                    rhythmic_density=_clamp01(density / 10.0),
                    avg_brightness=_clamp01(float(centroid[start:end].mean()) / (SR / 2)),
                    dynamic_variation=float(seg_rms.std() / (seg_rms.mean() + EPS)),
                )
            )

        energies = np.array([s.energy for s in segments])
        structure = self._structure(segments, section_features, energies)
        transitions = self._transitions(segments, chroma_means)
        tension = self._tension(segments, densities)
        repetitions = []
        for i in range(len(vectors)):
            for j in range(i + 1, len(vectors)):
                similarity = _cosine(vectors[i], vectors[j])
                if similarity > REPETITION_THRESHOLD:
                    repetitions.append(RepetitionPattern(i, j, similarity))

        if len(vectors) > 1:
            coherence = float(np.mean([
                _clamp01(_cosine(vectors[i], vectors[i + 1])) for i in range(len(vectors) - 1)
            ]))
        else:
            coherence = 1.0

        energy_cv = float(energies.std() / (energies.mean() + EPS)) if len(energies) else 0.0
        abrupt = sum(1 for t in transitions if t.transition_type != TransitionType.SMOOTH)
        temporal_complexity = _clamp01(
            0.5 * _clamp01(energy_cv) + 0.5 * abrupt / max(len(segments) - 1, 1)
        )

        return SegmentAnalysis(
            patterns=SegmentPatterns(
                energy_profile=self._energy_profile(segments, energies),
                tension_profile=tension,
                repetitions=repetitions,
            ),
            segments=segments,
            structure=structure,
            transitions=transitions,
            temporal_complexity=temporal_complexity,
            coherence_score=coherence,
        )

    def _structure(
        self,
        segments: list[AudioSegment],
        features: list[SectionFeatures],
        energies: np.ndarray,
    ) -> list[StructuralSection]:
        """One section per segment, typed by position, energy and brightness."""
        if not segments:
            return []
        mean_energy = float(energies.mean())
        mean_brightness = float(np.mean([s.spectral_centroid for s in segments]))
        sections = []
        last = len(segments) - 1
        for i, seg in enumerate(segments):
            if last >= 2 and i == 0:
                section_type = SectionType.INTRO
            elif last >= 2 and i == last:
                section_type = SectionType.OUTRO
            elif seg.energy > 1.2 * mean_energy and seg.spectral_centroid > mean_brightness:
                section_type = SectionType.SOLO
            elif seg.energy > 1.2 * mean_energy:
                section_type = SectionType.CHORUS
            elif seg.energy < 0.6 * mean_energy:
                section_type = SectionType.BREAKDOWN
            else:
                section_type = SectionType.VERSE
            sections.append(
                StructuralSection(
                    section_type=section_type,
                    start_time=seg.start_time,
                    end_time=seg.start_time + seg.duration,
                    segment_indices=[i],
                    features=features[i],
                )
            )
        return sections

    def _transitions(
        self, segments: list[AudioSegment], chroma_means: list[np.ndarray]
    ) -> list[Transition]:
        transitions = []
        for i in range(1, len(segments)):
            prev, cur = segments[i - 1], segments[i]
            ratio = (cur.energy + EPS) / (prev.energy + EPS)
            brightness_change = abs(cur.spectral_centroid - prev.spectral_centroid) / (
                prev.spectral_centroid + EPS
            )
            key_moved = int(np.argmax(chroma_means[i])) != int(np.argmax(chroma_means[i - 1]))

            if cur.energy < 1e-3 <= prev.energy:
                kind = TransitionType.FADE
            elif key_moved and min(prev.energy, cur.energy) > 1e-3:
                kind = TransitionType.KEY_CHANGE
            elif ratio > 1.5:
                kind = TransitionType.BUILD
            elif ratio < 1 / 1.5:
                kind = TransitionType.DROP
            elif brightness_change > 0.3:
                kind = TransitionType.ABRUPT
            elif abs(np.log2(ratio)) < 0.1:
                kind = TransitionType.SMOOTH
            else:
                kind = TransitionType.GRADUAL

            transitions.append(
                Transition(
                    time=cur.start_time,
                    transition_type=kind,
                    strength=_clamp01(abs(float(np.log2(ratio)))),
                    duration=0.0 if kind == TransitionType.ABRUPT else min(2.0, cur.duration / 4),
                )
            )
        return transitions

    def _tension(self, segments: list[AudioSegment], densities: list[float]) -> list[TensionPoint]:
        if not segments:
            return []
        energy = np.array([s.energy for s in segments])
        brightness = np.array([s.spectral_centroid for s in segments])
        density = np.array(densities)
        tension = (
            0.5 * energy / (energy.max() + EPS)
            + 0.3 * brightness / (brightness.max() + EPS)
            + 0.2 * density / (density.max() + EPS)
        )

        points = []
        top = int(np.argmax(tension))
        for i, (seg, value) in enumerate(zip(segments, tension)):
            delta = float(value - tension[i - 1]) if i > 0 else 0.0
            if i == top and value >= 0.9:
                change = TensionChange.PEAK
            elif delta > 0.25:
                change = TensionChange.SUDDEN_BUILD
            elif delta > 0.05:
                change = TensionChange.BUILD
            elif delta < -0.25:
                change = TensionChange.RELEASE
            elif delta < -0.05:
                change = TensionChange.GRADUAL_RELEASE
            else:
                change = TensionChange.SUSTAIN
            points.append(TensionPoint(time=seg.start_time, tension=float(value), change_type=change))
        return points

    def _energy_profile(self, segments: list[AudioSegment], energies: np.ndarray) -> EnergyProfile:
        if len(energies) == 0:
            return EnergyProfile(shape=EnergyShape.FLAT)

        variance = float(energies.var())
        peaks = []
        valleys = []
        for i, e in enumerate(energies):
            left = energies[i - 1] if i > 0 else -np.inf
            right = energies[i + 1] if i < len(energies) - 1 else -np.inf
            if e > left and e > right:
                peaks.append((segments[i].start_time, float(e)))
            left = energies[i - 1] if i > 0 else np.inf
            right = energies[i + 1] if i < len(energies) - 1 else np.inf
            if e < left and e < right:
                valleys.append((segments[i].start_time, float(e)))
        peaks.sort(key=lambda p: p[1], reverse=True)
        valleys.sort(key=lambda v: v[1])

        cv = float(energies.std() / (energies.mean() + EPS))
        if len(energies) < 3 or cv < 0.1:
            shape = EnergyShape.FLAT
        else:
            a, b, c = (float(part.mean()) for part in np.array_split(energies, 3))
            if a < b < c:
                shape = EnergyShape.BUILDING
            elif a > b > c:
                shape = EnergyShape.DECAYING
            elif len(peaks) + len(valleys) > 3:
                shape = EnergyShape.OSCILLATING
            elif b > a and b > c:
                shape = EnergyShape.PEAK
            elif b < a and b < c:
                shape = EnergyShape.VALLEY
            else:
                shape = EnergyShape.COMPLEX

        return EnergyProfile(shape=shape, peaks=peaks, valleys=valleys, variance=variance)
