"""Loudness-bias calibration of stored scores.

Louder-mastered tapes tend to score higher for reasons unrelated to the
performance. For each score we fit the OLS slope of score against the
track's show-median integrated loudness and remove that linear component:

    adjusted = clamp(raw - beta * (show_median - corpus_reference), 0, 100)

The corpus reference is the median of the per-show medians, so a show with
many tracks does not drag the reference toward itself.

Calibration regresses against whatever scores are currently stored.
Running it twice without re-analysis applies the correction twice.
"""

from dataclasses import dataclass, field

import numpy as np
import structlog

from setbreak.config import Settings
from setbreak.db.database import CalibrationRow, Database
from setbreak.db.models import SCORE_COLUMNS

log = structlog.get_logger()


@dataclass
class CalibrateResult:
    total_tracks: int = 0
    calibrated: int = 0
    skipped_no_show: int = 0
    betas: dict[str, float] = field(default_factory=dict)
    corpus_median_lufs: float = 0.0
    show_count: int = 0


def score_name(column: str) -> str:
    """energy_score -> energy"""
    return column.removesuffix("_score")


def ols_slope(x: np.ndarray, y: np.ndarray) -> float:
    """Least-squares slope of y on x; 0 when x has no spread."""
    dx = x - x.mean()
    var = float(np.sum(dx * dx))
    if var < 1e-12:
        return 0.0
    return float(np.sum(dx * (y - y.mean())) / var)


def show_medians(rows: list[CalibrationRow]) -> dict[str, float]:
    """Median integrated loudness per show."""
    by_show: dict[str, list[float]] = {}
    for row in rows:
        key = row.show_key
        if key is not None:
            by_show.setdefault(key, []).append(row.lufs)
    return {key: float(np.median(values)) for key, values in by_show.items()}


def fit_betas(
    rows: list[CalibrationRow],
    track_show_lufs: list[float | None],
    min_points: int,
) -> dict[str, float]:
    """One slope per score column, fitted on tracks that have both values."""
    betas = {}
    for column in SCORE_COLUMNS:
        pairs = [
            (show_lufs, row.scores[column])
            for row, show_lufs in zip(rows, track_show_lufs)
            if show_lufs is not None and row.scores[column] is not None
        ]
        if len(pairs) < min_points:
            betas[column] = 0.0
            continue
        x, y = np.array(pairs, dtype=np.float64).T
        betas[column] = ols_slope(x, y)
    return betas


def calibrate_scores(
    db: Database,
    dry_run: bool = False,
    settings: Settings | None = None,
) -> CalibrateResult:
    """Remove per-show loudness bias from every stored score.

    Args:
        db: Database with scored analyses.
        dry_run: Compute and report slopes without writing anything.
        settings: Supplies the minimum point count and slope threshold.
    """
    settings = settings or Settings()
    rows = db.get_calibration_rows()
    result = CalibrateResult(total_tracks=len(rows))

    if not rows:
        log.warning("calibration_no_data")
        return result

    medians = show_medians(rows)
    track_show_lufs = [
        medians.get(row.show_key) if row.show_key is not None else None for row in rows
    ]
    result.skipped_no_show = sum(1 for lufs in track_show_lufs if lufs is None)
    result.show_count = len(medians)

    if not medians:
        log.warning("calibration_no_shows", tracks=len(rows))
        return result

    corpus = float(np.median(list(medians.values())))
    result.corpus_median_lufs = corpus
    result.betas = fit_betas(rows, track_show_lufs, settings.calibration_min_points)

    log.info(
        "calibration_fit",
        tracks=len(rows),
        shows=len(medians),
        corpus_lufs=round(corpus, 2),
        betas={score_name(c): round(b, 4) for c, b in result.betas.items()},
    )

    if dry_run:
        return result

    active = {c: b for c, b in result.betas.items() if abs(b) >= settings.beta_threshold}
    for row, show_lufs in zip(rows, track_show_lufs):
        if show_lufs is None:
            continue
        delta = show_lufs - corpus
        adjusted = {
            column: float(np.clip(row.scores[column] - beta * delta, 0.0, 100.0))
            for column, beta in active.items()
            if row.scores[column] is not None
        }
        db.update_scores(row.track_id, adjusted)
        result.calibrated += 1

    log.info("calibration_done", calibrated=result.calibrated, skipped=result.skipped_no_show)
    return result
