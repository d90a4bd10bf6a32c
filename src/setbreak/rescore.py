"""Recompute scores from stored data, without touching audio."""

import structlog

from setbreak.analysis.jam_scores import StructureSummary, apply_scores
from setbreak.db.database import Database
from setbreak.db.models import SCORE_COLUMNS

log = structlog.get_logger()


def rescore_tracks(db: Database) -> int:
    """Re-run jam and emotion scoring for every analyzed track.

    Scores come from the stored scalar row plus the stored segment and
    transition rows. This overwrites any earlier calibration. Returns the
    number of tracks rescored.
    """
    count = 0
    for analysis in db.list_analyses():
        details = db.get_details(analysis.track_id)
        apply_scores(analysis, StructureSummary.from_records(details.segments, details.transitions))
        db.update_scores(
            analysis.track_id,
            {column: getattr(analysis, column) for column in SCORE_COLUMNS},
        )
        count += 1
    log.info("rescore_done", tracks=count)
    return count
