"""SQLite storage for tracks, analysis rows and detail records.

One Database is opened per run and shared. Every public write method runs in
its own transaction; store_full_analysis() commits a track's scalar row and
all of its detail rows together or not at all.
"""

import contextlib
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path

import structlog
from sqlalchemy import create_engine, delete, event, func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from setbreak.db.models import (
    SCORE_COLUMNS,
    Base,
    ChordEvent,
    FlatAnalysis,
    Segment,
    TensionPoint,
    Track,
    Transition,
)
from setbreak.errors import StorageError
from setbreak.models.pipeline import TrackRef

log = structlog.get_logger()

DETAIL_MODELS = (ChordEvent, Segment, TensionPoint, Transition)


@dataclass
class TrackDetails:
    """Stored detail records for one track."""

    chords: list[ChordEvent] = field(default_factory=list)
    segments: list[Segment] = field(default_factory=list)
    tension_points: list[TensionPoint] = field(default_factory=list)
    transitions: list[Transition] = field(default_factory=list)


@dataclass
class CalibrationRow:
    """Per-track projection read by the calibrator."""

    track_id: int
    lufs: float
    scores: dict[str, float | None]
    parsed_band: str | None = None
    parsed_date: str | None = None

    @property
    def show_key(self) -> str | None:
        """band|date, or the date alone when the band is unknown. None without a date."""
        if not self.parsed_date:
            return None
        if self.parsed_band:
            return f"{self.parsed_band}|{self.parsed_date}"
        return self.parsed_date


def _set_sqlite_pragmas(dbapi_connection, _connection_record) -> None:  # type: ignore[no-untyped-def]
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _to_ref(track: Track) -> TrackRef:
    return TrackRef(
        id=track.id,
        file_path=Path(track.file_path),
        format=track.format,
        artist=track.artist,
        parsed_band=track.parsed_band,
        parsed_date=track.parsed_date,
    )


class Database:
    """Handle on the SetBreak SQLite database."""

    def __init__(self, path: Path | str) -> None:
        if str(path) == ":memory:":
            # One shared connection so every session sees the same in-memory DB
            self.engine = create_engine(
                "sqlite://",
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        else:
            path = Path(path).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_engine(f"sqlite:///{path}")
        event.listen(self.engine, "connect", _set_sqlite_pragmas)

        self._factory = sessionmaker(self.engine, expire_on_commit=False)
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not open database {path}: {e}") from e
        log.debug("database_ready", path=str(path))

    @classmethod
    def in_memory(cls) -> "Database":
        return cls(":memory:")

    def close(self) -> None:
        self.engine.dispose()

    @contextlib.contextmanager
    def session(self) -> Iterator[Session]:
        """Transactional session: commits on success, rolls back on error.

        SQLAlchemy errors are re-raised as StorageError.
        """
        session: Session = self._factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # -- tracks ---------------------------------------------------------------

    def add_track(
        self,
        file_path: Path | str,
        format: str | None = None,
        *,
        title: str | None = None,
        artist: str | None = None,
        album: str | None = None,
        parsed_band: str | None = None,
        parsed_date: str | None = None,
        parsed_title: str | None = None,
    ) -> int:
        """Insert or update a track by file path and return its id."""
        file_path = str(file_path)
        if format is None:
            format = Path(file_path).suffix.lower().lstrip(".")

        with self.session() as session:
            track = session.scalars(select(Track).where(Track.file_path == file_path)).first()
            if track is None:
                track = Track(file_path=file_path, format=format)
                session.add(track)
            track.format = format
            track.title = title
            track.artist = artist
            track.album = album
            track.parsed_band = parsed_band
            track.parsed_date = parsed_date
            track.parsed_title = parsed_title
            session.flush()
            return track.id

    def list_all(self) -> list[TrackRef]:
        with self.session() as session:
            tracks = session.scalars(select(Track).order_by(Track.id)).all()
            return [_to_ref(t) for t in tracks]

    def list_unanalyzed(self) -> list[TrackRef]:
        """Tracks with no analysis row yet."""
        with self.session() as session:
            stmt = (
                select(Track)
                .outerjoin(FlatAnalysis, FlatAnalysis.track_id == Track.id)
                .where(FlatAnalysis.track_id.is_(None))
                .order_by(Track.id)
            )
            return [_to_ref(t) for t in session.scalars(stmt).all()]

    # -- analysis -------------------------------------------------------------

    def store_analysis(self, analysis: FlatAnalysis) -> None:
        """Upsert only the scalar analysis row."""
        with self.session() as session:
            self._upsert_analysis(session, analysis)

    def store_full_analysis(
        self,
        analysis: FlatAnalysis,
        chords: list[ChordEvent],
        segments: list[Segment],
        tension_points: list[TensionPoint],
        transitions: list[Transition],
    ) -> None:
        """Upsert the scalar row and replace every detail table for the track."""
        track_id = analysis.track_id
        with self.session() as session:
            self._upsert_analysis(session, analysis)
            for model in DETAIL_MODELS:
                session.execute(delete(model).where(model.track_id == track_id))
            session.add_all(chords)
            session.add_all(segments)
            session.add_all(tension_points)
            session.add_all(transitions)
        log.debug(
            "analysis_stored",
            track_id=track_id,
            chords=len(chords),
            segments=len(segments),
            tension_points=len(tension_points),
            transitions=len(transitions),
        )

    def _upsert_analysis(self, session: Session, analysis: FlatAnalysis) -> None:
        values = {
            column.name: getattr(analysis, column.name)
            for column in FlatAnalysis.__table__.columns
            if column.name != "analyzed_at"
        }
        stmt = sqlite_insert(FlatAnalysis).values(**values)
        updates = {name: stmt.excluded[name] for name in values if name != "track_id"}
        updates["analyzed_at"] = func.now()
        session.execute(stmt.on_conflict_do_update(index_elements=["track_id"], set_=updates))

    def get_analysis(self, track_id: int) -> FlatAnalysis | None:
        with self.session() as session:
            return session.get(FlatAnalysis, track_id)

    def list_analyses(self) -> list[FlatAnalysis]:
        with self.session() as session:
            return list(session.scalars(select(FlatAnalysis).order_by(FlatAnalysis.track_id)).all())

    def get_details(self, track_id: int) -> TrackDetails:
        with self.session() as session:
            return TrackDetails(
                chords=list(
                    session.scalars(
                        select(ChordEvent)
                        .where(ChordEvent.track_id == track_id)
                        .order_by(ChordEvent.start_time)
                    )
                ),
                segments=list(
                    session.scalars(
                        select(Segment)
                        .where(Segment.track_id == track_id)
                        .order_by(Segment.segment_index)
                    )
                ),
                tension_points=list(
                    session.scalars(
                        select(TensionPoint)
                        .where(TensionPoint.track_id == track_id)
                        .order_by(TensionPoint.time)
                    )
                ),
                transitions=list(
                    session.scalars(
                        select(Transition)
                        .where(Transition.track_id == track_id)
                        .order_by(Transition.time)
                    )
                ),
            )

    def count_rows(self, model: type[Base], track_id: int | None = None) -> int:
        """Row count of a table, optionally restricted to one track."""
        with self.session() as session:
            stmt = select(func.count()).select_from(model)
            if track_id is not None:
                stmt = stmt.where(model.track_id == track_id)  # type: ignore[attr-defined]
            return int(session.scalar(stmt) or 0)

    # -- scores ---------------------------------------------------------------

    def get_calibration_rows(self) -> list[CalibrationRow]:
        """Scored tracks that have an integrated loudness value.

        Rows without a parsed date are included with show_key None so the
        calibrator can count them as skipped.
        """
        stmt = (
            select(FlatAnalysis, Track.parsed_band, Track.parsed_date)
            .join(Track, Track.id == FlatAnalysis.track_id)
            .where(FlatAnalysis.lufs_integrated.is_not(None))
            .where(FlatAnalysis.energy_score.is_not(None))
            .order_by(FlatAnalysis.track_id)
        )
        with self.session() as session:
            return [
                CalibrationRow(
                    track_id=analysis.track_id,
                    lufs=analysis.lufs_integrated,
                    scores={name: getattr(analysis, name) for name in SCORE_COLUMNS},
                    parsed_band=band,
                    parsed_date=date,
                )
                for analysis, band, date in session.execute(stmt).all()
            ]

    def update_scores(self, track_id: int, scores: Mapping[str, float | None]) -> None:
        """Overwrite score columns for one track, leaving every other column alone."""
        unknown = set(scores) - set(SCORE_COLUMNS)
        if unknown:
            raise ValueError(f"Not a score column: {', '.join(sorted(unknown))}")
        if not scores:
            return
        with self.session() as session:
            session.execute(
                update(FlatAnalysis)
                .where(FlatAnalysis.track_id == track_id)
                .values(**scores)
            )
