"""Persistence layer."""

from setbreak.db.database import CalibrationRow, Database, TrackDetails

__all__ = ["CalibrationRow", "Database", "TrackDetails"]
