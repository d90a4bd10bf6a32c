"""Configuration management for SetBreak."""

import tempfile
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_db_path() -> Path:
    return Path("~/.local/share/setbreak/setbreak.db").expanduser()


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Instances are immutable. Build one with load_settings() and pass it to
    the components that need it.
    """

    model_config = SettingsConfigDict(
        env_prefix="SETBREAK_",
        env_file=".env",
        env_file_encoding="utf-8",
        frozen=True,
    )

    # Storage
    db_path: Path = Field(
        default_factory=_default_db_path,
        description="SQLite database holding tracks, analyses and scores",
    )
    temp_dir: Path = Field(
        default_factory=lambda: Path(tempfile.gettempdir()),
        description="Directory for intermediate transcoded WAV files",
    )

    # Batch analysis
    jobs: int = Field(
        default=2,
        ge=1,
        description="Number of parallel analysis workers",
    )
    chunk_factor: int = Field(
        default=4,
        ge=1,
        description="Tracks per chunk = jobs * chunk_factor; each chunk is committed before the next starts",
    )
    show_progress: bool = Field(
        default=True,
        description="Render a progress bar during batch analysis",
    )

    # Decoding
    transcoder: str = Field(
        default="ffmpeg",
        description="Transcoding binary used for formats without an in-process decoder",
    )

    # Analysis engine (batch profile)
    pitch_threshold_count: int = Field(
        default=20,
        ge=2,
        description="Candidate thresholds for pitch detection (engine default is 100)",
    )
    pitch_hop_multiplier: int = Field(
        default=4,
        ge=1,
        description="Pitch detection hop size as a multiple of the spectral hop",
    )

    # Calibration
    calibration_min_points: int = Field(
        default=10,
        description="Minimum (loudness, score) pairs required to fit a bias slope",
    )
    beta_threshold: float = Field(
        default=0.1,
        description="Slopes with smaller magnitude are treated as no bias",
    )


def load_settings(**overrides: object) -> Settings:
    """Build a fresh Settings instance, applying explicit overrides.

    None values are ignored so CLI options that were not given fall back to
    the environment or defaults.
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    return Settings(**values)  # type: ignore[arg-type]
