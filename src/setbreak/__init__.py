"""SetBreak - analysis and scoring for live-concert recording libraries."""

__version__ = "0.4.0"
