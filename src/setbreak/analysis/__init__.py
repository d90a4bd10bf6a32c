"""Analysis engine integration, feature extraction and scoring."""
