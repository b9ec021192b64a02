"""Configuration for duplicate scoring, scanning and merging."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional


@dataclass
class DedupeConfig:
    """Tunable policy constants for the dedupe engine."""

    # Storage
    database_path: Path = field(default_factory=lambda: Path("kinmerge.db"))

    # Dimension weights (must sum to 1.0)
    weights: Dict[str, float] = field(default_factory=lambda: {
        'name': 0.40,
        'dates': 0.30,
        'places': 0.15,
        'relationships': 0.15,
    })

    # A sub-score must reach this to be reported as a match reason
    significance_thresholds: Dict[str, float] = field(default_factory=lambda: {
        'name': 0.80,
        'dates': 0.60,
        'places': 0.80,
        'relationships': 0.50,
    })

    # Contribution of a dimension that is unknown on either side
    neutral_score: float = 0.5

    # Multiplier applied on gender mismatch or a direct edge between the pair
    conflict_penalty: float = 0.5

    # Display bands; pairs below min_confidence are never surfaced
    high_confidence: float = 0.80
    medium_confidence: float = 0.60
    min_confidence: float = 0.50

    # Bounded wait for the lock manager's bookkeeping; held persons fail at once
    lock_wait_seconds: float = 0.5

    # Merges can be undone for this many days
    undo_window_days: int = 7

    def __post_init__(self):
        """Validate weights and thresholds."""
        self.database_path = Path(self.database_path)

        total = sum(self.weights.values())
        if abs(total - 1.0) > 1e-9:
            raise ValueError(f"Scoring weights must sum to 1.0, got {total}")

        missing = set(self.weights) - set(self.significance_thresholds)
        if missing:
            raise ValueError(f"Missing significance thresholds for: {sorted(missing)}")

        if not 0.0 <= self.min_confidence <= self.medium_confidence <= self.high_confidence <= 1.0:
            raise ValueError("Confidence bands must satisfy 0 <= min <= medium <= high <= 1")

    def band(self, score: float) -> Optional[str]:
        """Return the display band for a score, or None below the floor."""
        if score >= self.high_confidence:
            return 'high'
        if score >= self.medium_confidence:
            return 'medium'
        if score >= self.min_confidence:
            return 'low'
        return None

    @classmethod
    def from_env(cls) -> 'DedupeConfig':
        """Build a configuration from KINMERGE_* environment variables."""
        kwargs = {}
        if os.environ.get('KINMERGE_DATABASE'):
            kwargs['database_path'] = Path(os.environ['KINMERGE_DATABASE'])
        if os.environ.get('KINMERGE_MIN_CONFIDENCE'):
            kwargs['min_confidence'] = float(os.environ['KINMERGE_MIN_CONFIDENCE'])
        if os.environ.get('KINMERGE_LOCK_WAIT'):
            kwargs['lock_wait_seconds'] = float(os.environ['KINMERGE_LOCK_WAIT'])
        return cls(**kwargs)


# Global configuration instance
default_config = DedupeConfig()
