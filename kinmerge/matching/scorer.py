"""
Confidence scoring for candidate duplicate pairs.

Combines the per-dimension sub-scores of a SimilarityBreakdown into one
confidence in [0, 1] plus the list of reasons that made it significant.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..config import DedupeConfig, default_config
from ..core.models import Person, SimilarityBreakdown
from .similarity import SimilarityEvaluator

DIMENSIONS = ('name', 'dates', 'places', 'relationships')

# (breakdown field, dimension, exact tag, similar tag) in report order
REASON_RULES = (
    ('name', 'name', 'exact_name', 'name_similarity'),
    ('birth_date', 'dates', 'exact_birthdate', 'similar_birthdate'),
    ('death_date', 'dates', 'exact_deathdate', 'similar_deathdate'),
    ('birth_place', 'places', 'exact_birthplace', 'similar_birthplace'),
    ('death_place', 'places', 'exact_deathplace', 'similar_deathplace'),
    ('relationships', 'relationships', None, 'shared_relatives'),
)


@dataclass
class ScoreResult:
    """Confidence for one pair with the breakdown it was computed from."""

    score: float
    breakdown: SimilarityBreakdown
    reasons: List[str] = field(default_factory=list)
    band: Optional[str] = None
    penalized: bool = False

    @property
    def is_surfaced(self) -> bool:
        return self.band is not None

    def __str__(self) -> str:
        return (
            f"Confidence: {self.score:.3f} ({self.band or 'below floor'})\n"
            f"  Reasons: {', '.join(self.reasons) or 'none'}"
        )


class ConfidenceScorer:
    """
    Weighted combination of similarity dimensions.

    Scoring weights (DedupeConfig defaults):
    - Name similarity: 40%
    - Dates (mean of birth/death): 30%
    - Places (mean of birth/death): 15%
    - Relationship overlap: 15%

    Unknown dimensions contribute the neutral score. A gender conflict or a
    direct edge between the pair halves the result.
    """

    def __init__(self, config: Optional[DedupeConfig] = None,
                 evaluator: Optional[SimilarityEvaluator] = None):
        self.config = config or default_config
        self.evaluator = evaluator or SimilarityEvaluator()

    def score_pair(self, person1: Person, person2: Person) -> ScoreResult:
        """
        Score two persons.

        Args:
            person1: First person
            person2: Second person

        Returns:
            ScoreResult; identical for (person1, person2) and (person2, person1)
        """
        return self.score(self.evaluator.evaluate(person1, person2))

    def score(self, breakdown: SimilarityBreakdown) -> ScoreResult:
        dimensions = self.dimension_scores(breakdown)

        total = 0.0
        for dimension in DIMENSIONS:
            value = dimensions[dimension]
            if value is None:
                value = self.config.neutral_score
            total += value * self.config.weights[dimension]

        penalized = breakdown.gender_conflict or breakdown.directly_related
        if penalized:
            total *= self.config.conflict_penalty

        total = min(max(total, 0.0), 1.0)

        return ScoreResult(
            score=total,
            breakdown=breakdown,
            reasons=self.reasons(breakdown),
            band=self.config.band(total),
            penalized=penalized,
        )

    @staticmethod
    def dimension_scores(breakdown: SimilarityBreakdown) -> Dict[str, Optional[float]]:
        """Collapse the breakdown into the four weighted dimensions."""
        return {
            'name': breakdown.name,
            'dates': _mean(breakdown.birth_date, breakdown.death_date),
            'places': _mean(breakdown.birth_place, breakdown.death_place),
            'relationships': breakdown.relationships,
        }

    def reasons(self, breakdown: SimilarityBreakdown) -> List[str]:
        """Reason tags for every sub-score that reaches its threshold."""
        reasons = []
        for attr, dimension, exact_tag, similar_tag in REASON_RULES:
            value = getattr(breakdown, attr)
            if value is None:
                continue
            if exact_tag and value >= 1.0:
                reasons.append(exact_tag)
            elif value >= self.config.significance_thresholds[dimension]:
                reasons.append(similar_tag)
        return reasons


def _mean(*values: Optional[float]) -> Optional[float]:
    known = [v for v in values if v is not None]
    if not known:
        return None
    return sum(known) / len(known)
