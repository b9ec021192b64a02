"""Duplicate detection: similarity, confidence scoring and scanning."""

from .similarity import SimilarityEvaluator
from .scorer import ConfidenceScorer, ScoreResult
from .scanner import CandidateScanner, ScanReport, ScanStats

__all__ = [
    'SimilarityEvaluator',
    'ConfidenceScorer',
    'ScoreResult',
    'CandidateScanner',
    'ScanReport',
    'ScanStats',
]
