"""Core data models and error types."""

from .exceptions import (
    KinMergeError,
    ValidationError,
    NotFoundError,
    ScopeError,
    ConflictError,
    IntegrityError,
)
from .models import (
    Person,
    RelationshipEdge,
    SimilarityBreakdown,
    DuplicateCandidate,
    CandidateStatus,
    FieldResolution,
    FieldDecision,
    RepointResult,
    MergeHistoryEntry,
    MergeResult,
    MergePreview,
    ordered_pair,
    SCALAR_FIELDS,
    MULTI_VALUED_FIELDS,
    MERGEABLE_FIELDS,
)

__all__ = [
    'KinMergeError',
    'ValidationError',
    'NotFoundError',
    'ScopeError',
    'ConflictError',
    'IntegrityError',
    'Person',
    'RelationshipEdge',
    'SimilarityBreakdown',
    'DuplicateCandidate',
    'CandidateStatus',
    'FieldResolution',
    'FieldDecision',
    'RepointResult',
    'MergeHistoryEntry',
    'MergeResult',
    'MergePreview',
    'ordered_pair',
    'SCALAR_FIELDS',
    'MULTI_VALUED_FIELDS',
    'MERGEABLE_FIELDS',
]
