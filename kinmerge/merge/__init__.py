"""Merge execution, dependent-table repointing and merge history."""

from .executor import MergeExecutor, MergeRequest
from .field_resolver import FieldResolver
from .history import MergeHistory
from .locks import PersonLockManager
from .registry import (
    CandidateHandler,
    DependentTableHandler,
    DependentTableRegistry,
    LinkTableHandler,
    RelationshipHandler,
    default_registry,
)

__all__ = [
    'MergeExecutor',
    'MergeRequest',
    'FieldResolver',
    'MergeHistory',
    'PersonLockManager',
    'CandidateHandler',
    'DependentTableHandler',
    'DependentTableRegistry',
    'LinkTableHandler',
    'RelationshipHandler',
    'default_registry',
]
