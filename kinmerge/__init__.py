"""KinMerge - find and merge duplicate people in family tree databases."""

__version__ = "1.0.0"

from .config import DedupeConfig
from .core.models import Person, DuplicateCandidate, MergeHistoryEntry
from .storage.database import FamilyDatabase
from .service import DedupeService

__all__ = [
    'DedupeConfig',
    'Person',
    'DuplicateCandidate',
    'MergeHistoryEntry',
    'FamilyDatabase',
    'DedupeService',
]
