"""SQLite storage for families, persons and dedupe state."""

from .database import FamilyDatabase, new_id

__all__ = ['FamilyDatabase', 'new_id']
