"""Duplicate candidate persistence."""

from .store import CandidateStore, SuppressionPolicy

__all__ = ['CandidateStore', 'SuppressionPolicy']
