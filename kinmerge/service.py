"""
Dedupe service.

Entry point shared by the command line and the HTTP API: scanning,
reviewing, merging, history and undo for one database.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .candidates.store import CandidateStore
from .config import DedupeConfig, default_config
from .core.exceptions import NotFoundError, ValidationError
from .core.models import (
    MERGEABLE_FIELDS,
    CandidateStatus,
    DuplicateCandidate,
    MergeHistoryEntry,
    MergePreview,
    MergeResult,
)
from .matching.scanner import CandidateScanner, ScanReport
from .matching.scorer import ConfidenceScorer
from .merge.executor import MergeExecutor, MergeRequest
from .merge.history import MergeHistory
from .merge.locks import PersonLockManager
from .merge.registry import DependentTableRegistry
from .storage.database import FamilyDatabase

logger = logging.getLogger(__name__)


class DedupeService:
    """Duplicate detection and merging over a FamilyDatabase."""

    def __init__(self, db: FamilyDatabase, config: Optional[DedupeConfig] = None,
                 registry: Optional[DependentTableRegistry] = None):
        self.db = db
        self.config = config or default_config
        self.locks = PersonLockManager(self.config.lock_wait_seconds)
        self.store = CandidateStore(db)
        self.history = MergeHistory(db)
        self.scorer = ConfidenceScorer(self.config)
        self.scanner = CandidateScanner(db, self.store, self.scorer, self.config, self.locks)
        self.executor = MergeExecutor(
            db,
            registry=registry,
            store=self.store,
            history=self.history,
            locks=self.locks,
            config=self.config,
        )

    @classmethod
    def open(cls, db_path: Optional[str | Path] = None,
             config: Optional[DedupeConfig] = None) -> 'DedupeService':
        """Open a service on a database file, creating the schema if needed."""
        config = config or default_config
        db = FamilyDatabase(db_path or config.database_path)
        return cls(db, config)

    def close(self):
        self.db.close()

    # ========== Candidates ==========

    def scan(self, family_id: str, force_refresh: bool = False) -> List[DuplicateCandidate]:
        return self.scanner.scan(family_id, force_refresh)

    def scan_report(self, family_id: str, force_refresh: bool = False) -> ScanReport:
        return self.scanner.run(family_id, force_refresh)

    def list_candidates(self, family_id: str,
                        status: Optional[CandidateStatus] = CandidateStatus.PENDING) -> List[DuplicateCandidate]:
        self._require_family(family_id)
        return self.store.list_candidates(family_id, status)

    def get_candidate(self, candidate_id: str) -> DuplicateCandidate:
        return self.store.get(candidate_id)

    def dismiss(self, candidate_id: str, actor_id: Optional[str] = None) -> DuplicateCandidate:
        return self.store.dismiss(candidate_id, actor_id)

    # ========== Merging ==========

    def merge(self, actor_id: str, candidate_id: Optional[str] = None,
              winner_id: Optional[str] = None, loser_id: Optional[str] = None,
              field_resolutions: Optional[Dict[str, str]] = None,
              reason: Optional[str] = None) -> MergeResult:
        """
        Merge a candidate pair or an explicit winner/loser pair.

        Args:
            actor_id: Who performs the merge
            candidate_id: Candidate to merge (alternative to winner/loser)
            winner_id: Surviving person
            loser_id: Person to merge away
            field_resolutions: Field name to keep_winner/keep_loser/union
            reason: Free-text note kept in the history entry

        Returns:
            MergeResult
        """
        request = MergeRequest(
            actor_id=actor_id,
            candidate_id=candidate_id,
            winner_id=winner_id,
            loser_id=loser_id,
            field_resolutions=field_resolutions if field_resolutions is not None else {},
            reason=reason,
        )
        return self.executor.merge(request)

    def preview(self, winner_id: str, loser_id: str) -> MergePreview:
        return self.executor.preview(winner_id, loser_id)

    def undo(self, merge_id: str, actor_id: str) -> MergeHistoryEntry:
        return self.executor.undo(merge_id, actor_id)

    def list_history(self, family_id: str) -> List[MergeHistoryEntry]:
        self._require_family(family_id)
        return self.history.list_history(family_id)

    def get_history(self, merge_id: str) -> MergeHistoryEntry:
        return self.history.get(merge_id)

    def resolve_person(self, person_id: str) -> str:
        return self.executor.resolve_person(person_id)

    # ========== Import ==========

    def import_family(self, data: Dict[str, Any]) -> str:
        """
        Load a family and its persons from a JSON-style document.

        Expected keys: family {id?, name}, people [{id?, <person fields>}],
        relationships [{from, to, type}], stories [{story_id, person_id, role?}],
        media_tags [{media_id, person_id, label?}], claims [{user_id, person_id,
        status?}], timeline [{person_id, title, event_date?}].

        Returns:
            The family id
        """
        family = data.get('family') or {}
        if not family.get('name'):
            raise ValidationError("family.name is required")

        with self.db.transaction():
            family_id = self.db.create_family(family['name'], family.get('id'))

            for person in data.get('people', []):
                fields = {k: v for k, v in person.items() if k in MERGEABLE_FIELDS}
                unknown = set(person) - set(MERGEABLE_FIELDS) - {'id'}
                if unknown:
                    raise ValidationError(f"Unknown person fields: {sorted(unknown)}")
                self.db.add_person(family_id, person_id=person.get('id'), **fields)

            try:
                for rel in data.get('relationships', []):
                    self.db.add_relationship(rel['from'], rel['to'], rel['type'])
                for link in data.get('stories', []):
                    self.db.add_story_link(link['story_id'], link['person_id'], link.get('role'))
                for tag in data.get('media_tags', []):
                    self.db.add_media_tag(tag['media_id'], tag['person_id'], tag.get('label'))
                for claim in data.get('claims', []):
                    self.db.add_claim(claim['user_id'], claim['person_id'], claim.get('status', 'pending'))
                for item in data.get('timeline', []):
                    self.db.add_timeline_entry(item['person_id'], item['title'], item.get('event_date'))
            except (KeyError, ValueError) as e:
                raise ValidationError(f"Invalid import document: {e}") from e

        logger.info(f"Imported family {family_id} with {len(data.get('people', []))} persons")
        return family_id

    def _require_family(self, family_id: str):
        if not self.db.family_exists(family_id):
            raise NotFoundError(f"Family not found: {family_id}")
