"""
Candidate scanning within a family scope.

Enumerates eligible person pairs, scores them and keeps the candidate
store's pending rows in step with the current scores.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set

from ..config import DedupeConfig, default_config
from ..core.exceptions import NotFoundError
from ..core.models import DuplicateCandidate, Person
from ..candidates.store import CandidateStore
from ..merge.locks import PersonLockManager
from ..storage.database import FamilyDatabase
from .scorer import ConfidenceScorer

logger = logging.getLogger(__name__)


@dataclass
class ScanStats:
    """Counters for one scan run."""
    persons: int = 0
    compared: int = 0
    upserted: int = 0
    suppressed: int = 0
    below_floor: int = 0
    removed: int = 0
    failed: int = 0

    def __str__(self) -> str:
        return (
            f"Persons: {self.persons}, pairs compared: {self.compared}, "
            f"candidates upserted: {self.upserted}, suppressed: {self.suppressed}, "
            f"below floor: {self.below_floor}, removed: {self.removed}, failed: {self.failed}"
        )


@dataclass
class ScanReport:
    """Pending candidates after a scan plus what the scan did."""
    family_id: str
    candidates: List[DuplicateCandidate] = field(default_factory=list)
    stats: ScanStats = field(default_factory=ScanStats)
    incremental: bool = False


class CandidateScanner:
    """
    Finds duplicate candidates in one family.

    Without force_refresh only pairs touching a person created or edited
    since the previous scan are scored. Pairs the suppression policy
    rejects are never scored. A pair that fails to score is logged and
    skipped.
    """

    def __init__(self, db: FamilyDatabase, store: CandidateStore,
                 scorer: Optional[ConfidenceScorer] = None,
                 config: Optional[DedupeConfig] = None,
                 locks: Optional[PersonLockManager] = None):
        self.db = db
        self.store = store
        self.config = config or default_config
        self.scorer = scorer or ConfidenceScorer(self.config)
        self.locks = locks or PersonLockManager(self.config.lock_wait_seconds)

    def scan(self, family_id: str, force_refresh: bool = False) -> List[DuplicateCandidate]:
        """
        Scan a family and return its pending candidates.

        Args:
            family_id: Family scope to scan
            force_refresh: Re-score every pair instead of only changed ones

        Returns:
            Pending candidates ordered by descending score, ties in
            insertion order
        """
        return self.run(family_id, force_refresh).candidates

    def run(self, family_id: str, force_refresh: bool = False) -> ScanReport:
        if not self.db.family_exists(family_id):
            raise NotFoundError(f"Family not found: {family_id}")

        with self.locks.family_scan(family_id):
            started_at = self.db.now()
            last_scanned_at = None if force_refresh else self.db.get_last_scanned_at(family_id)

            people = self.db.get_family_people(family_id)
            changed = self._changed_since(people, last_scanned_at)

            report = ScanReport(family_id=family_id, incremental=last_scanned_at is not None)
            stats = report.stats
            stats.persons = len(people)

            for i, person1 in enumerate(people):
                for person2 in people[i + 1:]:
                    if person1.id == person2.id:
                        continue
                    if changed is not None and person1.id not in changed and person2.id not in changed:
                        continue
                    try:
                        self._scan_pair(family_id, person1, person2, stats)
                    except Exception as e:
                        stats.failed += 1
                        logger.warning(
                            f"Skipping pair {person1.id}/{person2.id} in family {family_id}: {e}"
                        )

            self.db.set_last_scanned_at(family_id, started_at)

        report.candidates = self.store.list_pending(family_id)
        logger.info(f"Scanned family {family_id}: {stats}")
        return report

    def _scan_pair(self, family_id: str, person1: Person, person2: Person, stats: ScanStats):
        if self.store.is_suppressed(family_id, person1.id, person2.id):
            stats.suppressed += 1
            return

        stats.compared += 1
        result = self.scorer.score_pair(person1, person2)

        if result.is_surfaced:
            candidate = self.store.upsert(
                family_id, person1.id, person2.id,
                result.score, result.reasons, result.breakdown,
            )
            if candidate is not None:
                stats.upserted += 1
            return

        stats.below_floor += 1
        existing = self.store.find_pending(family_id, person1.id, person2.id)
        if existing:
            self.store.delete_pending(existing.id)
            stats.removed += 1

    @staticmethod
    def _changed_since(people: List[Person], since: Optional[str]) -> Optional[Set[str]]:
        if since is None:
            return None
        return {
            p.id for p in people
            if (p.updated_at and p.updated_at >= since) or (p.created_at and p.created_at >= since)
        }
