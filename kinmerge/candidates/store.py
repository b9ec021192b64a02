"""Persistence and lifecycle of duplicate candidates."""

import json
import logging
import sqlite3
from typing import Iterable, List, Optional

from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..core.models import (
    CandidateStatus,
    DuplicateCandidate,
    SimilarityBreakdown,
    ordered_pair,
)
from ..storage.database import FamilyDatabase, new_id

logger = logging.getLogger(__name__)


class SuppressionPolicy:
    """
    Decides whether a pair with review history may be surfaced again.

    The default policy suppresses a pair once any of its candidate rows has
    reached a terminal status, so a dismissed pair never comes back as
    pending through a normal scan.
    """

    name = 'terminal_rows_suppress'

    def __init__(self, suppressing_statuses: Iterable[CandidateStatus] = (
            CandidateStatus.DISMISSED, CandidateStatus.MERGED)):
        self.suppressing_statuses = frozenset(suppressing_statuses)

    def is_suppressed(self, statuses: Iterable[CandidateStatus]) -> bool:
        return any(status in self.suppressing_statuses for status in statuses)


class CandidateStore:
    """
    Candidate rows with a one-way state machine.

    pending -> dismissed and pending -> merged are the only transitions.
    At most one pending row exists per unordered pair within a family; the
    database enforces it with a partial unique index.
    """

    def __init__(self, db: FamilyDatabase,
                 suppression: Optional[SuppressionPolicy] = None):
        self.db = db
        self.suppression = suppression or SuppressionPolicy()

    def upsert(self, family_id: str, person1_id: str, person2_id: str,
               confidence_score: float, match_reasons: List[str],
               breakdown: SimilarityBreakdown) -> Optional[DuplicateCandidate]:
        """
        Insert a pending candidate or refresh the existing pending row.

        Args:
            family_id: Family scope of both persons
            person1_id: One person of the pair (order does not matter)
            person2_id: The other person
            confidence_score: Score in [0, 1], stored at full precision
            match_reasons: Reason tags
            breakdown: Sub-scores the score was computed from

        Returns:
            The pending candidate, or None when the suppression policy
            rejects the pair or either person is no longer an active
            member of the family
        """
        if person1_id == person2_id:
            raise ValidationError("A candidate needs two different persons")
        if not 0.0 <= confidence_score <= 1.0:
            raise ValidationError(f"Confidence score out of range: {confidence_score}")

        person_a_id, person_b_id = ordered_pair(person1_id, person2_id)
        reasons_json = json.dumps(list(match_reasons))
        breakdown_json = json.dumps(breakdown.to_dict(), sort_keys=True)

        with self.db.transaction():
            if not self._both_active(family_id, person_a_id, person_b_id):
                logger.debug(f"Pair {person_a_id}/{person_b_id} no longer active in family {family_id}")
                return None
            if self.is_suppressed(family_id, person_a_id, person_b_id):
                logger.debug(f"Pair {person_a_id}/{person_b_id} suppressed by {self.suppression.name}")
                return None

            stamp = self.db.now()
            existing = self.find_pending(family_id, person_a_id, person_b_id)
            if existing:
                self.db.execute(
                    """
                    UPDATE duplicate_candidates
                    SET confidence_score = ?, match_reasons = ?, breakdown = ?, updated_at = ?
                    WHERE id = ? AND status = 'pending'
                    """,
                    (confidence_score, reasons_json, breakdown_json, stamp, existing.id),
                )
                return self.get(existing.id)

            candidate_id = new_id()
            try:
                self.db.execute(
                    """
                    INSERT INTO duplicate_candidates
                        (id, family_id, person_a_id, person_b_id, confidence_score,
                         match_reasons, breakdown, status, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, 'pending', ?, ?)
                    """,
                    (candidate_id, family_id, person_a_id, person_b_id, confidence_score,
                     reasons_json, breakdown_json, stamp, stamp),
                )
            except sqlite3.IntegrityError as e:
                raise ConflictError(
                    f"Pending candidate already exists for {person_a_id}/{person_b_id}"
                ) from e
            return self.get(candidate_id)

    def is_suppressed(self, family_id: str, person1_id: str, person2_id: str) -> bool:
        person_a_id, person_b_id = ordered_pair(person1_id, person2_id)
        rows = self.db.query(
            """
            SELECT status FROM duplicate_candidates
            WHERE family_id = ? AND person_a_id = ? AND person_b_id = ?
            """,
            (family_id, person_a_id, person_b_id),
        )
        return self.suppression.is_suppressed(CandidateStatus(r['status']) for r in rows)

    def get(self, candidate_id: str) -> DuplicateCandidate:
        """Get a candidate by id, raising NotFoundError when missing."""
        row = self.db.query_one("SELECT * FROM duplicate_candidates WHERE id = ?", (candidate_id,))
        if not row:
            raise NotFoundError(f"Candidate not found: {candidate_id}")
        return self._row_to_candidate(row)

    def find_pending(self, family_id: str, person1_id: str,
                     person2_id: str) -> Optional[DuplicateCandidate]:
        person_a_id, person_b_id = ordered_pair(person1_id, person2_id)
        row = self.db.query_one(
            """
            SELECT * FROM duplicate_candidates
            WHERE family_id = ? AND person_a_id = ? AND person_b_id = ? AND status = 'pending'
            """,
            (family_id, person_a_id, person_b_id),
        )
        return self._row_to_candidate(row) if row else None

    def list_pending(self, family_id: str) -> List[DuplicateCandidate]:
        """Pending candidates by descending score, then insertion order."""
        return self.list_candidates(family_id, CandidateStatus.PENDING)

    def list_candidates(self, family_id: str,
                        status: Optional[CandidateStatus] = None) -> List[DuplicateCandidate]:
        sql = "SELECT * FROM duplicate_candidates WHERE family_id = ?"
        params = [family_id]
        if status is not None:
            sql += " AND status = ?"
            params.append(status.value)
        sql += " ORDER BY confidence_score DESC, seq ASC"
        return [self._row_to_candidate(r) for r in self.db.query(sql, params)]

    def dismiss(self, candidate_id: str, actor_id: Optional[str] = None) -> DuplicateCandidate:
        """
        Move a pending candidate to dismissed.

        Dismissing an already dismissed candidate is a no-op; dismissing a
        merged one raises ConflictError.
        """
        with self.db.transaction():
            candidate = self.get(candidate_id)
            if candidate.status is CandidateStatus.DISMISSED:
                return candidate
            if candidate.status is CandidateStatus.MERGED:
                raise ConflictError(f"Candidate {candidate_id} is already merged")

            self._transition(candidate_id, CandidateStatus.DISMISSED, actor_id)

        logger.info(f"Dismissed candidate {candidate_id}")
        return self.get(candidate_id)

    def mark_merged(self, candidate_id: str, merge_history_id: str,
                    actor_id: Optional[str] = None) -> DuplicateCandidate:
        """Move a pending candidate to merged and link its history entry."""
        with self.db.transaction():
            candidate = self.get(candidate_id)
            if candidate.status.is_terminal:
                raise ConflictError(
                    f"Candidate {candidate_id} is already {candidate.status.value}"
                )
            self._transition(candidate_id, CandidateStatus.MERGED, actor_id, merge_history_id)
        return self.get(candidate_id)

    def delete_pending(self, candidate_id: str):
        """Remove a pending row whose pair no longer reaches the floor."""
        self.db.execute(
            "DELETE FROM duplicate_candidates WHERE id = ? AND status = 'pending'",
            (candidate_id,),
        )

    def _both_active(self, family_id: str, person_a_id: str, person_b_id: str) -> bool:
        row = self.db.query_one(
            """
            SELECT COUNT(*) FROM people
            WHERE id IN (?, ?) AND family_id = ? AND is_active = 1 AND merged_into_id IS NULL
            """,
            (person_a_id, person_b_id, family_id),
        )
        return row[0] == 2

    def _transition(self, candidate_id: str, status: CandidateStatus,
                    actor_id: Optional[str], merge_history_id: Optional[str] = None):
        stamp = self.db.now()
        cursor = self.db.execute(
            """
            UPDATE duplicate_candidates
            SET status = ?, reviewed_by = ?, reviewed_at = ?, updated_at = ?,
                merge_id = COALESCE(?, merge_id)
            WHERE id = ? AND status = 'pending'
            """,
            (status.value, actor_id, stamp, stamp, merge_history_id, candidate_id),
        )
        if cursor.rowcount != 1:
            raise ConflictError(f"Candidate {candidate_id} is no longer pending")

    @staticmethod
    def _row_to_candidate(row: sqlite3.Row) -> DuplicateCandidate:
        return DuplicateCandidate(
            id=row['id'],
            family_id=row['family_id'],
            person_a_id=row['person_a_id'],
            person_b_id=row['person_b_id'],
            confidence_score=row['confidence_score'],
            match_reasons=json.loads(row['match_reasons'] or '[]'),
            breakdown=SimilarityBreakdown.from_dict(json.loads(row['breakdown'] or '{}')),
            status=CandidateStatus(row['status']),
            created_at=row['created_at'],
            updated_at=row['updated_at'],
            reviewed_by=row['reviewed_by'],
            reviewed_at=row['reviewed_at'],
            merge_id=row['merge_id'],
        )
