"""
Merge history.

Every completed merge is written once to person_merges with snapshots of
both persons and every dependent row that referenced the loser. The table
is append-only (database triggers reject UPDATE and DELETE); undos are
recorded separately in merge_undos.
"""

import json
import logging
import sqlite3
from typing import Iterable, List

from ..core.exceptions import NotFoundError
from ..core.models import FieldDecision, MergeHistoryEntry
from ..storage.database import FamilyDatabase, new_id

logger = logging.getLogger(__name__)

_SELECT_ENTRY = """
    SELECT m.*, u.undone_at AS undone_at, u.actor_id AS undone_by
    FROM person_merges m
    LEFT JOIN merge_undos u ON u.merge_id = m.id
"""


class MergeHistory:
    """Reads and appends merge history entries."""

    def __init__(self, db: FamilyDatabase):
        self.db = db

    def record(self, entry: MergeHistoryEntry) -> str:
        """Append a history entry and return its id."""
        self.db.execute(
            """
            INSERT INTO person_merges
                (id, family_id, winner_id, loser_id, actor_id, merged_at, candidate_id,
                 confidence_score, match_reasons, reason, field_decisions,
                 winner_snapshot, loser_snapshot, dependent_snapshot,
                 redirected_tombstones, repoint_summary, undo_expires_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.id,
                entry.family_id,
                entry.winner_id,
                entry.loser_id,
                entry.actor_id,
                entry.merged_at,
                entry.candidate_id,
                entry.confidence_score,
                json.dumps(entry.match_reasons),
                entry.reason,
                json.dumps([d.to_dict() for d in entry.field_decisions]),
                json.dumps(entry.winner_snapshot),
                json.dumps(entry.loser_snapshot),
                json.dumps(entry.dependent_snapshot),
                json.dumps(entry.redirected_tombstones),
                json.dumps(entry.repoint_summary),
                entry.undo_expires_at,
            ),
        )
        return entry.id

    def get(self, merge_id: str) -> MergeHistoryEntry:
        row = self.db.query_one(_SELECT_ENTRY + " WHERE m.id = ?", (merge_id,))
        if not row:
            raise NotFoundError(f"Merge history entry not found: {merge_id}")
        return self._row_to_entry(row)

    def list_history(self, family_id: str) -> List[MergeHistoryEntry]:
        """All merges of a family, newest first."""
        rows = self.db.query(
            _SELECT_ENTRY + " WHERE m.family_id = ? ORDER BY m.merged_at DESC, m.rowid DESC",
            (family_id,),
        )
        return [self._row_to_entry(r) for r in rows]

    def has_later_merge(self, entry: MergeHistoryEntry, person_ids: Iterable[str]) -> bool:
        """True if a merge recorded after entry involved any of the persons."""
        ids = list(person_ids)
        placeholders = ', '.join('?' for _ in ids)
        row = self.db.query_one(
            f"""
            SELECT 1 FROM person_merges
            WHERE id != ?
              AND rowid > (SELECT rowid FROM person_merges WHERE id = ?)
              AND (winner_id IN ({placeholders}) OR loser_id IN ({placeholders}))
            LIMIT 1
            """,
            [entry.id, entry.id] + ids + ids,
        )
        return row is not None

    def record_undo(self, merge_id: str, actor_id: str) -> str:
        """Record that a merge was undone; returns the undo timestamp."""
        undone_at = self.db.now()
        self.db.execute(
            "INSERT INTO merge_undos (id, merge_id, actor_id, undone_at) VALUES (?, ?, ?, ?)",
            (new_id(), merge_id, actor_id, undone_at),
        )
        return undone_at

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> MergeHistoryEntry:
        return MergeHistoryEntry(
            id=row['id'],
            family_id=row['family_id'],
            winner_id=row['winner_id'],
            loser_id=row['loser_id'],
            actor_id=row['actor_id'],
            merged_at=row['merged_at'],
            candidate_id=row['candidate_id'],
            confidence_score=row['confidence_score'],
            match_reasons=json.loads(row['match_reasons'] or '[]'),
            reason=row['reason'],
            field_decisions=[FieldDecision.from_dict(d) for d in json.loads(row['field_decisions'] or '[]')],
            winner_snapshot=json.loads(row['winner_snapshot']),
            loser_snapshot=json.loads(row['loser_snapshot']),
            dependent_snapshot=json.loads(row['dependent_snapshot']),
            redirected_tombstones=json.loads(row['redirected_tombstones'] or '[]'),
            repoint_summary=json.loads(row['repoint_summary'] or '{}'),
            undo_expires_at=row['undo_expires_at'],
            undone_at=row['undone_at'],
            undone_by=row['undone_by'],
        )
