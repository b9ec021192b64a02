"""
Registry of tables that hold a foreign key to a person.

Every such table has exactly one handler that knows how to move the
loser's rows onto the winner during a merge. The registry is closed-world:
a person-referencing column that no handler covers aborts the merge.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ..core.exceptions import IntegrityError
from ..core.models import RelationshipEdge, RepointResult, ordered_pair
from ..storage.database import FamilyDatabase

logger = logging.getLogger(__name__)

# References that are not dependents: the tombstone pointer and history rows
EXEMPT_COLUMNS = frozenset({
    ('people', 'merged_into_id'),
    ('person_merges', 'winner_id'),
    ('person_merges', 'loser_id'),
})


class DependentTableHandler:
    """Base class for one dependent table."""

    table: str = ''

    def __init__(self, db: FamilyDatabase):
        self.db = db

    def columns(self) -> List[Tuple[str, str]]:
        """(table, column) pairs this handler is responsible for."""
        raise NotImplementedError

    def snapshot(self, person_id: str) -> List[Dict[str, Any]]:
        """Every row of the table that references the person."""
        raise NotImplementedError

    def repoint(self, loser_id: str, winner_id: str) -> RepointResult:
        """Move the loser's references to the winner, dropping duplicates."""
        raise NotImplementedError

    def count_references(self, person_id: str) -> int:
        raise NotImplementedError

    def restore(self, rows: Iterable[Dict[str, Any]]):
        """Write snapshot rows back exactly as they were."""
        for row in rows:
            columns = ', '.join(row)
            placeholders = ', '.join('?' for _ in row)
            self.db.execute(
                f"INSERT OR REPLACE INTO {self.table} ({columns}) VALUES ({placeholders})",
                list(row.values()),
            )


class RelationshipHandler(DependentTableHandler):
    """
    Parent, child, spouse and sibling edges.

    An edge is dropped instead of repointed when it would join the winner
    to itself or when the winner already records the same fact (a parent
    edge A->B and a child edge B->A are the same fact). Every endpoint of
    a moved, dropped or restored edge is touched so incremental scans
    rescore its pairs.
    """

    table = 'relationships'

    def columns(self) -> List[Tuple[str, str]]:
        return [(self.table, 'from_person_id'), (self.table, 'to_person_id')]

    def snapshot(self, person_id: str) -> List[Dict[str, Any]]:
        rows = self.db.query(
            "SELECT * FROM relationships WHERE from_person_id = ? OR to_person_id = ? ORDER BY id",
            (person_id, person_id),
        )
        return [dict(r) for r in rows]

    def repoint(self, loser_id: str, winner_id: str) -> RepointResult:
        result = RepointResult(table=self.table)
        touched: Set[str] = set()

        existing = {
            self._edge(row).canonical_key()
            for row in self.snapshot(winner_id)
            if loser_id not in (row['from_person_id'], row['to_person_id'])
        }

        for row in self.snapshot(loser_id):
            new_from = winner_id if row['from_person_id'] == loser_id else row['from_person_id']
            new_to = winner_id if row['to_person_id'] == loser_id else row['to_person_id']
            key = RelationshipEdge(row['id'], row['relationship_type'], new_from, new_to).canonical_key()
            touched.update((new_from, new_to))

            if new_from == new_to or key in existing:
                self.db.execute("DELETE FROM relationships WHERE id = ?", (row['id'],))
                result.dropped += 1
                continue

            self.db.execute(
                "UPDATE relationships SET from_person_id = ?, to_person_id = ? WHERE id = ?",
                (new_from, new_to, row['id']),
            )
            existing.add(key)
            result.repointed += 1

        self.db.touch_persons(touched)
        return result

    def restore(self, rows: Iterable[Dict[str, Any]]):
        rows = list(rows)
        super().restore(rows)
        self.db.touch_persons(
            person_id
            for row in rows
            for person_id in (row['from_person_id'], row['to_person_id'])
        )

    def count_references(self, person_id: str) -> int:
        return len(self.snapshot(person_id))

    @staticmethod
    def _edge(row: Dict[str, Any]) -> RelationshipEdge:
        return RelationshipEdge(
            relationship_id=row['id'],
            relationship_type=row['relationship_type'],
            from_person_id=row['from_person_id'],
            to_person_id=row['to_person_id'],
        )


class LinkTableHandler(DependentTableHandler):
    """
    A table linking some item to a person through one column.

    With dedupe_columns, a loser row whose item is already linked to the
    winner is dropped; without them every row is rewritten in place.
    """

    def __init__(self, db: FamilyDatabase, table: str, person_column: str = 'person_id',
                 dedupe_columns: Sequence[str] = ()):
        super().__init__(db)
        self.table = table
        self.person_column = person_column
        self.dedupe_columns = tuple(dedupe_columns)

    def columns(self) -> List[Tuple[str, str]]:
        return [(self.table, self.person_column)]

    def snapshot(self, person_id: str) -> List[Dict[str, Any]]:
        return self.db.rows_referencing(self.table, self.person_column, person_id)

    def repoint(self, loser_id: str, winner_id: str) -> RepointResult:
        result = RepointResult(table=self.table)

        for row in self.snapshot(loser_id):
            if self.dedupe_columns and self._winner_has(winner_id, row):
                self.db.execute(f"DELETE FROM {self.table} WHERE id = ?", (row['id'],))
                result.dropped += 1
                continue

            self.db.execute(
                f"UPDATE {self.table} SET {self.person_column} = ? WHERE id = ?",
                (winner_id, row['id']),
            )
            result.repointed += 1

        return result

    def count_references(self, person_id: str) -> int:
        return self.db.count_references(self.table, self.person_column, person_id)

    def _winner_has(self, winner_id: str, row: Dict[str, Any]) -> bool:
        conditions = ' AND '.join(f"{column} = ?" for column in self.dedupe_columns)
        match = self.db.query_one(
            f"SELECT 1 FROM {self.table} WHERE {self.person_column} = ? AND {conditions}",
            [winner_id] + [row[column] for column in self.dedupe_columns],
        )
        return match is not None


class CandidateHandler(DependentTableHandler):
    """
    Pending duplicate candidates that mention the loser.

    Terminal rows are review history and are left alone. The pending row
    for the merged pair itself is settled by the merge executor. A
    repointed pair that already has a row of its own is dropped, so a
    dismissed pair is never revived through a merge.
    """

    table = 'duplicate_candidates'

    def columns(self) -> List[Tuple[str, str]]:
        return [(self.table, 'person_a_id'), (self.table, 'person_b_id')]

    def snapshot(self, person_id: str) -> List[Dict[str, Any]]:
        rows = self.db.query(
            """
            SELECT * FROM duplicate_candidates
            WHERE status = 'pending' AND (person_a_id = ? OR person_b_id = ?)
            ORDER BY seq
            """,
            (person_id, person_id),
        )
        return [dict(r) for r in rows]

    def repoint(self, loser_id: str, winner_id: str) -> RepointResult:
        result = RepointResult(table=self.table)

        for row in self.snapshot(loser_id):
            other_id = row['person_b_id'] if row['person_a_id'] == loser_id else row['person_a_id']
            if other_id == winner_id:
                continue

            person_a_id, person_b_id = ordered_pair(winner_id, other_id)
            taken = self.db.query_one(
                """
                SELECT 1 FROM duplicate_candidates
                WHERE family_id = ? AND person_a_id = ? AND person_b_id = ?
                """,
                (row['family_id'], person_a_id, person_b_id),
            )
            if taken:
                self.db.execute("DELETE FROM duplicate_candidates WHERE id = ?", (row['id'],))
                result.dropped += 1
                continue

            self.db.execute(
                """
                UPDATE duplicate_candidates
                SET person_a_id = ?, person_b_id = ?, updated_at = ?
                WHERE id = ?
                """,
                (person_a_id, person_b_id, self.db.now(), row['id']),
            )
            result.repointed += 1

        return result

    def count_references(self, person_id: str) -> int:
        return len(self.snapshot(person_id))

    def restore(self, rows: Iterable[Dict[str, Any]]):
        """Restore rows that are missing or still pending; reviewed rows stay reviewed."""
        for row in rows:
            current = self.db.query_one(
                "SELECT status FROM duplicate_candidates WHERE id = ?", (row['id'],)
            )
            if current is None or current['status'] == 'pending':
                super().restore([row])


class DependentTableRegistry:
    """
    The closed set of dependent-table handlers.

    Usage:
        registry = default_registry(db)
        registry.register(LinkTableHandler(db, 'letters', dedupe_columns=('letter_id',)))
    """

    def __init__(self, db: FamilyDatabase,
                 handlers: Optional[Iterable[DependentTableHandler]] = None,
                 exempt_columns: Iterable[Tuple[str, str]] = EXEMPT_COLUMNS):
        self.db = db
        self._handlers: Dict[str, DependentTableHandler] = {}
        self.exempt_columns = frozenset(exempt_columns)
        for handler in handlers or []:
            self.register(handler)

    def register(self, handler: DependentTableHandler):
        """Add a handler; each table and column may be covered only once."""
        if handler.table in self._handlers:
            raise ValueError(f"Table already registered: {handler.table}")
        overlap = set(handler.columns()) & self.covered_columns()
        if overlap:
            raise ValueError(f"Columns already registered: {sorted(overlap)}")
        self._handlers[handler.table] = handler

    @property
    def handlers(self) -> List[DependentTableHandler]:
        return list(self._handlers.values())

    def get(self, table: str) -> DependentTableHandler:
        return self._handlers[table]

    def covered_columns(self) -> Set[Tuple[str, str]]:
        covered = set()
        for handler in self._handlers.values():
            covered.update(handler.columns())
        return covered

    def uncovered_columns(self) -> List[Tuple[str, str]]:
        """Person-referencing columns that neither a handler nor the exemptions cover."""
        known = self.covered_columns() | self.exempt_columns
        return [ref for ref in self.db.person_foreign_keys() if ref not in known]

    def verify_closed_world(self):
        """Raise IntegrityError if the schema references persons outside the registry."""
        uncovered = self.uncovered_columns()
        if uncovered:
            listed = ', '.join(f"{t}.{c}" for t, c in uncovered)
            logger.error(f"Unregistered person references: {listed}")
            raise IntegrityError(f"No repoint handler registered for: {listed}")

    def snapshot(self, person_id: str) -> Dict[str, List[Dict[str, Any]]]:
        return {h.table: h.snapshot(person_id) for h in self._handlers.values()}

    def repoint_all(self, loser_id: str, winner_id: str) -> List[RepointResult]:
        results = []
        for handler in self._handlers.values():
            result = handler.repoint(loser_id, winner_id)
            logger.debug(
                f"{handler.table}: repointed {result.repointed}, dropped {result.dropped}"
            )
            results.append(result)
        return results

    def reference_counts(self, person_id: str) -> Dict[str, int]:
        return {h.table: h.count_references(person_id) for h in self._handlers.values()}

    def verify_no_references(self, person_id: str):
        """Raise IntegrityError if any dependent row still references the person."""
        dangling = {table: n for table, n in self.reference_counts(person_id).items() if n}
        if dangling:
            raise IntegrityError(f"Person {person_id} still referenced after repoint: {dangling}")

    def restore(self, snapshot: Dict[str, List[Dict[str, Any]]]):
        for table, rows in snapshot.items():
            if table not in self._handlers:
                raise IntegrityError(f"No handler to restore rows of {table}")
            self._handlers[table].restore(rows)


def default_registry(db: FamilyDatabase) -> DependentTableRegistry:
    """The handlers for every person-referencing table in the schema."""
    return DependentTableRegistry(db, [
        RelationshipHandler(db),
        LinkTableHandler(db, 'story_people', dedupe_columns=('story_id',)),
        LinkTableHandler(db, 'media_tags', dedupe_columns=('media_id',)),
        LinkTableHandler(db, 'person_claims', dedupe_columns=('user_id',)),
        LinkTableHandler(db, 'timeline_entries'),
        CandidateHandler(db),
    ])
