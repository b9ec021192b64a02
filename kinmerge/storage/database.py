"""SQLite adapter for family person records and their dependents."""

import json
import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..core.models import (
    MERGEABLE_FIELDS,
    MULTI_VALUED_FIELDS,
    RELATIONSHIP_TYPES,
    Person,
    RelationshipEdge,
)
from ..utils.timestamps import Clock, to_iso, utc_now
from .schema import SCHEMA_STATEMENTS

logger = logging.getLogger(__name__)


def new_id() -> str:
    return str(uuid.uuid4())


class FamilyDatabase:
    """Adapter for the kinmerge SQLite database.

    This class handles:
    - SQLite connection management and schema creation
    - Transactions, nested through savepoints
    - CRUD operations for families, persons, relationships and link rows
    - Discovery of every column that references a person

    A single connection is shared between threads and guarded by a
    re-entrant lock; a transaction holds the lock until it ends.
    """

    def __init__(self, db_path: str | Path = ':memory:', clock: Optional[Clock] = None):
        """Open (and if needed create) a database.

        Args:
            db_path: Path to the database file, or ':memory:'
            clock: Source of the current time, used for row timestamps
        """
        self.db_path = str(db_path)
        self.clock = clock or utc_now
        self._lock = threading.RLock()
        self._tx_depth = 0

        self.conn = sqlite3.connect(
            self.db_path,
            isolation_level=None,
            check_same_thread=False,
        )
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self.conn.execute("PRAGMA busy_timeout = 5000")

        self.initialize()

    def initialize(self):
        """Create tables, indexes and triggers if they do not exist."""
        with self._lock:
            for statement in SCHEMA_STATEMENTS:
                self.conn.execute(statement)
        logger.debug(f"Schema ready in {self.db_path}")

    def close(self):
        """Close the database connection."""
        if self.conn:
            self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def now(self) -> str:
        return to_iso(self.clock())

    @contextmanager
    def transaction(self):
        """Context manager for database transactions.

        The outermost call opens an immediate transaction; nested calls
        open savepoints, so an inner failure only rolls back its own work
        unless the exception propagates further.
        """
        with self._lock:
            depth = self._tx_depth
            if depth == 0:
                self.conn.execute("BEGIN IMMEDIATE")
            else:
                self.conn.execute(f"SAVEPOINT sp_{depth}")
            self._tx_depth += 1
            try:
                yield self.conn
            except BaseException:
                self._tx_depth -= 1
                if depth == 0:
                    self.conn.execute("ROLLBACK")
                else:
                    self.conn.execute(f"ROLLBACK TO sp_{depth}")
                    self.conn.execute(f"RELEASE sp_{depth}")
                raise
            else:
                self._tx_depth -= 1
                if depth == 0:
                    self.conn.execute("COMMIT")
                else:
                    self.conn.execute(f"RELEASE sp_{depth}")

    @property
    def in_transaction(self) -> bool:
        return self._tx_depth > 0

    # ========== Raw Access ==========

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        with self._lock:
            return self.conn.execute(sql, params)

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        with self._lock:
            return self.conn.execute(sql, params).fetchall()

    def query_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[sqlite3.Row]:
        with self._lock:
            return self.conn.execute(sql, params).fetchone()

    def insert_row(self, table: str, values: Dict[str, Any]) -> str:
        """Insert a row into a table, generating its id if missing.

        Returns:
            The row id
        """
        values = dict(values)
        values.setdefault('id', new_id())
        columns = ', '.join(values)
        placeholders = ', '.join('?' for _ in values)
        self.execute(
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
            list(values.values()),
        )
        return values['id']

    def rows_referencing(self, table: str, column: str, person_id: str) -> List[Dict[str, Any]]:
        rows = self.query(f"SELECT * FROM {table} WHERE {column} = ? ORDER BY id", (person_id,))
        return [dict(r) for r in rows]

    def count_references(self, table: str, column: str, person_id: str) -> int:
        row = self.query_one(f"SELECT COUNT(*) FROM {table} WHERE {column} = ?", (person_id,))
        return row[0]

    def person_foreign_keys(self) -> List[Tuple[str, str]]:
        """Discover every (table, column) declared as a foreign key to people.

        Returns:
            Sorted list of (table, column) pairs
        """
        refs = []
        tables = self.query(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%'"
        )
        for table_row in tables:
            table = table_row['name']
            for fk in self.query(f'PRAGMA foreign_key_list("{table}")'):
                if fk['table'] == 'people':
                    refs.append((table, fk['from']))
        return sorted(refs)

    # ========== Statistics Methods ==========

    def get_stats(self) -> Dict[str, int]:
        """Get database statistics.

        Returns:
            Dictionary with counts of various record types
        """
        stats = {}
        tables = [
            ('families', 'families'),
            ('persons', 'people'),
            ('relationships', 'relationships'),
            ('story_links', 'story_people'),
            ('media_tags', 'media_tags'),
            ('claims', 'person_claims'),
            ('timeline_entries', 'timeline_entries'),
            ('candidates', 'duplicate_candidates'),
            ('merges', 'person_merges'),
        ]
        for name, table in tables:
            stats[name] = self.query_one(f"SELECT COUNT(*) FROM {table}")[0]
        return stats

    # ========== Family Methods ==========

    def create_family(self, name: str, family_id: Optional[str] = None) -> str:
        """Create a family scope and return its id."""
        return self.insert_row('families', {
            'id': family_id or new_id(),
            'name': name,
            'created_at': self.now(),
        })

    def get_family(self, family_id: str) -> Optional[Dict[str, Any]]:
        row = self.query_one("SELECT * FROM families WHERE id = ?", (family_id,))
        return dict(row) if row else None

    def family_exists(self, family_id: str) -> bool:
        return self.get_family(family_id) is not None

    def list_families(self) -> List[Dict[str, Any]]:
        return [dict(r) for r in self.query("SELECT * FROM families ORDER BY name, id")]

    # ========== Person Methods ==========

    def add_person(self, family_id: str, person_id: Optional[str] = None, **fields) -> Person:
        """Add a person to a family.

        Args:
            family_id: Owning family
            person_id: Explicit id, generated when omitted
            **fields: Any of the mergeable person fields

        Returns:
            The stored Person
        """
        unknown = set(fields) - set(MERGEABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown person fields: {sorted(unknown)}")

        stamp = self.now()
        values = {
            'id': person_id or new_id(),
            'family_id': family_id,
            'created_at': stamp,
            'updated_at': stamp,
        }
        values.update(self._encode_fields(fields))
        for name in MULTI_VALUED_FIELDS:
            values.setdefault(name, '[]')

        self.insert_row('people', values)
        return self.get_person(values['id'])

    def get_person(self, person_id: str, load_relationships: bool = True) -> Optional[Person]:
        """Get a person by ID, tombstones included.

        Args:
            person_id: The person id to retrieve
            load_relationships: Whether to load relationship edges

        Returns:
            Person object or None if not found
        """
        row = self.query_one("SELECT * FROM people WHERE id = ?", (person_id,))
        if not row:
            return None

        person = self._row_to_person(row)
        if load_relationships:
            person.relationships = self.get_person_relationships(person_id)
        return person

    def get_family_people(self, family_id: str, active_only: bool = True,
                          load_relationships: bool = True) -> List[Person]:
        """Get the persons of a family ordered by id.

        Args:
            family_id: Family scope
            active_only: Skip tombstones
            load_relationships: Attach relationship edges to each person

        Returns:
            List of Person objects
        """
        sql = "SELECT * FROM people WHERE family_id = ?"
        if active_only:
            sql += " AND is_active = 1"
        sql += " ORDER BY id"
        people = [self._row_to_person(r) for r in self.query(sql, (family_id,))]

        if load_relationships and people:
            edges_by_person: Dict[str, List[RelationshipEdge]] = {}
            rows = self.query(
                "SELECT * FROM relationships WHERE family_id = ? ORDER BY id", (family_id,)
            )
            for row in rows:
                edge = self._row_to_edge(row)
                edges_by_person.setdefault(edge.from_person_id, []).append(edge)
                if edge.to_person_id != edge.from_person_id:
                    edges_by_person.setdefault(edge.to_person_id, []).append(edge)
            for person in people:
                person.relationships = edges_by_person.get(person.id, [])

        return people

    def update_person_fields(self, person_id: str, values: Dict[str, Any]):
        """Overwrite mergeable fields of a person and bump updated_at."""
        if not values:
            return
        unknown = set(values) - set(MERGEABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown person fields: {sorted(unknown)}")

        encoded = self._encode_fields(values)
        assignments = ', '.join(f"{name} = ?" for name in encoded)
        self.execute(
            f"UPDATE people SET {assignments}, updated_at = ? WHERE id = ?",
            list(encoded.values()) + [self.now(), person_id],
        )

    def tombstone_person(self, person_id: str, merged_into_id: str):
        """Mark a person inactive and point it at the record it merged into."""
        self.execute(
            "UPDATE people SET is_active = 0, merged_into_id = ?, updated_at = ? WHERE id = ?",
            (merged_into_id, self.now(), person_id),
        )

    def redirect_tombstones(self, from_id: str, to_id: str) -> List[str]:
        """Repoint tombstones merged into from_id so they point at to_id.

        Returns:
            Ids of the tombstones that were redirected
        """
        ids = [r['id'] for r in self.query(
            "SELECT id FROM people WHERE merged_into_id = ? ORDER BY id", (from_id,)
        )]
        if ids:
            self.set_merged_into(ids, to_id)
        return ids

    def set_merged_into(self, person_ids: Iterable[str], target_id: str):
        for person_id in person_ids:
            self.execute(
                "UPDATE people SET merged_into_id = ? WHERE id = ?", (target_id, person_id)
            )

    def restore_person(self, snapshot: Dict[str, Any]):
        """Rewrite a person row from a to_dict() snapshot.

        Field values, activity and merge target come from the snapshot;
        updated_at is bumped so incremental scans revisit the record.
        """
        values = {name: snapshot.get(name) for name in MERGEABLE_FIELDS}
        encoded = self._encode_fields(values)
        assignments = ', '.join(f"{name} = ?" for name in encoded)
        self.execute(
            f"UPDATE people SET {assignments}, is_active = ?, merged_into_id = ?, "
            f"updated_at = ? WHERE id = ?",
            list(encoded.values()) + [
                1 if snapshot.get('is_active', True) else 0,
                snapshot.get('merged_into_id'),
                self.now(),
                snapshot['id'],
            ],
        )

    def touch_persons(self, person_ids: Iterable[str]):
        """Bump updated_at so incremental scans revisit the given persons."""
        ids = sorted(set(person_ids))
        if not ids:
            return
        placeholders = ', '.join('?' for _ in ids)
        self.execute(
            f"UPDATE people SET updated_at = ? WHERE id IN ({placeholders})",
            [self.now()] + ids,
        )

    # ========== Relationship Methods ==========

    def add_relationship(self, from_person_id: str, to_person_id: str,
                         relationship_type: str) -> str:
        """Record that from_person is the relationship_type of to_person.

        Both endpoints get their updated_at bumped.

        Returns:
            The relationship row id
        """
        if relationship_type not in RELATIONSHIP_TYPES:
            raise ValueError(f"Unknown relationship type: {relationship_type}")
        person = self.get_person(from_person_id, load_relationships=False)
        if person is None:
            raise ValueError(f"Person not found: {from_person_id}")

        with self.transaction():
            relationship_id = self.insert_row('relationships', {
                'family_id': person.family_id,
                'from_person_id': from_person_id,
                'to_person_id': to_person_id,
                'relationship_type': relationship_type,
                'created_at': self.now(),
            })
            self.touch_persons([from_person_id, to_person_id])
        return relationship_id

    def get_person_relationships(self, person_id: str) -> List[RelationshipEdge]:
        rows = self.query(
            "SELECT * FROM relationships WHERE from_person_id = ? OR to_person_id = ? ORDER BY id",
            (person_id, person_id),
        )
        return [self._row_to_edge(r) for r in rows]

    # ========== Link Table Methods ==========

    def add_story_link(self, story_id: str, person_id: str, role: Optional[str] = None) -> str:
        return self.insert_row('story_people', {
            'story_id': story_id, 'person_id': person_id, 'role': role,
        })

    def add_media_tag(self, media_id: str, person_id: str, label: Optional[str] = None) -> str:
        return self.insert_row('media_tags', {
            'media_id': media_id, 'person_id': person_id, 'label': label,
        })

    def add_claim(self, user_id: str, person_id: str, status: str = 'pending') -> str:
        return self.insert_row('person_claims', {
            'user_id': user_id, 'person_id': person_id, 'status': status,
            'created_at': self.now(),
        })

    def add_timeline_entry(self, person_id: str, title: str,
                           event_date: Optional[str] = None) -> str:
        return self.insert_row('timeline_entries', {
            'person_id': person_id, 'title': title, 'event_date': event_date,
        })

    # ========== Scan State ==========

    def get_last_scanned_at(self, family_id: str) -> Optional[str]:
        row = self.query_one(
            "SELECT last_scanned_at FROM scan_state WHERE family_id = ?", (family_id,)
        )
        return row['last_scanned_at'] if row else None

    def set_last_scanned_at(self, family_id: str, scanned_at: str):
        self.execute(
            "INSERT INTO scan_state (family_id, last_scanned_at) VALUES (?, ?) "
            "ON CONFLICT(family_id) DO UPDATE SET last_scanned_at = excluded.last_scanned_at",
            (family_id, scanned_at),
        )

    # ========== Helper Methods ==========

    @staticmethod
    def _encode_fields(values: Dict[str, Any]) -> Dict[str, Any]:
        encoded = {}
        for name, value in values.items():
            if name in MULTI_VALUED_FIELDS:
                encoded[name] = json.dumps(list(value or []))
            else:
                encoded[name] = value
        return encoded

    def _row_to_person(self, row: sqlite3.Row) -> Person:
        """Convert database row to Person."""
        return Person(
            id=row['id'],
            family_id=row['family_id'],
            given_name=row['given_name'],
            surname=row['surname'],
            nickname=row['nickname'],
            gender=row['gender'],
            birth_date=row['birth_date'],
            birth_place=row['birth_place'],
            death_date=row['death_date'],
            death_place=row['death_place'],
            bio=row['bio'],
            alternate_names=json.loads(row['alternate_names'] or '[]'),
            tags=json.loads(row['tags'] or '[]'),
            is_active=bool(row['is_active']),
            merged_into_id=row['merged_into_id'],
            created_at=row['created_at'],
            updated_at=row['updated_at'],
        )

    def _row_to_edge(self, row: sqlite3.Row) -> RelationshipEdge:
        return RelationshipEdge(
            relationship_id=row['id'],
            relationship_type=row['relationship_type'],
            from_person_id=row['from_person_id'],
            to_person_id=row['to_person_id'],
        )
