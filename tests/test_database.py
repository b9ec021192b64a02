"""
Tests for the SQLite adapter.
"""

import sqlite3

import pytest

from kinmerge.storage.database import FamilyDatabase


class TestFamilyDatabase:
    """Tests for FamilyDatabase."""

    def test_add_and_get_person(self, db, family_id):
        """Test storing and loading a person with list fields."""
        person = db.add_person(family_id, given_name='Ada', surname='Lovelace',
                               alternate_names=['Augusta Ada King'], tags=['mathematician'])

        loaded = db.get_person(person.id)
        assert loaded.full_name == 'Ada Lovelace'
        assert loaded.alternate_names == ['Augusta Ada King']
        assert loaded.tags == ['mathematician']
        assert loaded.is_active
        assert loaded.created_at == loaded.updated_at

    def test_unknown_fields_rejected(self, db, family_id):
        """Test that only mergeable fields can be set."""
        with pytest.raises(ValueError):
            db.add_person(family_id, shoe_size=42)

    def test_missing_person(self, db):
        """Test that an unknown id returns None."""
        assert db.get_person('ghost') is None

    def test_family_people_excludes_tombstones(self, db, family_id, john, jon):
        """Test active-only listing."""
        db.tombstone_person(jon.id, john.id)
        assert [p.id for p in db.get_family_people(family_id)] == [john.id]
        assert len(db.get_family_people(family_id, active_only=False)) == 2

    def test_update_bumps_timestamp(self, db, john):
        """Test that updating fields moves updated_at forward."""
        db.update_person_fields(john.id, {'nickname': 'Johnny'})
        updated = db.get_person(john.id)
        assert updated.nickname == 'Johnny'
        assert updated.updated_at > john.updated_at

    def test_relationship_bumps_both_endpoints(self, db, john, jon, mary):
        """Test that adding a relationship moves updated_at on both persons."""
        db.add_relationship(mary.id, john.id, 'parent')
        assert db.get_person(mary.id).updated_at > mary.updated_at
        assert db.get_person(john.id).updated_at > john.updated_at
        assert db.get_person(jon.id).updated_at == jon.updated_at

    def test_relationship_validation(self, db, john, jon):
        """Test relationship type and person checks."""
        with pytest.raises(ValueError):
            db.add_relationship(john.id, jon.id, 'cousin')
        with pytest.raises(ValueError):
            db.add_relationship('ghost', jon.id, 'parent')

    def test_foreign_keys_enforced(self, db, john):
        """Test that rows cannot reference missing persons."""
        with pytest.raises(sqlite3.IntegrityError):
            db.add_story_link('story-1', 'ghost')

    def test_person_foreign_keys(self, db):
        """Test discovery of every column that references a person."""
        refs = db.person_foreign_keys()
        assert ('people', 'merged_into_id') in refs
        assert ('relationships', 'from_person_id') in refs
        assert ('relationships', 'to_person_id') in refs
        assert ('story_people', 'person_id') in refs
        assert ('duplicate_candidates', 'person_a_id') in refs
        assert ('person_merges', 'loser_id') in refs
        assert refs == sorted(refs)

    def test_scan_state(self, db, family_id):
        """Test storing the last scan time."""
        assert db.get_last_scanned_at(family_id) is None
        db.set_last_scanned_at(family_id, '2024-01-01T00:00:00.000000Z')
        db.set_last_scanned_at(family_id, '2024-02-01T00:00:00.000000Z')
        assert db.get_last_scanned_at(family_id) == '2024-02-01T00:00:00.000000Z'


class TestTransactions:
    """Tests for transactions and savepoints."""

    def test_rollback(self, db, family_id):
        """Test that an exception rolls back the transaction."""
        with pytest.raises(RuntimeError):
            with db.transaction():
                db.add_person(family_id, given_name='Temp')
                raise RuntimeError("abort")
        assert db.get_family_people(family_id) == []
        assert not db.in_transaction

    def test_nested_savepoint(self, db, family_id):
        """Test that an inner failure only undoes the inner block."""
        with db.transaction():
            kept = db.add_person(family_id, given_name='Kept')
            with pytest.raises(RuntimeError):
                with db.transaction():
                    db.add_person(family_id, given_name='Dropped')
                    raise RuntimeError("inner")
            assert db.in_transaction

        names = [p.given_name for p in db.get_family_people(family_id)]
        assert names == ['Kept']
        assert db.get_person(kept.id) is not None

    def test_context_manager(self, tmp_path):
        """Test opening and closing through a with block."""
        path = tmp_path / 'ctx.db'
        with FamilyDatabase(path) as database:
            family_id = database.create_family('Ctx')
        with FamilyDatabase(path) as database:
            assert database.get_family(family_id)['name'] == 'Ctx'
