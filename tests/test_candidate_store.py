"""
Tests for the candidate store.
"""

import sqlite3

import pytest

from kinmerge.candidates.store import CandidateStore, SuppressionPolicy
from kinmerge.core.exceptions import ConflictError, NotFoundError, ValidationError
from kinmerge.core.models import CandidateStatus, SimilarityBreakdown, ordered_pair


@pytest.fixture
def store(db):
    return CandidateStore(db)


def upsert(store, family_id, p1, p2, score=0.9, reasons=('exact_name',)):
    return store.upsert(family_id, p1.id, p2.id, score, list(reasons), SimilarityBreakdown(name=1.0))


class TestUpsert:
    """Tests for CandidateStore.upsert."""

    def test_insert_orders_pair(self, store, family_id, john, jon):
        """Test that the stored pair is ordered regardless of argument order."""
        candidate = upsert(store, family_id, jon, john)
        assert candidate.pair == ordered_pair(john.id, jon.id)
        assert candidate.status is CandidateStatus.PENDING
        assert candidate.match_reasons == ['exact_name']
        assert candidate.breakdown.name == 1.0

    def test_upsert_refreshes_pending_row(self, store, family_id, john, jon):
        """Test that a second upsert updates the same row."""
        first = upsert(store, family_id, john, jon, score=0.7)
        second = upsert(store, family_id, jon, john, score=0.85, reasons=['name_similarity'])

        assert second.id == first.id
        assert second.confidence_score == 0.85
        assert second.match_reasons == ['name_similarity']
        assert len(store.list_pending(family_id)) == 1

    def test_full_precision_score(self, store, family_id, john, jon):
        """Test that the score is stored without rounding."""
        candidate = upsert(store, family_id, john, jon, score=0.8123456789)
        assert store.get(candidate.id).confidence_score == 0.8123456789

    def test_self_pair_rejected(self, store, family_id, john):
        """Test that a person cannot be paired with itself."""
        with pytest.raises(ValidationError):
            upsert(store, family_id, john, john)

    def test_score_out_of_range(self, store, family_id, john, jon):
        """Test score validation."""
        with pytest.raises(ValidationError):
            upsert(store, family_id, john, jon, score=1.5)

    def test_database_enforces_single_pending_row(self, db, store, family_id, john, jon):
        """Test the partial unique index on pending pairs."""
        candidate = upsert(store, family_id, john, jon)
        with pytest.raises(sqlite3.IntegrityError):
            db.execute(
                "INSERT INTO duplicate_candidates (id, family_id, person_a_id, person_b_id, "
                "confidence_score, status, created_at, updated_at) "
                "VALUES ('dup', ?, ?, ?, 0.5, 'pending', 'x', 'x')",
                (family_id, candidate.person_a_id, candidate.person_b_id),
            )


class TestLifecycle:
    """Tests for candidate state transitions."""

    def test_dismiss(self, store, family_id, john, jon):
        """Test pending -> dismissed."""
        candidate = upsert(store, family_id, john, jon)
        dismissed = store.dismiss(candidate.id, actor_id='alice')

        assert dismissed.status is CandidateStatus.DISMISSED
        assert dismissed.reviewed_by == 'alice'
        assert dismissed.reviewed_at is not None
        assert store.list_pending(family_id) == []

    def test_dismiss_is_idempotent(self, store, family_id, john, jon):
        """Test that dismissing twice is a no-op."""
        candidate = upsert(store, family_id, john, jon)
        first = store.dismiss(candidate.id, actor_id='alice')
        second = store.dismiss(candidate.id, actor_id='bob')
        assert second.status is CandidateStatus.DISMISSED
        assert second.reviewed_by == 'alice'
        assert second.reviewed_at == first.reviewed_at

    def test_dismiss_merged_conflicts(self, store, family_id, john, jon):
        """Test that a merged candidate cannot be dismissed."""
        candidate = upsert(store, family_id, john, jon)
        store.mark_merged(candidate.id, 'merge-1', actor_id='alice')
        with pytest.raises(ConflictError):
            store.dismiss(candidate.id)

    def test_mark_merged_twice_conflicts(self, store, family_id, john, jon):
        """Test that terminal candidates do not transition again."""
        candidate = upsert(store, family_id, john, jon)
        merged = store.mark_merged(candidate.id, 'merge-1', actor_id='alice')
        assert merged.status is CandidateStatus.MERGED
        assert merged.merge_id == 'merge-1'
        with pytest.raises(ConflictError):
            store.mark_merged(candidate.id, 'merge-2')

    def test_get_missing(self, store):
        """Test NotFoundError for unknown ids."""
        with pytest.raises(NotFoundError):
            store.get('nope')
        with pytest.raises(NotFoundError):
            store.dismiss('nope')


class TestSuppression:
    """Tests for the suppression policy."""

    def test_dismissed_pair_not_resurfaced(self, store, family_id, john, jon):
        """Test that a dismissed pair is never upserted again."""
        candidate = upsert(store, family_id, john, jon)
        store.dismiss(candidate.id)

        assert store.is_suppressed(family_id, jon.id, john.id)
        assert upsert(store, family_id, john, jon, score=0.99) is None
        assert store.list_pending(family_id) == []

    def test_custom_policy(self, db, family_id, john, jon):
        """Test a policy that only suppresses merged pairs."""
        store = CandidateStore(db, SuppressionPolicy([CandidateStatus.MERGED]))
        candidate = upsert(store, family_id, john, jon)
        store.dismiss(candidate.id)

        again = upsert(store, family_id, john, jon)
        assert again is not None
        assert again.id != candidate.id
        assert again.status is CandidateStatus.PENDING


class TestListing:
    """Tests for candidate listing order."""

    def test_score_then_insertion_order(self, db, store, family_id, john, jon, mary):
        """Test descending score with ties broken by insertion order."""
        extra = db.add_person(family_id, given_name='Johnny', surname='Smith')

        low_first = upsert(store, family_id, john, mary, score=0.6)
        top = upsert(store, family_id, john, jon, score=0.9)
        low_second = upsert(store, family_id, jon, extra, score=0.6)

        ids = [c.id for c in store.list_pending(family_id)]
        assert ids == [top.id, low_first.id, low_second.id]

    def test_filter_by_status(self, store, family_id, john, jon, mary):
        """Test listing candidates by status."""
        kept = upsert(store, family_id, john, jon)
        dropped = upsert(store, family_id, john, mary, score=0.6)
        store.dismiss(dropped.id)

        assert [c.id for c in store.list_candidates(family_id, CandidateStatus.DISMISSED)] == [dropped.id]
        assert [c.id for c in store.list_candidates(family_id)] == [kept.id, dropped.id]


class TestInactivePersons:
    """Tests for upserts against persons that left the family."""

    def test_tombstoned_person_not_upserted(self, db, store, family_id, john, jon):
        """Test that a pair with a merged-away person is skipped."""
        db.tombstone_person(jon.id, john.id)

        assert upsert(store, family_id, john, jon) is None
        assert store.list_candidates(family_id) == []

    def test_person_from_other_family_not_upserted(self, db, store, family_id, john):
        """Test that a pair spanning two families is skipped."""
        other = db.create_family('Other Smiths')
        stranger = db.add_person(other, given_name='John', surname='Smith')

        assert upsert(store, family_id, john, stranger) is None
