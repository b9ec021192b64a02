"""
Tests for the similarity evaluator.
"""

import pytest

from kinmerge.core.models import Person, RelationshipEdge
from kinmerge.matching.similarity import SimilarityEvaluator


def make_person(person_id, **fields):
    return Person(id=person_id, family_id='fam', **fields)


@pytest.fixture
def evaluator():
    return SimilarityEvaluator()


class TestNames:
    """Tests for name comparison."""

    def test_identical_names(self, evaluator):
        """Test that identical names score 1.0."""
        a = make_person('a', given_name='John', surname='Smith')
        b = make_person('b', given_name='john', surname='SMITH')
        assert evaluator.score_names(a, b) == 1.0

    def test_nickname_variant(self, evaluator):
        """Test that nickname variants score high."""
        a = make_person('a', given_name='William', surname='Brown')
        b = make_person('b', given_name='Bill', surname='Brown')
        assert evaluator.score_names(a, b) >= 0.95

    def test_jon_and_john(self, evaluator):
        """Test a spelling variant found in the reference table."""
        a = make_person('a', given_name='John', surname='Smith')
        b = make_person('b', given_name='Jon', surname='Smith')
        assert evaluator.score_names(a, b) == pytest.approx(0.975)

    def test_spelling_variant_surname(self, evaluator):
        """Test that a one-letter surname variant still scores high."""
        assert evaluator.compare_surnames('smith', 'smyth') >= 0.8

    def test_honorifics_ignored(self, evaluator):
        """Test that titles and suffixes do not affect matching."""
        a = make_person('a', given_name='Dr. John', surname='Smith Jr.')
        b = make_person('b', given_name='John', surname='Smith')
        assert evaluator.score_names(a, b) == 1.0

    def test_alternate_name_used(self, evaluator):
        """Test that alternate names are compared too."""
        a = make_person('a', given_name='Maria', surname='Rossi')
        b = make_person('b', given_name='Anna', surname='Bianchi', alternate_names=['Maria Rossi'])
        assert evaluator.score_names(a, b) == 1.0

    def test_different_names(self, evaluator):
        """Test that unrelated names score low."""
        a = make_person('a', given_name='John', surname='Smith')
        b = make_person('b', given_name='Agatha', surname='Byrd')
        assert evaluator.score_names(a, b) < 0.5

    def test_missing_name_is_unknown(self, evaluator):
        """Test that a person without any name gives an unknown score."""
        a = make_person('a', given_name='John', surname='Smith')
        b = make_person('b')
        assert evaluator.score_names(a, b) is None

    def test_normalize_name(self):
        """Test name normalization."""
        assert SimilarityEvaluator.normalize_name_for_matching('Mr. John (Jack) Smith, Jr.') == 'john jack smith'
        assert SimilarityEvaluator.normalize_name_for_matching(None) == ''


class TestDates:
    """Tests for date comparison."""

    def test_exact_full_date(self, evaluator):
        """Test an exact full date."""
        assert evaluator.compare_dates('1950-01-01', '1 JAN 1950') == 1.0

    def test_compatible_partial_dates(self, evaluator):
        """Test dates that agree on every known component."""
        assert evaluator.compare_dates('1950', '1950-01-01') == 0.9
        assert evaluator.compare_dates('JAN 1950', '1950-01-15') == 0.9

    def test_same_year(self, evaluator):
        """Test same year with different months."""
        assert evaluator.compare_dates('1950-01-01', '1950-06-01') == 0.8

    def test_year_proximity(self, evaluator):
        """Test decay for near misses."""
        assert evaluator.compare_dates('1950', '1952') == 0.6
        assert evaluator.compare_dates('1950', '1955') == 0.3
        assert evaluator.compare_dates('1950', '1970') == 0.0

    def test_approximate_capped(self, evaluator):
        """Test that approximate dates never score 1.0."""
        assert evaluator.compare_dates('ABT 1 JAN 1950', '1950-01-01') == 0.9

    def test_unknown(self, evaluator):
        """Test that a missing date is unknown rather than a mismatch."""
        assert evaluator.compare_dates(None, '1950') is None
        assert evaluator.compare_dates('garbage', '1950') is None


class TestPlaces:
    """Tests for place comparison."""

    def test_exact_place(self, evaluator):
        """Test normalized equality."""
        assert evaluator.compare_places('Springfield', 'springfield') == 1.0
        assert evaluator.compare_places('Dublin, Ireland', 'Dublin Ireland') == 1.0

    def test_same_locality(self, evaluator):
        """Test that a matching locality scores at least 0.9."""
        assert evaluator.compare_places('Springfield, Illinois', 'Springfield, IL, USA') >= 0.9

    def test_different_places(self, evaluator):
        """Test unrelated places."""
        assert evaluator.compare_places('Paris', 'Tokyo') < 0.5

    def test_unknown(self, evaluator):
        """Test missing places."""
        assert evaluator.compare_places('', 'Paris') is None


class TestRelationships:
    """Tests for relationship overlap and conflicts."""

    def test_shared_parents(self, evaluator):
        """Test overlap of edges to the same third parties."""
        a = make_person('a', relationships=[
            RelationshipEdge('r1', 'parent', 'dad', 'a'),
            RelationshipEdge('r2', 'parent', 'mom', 'a'),
        ])
        b = make_person('b', relationships=[
            RelationshipEdge('r3', 'parent', 'dad', 'b'),
            RelationshipEdge('r4', 'child', 'b', 'mom'),
        ])
        assert evaluator.relationship_overlap(a, b) == 1.0

    def test_partial_overlap(self, evaluator):
        """Test Jaccard overlap."""
        a = make_person('a', relationships=[
            RelationshipEdge('r1', 'parent', 'dad', 'a'),
            RelationshipEdge('r2', 'spouse', 'a', 'wife'),
        ])
        b = make_person('b', relationships=[
            RelationshipEdge('r3', 'parent', 'dad', 'b'),
        ])
        assert evaluator.relationship_overlap(a, b) == 0.5

    def test_direction_matters(self, evaluator):
        """Test that being a parent of X differs from being a child of X."""
        a = make_person('a', relationships=[RelationshipEdge('r1', 'parent', 'x', 'a')])
        b = make_person('b', relationships=[RelationshipEdge('r2', 'parent', 'b', 'x')])
        assert evaluator.relationship_overlap(a, b) == 0.0

    def test_no_edges_is_unknown(self, evaluator):
        """Test that overlap is unknown without edges on both sides."""
        a = make_person('a', relationships=[RelationshipEdge('r1', 'parent', 'x', 'a')])
        b = make_person('b')
        assert evaluator.relationship_overlap(a, b) is None

    def test_directly_related(self, evaluator):
        """Test detection of an edge joining the pair."""
        edge = RelationshipEdge('r1', 'parent', 'a', 'b')
        a = make_person('a', relationships=[edge])
        b = make_person('b')
        assert evaluator.directly_related(a, b)
        assert evaluator.directly_related(b, a)

    def test_gender_conflict(self, evaluator):
        """Test gender conflict detection."""
        assert evaluator.gender_conflict(make_person('a', gender='M'), make_person('b', gender='F'))
        assert not evaluator.gender_conflict(make_person('a', gender='M'), make_person('b', gender='U'))
        assert not evaluator.gender_conflict(make_person('a', gender='m'), make_person('b', gender='M'))


class TestEvaluate:
    """Tests for the full breakdown."""

    def test_symmetry(self, evaluator):
        """Test that evaluate(a, b) equals evaluate(b, a)."""
        a = make_person('a', given_name='Johann', surname='Schmidt', birth_date='ABT 1820',
                        birth_place='Hamburg, Germany', death_date='1890',
                        relationships=[RelationshipEdge('r1', 'parent', 'p', 'a')])
        b = make_person('b', given_name='John', surname='Smith', birth_date='1821-05-02',
                        birth_place='Hamburg', gender='M', alternate_names=['Hans Schmidt'],
                        relationships=[RelationshipEdge('r2', 'child', 'b', 'p'),
                                       RelationshipEdge('r3', 'spouse', 'b', 'w')])
        assert evaluator.evaluate(a, b) == evaluator.evaluate(b, a)

    def test_determinism(self, evaluator):
        """Test that identical inputs give identical breakdowns."""
        a = make_person('a', given_name='Elizabeth', surname='Taylor', birth_date='1932')
        b = make_person('b', given_name='Betty', surname='Tailor', birth_date='1932-02-27')
        assert evaluator.evaluate(a, b) == evaluator.evaluate(a, b)

    def test_evaluate_does_not_mutate(self, evaluator):
        """Test that evaluation leaves the persons unchanged."""
        a = make_person('a', given_name='John', surname='Smith')
        b = make_person('b', given_name='Jon', surname='Smith')
        before = (a.to_dict(), b.to_dict())
        evaluator.evaluate(a, b)
        assert (a.to_dict(), b.to_dict()) == before
