"""
Tests for merge field resolution.
"""

import pytest

from kinmerge.core.exceptions import ValidationError
from kinmerge.core.models import FieldResolution, Person
from kinmerge.merge.field_resolver import FieldResolver


def make_person(person_id, **fields):
    return Person(id=person_id, family_id='fam', **fields)


@pytest.fixture
def resolver():
    return FieldResolver()


class TestParseResolutions:
    """Tests for resolution validation."""

    def test_valid(self, resolver):
        """Test parsing string resolutions."""
        parsed = resolver.parse_resolutions({'bio': 'keep_loser', 'tags': 'union'})
        assert parsed == {'bio': FieldResolution.KEEP_LOSER, 'tags': FieldResolution.UNION}

    def test_unknown_field(self, resolver):
        """Test that non-mergeable fields are rejected."""
        with pytest.raises(ValidationError):
            resolver.parse_resolutions({'family_id': 'keep_loser'})

    def test_unknown_resolution(self, resolver):
        """Test that unknown choices are rejected."""
        with pytest.raises(ValidationError):
            resolver.parse_resolutions({'bio': 'newest'})

    def test_union_on_scalar(self, resolver):
        """Test that union is only allowed on multi-valued fields."""
        with pytest.raises(ValidationError):
            resolver.parse_resolutions({'bio': 'union'})

    def test_empty(self, resolver):
        """Test that no resolutions is valid."""
        assert resolver.parse_resolutions(None) == {}


class TestResolve:
    """Tests for applying resolutions."""

    def test_keep_loser_bio(self, resolver):
        """Test an explicit keep_loser choice."""
        winner = make_person('a', given_name='John', surname='Smith', bio='Short.')
        loser = make_person('b', given_name='Jon', surname='Smith', bio='Loved fishing.')

        updates, decisions = resolver.resolve(winner, loser, {'bio': FieldResolution.KEEP_LOSER})

        assert updates['bio'] == 'Loved fishing.'
        bio = next(d for d in decisions if d.field == 'bio')
        assert bio.decision is FieldResolution.KEEP_LOSER
        assert bio.reason == 'Operator choice'

    def test_defaults(self, resolver):
        """Test default decisions for scalar fields."""
        winner = make_person('a', given_name='John', surname='Smith', birth_place=None,
                             death_date='1990')
        loser = make_person('b', given_name='Jon', surname='Smith', birth_place='Springfield',
                            death_date='1991')

        updates, decisions = resolver.resolve(winner, loser, {})

        assert updates == {'birth_place': 'Springfield', 'alternate_names': ['Jon Smith']}
        by_field = {d.field: d for d in decisions}
        assert by_field['given_name'].decision is FieldResolution.KEEP_WINNER
        assert by_field['death_date'].chosen == '1990'
        assert 'surname' not in by_field

    def test_union_of_multi_valued(self, resolver):
        """Test that lists are combined without case-insensitive duplicates."""
        winner = make_person('a', given_name='John', surname='Smith',
                             alternate_names=['Johnny Smith'], tags=['veteran'])
        loser = make_person('b', given_name='John', surname='Smith',
                            alternate_names=['johnny smith', 'J. Smith'], tags=['Veteran', 'farmer'])

        updates, _ = resolver.resolve(winner, loser, {})

        assert updates['alternate_names'] == ['Johnny Smith', 'J. Smith']
        assert updates['tags'] == ['veteran', 'farmer']

    def test_keep_winner_list(self, resolver):
        """Test that keep_winner on a list leaves the winner unchanged."""
        winner = make_person('a', tags=['a'])
        loser = make_person('b', tags=['b'])
        updates, _ = resolver.resolve(winner, loser, {'tags': FieldResolution.KEEP_WINNER})
        assert 'tags' not in updates

    def test_does_not_mutate(self, resolver):
        """Test that resolution leaves both persons untouched."""
        winner = make_person('a', tags=['a'])
        loser = make_person('b', tags=['b'], bio='x')
        resolver.resolve(winner, loser, {})
        assert winner.tags == ['a']
        assert winner.bio is None


class TestSuggest:
    """Tests for preview suggestions."""

    def test_more_specific_date(self, resolver):
        """Test that the more specific date is suggested."""
        winner = make_person('a', birth_date='1950')
        loser = make_person('b', birth_date='1 JAN 1950')
        suggestion = resolver.suggest(winner, loser)[0]
        assert suggestion.field == 'birth_date'
        assert suggestion.decision is FieldResolution.KEEP_LOSER
        assert suggestion.chosen == '1 JAN 1950'

    def test_more_detailed_place(self, resolver):
        """Test that the more detailed place is suggested."""
        winner = make_person('a', birth_place='Springfield, Illinois, USA')
        loser = make_person('b', birth_place='Springfield')
        suggestion = resolver.suggest(winner, loser)[0]
        assert suggestion.decision is FieldResolution.KEEP_WINNER
        assert suggestion.reason == 'Winner place more detailed'

    def test_gender_conflict_flagged(self, resolver):
        """Test that conflicting genders keep the winner and ask for review."""
        suggestion = resolver.suggest(make_person('a', gender='M'), make_person('b', gender='F'))[0]
        assert suggestion.decision is FieldResolution.KEEP_WINNER
        assert 'manual review' in suggestion.reason

    def test_identical_fields_skipped(self, resolver):
        """Test that equal fields produce no suggestion."""
        assert resolver.suggest(make_person('a', surname='Smith'), make_person('b', surname='Smith')) == []
