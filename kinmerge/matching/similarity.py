"""
Per-dimension similarity between two person records.

Handles nicknames, cross-language given names, honorifics, partial dates
and free-text places. Every comparison is symmetric and side-effect free.
"""

import re
import unicodedata
from typing import Optional, Set, Tuple

import phonetics
from rapidfuzz import fuzz

from ..core.models import Person, SimilarityBreakdown
from ..data.reference_loader import ReferenceDataLoader, reference_data
from ..utils.date_parser import parse_date


class SimilarityEvaluator:
    """
    Computes named sub-scores between two persons.

    Dimensions:
    1. Names - fuzzy ratios, Metaphone and the given-name variant table
    2. Birth and death dates - exact, partial and year proximity
    3. Birth and death places - normalized and fuzzy token matching
    4. Relationships - overlap of parent/child/spouse edges to third parties

    A dimension that is missing on either side scores None (unknown).
    """

    # Multilingual honorific titles to normalize
    HONORIFIC_PREFIXES = {
        'mr', 'mrs', 'ms', 'miss', 'dr', 'rev', 'sir', 'lady', 'lord', 'dame',
        'mme', 'mlle', 'abbé', 'père', 'sœur',
        'herr', 'frau', 'fräulein', 'prof',
        'sra', 'srta', 'don', 'doña',
        'sig', 'signor', 'signora', 'signorina',
    }

    HONORIFIC_SUFFIXES = {
        'jr', 'sr', 'ii', 'iii', 'iv', 'esq', 'md', 'phd',
    }

    RELATIONSHIP_OVERLAP_TYPES = ('parent', 'child', 'spouse')

    # Floors for names that differ in spelling but not identity
    GIVEN_VARIANT_SCORE = 0.95
    SURNAME_PHONETIC_SCORE = 0.90
    PLACE_LOCALITY_SCORE = 0.90

    def __init__(self, reference: Optional[ReferenceDataLoader] = None):
        self.reference = reference or reference_data

    def evaluate(self, person1: Person, person2: Person) -> SimilarityBreakdown:
        """
        Compare two persons across every dimension.

        Args:
            person1: First person
            person2: Second person

        Returns:
            SimilarityBreakdown with one sub-score per dimension
        """
        return SimilarityBreakdown(
            name=self.score_names(person1, person2),
            birth_date=self.compare_dates(person1.birth_date, person2.birth_date),
            death_date=self.compare_dates(person1.death_date, person2.death_date),
            birth_place=self.compare_places(person1.birth_place, person2.birth_place),
            death_place=self.compare_places(person1.death_place, person2.death_place),
            relationships=self.relationship_overlap(person1, person2),
            gender_conflict=self.gender_conflict(person1, person2),
            directly_related=self.directly_related(person1, person2),
        )

    # ========== Names ==========

    def score_names(self, person1: Person, person2: Person) -> Optional[float]:
        """Best similarity over every pair of name variants."""
        best = None
        for given1, surname1 in person1.name_variants():
            for given2, surname2 in person2.name_variants():
                score = self.compare_full_names(given1, surname1, given2, surname2)
                if score is not None and (best is None or score > best):
                    best = score
        return best

    def compare_full_names(self, given1: str, surname1: str,
                           given2: str, surname2: str) -> Optional[float]:
        given1 = self.normalize_name_for_matching(given1)
        given2 = self.normalize_name_for_matching(given2)
        surname1 = self.normalize_name_for_matching(surname1)
        surname2 = self.normalize_name_for_matching(surname2)

        scores = []
        if given1 and given2:
            scores.append(self.compare_given_names(given1, given2))
        if surname1 and surname2:
            scores.append(self.compare_surnames(surname1, surname2))
        if not scores:
            return None

        combined = sum(scores) / len(scores)

        # Catches swapped given name and surname
        full1 = f"{given1} {surname1}".strip()
        full2 = f"{given2} {surname2}".strip()
        combined = max(combined, fuzz.token_sort_ratio(full1, full2) / 100.0)

        return min(combined, 1.0)

    def compare_given_names(self, given1: str, given2: str) -> float:
        """
        Compare two normalized given names.

        Variants from the reference table (Bill/William, Johann/John) and
        names that sound alike score at least GIVEN_VARIANT_SCORE.
        """
        if given1 == given2:
            return 1.0

        score = fuzz.ratio(given1, given2) / 100.0

        first1 = given1.split()[0]
        first2 = given2.split()[0]
        if (self.reference.are_equivalent_given_names(given1, given2)
                or self.reference.are_equivalent_given_names(first1, first2)
                or self._sounds_alike(given1, given2)):
            score = max(score, self.GIVEN_VARIANT_SCORE)

        return score

    def compare_surnames(self, surname1: str, surname2: str) -> float:
        if surname1 == surname2:
            return 1.0

        score = fuzz.ratio(surname1, surname2) / 100.0
        if self._sounds_alike(surname1, surname2):
            score = max(score, self.SURNAME_PHONETIC_SCORE)
        return score

    def _sounds_alike(self, text1: str, text2: str) -> bool:
        code1 = self.get_metaphone(text1)
        code2 = self.get_metaphone(text2)
        return bool(code1) and code1 == code2

    @staticmethod
    def normalize_name_for_matching(name: Optional[str]) -> str:
        """
        Normalize a name for matching by removing honorifics and punctuation.

        Args:
            name: Name to normalize

        Returns:
            Lower-case name, empty string if nothing remains
        """
        if not name:
            return ""

        normalized = name.lower().strip()
        for char in ['.', ',', '/', '\\', '(', ')', '[', ']', '"']:
            normalized = normalized.replace(char, ' ')

        parts = [
            part for part in normalized.split()
            if part not in SimilarityEvaluator.HONORIFIC_PREFIXES
            and part not in SimilarityEvaluator.HONORIFIC_SUFFIXES
        ]
        return ' '.join(parts)

    @staticmethod
    def get_metaphone(text: str) -> str:
        """
        Get Metaphone phonetic encoding of text.

        Accents are folded to ASCII first; anything non-alphabetic is dropped.

        Args:
            text: Text to encode

        Returns:
            Metaphone code, empty if nothing encodable remains
        """
        if not text:
            return ""
        folded = unicodedata.normalize('NFKD', text)
        letters = ''.join(c for c in folded if c.isascii() and c.isalpha())
        if not letters:
            return ""
        return phonetics.metaphone(letters)

    # ========== Dates ==========

    def compare_dates(self, date1: Optional[str], date2: Optional[str]) -> Optional[float]:
        """
        Compare two partial dates.

        Returns:
            1.0 for the same full date, 0.9 for compatible partial dates,
            0.8 for the same year, 0.6 within 2 years, 0.3 within 5 years,
            otherwise 0.0. Approximate dates never score above 0.9.
            None when either date is missing or unparseable.
        """
        parsed1 = parse_date(date1)
        parsed2 = parse_date(date2)
        if parsed1 is None or parsed2 is None:
            return None

        if parsed1.parts() == parsed2.parts() and parsed1.is_full:
            score = 1.0
        elif self._compatible(parsed1.parts(), parsed2.parts()):
            score = 0.9
        else:
            diff = abs(parsed1.year - parsed2.year)
            if diff == 0:
                score = 0.8
            elif diff <= 2:
                score = 0.6
            elif diff <= 5:
                score = 0.3
            else:
                score = 0.0

        if parsed1.is_approximate or parsed2.is_approximate:
            score = min(score, 0.9)

        return score

    @staticmethod
    def _compatible(parts1: Tuple, parts2: Tuple) -> bool:
        """True when every component known on both sides agrees."""
        for value1, value2 in zip(parts1, parts2):
            if value1 is not None and value2 is not None and value1 != value2:
                return False
        return True

    # ========== Places ==========

    def compare_places(self, place1: Optional[str], place2: Optional[str]) -> Optional[float]:
        """Compare two place names using normalized and fuzzy matching."""
        norm1 = self.normalize_place(place1)
        norm2 = self.normalize_place(place2)
        if not norm1 or not norm2:
            return None

        if norm1 == norm2:
            return 1.0

        score = fuzz.token_sort_ratio(norm1, norm2) / 100.0

        locality1 = self.normalize_place(place1.split(',')[0])
        locality2 = self.normalize_place(place2.split(',')[0])
        if locality1 and locality1 == locality2:
            score = max(score, self.PLACE_LOCALITY_SCORE)

        return min(score, 1.0)

    @staticmethod
    def normalize_place(place: Optional[str]) -> str:
        if not place:
            return ""
        text = re.sub(r'[^\w\s]', ' ', place.lower())
        return ' '.join(text.split())

    # ========== Relationships ==========

    def relationship_overlap(self, person1: Person, person2: Person) -> Optional[float]:
        """
        Jaccard overlap of the relatives two persons point at.

        Edges between the two persons themselves are ignored. None unless
        both persons have at least one parent, child or spouse edge.
        """
        keys1 = self._relative_keys(person1, person2.id)
        keys2 = self._relative_keys(person2, person1.id)
        if not keys1 or not keys2:
            return None
        return len(keys1 & keys2) / len(keys1 | keys2)

    def _relative_keys(self, person: Person, exclude_id: str) -> Set[Tuple[str, str, str]]:
        return {
            edge.key_for(person.id)
            for edge in person.edges_of_type(*self.RELATIONSHIP_OVERLAP_TYPES)
            if edge.other(person.id) != exclude_id
        }

    # ========== Conflicts ==========

    @staticmethod
    def gender_conflict(person1: Person, person2: Person) -> bool:
        """True when both genders are known and differ."""
        gender1 = (person1.gender or '').strip().upper()[:1]
        gender2 = (person2.gender or '').strip().upper()[:1]
        if gender1 not in ('M', 'F') or gender2 not in ('M', 'F'):
            return False
        return gender1 != gender2

    @staticmethod
    def directly_related(person1: Person, person2: Person) -> bool:
        """True when any relationship edge joins the two persons."""
        for edge in list(person1.relationships) + list(person2.relationships):
            if {edge.from_person_id, edge.to_person_id} == {person1.id, person2.id}:
                return True
        return False
