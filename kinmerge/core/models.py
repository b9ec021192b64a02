"""Data models for persons, duplicate candidates and merge records."""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# Fields an operator can resolve during a merge
SCALAR_FIELDS = (
    'given_name',
    'surname',
    'nickname',
    'gender',
    'birth_date',
    'birth_place',
    'death_date',
    'death_place',
    'bio',
)
MULTI_VALUED_FIELDS = ('alternate_names', 'tags')
MERGEABLE_FIELDS = SCALAR_FIELDS + MULTI_VALUED_FIELDS

RELATIONSHIP_TYPES = ('parent', 'child', 'spouse', 'sibling')
SYMMETRIC_RELATIONSHIP_TYPES = frozenset({'spouse', 'sibling'})


class CandidateStatus(Enum):
    """Lifecycle state of a duplicate candidate."""
    PENDING = "pending"
    DISMISSED = "dismissed"
    MERGED = "merged"

    @property
    def is_terminal(self) -> bool:
        return self is not CandidateStatus.PENDING


class FieldResolution(Enum):
    """How a conflicting field is resolved when merging."""
    KEEP_WINNER = "keep_winner"
    KEEP_LOSER = "keep_loser"
    UNION = "union"  # multi-valued fields only


@dataclass(frozen=True)
class RelationshipEdge:
    """A row of the relationships table.

    ``from_person_id`` is the ``relationship_type`` of ``to_person_id``:
    a 'parent' edge from A to B means A is a parent of B.
    """
    relationship_id: str
    relationship_type: str
    from_person_id: str
    to_person_id: str

    def other(self, person_id: str) -> str:
        """Return the id at the opposite end of the edge from person_id."""
        return self.to_person_id if self.from_person_id == person_id else self.from_person_id

    def key_for(self, person_id: str) -> Tuple[str, str, str]:
        """Direction-aware key of this edge as seen from person_id.

        Two persons holding the same key point at the same third party
        in the same role.
        """
        rel_type = self.relationship_type
        outgoing = self.from_person_id == person_id

        if rel_type in SYMMETRIC_RELATIONSHIP_TYPES:
            return ('sym', rel_type, self.other(person_id))

        # child X->P is the same fact as parent P->X
        if rel_type == 'child':
            rel_type = 'parent'
            outgoing = not outgoing

        return ('out' if outgoing else 'in', rel_type, self.other(person_id))

    def canonical_key(self) -> Tuple[str, str, str]:
        """Order-independent identity of the fact this edge records."""
        if self.relationship_type in SYMMETRIC_RELATIONSHIP_TYPES:
            low, high = sorted((self.from_person_id, self.to_person_id))
            return (low, high, self.relationship_type)
        if self.relationship_type == 'child':
            return (self.to_person_id, self.from_person_id, 'parent')
        return (self.from_person_id, self.to_person_id, self.relationship_type)


@dataclass
class Person:
    """A person record in a family's tree.

    Attributes:
        id: Unique identifier (uuid text)
        family_id: Owning family scope
        alternate_names: Additional full names the person is known by
        tags: Free-text labels
        is_active: False once the record has been merged away
        merged_into_id: Winner id when this record is a tombstone
        relationships: Edges touching this person, loaded from the
            relationships table
    """

    id: str
    family_id: str
    given_name: Optional[str] = None
    surname: Optional[str] = None
    nickname: Optional[str] = None
    gender: Optional[str] = None
    birth_date: Optional[str] = None
    birth_place: Optional[str] = None
    death_date: Optional[str] = None
    death_place: Optional[str] = None
    bio: Optional[str] = None
    alternate_names: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    is_active: bool = True
    merged_into_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    relationships: List[RelationshipEdge] = field(default_factory=list)

    def __str__(self) -> str:
        name = self.full_name or "Unknown"
        if self.birth_date:
            return f"{name} (b. {self.birth_date})"
        return name

    @property
    def full_name(self) -> str:
        parts = [p for p in (self.given_name, self.surname) if p]
        return ' '.join(parts)

    @property
    def is_tombstone(self) -> bool:
        return not self.is_active and self.merged_into_id is not None

    def name_variants(self) -> List[Tuple[str, str]]:
        """Return (given, surname) pairs for every name this person goes by.

        The primary name comes first, followed by the nickname used as a
        given name and then each alternate name split on its last word.
        """
        given = (self.given_name or '').strip()
        surname = (self.surname or '').strip()
        variants = []

        if given or surname:
            variants.append((given, surname))
        if self.nickname and self.nickname.strip():
            variants.append((self.nickname.strip(), surname))

        for alternate in self.alternate_names:
            parts = alternate.split()
            if not parts:
                continue
            if len(parts) == 1:
                variants.append((parts[0], ''))
            else:
                variants.append((' '.join(parts[:-1]), parts[-1]))

        return variants

    def edges_of_type(self, *relationship_types: str) -> List[RelationshipEdge]:
        return [e for e in self.relationships if e.relationship_type in relationship_types]

    def get_field(self, name: str) -> Any:
        if name not in MERGEABLE_FIELDS:
            raise KeyError(name)
        return getattr(self, name)

    def to_dict(self, include_relationships: bool = False) -> Dict[str, Any]:
        """Convert the person to a JSON-safe dictionary.

        Args:
            include_relationships: Also serialise the loaded edges

        Returns:
            Dictionary containing all person data
        """
        data = asdict(self)
        data['alternate_names'] = list(self.alternate_names)
        data['tags'] = list(self.tags)
        if include_relationships:
            data['relationships'] = [asdict(e) for e in self.relationships]
        else:
            data.pop('relationships')
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Person':
        """Create a Person from a dictionary produced by to_dict()."""
        edges = [RelationshipEdge(**e) for e in data.get('relationships', [])]
        return cls(
            id=data['id'],
            family_id=data['family_id'],
            given_name=data.get('given_name'),
            surname=data.get('surname'),
            nickname=data.get('nickname'),
            gender=data.get('gender'),
            birth_date=data.get('birth_date'),
            birth_place=data.get('birth_place'),
            death_date=data.get('death_date'),
            death_place=data.get('death_place'),
            bio=data.get('bio'),
            alternate_names=list(data.get('alternate_names') or []),
            tags=list(data.get('tags') or []),
            is_active=bool(data.get('is_active', True)),
            merged_into_id=data.get('merged_into_id'),
            created_at=data.get('created_at'),
            updated_at=data.get('updated_at'),
            relationships=edges,
        )


@dataclass(frozen=True)
class SimilarityBreakdown:
    """Per-dimension sub-scores between two persons.

    Each score is in [0, 1], or None when the dimension is unknown for at
    least one of the two records.
    """
    name: Optional[float] = None
    birth_date: Optional[float] = None
    death_date: Optional[float] = None
    birth_place: Optional[float] = None
    death_place: Optional[float] = None
    relationships: Optional[float] = None
    gender_conflict: bool = False
    directly_related: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'SimilarityBreakdown':
        if not data:
            return cls()
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class DuplicateCandidate:
    """An unordered pair of persons flagged as a possible duplicate.

    The pair is stored ordered (person_a_id < person_b_id) so that
    uniqueness can be enforced on the columns directly.
    """
    id: str
    family_id: str
    person_a_id: str
    person_b_id: str
    confidence_score: float
    match_reasons: List[str] = field(default_factory=list)
    breakdown: SimilarityBreakdown = field(default_factory=SimilarityBreakdown)
    status: CandidateStatus = CandidateStatus.PENDING
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[str] = None
    merge_id: Optional[str] = None

    @property
    def pair(self) -> Tuple[str, str]:
        return (self.person_a_id, self.person_b_id)

    def involves(self, person_id: str) -> bool:
        return person_id in self.pair

    def other(self, person_id: str) -> str:
        return self.person_b_id if person_id == self.person_a_id else self.person_a_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'family_id': self.family_id,
            'person_a_id': self.person_a_id,
            'person_b_id': self.person_b_id,
            'confidence_score': self.confidence_score,
            'match_reasons': list(self.match_reasons),
            'breakdown': self.breakdown.to_dict(),
            'status': self.status.value,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
            'reviewed_by': self.reviewed_by,
            'reviewed_at': self.reviewed_at,
            'merge_id': self.merge_id,
        }


def ordered_pair(id1: str, id2: str) -> Tuple[str, str]:
    """Return the two ids in storage order (smaller first)."""
    return (id1, id2) if id1 < id2 else (id2, id1)


@dataclass
class FieldDecision:
    """Resolution applied (or suggested) for a single mergeable field."""
    field: str
    winner_value: Any
    loser_value: Any
    chosen: Any
    decision: FieldResolution
    reason: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'field': self.field,
            'winner_value': self.winner_value,
            'loser_value': self.loser_value,
            'chosen': self.chosen,
            'decision': self.decision.value,
            'reason': self.reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FieldDecision':
        return cls(
            field=data['field'],
            winner_value=data.get('winner_value'),
            loser_value=data.get('loser_value'),
            chosen=data.get('chosen'),
            decision=FieldResolution(data['decision']),
            reason=data.get('reason', ''),
        )


@dataclass
class RepointResult:
    """Outcome of one dependent-table handler for one merge."""
    table: str
    repointed: int = 0
    dropped: int = 0

    @property
    def total(self) -> int:
        return self.repointed + self.dropped


@dataclass
class MergeHistoryEntry:
    """Immutable record of a completed merge.

    ``undone_at``/``undone_by`` are read from the separate undo log and are
    never written to the history row itself.
    """
    id: str
    family_id: str
    winner_id: str
    loser_id: str
    actor_id: str
    merged_at: str
    candidate_id: Optional[str] = None
    confidence_score: Optional[float] = None
    match_reasons: List[str] = field(default_factory=list)
    reason: Optional[str] = None
    field_decisions: List[FieldDecision] = field(default_factory=list)
    winner_snapshot: Dict[str, Any] = field(default_factory=dict)
    loser_snapshot: Dict[str, Any] = field(default_factory=dict)
    dependent_snapshot: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    redirected_tombstones: List[str] = field(default_factory=list)
    repoint_summary: Dict[str, Dict[str, int]] = field(default_factory=dict)
    undo_expires_at: Optional[str] = None
    undone_at: Optional[str] = None
    undone_by: Optional[str] = None

    @property
    def is_undone(self) -> bool:
        return self.undone_at is not None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['field_decisions'] = [d.to_dict() for d in self.field_decisions]
        return data


@dataclass
class MergeResult:
    """Result of a successful merge."""
    winner_id: str
    loser_id: str
    merge_history_id: str
    field_decisions: List[FieldDecision] = field(default_factory=list)
    repoint_results: List[RepointResult] = field(default_factory=list)

    def __str__(self) -> str:
        moved = sum(r.repointed for r in self.repoint_results)
        dropped = sum(r.dropped for r in self.repoint_results)
        return (
            f"Merged person {self.loser_id} into {self.winner_id}\n"
            f"  History entry: {self.merge_history_id}\n"
            f"  References repointed: {moved}, duplicates dropped: {dropped}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'winner_id': self.winner_id,
            'loser_id': self.loser_id,
            'merge_history_id': self.merge_history_id,
            'field_decisions': [d.to_dict() for d in self.field_decisions],
            'repoint_results': [asdict(r) for r in self.repoint_results],
        }


@dataclass
class MergePreview:
    """Read-only view of what merging loser into winner would do."""
    winner: Person
    loser: Person
    suggestions: List[FieldDecision] = field(default_factory=list)
    reference_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'winner': self.winner.to_dict(),
            'loser': self.loser.to_dict(),
            'suggestions': [s.to_dict() for s in self.suggestions],
            'reference_counts': dict(self.reference_counts),
        }
