"""
Atomic merge of a duplicate person into a surviving person.

A merge snapshots both persons and the loser's dependent rows, applies
field resolutions to the winner, repoints every dependent table, turns the
loser into a tombstone, writes the history entry and settles the
candidate, all in one transaction.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Optional, Tuple, Union

from ..config import DedupeConfig, default_config
from ..candidates.store import CandidateStore
from ..core.exceptions import (
    ConflictError,
    NotFoundError,
    ScopeError,
    ValidationError,
)
from ..core.models import (
    CandidateStatus,
    DuplicateCandidate,
    FieldResolution,
    MergeHistoryEntry,
    MergePreview,
    MergeResult,
    Person,
)
from ..storage.database import FamilyDatabase, new_id
from ..utils.timestamps import from_iso, to_iso
from .field_resolver import FieldResolver
from .history import MergeHistory
from .locks import PersonLockManager
from .registry import DependentTableRegistry, default_registry

logger = logging.getLogger(__name__)


@dataclass
class MergeRequest:
    """
    A request to merge two persons.

    Either candidate_id or both winner_id and loser_id identify the pair.
    With a candidate, winner_id or loser_id may pick the survivor; otherwise
    the older record survives.
    """
    actor_id: str
    candidate_id: Optional[str] = None
    winner_id: Optional[str] = None
    loser_id: Optional[str] = None
    field_resolutions: Dict[str, Union[str, FieldResolution]] = field(default_factory=dict)
    reason: Optional[str] = None

    def validate(self):
        if not self.actor_id or not str(self.actor_id).strip():
            raise ValidationError("actor_id is required")
        if not isinstance(self.field_resolutions, dict):
            raise ValidationError("field_resolutions must be a mapping of field to resolution")
        if self.candidate_id is None and not (self.winner_id and self.loser_id):
            raise ValidationError("Either candidate_id or both winner_id and loser_id are required")
        if self.winner_id and self.winner_id == self.loser_id:
            raise ValidationError("A person cannot be merged into itself")


class MergeExecutor:
    """
    Merges, previews and undoes person merges.

    Merge Process:
    1. Snapshot winner, loser and every dependent row of the loser
    2. Apply field resolutions to the winner
    3. Repoint every registered dependent table
    4. Tombstone the loser and redirect older tombstones to the winner
    5. Write the merge history entry
    6. Mark the originating candidate merged
    """

    def __init__(self, db: FamilyDatabase,
                 registry: Optional[DependentTableRegistry] = None,
                 store: Optional[CandidateStore] = None,
                 history: Optional[MergeHistory] = None,
                 locks: Optional[PersonLockManager] = None,
                 config: Optional[DedupeConfig] = None):
        self.db = db
        self.config = config or default_config
        self.registry = registry or default_registry(db)
        self.store = store or CandidateStore(db)
        self.history = history or MergeHistory(db)
        self.locks = locks or PersonLockManager(self.config.lock_wait_seconds)
        self.resolver = FieldResolver()

    def merge(self, request: MergeRequest) -> MergeResult:
        """
        Merge the loser into the winner.

        Args:
            request: Pair, field resolutions, actor and optional reason

        Returns:
            MergeResult with the history entry id

        Raises:
            ValidationError: Malformed request
            NotFoundError: Candidate or person missing
            ScopeError: Persons belong to different families
            ConflictError: Lock held, or the pair is already merged or dismissed
            IntegrityError: A person reference has no registered handler, or
                survived repointing
        """
        request.validate()
        resolutions = self.resolver.parse_resolutions(request.field_resolutions)

        candidate = None
        if request.candidate_id is not None:
            candidate = self.store.get(request.candidate_id)
            self._check_candidate_open(candidate)
            winner_id, loser_id = self._roles_from_candidate(candidate, request)
        else:
            winner_id, loser_id = request.winner_id, request.loser_id

        with self.locks.hold(winner_id, loser_id):
            with self.db.transaction():
                winner, loser = self._load_pair(winner_id, loser_id)

                if candidate is not None:
                    candidate = self.store.get(candidate.id)
                    self._check_candidate_open(candidate)
                    if candidate.family_id != winner.family_id:
                        raise ScopeError(f"Candidate {candidate.id} belongs to another family")
                else:
                    candidate = self.store.find_pending(winner.family_id, winner_id, loser_id)

                self.registry.verify_closed_world()

                winner_snapshot = winner.to_dict()
                loser_snapshot = loser.to_dict()
                dependent_snapshot = self.registry.snapshot(loser_id)

                updates, decisions = self.resolver.resolve(winner, loser, resolutions)
                self.db.update_person_fields(winner_id, updates)

                repoint_results = self.registry.repoint_all(loser_id, winner_id)

                self.db.tombstone_person(loser_id, winner_id)
                redirected = self.db.redirect_tombstones(loser_id, winner_id)

                now = self.db.clock()
                entry = MergeHistoryEntry(
                    id=new_id(),
                    family_id=winner.family_id,
                    winner_id=winner_id,
                    loser_id=loser_id,
                    actor_id=request.actor_id,
                    merged_at=to_iso(now),
                    candidate_id=candidate.id if candidate else None,
                    confidence_score=candidate.confidence_score if candidate else None,
                    match_reasons=list(candidate.match_reasons) if candidate else [],
                    reason=request.reason,
                    field_decisions=decisions,
                    winner_snapshot=winner_snapshot,
                    loser_snapshot=loser_snapshot,
                    dependent_snapshot=dependent_snapshot,
                    redirected_tombstones=redirected,
                    repoint_summary={
                        r.table: {'repointed': r.repointed, 'dropped': r.dropped}
                        for r in repoint_results
                    },
                    undo_expires_at=to_iso(now + timedelta(days=self.config.undo_window_days)),
                )
                self.history.record(entry)

                if candidate is not None:
                    self.store.mark_merged(candidate.id, entry.id, request.actor_id)

                self.registry.verify_no_references(loser_id)

        logger.info(
            f"Merged person {loser_id} into {winner_id} by {request.actor_id} (history {entry.id})"
        )
        return MergeResult(
            winner_id=winner_id,
            loser_id=loser_id,
            merge_history_id=entry.id,
            field_decisions=decisions,
            repoint_results=repoint_results,
        )

    def preview(self, winner_id: str, loser_id: str) -> MergePreview:
        """Describe what merging loser into winner would change, without writing."""
        if not winner_id or not loser_id:
            raise ValidationError("winner_id and loser_id are required")
        if winner_id == loser_id:
            raise ValidationError("A person cannot be merged into itself")

        winner, loser = self._load_pair(winner_id, loser_id)
        return MergePreview(
            winner=winner,
            loser=loser,
            suggestions=self.resolver.suggest(winner, loser),
            reference_counts=self.registry.reference_counts(loser_id),
        )

    def undo(self, merge_id: str, actor_id: str) -> MergeHistoryEntry:
        """
        Reverse a merge within the undo window.

        Restores the winner's pre-merge fields, the loser record, every
        snapshotted dependent row and the tombstones that were redirected.
        The history entry is left untouched; the undo is logged beside it.

        Raises:
            NotFoundError: Unknown history entry
            ConflictError: Already undone, window expired, or a later merge
                involved either person
        """
        if not actor_id or not str(actor_id).strip():
            raise ValidationError("actor_id is required")

        entry = self.history.get(merge_id)

        with self.locks.hold(entry.winner_id, entry.loser_id):
            with self.db.transaction():
                entry = self.history.get(merge_id)
                if entry.is_undone:
                    raise ConflictError(f"Merge {merge_id} was already undone")
                if entry.undo_expires_at and self.db.clock() > from_iso(entry.undo_expires_at):
                    raise ConflictError(f"Undo window for merge {merge_id} has expired")
                if self.history.has_later_merge(entry, [entry.winner_id, entry.loser_id]):
                    raise ConflictError(
                        f"A later merge involves {entry.winner_id} or {entry.loser_id}"
                    )

                loser = self.db.get_person(entry.loser_id, load_relationships=False)
                if loser is None or loser.merged_into_id != entry.winner_id:
                    raise ConflictError(f"Person {entry.loser_id} is no longer merged into {entry.winner_id}")

                self.registry.restore(entry.dependent_snapshot)
                self.db.restore_person(entry.winner_snapshot)
                self.db.restore_person(entry.loser_snapshot)
                self.db.set_merged_into(entry.redirected_tombstones, entry.loser_id)
                self.history.record_undo(merge_id, actor_id)

        logger.info(f"Undid merge {merge_id} by {actor_id}")
        return self.history.get(merge_id)

    def resolve_person(self, person_id: str) -> str:
        """Return the live id for a person, following a tombstone one hop."""
        person = self.db.get_person(person_id, load_relationships=False)
        if person is None:
            raise NotFoundError(f"Person not found: {person_id}")
        if person.is_tombstone:
            return person.merged_into_id
        return person.id

    # ========== Helper Methods ==========

    def _load_pair(self, winner_id: str, loser_id: str) -> Tuple[Person, Person]:
        winner = self.db.get_person(winner_id)
        if winner is None:
            raise NotFoundError(f"Person not found: {winner_id}")
        loser = self.db.get_person(loser_id)
        if loser is None:
            raise NotFoundError(f"Person not found: {loser_id}")

        if winner.family_id != loser.family_id:
            raise ScopeError(f"Persons {winner_id} and {loser_id} belong to different families")
        if not loser.is_active:
            if loser.merged_into_id == winner_id:
                raise ConflictError(f"Person {loser_id} is already merged into {winner_id}")
            raise ConflictError(f"Person {loser_id} is a tombstone")
        if not winner.is_active:
            raise ConflictError(f"Person {winner_id} is a tombstone")

        return winner, loser

    @staticmethod
    def _check_candidate_open(candidate: DuplicateCandidate):
        if candidate.status is CandidateStatus.MERGED:
            raise ConflictError(
                f"Candidate {candidate.id} is already merged (history {candidate.merge_id})"
            )
        if candidate.status is CandidateStatus.DISMISSED:
            raise ConflictError(f"Candidate {candidate.id} was dismissed")

    def _roles_from_candidate(self, candidate: DuplicateCandidate,
                              request: MergeRequest) -> Tuple[str, str]:
        if request.winner_id or request.loser_id:
            winner_id = request.winner_id or candidate.other(request.loser_id)
            loser_id = request.loser_id or candidate.other(winner_id)
            if {winner_id, loser_id} != set(candidate.pair):
                raise ValidationError(f"Winner and loser must be the persons of candidate {candidate.id}")
            return winner_id, loser_id

        # Older record survives
        person_a = self.db.get_person(candidate.person_a_id, load_relationships=False)
        person_b = self.db.get_person(candidate.person_b_id, load_relationships=False)
        if person_a is None or person_b is None:
            return candidate.person_a_id, candidate.person_b_id
        if (person_b.created_at or '', person_b.id) < (person_a.created_at or '', person_a.id):
            return person_b.id, person_a.id
        return person_a.id, person_b.id
