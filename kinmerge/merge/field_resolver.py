"""
Field resolution for merging duplicate persons.

Applies operator choices (keep winner, keep loser, union) to the mergeable
fields and suggests choices for a merge preview based on data
completeness and specificity.
"""

from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from ..core.exceptions import ValidationError
from ..core.models import (
    MERGEABLE_FIELDS,
    MULTI_VALUED_FIELDS,
    FieldDecision,
    FieldResolution,
    Person,
)
from ..utils.date_parser import date_specificity

DATE_FIELDS = ('birth_date', 'death_date')
PLACE_FIELDS = ('birth_place', 'death_place')


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ''
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def _union(first: List[str], second: List[str]) -> List[str]:
    """Ordered union, case-insensitive, first list wins on ties."""
    seen = set()
    result = []
    for item in list(first) + list(second):
        key = item.strip().lower()
        if key and key not in seen:
            seen.add(key)
            result.append(item)
    return result


class FieldResolver:
    """
    Resolves mergeable fields between a winner and a loser.

    Defaults when the operator gives no resolution for a field:
    1. Scalar fields keep the winner's value unless it is empty
    2. Multi-valued fields take the union of both records
    """

    def parse_resolutions(
        self,
        raw: Optional[Mapping[str, Union[str, FieldResolution]]]
    ) -> Dict[str, FieldResolution]:
        """
        Validate operator-supplied resolutions.

        Args:
            raw: Field name to resolution (enum or its string value)

        Returns:
            Field name to FieldResolution

        Raises:
            ValidationError: Unknown field or resolution, or union on a
                scalar field
        """
        resolutions = {}
        for field_name, value in (raw or {}).items():
            if field_name not in MERGEABLE_FIELDS:
                raise ValidationError(f"Field cannot be resolved: {field_name}")
            try:
                resolution = value if isinstance(value, FieldResolution) else FieldResolution(value)
            except ValueError:
                raise ValidationError(f"Unknown resolution for {field_name}: {value}") from None
            if resolution is FieldResolution.UNION and field_name not in MULTI_VALUED_FIELDS:
                raise ValidationError(f"Union is only valid for multi-valued fields, not {field_name}")
            resolutions[field_name] = resolution
        return resolutions

    def resolve(
        self,
        winner: Person,
        loser: Person,
        resolutions: Dict[str, FieldResolution]
    ) -> Tuple[Dict[str, Any], List[FieldDecision]]:
        """
        Compute the winner's post-merge field values.

        Args:
            winner: Surviving person
            loser: Person being merged away
            resolutions: Validated resolutions from parse_resolutions()

        Returns:
            (updates, decisions): the winner fields to overwrite, and one
            decision for every field that differed or changed
        """
        updates = {}
        decisions = []

        for field_name in MERGEABLE_FIELDS:
            winner_value = winner.get_field(field_name)
            loser_value = loser.get_field(field_name)

            if field_name in resolutions:
                decision = resolutions[field_name]
                reason = 'Operator choice'
            else:
                decision, reason = self._default_decision(field_name, winner_value, loser_value)

            chosen = self._apply(field_name, decision, winner, loser)

            if chosen != winner_value:
                updates[field_name] = chosen
            if chosen != winner_value or winner_value != loser_value:
                decisions.append(FieldDecision(
                    field=field_name,
                    winner_value=winner_value,
                    loser_value=loser_value,
                    chosen=chosen,
                    decision=decision,
                    reason=reason,
                ))

        return updates, decisions

    def _default_decision(self, field_name: str, winner_value: Any,
                          loser_value: Any) -> Tuple[FieldResolution, str]:
        if field_name in MULTI_VALUED_FIELDS:
            return FieldResolution.UNION, 'Multi-valued fields are combined'
        if _is_empty(winner_value) and not _is_empty(loser_value):
            return FieldResolution.KEEP_LOSER, 'Winner value was empty'
        return FieldResolution.KEEP_WINNER, 'Winner value kept'

    def _apply(self, field_name: str, decision: FieldResolution,
               winner: Person, loser: Person) -> Any:
        if decision is FieldResolution.KEEP_WINNER:
            return winner.get_field(field_name)
        if decision is FieldResolution.KEEP_LOSER:
            return loser.get_field(field_name)

        combined = _union(winner.get_field(field_name), loser.get_field(field_name))
        if field_name == 'alternate_names':
            # The loser's own name survives as an alternate of the winner
            loser_name = loser.full_name
            if loser_name and loser_name.lower() != winner.full_name.lower():
                combined = _union(combined, [loser_name])
        return combined

    # ========== Suggestions ==========

    def suggest(self, winner: Person, loser: Person) -> List[FieldDecision]:
        """
        Suggest a resolution for every field whose values differ.

        Strategy:
        - Empty or unknown values lose
        - More specific dates win
        - More detailed places win
        - Otherwise keep the winner
        """
        suggestions = []
        for field_name in MERGEABLE_FIELDS:
            winner_value = winner.get_field(field_name)
            loser_value = loser.get_field(field_name)
            if winner_value == loser_value:
                continue

            if field_name in MULTI_VALUED_FIELDS:
                decision, reason = FieldResolution.UNION, 'Multi-valued fields are combined'
            elif field_name in DATE_FIELDS:
                decision, reason = self._suggest_date(winner_value, loser_value)
            elif field_name in PLACE_FIELDS:
                decision, reason = self._suggest_place(winner_value, loser_value)
            elif field_name == 'gender':
                decision, reason = self._suggest_gender(winner_value, loser_value)
            else:
                decision, reason = self._default_decision(field_name, winner_value, loser_value)

            suggestions.append(FieldDecision(
                field=field_name,
                winner_value=winner_value,
                loser_value=loser_value,
                chosen=self._apply(field_name, decision, winner, loser),
                decision=decision,
                reason=reason,
            ))
        return suggestions

    def _suggest_date(self, date1: Optional[str],
                      date2: Optional[str]) -> Tuple[FieldResolution, str]:
        specificity1 = date_specificity(date1)
        specificity2 = date_specificity(date2)

        if specificity2 > specificity1:
            if specificity1 == 0:
                return FieldResolution.KEEP_LOSER, 'Winner date was empty'
            return FieldResolution.KEEP_LOSER, 'Loser date more specific'
        if specificity1 > specificity2:
            return FieldResolution.KEEP_WINNER, 'Winner date more specific'
        return FieldResolution.KEEP_WINNER, 'Dates differ, manual review recommended'

    def _suggest_place(self, place1: Optional[str],
                       place2: Optional[str]) -> Tuple[FieldResolution, str]:
        if _is_empty(place1):
            return FieldResolution.KEEP_LOSER, 'Winner place was empty'
        if _is_empty(place2):
            return FieldResolution.KEEP_WINNER, 'Loser place was empty'

        components1 = len([c for c in place1.split(',') if c.strip()])
        components2 = len([c for c in place2.split(',') if c.strip()])

        if components2 > components1:
            return FieldResolution.KEEP_LOSER, 'Loser place more detailed'
        if components1 > components2:
            return FieldResolution.KEEP_WINNER, 'Winner place more detailed'
        if place1.lower() in place2.lower():
            return FieldResolution.KEEP_LOSER, 'Loser place contains winner place'
        return FieldResolution.KEEP_WINNER, 'Places differ, keeping winner'

    def _suggest_gender(self, gender1: Optional[str],
                        gender2: Optional[str]) -> Tuple[FieldResolution, str]:
        g1 = (gender1 or 'U').upper()
        g2 = (gender2 or 'U').upper()
        if g1 == 'U' and g2 != 'U':
            return FieldResolution.KEEP_LOSER, 'Winner gender was unknown'
        if g1 != 'U' and g2 != 'U' and g1 != g2:
            return FieldResolution.KEEP_WINNER, 'Gender conflict - manual review required!'
        return FieldResolution.KEEP_WINNER, 'Winner value kept'
