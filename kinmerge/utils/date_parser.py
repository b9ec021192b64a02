"""
Partial date parsing for person records.

Person dates arrive from forms, GEDCOM imports and CSV imports, so they may
be ISO strings ("1950-01-01", "1950-01", "1950"), GEDCOM style strings
("1 JAN 1950", "JAN 1950") and may carry an approximation modifier
("ABT 1950", "circa 1950").
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class DateModifier(Enum):
    """Date qualifiers that affect how exact a date is."""
    EXACT = ""
    ABOUT = "ABT"
    ESTIMATED = "EST"
    CALCULATED = "CAL"
    BEFORE = "BEF"
    AFTER = "AFT"


@dataclass(frozen=True)
class PartialDate:
    """A date with optional month and day."""
    year: int
    month: Optional[int] = None
    day: Optional[int] = None
    modifier: DateModifier = DateModifier.EXACT

    @property
    def is_full(self) -> bool:
        return self.month is not None and self.day is not None

    @property
    def is_approximate(self) -> bool:
        return self.modifier is not DateModifier.EXACT

    def fractional_year(self) -> float:
        """Approximate position on the time line, in years."""
        value = float(self.year)
        if self.month:
            value += (self.month - 1) / 12.0
        if self.day:
            value += (self.day - 1) / 365.25
        return value

    def parts(self) -> Tuple[int, Optional[int], Optional[int]]:
        return (self.year, self.month, self.day)


MODIFIERS = {
    'ABT': DateModifier.ABOUT,
    'ABOUT': DateModifier.ABOUT,
    'CIRCA': DateModifier.ABOUT,
    'CA': DateModifier.ABOUT,
    'C': DateModifier.ABOUT,
    'EST': DateModifier.ESTIMATED,
    'CAL': DateModifier.CALCULATED,
    'BEF': DateModifier.BEFORE,
    'BEFORE': DateModifier.BEFORE,
    'AFT': DateModifier.AFTER,
    'AFTER': DateModifier.AFTER,
}

MONTHS = {
    'JAN': 1, 'JANUARY': 1,
    'FEB': 2, 'FEBRUARY': 2,
    'MAR': 3, 'MARCH': 3,
    'APR': 4, 'APRIL': 4,
    'MAY': 5,
    'JUN': 6, 'JUNE': 6,
    'JUL': 7, 'JULY': 7,
    'AUG': 8, 'AUGUST': 8,
    'SEP': 9, 'SEPT': 9, 'SEPTEMBER': 9,
    'OCT': 10, 'OCTOBER': 10,
    'NOV': 11, 'NOVEMBER': 11,
    'DEC': 12, 'DECEMBER': 12,
}

_ISO_RE = re.compile(r'^(\d{4})(?:-(\d{1,2})(?:-(\d{1,2}))?)?(?:[T ].*)?$')


def parse_date(date_str: Optional[str]) -> Optional[PartialDate]:
    """Parse a person date into a PartialDate.

    Args:
        date_str: Raw date string, possibly empty

    Returns:
        PartialDate, or None if the string is empty or unparseable
    """
    if not date_str or not date_str.strip():
        return None

    text = date_str.strip().upper().replace('.', ' ')

    modifier = DateModifier.EXACT
    head, _, rest = text.partition(' ')
    if head in MODIFIERS and rest:
        modifier = MODIFIERS[head]
        text = rest.strip()

    iso = _ISO_RE.match(text)
    if iso:
        year = int(iso.group(1))
        month = int(iso.group(2)) if iso.group(2) else None
        day = int(iso.group(3)) if iso.group(3) else None
        return _build(year, month, day, modifier)

    year = month = day = None
    for token in text.replace(',', ' ').replace('/', ' ').split():
        if token in MONTHS:
            month = MONTHS[token]
        elif token.isdigit() and len(token) == 4:
            year = int(token)
        elif token.isdigit() and len(token) <= 2:
            day = int(token)

    if year is None:
        return None
    if month is None:
        day = None
    return _build(year, month, day, modifier)


def _build(year: int, month: Optional[int], day: Optional[int],
           modifier: DateModifier) -> Optional[PartialDate]:
    if month is not None and not 1 <= month <= 12:
        return None
    if day is not None and not 1 <= day <= 31:
        return None
    return PartialDate(year=year, month=month, day=day, modifier=modifier)


def date_specificity(date_str: Optional[str]) -> int:
    """Calculate date specificity score.

    Returns:
        3 = full date (day, month, year)
        2 = month and year
        1 = year only
        0 = invalid/empty
    """
    parsed = parse_date(date_str)
    if parsed is None:
        return 0
    if parsed.is_full:
        return 3
    if parsed.month is not None:
        return 2
    return 1
