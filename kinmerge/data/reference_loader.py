"""
Reference data loader for given-name variants.

Loads groups of equivalent given names (nicknames, diminutives and
cross-language forms) used by name matching. A name may belong to more
than one group; "Jack" is both a John and a Jacob.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Set


@dataclass
class GivenNameGroup:
    """A canonical given name with its variants per language."""
    canonical: str
    variants: Dict[str, List[str]] = field(default_factory=dict)

    def get_all_variants(self) -> Set[str]:
        """Get all variants across all languages (normalized to lowercase)."""
        all_variants = {self.canonical.lower()}
        for lang_variants in self.variants.values():
            all_variants.update(v.lower() for v in lang_variants)
        return all_variants


class ReferenceDataLoader:
    """Loads and indexes given-name reference data."""

    _instance = None
    _initialized = False

    def __new__(cls):
        """Singleton pattern to ensure only one instance loads the data."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if not ReferenceDataLoader._initialized:
            self.data_dir = Path(__file__).parent
            self.given_name_groups: List[GivenNameGroup] = []

            # variant -> canonical names of every group containing it
            self._given_lookup: Dict[str, Set[str]] = {}

            self._load_given_names()
            ReferenceDataLoader._initialized = True

    def _load_given_names(self):
        """Load given-name groups from JSON."""
        names_file = self.data_dir / 'given_names.json'

        if not names_file.exists():
            return

        with open(names_file, 'r', encoding='utf-8') as f:
            data = json.load(f)

        for group_data in data.get('groups', []):
            group = GivenNameGroup(
                canonical=group_data['canonical'],
                variants=group_data.get('variants', {}),
            )
            self.given_name_groups.append(group)

            for variant in group.get_all_variants():
                self._given_lookup.setdefault(variant, set()).add(group.canonical)

    def canonical_given_names(self, given: str) -> Set[str]:
        """Return the canonical groups a given name belongs to.

        Args:
            given: Given name in any case (e.g., "Bill")

        Returns:
            Set of canonical names (e.g., {"william"}), empty if unknown
        """
        if not given:
            return set()
        return self._given_lookup.get(given.lower().strip(), set())

    def are_equivalent_given_names(self, given1: str, given2: str) -> bool:
        """Check whether two given names are variants of the same name."""
        if not given1 or not given2:
            return False
        if given1.lower().strip() == given2.lower().strip():
            return True
        return bool(self.canonical_given_names(given1) & self.canonical_given_names(given2))


# Create a singleton instance for easy import
reference_data = ReferenceDataLoader()
