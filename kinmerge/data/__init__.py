"""Reference data for name matching."""

from .reference_loader import reference_data, ReferenceDataLoader, GivenNameGroup

__all__ = ['reference_data', 'ReferenceDataLoader', 'GivenNameGroup']
