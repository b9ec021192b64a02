"""
Error taxonomy for duplicate detection and merge resolution.

Every error raised by the engine derives from KinMergeError so that
surfaces (HTTP API, CLI) can translate them in one place.
"""


class KinMergeError(Exception):
    """Base class for all kinmerge errors."""


class ValidationError(KinMergeError):
    """Malformed candidate or merge request."""


class NotFoundError(KinMergeError):
    """A person, candidate, family or history entry does not exist."""


class ScopeError(KinMergeError):
    """The two persons do not belong to the same family."""


class ConflictError(KinMergeError):
    """A person lock is held, or the pair is already merged or dismissed."""


class IntegrityError(KinMergeError):
    """A person reference was found that no registered handler covers.

    Raised loudly so that a merge never silently leaves dangling rows.
    """
