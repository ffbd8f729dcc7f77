from __future__ import annotations


class QuireError(Exception):
    pass


class PackageInvalid(QuireError):
    pass


class MalformedContainer(QuireError):
    pass


class EntryNotFound(QuireError, LookupError):
    pass


class UnsupportedMediaType(QuireError, ValueError):
    pass


class IOFailure(QuireError, OSError):
    pass


class PathTraversalError(QuireError, ValueError):
    """Raised in reject mode when a reference climbs above the package root."""
