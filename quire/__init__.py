from __future__ import annotations

from .errors import (
    EntryNotFound,
    IOFailure,
    MalformedContainer,
    PackageInvalid,
    PathTraversalError,
    QuireError,
    UnsupportedMediaType,
)
from .models import FilterMode, ManifestEntry, MediaTypeFilter, PackageStructure, TocNode, TraversalMode
from .package import EpubPackage
from .paths import resolve_path

__all__ = [
    "EntryNotFound",
    "EpubPackage",
    "FilterMode",
    "IOFailure",
    "MalformedContainer",
    "ManifestEntry",
    "MediaTypeFilter",
    "PackageInvalid",
    "PackageStructure",
    "PathTraversalError",
    "QuireError",
    "TocNode",
    "TraversalMode",
    "UnsupportedMediaType",
    "resolve_path",
]
