from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    from .manifest import PackageIndex


MetadataValue = Union[str, list[str]]


class TraversalMode(str, enum.Enum):
    # What to do with a ".." that finds nothing left to pop.
    PRESERVE = "preserve"
    CLAMP = "clamp"
    REJECT = "reject"

    @classmethod
    def from_value(cls, raw: Optional[str], default: Optional["TraversalMode"] = None) -> "TraversalMode":
        fallback = default or cls.PRESERVE
        cleaned = (raw or "").strip().lower()
        for mode in cls:
            if mode.value == cleaned:
                return mode
        return fallback


class FilterMode(str, enum.Enum):
    LITERAL = "literal"
    PATTERN = "pattern"


@dataclass(frozen=True)
class MediaTypeFilter:
    """Select manifest entries by media type.

    The selection mode is always explicit: a literal filter compares the whole
    media type string, a pattern filter runs ``re.search`` against it.
    """

    value: str
    mode: FilterMode = FilterMode.LITERAL

    @classmethod
    def literal(cls, value: str) -> "MediaTypeFilter":
        return cls(value=value, mode=FilterMode.LITERAL)

    @classmethod
    def pattern(cls, value: str) -> "MediaTypeFilter":
        re.compile(value)
        return cls(value=value, mode=FilterMode.PATTERN)

    def matches(self, media_type: str) -> bool:
        if self.mode is FilterMode.PATTERN:
            return re.search(self.value, media_type) is not None
        return media_type == self.value


@dataclass(frozen=True)
class ManifestEntry:
    id: str
    href: str
    media_type: str


@dataclass(frozen=True)
class TocNode:
    id: str
    name: str
    file_name: str
    src: str
    fragment: Optional[str] = None
    children: tuple["TocNode", ...] = ()

    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass(frozen=True)
class PackageStructure:
    descriptor_path: str
    base_dir: str
    metadata: dict[str, MetadataValue]
    index: "PackageIndex"
    reading_order: tuple[str, ...] = ()
    toc: tuple[TocNode, ...] = field(default_factory=tuple)


def toc_to_dict(node: TocNode) -> dict:
    return {
        "id": node.id,
        "name": node.name,
        "file_name": node.file_name,
        "src": node.src,
        "fragment": node.fragment,
        "children": [toc_to_dict(child) for child in node.children],
    }


def entry_to_dict(entry: ManifestEntry) -> dict:
    return {"id": entry.id, "href": entry.href, "media_type": entry.media_type}
