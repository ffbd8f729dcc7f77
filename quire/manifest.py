from __future__ import annotations

import urllib.parse
from typing import Iterable, Iterator, Optional

from .models import ManifestEntry, MediaTypeFilter, TraversalMode
from .paths import resolve_path


class PackageIndex:
    """Manifest entries keyed by id (declaration order) and by canonical href."""

    def __init__(self, entries: Iterable[ManifestEntry] = ()) -> None:
        self._by_id: dict[str, ManifestEntry] = {}
        self._by_href: dict[str, ManifestEntry] = {}
        for entry in entries:
            previous = self._by_id.get(entry.id)
            if previous is not None and self._by_href.get(previous.href) is previous:
                del self._by_href[previous.href]
            self._by_id[entry.id] = entry
            # Later declarations win on href collisions.
            self._by_href[entry.href] = entry

    @classmethod
    def build(
        cls,
        items: Iterable[tuple[str, str, str]],
        base_dir: str,
        mode: TraversalMode = TraversalMode.PRESERVE,
    ) -> "PackageIndex":
        entries: list[ManifestEntry] = []
        for item_id, raw_href, media_type in items:
            href = resolve_path(base_dir, urllib.parse.unquote(raw_href or ""), mode=mode)
            entries.append(ManifestEntry(id=item_id, href=href, media_type=media_type))
        return cls(entries)

    def lookup_by_id(self, item_id: str) -> Optional[ManifestEntry]:
        return self._by_id.get(item_id)

    def lookup_by_href(self, href: str) -> Optional[ManifestEntry]:
        return self._by_href.get(href)

    def filter_by_media_type(self, selection: MediaTypeFilter) -> list[ManifestEntry]:
        return [entry for entry in self._by_id.values() if selection.matches(entry.media_type)]

    def entries(self) -> list[ManifestEntry]:
        return list(self._by_id.values())

    def hrefs(self) -> list[str]:
        return [entry.href for entry in self._by_id.values()]

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._by_id

    def __iter__(self) -> Iterator[ManifestEntry]:
        return iter(list(self._by_id.values()))

    def __len__(self) -> int:
        return len(self._by_id)
