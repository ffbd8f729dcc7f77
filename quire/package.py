from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Optional, Union

from .archive import Archive, member_key
from .errors import EntryNotFound, IOFailure, PackageInvalid, UnsupportedMediaType
from .models import ManifestEntry, MediaTypeFilter, MetadataValue, PackageStructure, TocNode, TraversalMode
from .rewrite import decode_document, rewrite_references, sanitize_document
from .structure import load_structure

EPUB_MIMETYPE = "application/epub+zip"
MIMETYPE_MEMBER = "mimetype"
DOCUMENT_MEDIA_TYPES = {"application/xhtml+xml", "text/html"}
CHAPTER_MEDIA_TYPES = DOCUMENT_MEDIA_TYPES | {"image/svg+xml"}

ExtractSelection = Union[MediaTypeFilter, Iterable[str], None]

logger = logging.getLogger("quire.package")


def check_package(epub_file: Path) -> None:
    with Archive.open(epub_file) as archive:
        if not archive.locate(MIMETYPE_MEMBER):
            raise PackageInvalid("The file is not a valid EPUB (mimetype missing).")
        marker = archive.read(MIMETYPE_MEMBER).decode("utf-8", errors="replace")
    if marker.strip().lower() != EPUB_MIMETYPE:
        raise PackageInvalid("The file is not a valid EPUB (mimetype mismatch).")


def _rewrite_extracted_file(
    real_path: Path,
    href: str,
    structure: PackageStructure,
    image_root: Optional[str],
    link_root: Optional[str],
    mode: TraversalMode,
) -> None:
    # surrogateescape keeps undecodable bytes intact across the round trip.
    try:
        with open(real_path, "r", encoding="utf-8", errors="surrogateescape", newline="") as handle:
            text = handle.read()
        rewritten = rewrite_references(text, href, structure.index, image_root, link_root, mode)
        if rewritten == text:
            return
        with open(real_path, "w", encoding="utf-8", errors="surrogateescape", newline="") as handle:
            handle.write(rewritten)
    except OSError as exc:
        raise IOFailure(f"Failed rewriting extracted file {real_path}: {exc}") from exc


class EpubPackage:
    """One EPUB file on disk.

    The validity marker is checked on construction. Structure is loaded by
    :meth:`parse` (or lazily on first use) and every read opens and closes
    the archive on its own.
    """

    def __init__(
        self,
        path: Union[Path, str],
        image_root: Optional[str] = None,
        link_root: Optional[str] = None,
        *,
        mode: TraversalMode = TraversalMode.PRESERVE,
    ) -> None:
        self.path = Path(path)
        self.image_root = image_root
        self.link_root = link_root
        self.mode = mode
        self._structure: Optional[PackageStructure] = None
        check_package(self.path)

    def parse(self) -> PackageStructure:
        with Archive.open(self.path) as archive:
            structure = load_structure(archive, self.mode)
        self._structure = structure
        return structure

    @property
    def structure(self) -> PackageStructure:
        if self._structure is None:
            return self.parse()
        return self._structure

    def _read_member(self, href: str) -> bytes:
        with Archive.open(self.path) as archive:
            return archive.read(href)

    def _require_entry(self, item_id: str, kind: str = "Chapter") -> ManifestEntry:
        entry = self.structure.index.lookup_by_id(item_id)
        if entry is None:
            raise EntryNotFound(f"{kind} ID not found in manifest: {item_id}")
        return entry

    def _require_href(self, href: str) -> ManifestEntry:
        entry = self.structure.index.lookup_by_href(href)
        if entry is None:
            raise EntryNotFound(f"No manifest entry for {href}")
        return entry

    def get_manifest(self) -> list[ManifestEntry]:
        return self.structure.index.entries()

    def get_manifest_item(self, item_id: str) -> Optional[ManifestEntry]:
        return self.structure.index.lookup_by_id(item_id)

    def get_manifest_by_type(self, selection: MediaTypeFilter) -> list[ManifestEntry]:
        return self.structure.index.filter_by_media_type(selection)

    def get_spine(self) -> list[str]:
        return list(self.structure.reading_order)

    def reading_order_entries(self) -> list[ManifestEntry]:
        return [self._require_entry(item_id, kind="Spine item") for item_id in self.structure.reading_order]

    def get_toc(self) -> list[TocNode]:
        return list(self.structure.toc)

    def get_metadata(self) -> dict[str, MetadataValue]:
        return {key: list(value) if isinstance(value, list) else value for key, value in self.structure.metadata.items()}

    def get_metadata_item(self, name: str) -> Optional[MetadataValue]:
        value = self.structure.metadata.get(name)
        return list(value) if isinstance(value, list) else value

    def get_chapter_raw(self, item_id: str) -> bytes:
        entry = self._require_entry(item_id)
        if entry.media_type not in CHAPTER_MEDIA_TYPES:
            raise UnsupportedMediaType(f"Invalid mime type for chapter: {entry.media_type}")
        return self._read_member(entry.href)

    def get_chapter(self, item_id: str) -> str:
        entry = self._require_entry(item_id)
        text = decode_document(self.get_chapter_raw(item_id))
        return rewrite_references(
            sanitize_document(text),
            entry.href,
            self.structure.index,
            self.image_root,
            self.link_root,
            self.mode,
        )

    def get_chapter_by_href(self, href: str) -> tuple[ManifestEntry, str]:
        entry = self._require_href(href)
        return entry, self.get_chapter(entry.id)

    def get_file(self, item_id: str) -> bytes:
        entry = self._require_entry(item_id, kind="File")
        return self._read_member(entry.href)

    def get_file_by_href(self, href: str) -> tuple[bytes, str]:
        entry = self._require_href(href)
        return self._read_member(entry.href), entry.media_type

    def get_image(self, item_id: str) -> bytes:
        entry = self._require_entry(item_id, kind="Image")
        if not entry.media_type.strip().lower().startswith("image/"):
            raise UnsupportedMediaType(f"Invalid mime type for image: {entry.media_type}")
        return self._read_member(entry.href)

    def extract(self, dest: Union[Path, str], selection: ExtractSelection = None, *, exclude: bool = False) -> list[Path]:
        """Copy package members under ``dest`` and rewrite extracted documents.

        ``selection`` is ``None`` for every archive member, a
        :class:`MediaTypeFilter`, or an iterable of canonical hrefs.
        ``exclude`` keeps the manifest entries *not* selected instead.
        """

        target = Path(dest)
        if not target.is_dir() or not os.access(target, os.W_OK):
            raise IOFailure(f"Invalid or unwritable destination folder: {target}")

        structure = self.structure
        selected: Optional[list[str]] = None
        if selection is not None:
            if isinstance(selection, MediaTypeFilter):
                selected = [entry.href for entry in structure.index.filter_by_media_type(selection)]
            elif isinstance(selection, str):
                raise TypeError("selection must be a MediaTypeFilter or an iterable of hrefs")
            else:
                selected = list(selection)
            if exclude:
                skipped = {member_key(href) for href in selected}
                selected = [href for href in structure.index.hrefs() if member_key(href) not in skipped]

        with Archive.open(self.path) as archive:
            if selected is None:
                written = archive.extract_all(target)
            else:
                written = archive.extract_selected(target, selected)

        rewritten = 0
        for entry in structure.index.entries():
            if entry.media_type not in DOCUMENT_MEDIA_TYPES:
                continue
            key = member_key(entry.href)
            real_path = written.get(key) if key is not None else None
            if real_path is None or not real_path.is_file():
                continue
            _rewrite_extracted_file(real_path, entry.href, structure, self.image_root, self.link_root, self.mode)
            rewritten += 1
        logger.debug("extracted %d members from %s into %s, %d documents rewritten", len(written), self.path, target, rewritten)
        return list(written.values())
