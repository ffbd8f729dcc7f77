from __future__ import annotations

import zipfile
import zlib
from pathlib import Path
from typing import Iterable, Optional

from .errors import EntryNotFound, IOFailure
from .models import TraversalMode
from .paths import resolve_path


def canonical_member(name: str) -> str:
    # Archive member names never legitimately climb out of the archive root.
    return resolve_path("", name or "", mode=TraversalMode.CLAMP)


def member_key(name: str) -> Optional[str]:
    # A name that climbs above the root never matches a member.
    resolved = resolve_path("", name or "")
    if resolved == ".." or resolved.startswith("../"):
        return None
    return resolved


def _member_index(zf: zipfile.ZipFile) -> dict[str, str]:
    mapping: dict[str, str] = {}
    for info in zf.infolist():
        canonical = canonical_member(info.filename)
        if canonical and canonical not in mapping:
            mapping[canonical] = info.filename
    return mapping


class Archive:
    """Scoped read access to a packaged file store.

    Use as a context manager; the underlying zip handle is closed on every
    exit path::

        with Archive.open(path) as archive:
            payload = archive.read("META-INF/container.xml")
    """

    def __init__(self, zf: zipfile.ZipFile, path: Path) -> None:
        self._zf: Optional[zipfile.ZipFile] = zf
        self.path = path
        self._index = _member_index(zf)

    @classmethod
    def open(cls, path: Path | str) -> "Archive":
        epub_file = Path(path)
        try:
            zf = zipfile.ZipFile(epub_file, "r")
        except FileNotFoundError as exc:
            raise IOFailure(f"Failed opening ebook: {epub_file} does not exist") from exc
        except (zipfile.BadZipFile, OSError) as exc:
            raise IOFailure(f"Failed opening ebook: {epub_file}: {exc}") from exc
        return cls(zf, epub_file)

    def __enter__(self) -> "Archive":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._zf is None

    def close(self) -> None:
        if self._zf is not None:
            self._zf.close()
            self._zf = None

    def _handle(self) -> zipfile.ZipFile:
        if self._zf is None:
            raise IOFailure(f"Archive already closed: {self.path}")
        return self._zf

    def names(self) -> list[str]:
        return list(self._index)

    def locate(self, name: str) -> bool:
        key = member_key(name)
        return key is not None and key in self._index

    def _member_name(self, name: str) -> str:
        key = member_key(name)
        actual = self._index.get(key) if key is not None else None
        if actual is None:
            raise EntryNotFound(f"File not found in EPUB: {name}")
        return actual

    def read(self, name: str) -> bytes:
        actual = self._member_name(name)
        try:
            return self._handle().read(actual)
        except (zipfile.BadZipFile, zlib.error, OSError, EOFError) as exc:
            raise IOFailure(f"Error reading file stream from EPUB: {name}") from exc

    def extract_selected(self, dest: Path, names: Iterable[str]) -> dict[str, Path]:
        """Materialize ``names`` under ``dest``; returns canonical name -> written path."""
        zf = self._handle()
        # Every name is resolved before anything is written.
        members: dict[str, str] = {}
        for name in names:
            actual = self._member_name(name)
            members.setdefault(canonical_member(name), actual)
        written: dict[str, Path] = {}
        for canonical, actual in members.items():
            try:
                written[canonical] = Path(zf.extract(actual, str(dest)))
            except (zipfile.BadZipFile, zlib.error, OSError) as exc:
                raise IOFailure(f"Failed extracting {actual} to {dest}: {exc}") from exc
        return written

    def extract_all(self, dest: Path) -> dict[str, Path]:
        return self.extract_selected(dest, self._index.keys())
