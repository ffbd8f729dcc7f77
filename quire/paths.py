from __future__ import annotations

from typing import Optional

from .errors import PathTraversalError
from .models import TraversalMode


def parent_dir(path: str) -> str:
    normalized = (path or "").replace("\\", "/")
    if "/" not in normalized:
        return ""
    return normalized.rsplit("/", 1)[0]


def resolve_path(
    base: str,
    reference: str,
    base_is_document: bool = False,
    mode: TraversalMode = TraversalMode.PRESERVE,
) -> str:
    """Join ``reference`` onto ``base`` and fold away ``.``/``..`` segments.

    The result is package-root relative and never starts with ``/``. In the
    default preserve mode a ``..`` that has nothing left to pop is kept as a
    literal segment, so ``resolve_path("", "a/../../b")`` gives ``"../b"``.
    No existence check is made.
    """

    base = (base or "").replace("\\", "/")
    if base_is_document:
        base = parent_dir(base)
    reference = (reference or "").replace("\\", "/")

    parts = (base.split("/") if base else []) + reference.split("/")
    stack: list[str] = []
    for part in parts:
        if part in {"", "."}:
            continue
        if part == "..":
            if stack:
                stack.pop()
            elif mode is TraversalMode.CLAMP:
                continue
            elif mode is TraversalMode.REJECT:
                raise PathTraversalError(f"{reference!r} climbs above the package root from {base!r}")
            else:
                stack.append(part)
            continue
        stack.append(part)
    return "/".join(stack)


def split_fragment(path: str) -> tuple[str, Optional[str]]:
    if "#" not in path:
        return path, None
    path_part, fragment = path.split("#", 1)
    return path_part, fragment or None
