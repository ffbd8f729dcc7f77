from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from .models import TraversalMode

LIBRARY_DIR_ENV = "QUIRE_LIBRARY_DIR"
TRAVERSAL_MODE_ENV = "QUIRE_TRAVERSAL_MODE"
WEB_PREFIX_ENV = "QUIRE_WEB_PREFIX"


def read_env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value not in {None, ""}:
        return value

    file_var = os.getenv(f"{name}_FILE")
    if not file_var:
        return default

    try:
        content = Path(file_var).read_text(encoding="utf-8")
    except OSError:
        return default
    return content.rstrip("\r\n")


def library_dir() -> Path:
    env = read_env(LIBRARY_DIR_ENV)
    base = Path(env) if env else Path(__file__).resolve().parent.parent / "library"
    base.mkdir(parents=True, exist_ok=True)
    return base


def traversal_mode() -> TraversalMode:
    return TraversalMode.from_value(read_env(TRAVERSAL_MODE_ENV))


def web_prefix() -> str:
    raw = (read_env(WEB_PREFIX_ENV) or "").strip().strip("/")
    return f"/{raw}" if raw else ""
