from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from .env import library_dir, traversal_mode, web_prefix
from .errors import (
    EntryNotFound,
    IOFailure,
    MalformedContainer,
    PackageInvalid,
    QuireError,
    UnsupportedMediaType,
)
from .models import entry_to_dict, toc_to_dict
from .package import EpubPackage

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
BOOK_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,127}$")

app = FastAPI()
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
logger = logging.getLogger("quire.web")


def _no_store_headers() -> dict[str, str]:
    return {
        "Cache-Control": "no-store, max-age=0",
        "CDN-Cache-Control": "no-store",
        "Pragma": "no-cache",
        "Expires": "0",
    }


def _http_error(book_id: str, exc: QuireError) -> HTTPException:
    if isinstance(exc, EntryNotFound):
        status = 404
    elif isinstance(exc, UnsupportedMediaType):
        status = 415
    elif isinstance(exc, (PackageInvalid, MalformedContainer)):
        status = 422
    elif isinstance(exc, IOFailure):
        status = 500
    else:
        status = 400
    logger.warning("book %s: %s (%s)", book_id, exc, type(exc).__name__)
    return HTTPException(status_code=status, detail=str(exc))


def book_routes_prefix(book_id: str) -> str:
    return f"{web_prefix()}/book/{book_id}"


def _book_file(book_id: str) -> Path:
    if not BOOK_ID_RE.match(book_id):
        raise HTTPException(status_code=404, detail="Invalid book id")
    epub_file = library_dir() / f"{book_id}.epub"
    if not epub_file.is_file():
        raise HTTPException(status_code=404, detail="Book not found")
    return epub_file


def _open_package(book_id: str) -> EpubPackage:
    epub_file = _book_file(book_id)
    prefix = book_routes_prefix(book_id)
    try:
        package = EpubPackage(
            epub_file,
            image_root=f"{prefix}/asset",
            link_root=f"{prefix}/read",
            mode=traversal_mode(),
        )
        package.parse()
    except QuireError as exc:
        raise _http_error(book_id, exc)
    return package


def _title_of(package: EpubPackage, fallback: str) -> str:
    title = package.get_metadata_item("title")
    if isinstance(title, list):
        title = next((value for value in title if value), "")
    return title or fallback


@app.get("/book/{book_id}")
async def book_overview(book_id: str) -> dict[str, object]:
    package = _open_package(book_id)
    return {
        "book_id": book_id,
        "title": _title_of(package, book_id),
        "metadata": package.get_metadata(),
        "spine": package.get_spine(),
        "manifest": [entry_to_dict(entry) for entry in package.get_manifest()],
        "toc": [toc_to_dict(node) for node in package.get_toc()],
    }


@app.get("/book/{book_id}/read")
async def read_first(book_id: str) -> RedirectResponse:
    package = _open_package(book_id)
    try:
        entries = package.reading_order_entries()
    except QuireError as exc:
        raise _http_error(book_id, exc)
    if not entries:
        raise HTTPException(status_code=404, detail="Empty reading order")
    response = RedirectResponse(url=f"{book_routes_prefix(book_id)}/read/{entries[0].href}", status_code=303)
    response.headers.update(_no_store_headers())
    return response


@app.get("/book/{book_id}/read/{href:path}", response_class=HTMLResponse)
async def read_document(request: Request, book_id: str, href: str) -> HTMLResponse:
    package = _open_package(book_id)
    try:
        entry, content = package.get_chapter_by_href(href)
    except QuireError as exc:
        raise _http_error(book_id, exc)
    # Undecodable bytes come back as surrogate escapes.
    content = content.encode("utf-8", "surrogateescape").decode("utf-8", errors="replace")

    prefix = book_routes_prefix(book_id)
    spine_hrefs: list[str] = []
    for item_id in package.get_spine():
        spine_entry = package.get_manifest_item(item_id)
        if spine_entry is not None:
            spine_hrefs.append(spine_entry.href)
    position: Optional[int] = spine_hrefs.index(entry.href) if entry.href in spine_hrefs else None
    prev_url = None
    next_url = None
    if position is not None and position > 0:
        prev_url = f"{prefix}/read/{spine_hrefs[position - 1]}"
    if position is not None and position < len(spine_hrefs) - 1:
        next_url = f"{prefix}/read/{spine_hrefs[position + 1]}"

    return templates.TemplateResponse(
        request,
        "reader.html",
        {
            "title": _title_of(package, book_id),
            "document_href": entry.href,
            "content": content,
            "toc": package.get_toc(),
            "read_prefix": f"{prefix}/read",
            "prev_url": prev_url,
            "next_url": next_url,
        },
        headers=_no_store_headers(),
    )


@app.get("/book/{book_id}/asset/{href:path}")
async def book_asset(book_id: str, href: str) -> Response:
    package = _open_package(book_id)
    try:
        content, media_type = package.get_file_by_href(href)
    except QuireError as exc:
        raise _http_error(book_id, exc)
    return Response(content=content, media_type=media_type or "application/octet-stream", headers=_no_store_headers())


@app.get("/book/{book_id}/image/{item_id}")
async def book_image(book_id: str, item_id: str) -> Response:
    package = _open_package(book_id)
    try:
        content = package.get_image(item_id)
    except QuireError as exc:
        raise _http_error(book_id, exc)
    entry = package.get_manifest_item(item_id)
    media_type = entry.media_type if entry is not None else "application/octet-stream"
    return Response(content=content, media_type=media_type, headers=_no_store_headers())
