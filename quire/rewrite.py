from __future__ import annotations

import codecs
import logging
import re
import urllib.parse
from typing import Optional

from .errors import PathTraversalError
from .manifest import PackageIndex
from .models import TraversalMode
from .paths import resolve_path, split_fragment

logger = logging.getLogger("quire.package")

# Only the value group is replaced. The closing delimiter is matched by
# lookahead and never consumed. Values containing quotes or ">" are not handled.
RESOURCE_ATTR_RE = re.compile(r"(?P<prefix>\s(?:xlink:href|src)\s*=\s*[\"']?)(?P<value>[^\"'\s>]*)(?=[\"'\s>])")
LINK_ATTR_RE = re.compile(r"(?P<prefix>\shref\s*=\s*[\"']?)(?P<value>[^\"'\s>]*)(?=[\"'\s>])")

NEWLINE_RE = re.compile(r"\r\n?")
BODY_RE = re.compile(r"<body[^>]*?>(.*)</body[^>]*?>", flags=re.IGNORECASE | re.DOTALL)
SCRIPT_RE = re.compile(r"<script[^>]*?>.*?</script[^>]*?>", flags=re.IGNORECASE | re.DOTALL)
STYLE_RE = re.compile(r"<style[^>]*?>.*?</style[^>]*?>", flags=re.IGNORECASE | re.DOTALL)
EVENT_HANDLER_RE = re.compile(r"(?<=\s)(on\w+)(?=\s*=)", flags=re.IGNORECASE)
DISABLED_HANDLER_PREFIX = "data-disabled-"

XML_ENCODING_RE = re.compile(rb"^\s*<\?xml[^>]*?encoding\s*=\s*[\"']([A-Za-z0-9._:-]+)[\"']")
META_CHARSET_RE = re.compile(rb"<meta[^>]+?charset\s*=\s*[\"']?([A-Za-z0-9._:-]+)", flags=re.IGNORECASE)
BOM_ENCODINGS = (
    (codecs.BOM_UTF8, "utf-8-sig"),
    (codecs.BOM_UTF16_LE, "utf-16"),
    (codecs.BOM_UTF16_BE, "utf-16"),
)


def _join_root(root: Optional[str], path: str) -> str:
    prefix = root.rstrip("/") if root else ""
    return f"{prefix}/{path}"


def _attribute_path(prefix: str, path: str) -> str:
    # Unquoted values end at whitespace, so decoded characters are re-escaped.
    if prefix.endswith(("\"", "'")):
        return path
    return urllib.parse.quote(path, safe="/")


def _resolve_reference(document_href: str, raw_value: str, mode: TraversalMode) -> Optional[str]:
    try:
        return resolve_path(document_href, urllib.parse.unquote(raw_value), base_is_document=True, mode=mode)
    except PathTraversalError:
        return None


def rewrite_resource_references(
    markup: str,
    document_href: str,
    index: PackageIndex,
    image_root: Optional[str] = None,
    mode: TraversalMode = TraversalMode.PRESERVE,
) -> str:
    def replace(match: re.Match[str]) -> str:
        resolved = _resolve_reference(document_href, match.group("value"), mode)
        if resolved is None or index.lookup_by_href(resolved) is None:
            return match.group(0)
        prefix = match.group("prefix")
        return prefix + _join_root(image_root, _attribute_path(prefix, resolved))

    return RESOURCE_ATTR_RE.sub(replace, markup)


def rewrite_link_references(
    markup: str,
    document_href: str,
    index: PackageIndex,
    link_root: Optional[str] = None,
    mode: TraversalMode = TraversalMode.PRESERVE,
) -> str:
    def replace(match: re.Match[str]) -> str:
        resolved = _resolve_reference(document_href, match.group("value"), mode)
        if resolved is None:
            return match.group(0)
        path_part, fragment = split_fragment(resolved)
        if index.lookup_by_href(path_part) is None:
            return match.group(0)
        prefix = match.group("prefix")
        target = _join_root(link_root, _attribute_path(prefix, path_part))
        if fragment:
            target = f"{target}#{_attribute_path(prefix, fragment)}"
        return prefix + target

    return LINK_ATTR_RE.sub(replace, markup)


def rewrite_references(
    markup: str,
    document_href: str,
    index: PackageIndex,
    image_root: Optional[str] = None,
    link_root: Optional[str] = None,
    mode: TraversalMode = TraversalMode.PRESERVE,
) -> str:
    """Point resource and hyperlink attributes at the caller's roots.

    Only references whose resolved target is declared in ``index`` are
    touched; everything else in ``markup`` comes back byte for byte.
    """

    markup = rewrite_resource_references(markup, document_href, index, image_root, mode)
    return rewrite_link_references(markup, document_href, index, link_root, mode)


def _declared_encodings(raw: bytes) -> list[str]:
    candidates: list[str] = []
    for bom, encoding in BOM_ENCODINGS:
        if raw.startswith(bom):
            candidates.append(encoding)
            break
    head = raw[:1024]
    for pattern in (XML_ENCODING_RE, META_CHARSET_RE):
        match = pattern.search(head)
        if not match:
            continue
        try:
            encoding = codecs.lookup(match.group(1).decode("ascii")).name
        except LookupError:
            continue
        # A declaration readable as ASCII rules out the wide encodings.
        if not encoding.startswith(("utf-16", "utf-32")):
            candidates.append(encoding)
    candidates.append("utf-8")
    return candidates


def decode_document(raw: bytes) -> str:
    """Decode document bytes using the BOM or declared charset, then UTF-8.

    Bytes that fit none of the candidates survive as surrogate escapes, so
    ``text.encode("utf-8", "surrogateescape")`` gives back the original.
    """

    for encoding in _declared_encodings(raw):
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError:
            continue
    return raw.decode("utf-8", errors="surrogateescape")


def normalize_newlines(text: str) -> str:
    return NEWLINE_RE.sub("\n", text)


def extract_body(html_text: str) -> str:
    match = BODY_RE.search(html_text)
    if not match:
        # Fragment-only documents are served whole.
        logger.debug("no <body> found, using the whole document")
        return html_text
    return match.group(1).strip()


def strip_scripts_and_styles(html_text: str) -> str:
    html_text = SCRIPT_RE.sub("", html_text)
    return STYLE_RE.sub("", html_text)


def neutralize_event_handlers(html_text: str) -> str:
    return EVENT_HANDLER_RE.sub(lambda m: f"{DISABLED_HANDLER_PREFIX}{m.group(1)}", html_text)


def sanitize_document(html_text: str) -> str:
    text = normalize_newlines(html_text)
    text = extract_body(text)
    text = strip_scripts_and_styles(text)
    return neutralize_event_handlers(text)
