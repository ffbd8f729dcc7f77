from __future__ import annotations

import logging
import urllib.parse
from typing import Optional

from lxml import etree as LXML_ET

from .archive import Archive
from .errors import EntryNotFound, MalformedContainer, PackageInvalid
from .manifest import PackageIndex
from .models import MediaTypeFilter, MetadataValue, PackageStructure, TocNode, TraversalMode
from .paths import parent_dir, resolve_path, split_fragment

CONTAINER_PATH = "META-INF/container.xml"
DC_NS = "http://purl.org/dc/elements/1.1/"
NCX_MEDIA_TYPE = "application/x-dtbncx+xml"

logger = logging.getLogger("quire.package")


def _tag_local_name(tag: object) -> str:
    if not tag or not isinstance(tag, str):
        return ""
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def _child_by_local_name(node: LXML_ET._Element, local_name: str) -> Optional[LXML_ET._Element]:
    for child in list(node):
        if _tag_local_name(child.tag) == local_name:
            return child
    return None


def _iter_children_by_local_name(node: LXML_ET._Element, local_name: str) -> list[LXML_ET._Element]:
    return [child for child in list(node) if _tag_local_name(child.tag) == local_name]


def _xml_root_from_bytes(raw: bytes) -> Optional[LXML_ET._Element]:
    parser = LXML_ET.XMLParser(resolve_entities=False, no_network=True, recover=True)
    try:
        return LXML_ET.fromstring(raw, parser=parser)
    except (LXML_ET.XMLSyntaxError, ValueError):
        return None


def _attr(node: Optional[LXML_ET._Element], name: str) -> str:
    if node is None:
        return ""
    return str(node.attrib.get(name) or "")


def _node_text(node: Optional[LXML_ET._Element]) -> str:
    if node is None:
        return ""
    return "".join(node.itertext()).strip()


def descriptor_path_from_container(archive: Archive) -> str:
    if not archive.locate(CONTAINER_PATH):
        raise MalformedContainer(f"Invalid EPUB: {CONTAINER_PATH} is missing.")
    root = _xml_root_from_bytes(archive.read(CONTAINER_PATH))
    if root is None:
        raise MalformedContainer(f"Invalid EPUB: {CONTAINER_PATH} could not be parsed.")
    rootfiles = _child_by_local_name(root, "rootfiles")
    rootfile = _child_by_local_name(rootfiles, "rootfile") if rootfiles is not None else None
    if rootfile is None:
        raise MalformedContainer("Invalid EPUB: container.xml missing rootfile.")
    full_path = _attr(rootfile, "full-path").strip()
    if not full_path:
        raise MalformedContainer("Invalid EPUB: rootfile has no full-path attribute.")
    return full_path


def _parse_metadata(root: LXML_ET._Element) -> dict[str, MetadataValue]:
    metadata = _child_by_local_name(root, "metadata")
    if metadata is None:
        return {}
    values: dict[str, MetadataValue] = {}
    for node in list(metadata):
        if not isinstance(node.tag, str) or LXML_ET.QName(node).namespace != DC_NS:
            continue
        name = LXML_ET.QName(node).localname
        text = _node_text(node)
        existing = values.get(name)
        if existing is None:
            values[name] = text
        elif isinstance(existing, list):
            existing.append(text)
        else:
            values[name] = [existing, text]
    return values


def _manifest_items(root: LXML_ET._Element) -> list[tuple[str, str, str]]:
    manifest = _child_by_local_name(root, "manifest")
    if manifest is None:
        return []
    return [
        (_attr(node, "id"), _attr(node, "href"), _attr(node, "media-type"))
        for node in _iter_children_by_local_name(manifest, "item")
    ]


def _reading_order(root: LXML_ET._Element) -> tuple[str, ...]:
    spine = _child_by_local_name(root, "spine")
    if spine is None:
        return ()
    idrefs: list[str] = []
    for itemref in _iter_children_by_local_name(spine, "itemref"):
        idref = _attr(itemref, "idref").strip()
        if idref:
            idrefs.append(idref)
    return tuple(idrefs)


def _nav_points(parent: LXML_ET._Element, base_dir: str, mode: TraversalMode) -> tuple[TocNode, ...]:
    nodes: list[TocNode] = []
    for point in _iter_children_by_local_name(parent, "navPoint"):
        label = _child_by_local_name(point, "navLabel")
        content = _child_by_local_name(point, "content")
        raw_src = urllib.parse.unquote(_attr(content, "src"))
        src = resolve_path(base_dir, raw_src, mode=mode)
        file_name, fragment = split_fragment(src)
        nodes.append(
            TocNode(
                id=_attr(point, "id"),
                name=_node_text(_child_by_local_name(label, "text") if label is not None else None),
                file_name=file_name,
                src=src,
                fragment=fragment,
                children=_nav_points(point, base_dir, mode),
            )
        )
    return tuple(nodes)


def _parse_toc(archive: Archive, index: PackageIndex, base_dir: str, mode: TraversalMode) -> tuple[TocNode, ...]:
    candidates = index.filter_by_media_type(MediaTypeFilter.literal(NCX_MEDIA_TYPE))
    if not candidates:
        # EPUB 3 packages may carry only an XHTML nav document.
        return ()
    ncx_entry = candidates[0]
    root = _xml_root_from_bytes(archive.read(ncx_entry.href))
    if root is None:
        raise PackageInvalid(f"Navigation document could not be parsed: {ncx_entry.href}")
    nav_map = _child_by_local_name(root, "navMap")
    if nav_map is None:
        return ()
    return _nav_points(nav_map, base_dir, mode)


def load_structure(archive: Archive, mode: TraversalMode = TraversalMode.PRESERVE) -> PackageStructure:
    """Read container, descriptor and NCX into a fresh :class:`PackageStructure`."""
    descriptor_path = descriptor_path_from_container(archive)
    base_dir = parent_dir(descriptor_path)

    if not archive.locate(descriptor_path):
        raise EntryNotFound(f"Package descriptor not found in EPUB: {descriptor_path}")
    root = _xml_root_from_bytes(archive.read(descriptor_path))
    if root is None:
        raise PackageInvalid(f"Package descriptor could not be parsed: {descriptor_path}")

    metadata = _parse_metadata(root)
    index = PackageIndex.build(_manifest_items(root), base_dir, mode=mode)
    reading_order = _reading_order(root)
    toc = _parse_toc(archive, index, base_dir, mode)

    logger.debug(
        "loaded %s: %d manifest entries, %d spine items, %d top-level toc nodes",
        descriptor_path,
        len(index),
        len(reading_order),
        len(toc),
    )
    return PackageStructure(
        descriptor_path=descriptor_path,
        base_dir=base_dir,
        metadata=metadata,
        index=index,
        reading_order=reading_order,
        toc=toc,
    )
