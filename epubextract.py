#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from quire.errors import QuireError
from quire.models import MediaTypeFilter, TocNode, TraversalMode
from quire.package import EpubPackage


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Inspect an EPUB or extract it with references rewritten to web roots."
    )
    parser.add_argument("input", help="Input EPUB file path")
    parser.add_argument("-o", "--output", help="Extract into this existing directory")
    selection = parser.add_mutually_exclusive_group()
    selection.add_argument("--type", dest="media_type", help="Only extract entries of this exact media type")
    selection.add_argument("--pattern", help="Only extract entries whose media type matches this regex")
    parser.add_argument("--except", dest="exclude", action="store_true", help="Invert --type/--pattern")
    parser.add_argument("--image-root", help="Prefix for rewritten image references")
    parser.add_argument("--link-root", help="Prefix for rewritten hyperlinks")
    parser.add_argument(
        "--traversal",
        choices=[mode.value for mode in TraversalMode],
        default=TraversalMode.PRESERVE.value,
        help="How to treat '..' above the package root",
    )
    parser.add_argument("--toc", action="store_true", help="Print the table of contents")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def _print_toc(nodes: list[TocNode], depth: int = 0) -> None:
    for node in nodes:
        target = node.file_name + (f"#{node.fragment}" if node.fragment else "")
        print(f"{'  ' * depth}- {node.name} ({target})")
        _print_toc(list(node.children), depth + 1)


def main(argv: list[str]) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Input file not found: {input_path}", file=sys.stderr)
        return 1

    selection = None
    if args.media_type:
        selection = MediaTypeFilter.literal(args.media_type)
    elif args.pattern:
        selection = MediaTypeFilter.pattern(args.pattern)

    try:
        package = EpubPackage(
            input_path,
            image_root=args.image_root,
            link_root=args.link_root,
            mode=TraversalMode(args.traversal),
        )
        structure = package.parse()
        title = package.get_metadata_item("title") or input_path.stem
        if isinstance(title, list):
            title = ", ".join(value for value in title if value) or input_path.stem
        print(f"{title}: {len(structure.index)} manifest entries, {len(structure.reading_order)} in reading order")
        if args.toc:
            _print_toc(package.get_toc())
        if args.output:
            written = package.extract(Path(args.output), selection, exclude=args.exclude)
            print(f"Extracted {len(written)} files to: {args.output}")
    except QuireError as exc:
        print(f"{type(exc).__name__}: {exc}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
