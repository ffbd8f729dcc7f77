import tempfile
import unittest
from pathlib import Path

from epub_fixtures import CONTAINER_XML, SAMPLE_OPF, write_epub, write_sample_epub

from quire.archive import Archive
from quire.errors import EntryNotFound, MalformedContainer, PackageInvalid
from quire.structure import load_structure


def _load(epub_file: Path):
    with Archive.open(epub_file) as archive:
        return load_structure(archive)


class StructureLoaderTests(unittest.TestCase):
    def test_sample_package_structure(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            structure = _load(write_sample_epub(Path(tmp) / "book.epub"))

        self.assertEqual(structure.descriptor_path, "OEBPS/content.opf")
        self.assertEqual(structure.base_dir, "OEBPS")
        self.assertEqual(structure.reading_order, ("c1", "c2"))
        self.assertEqual(
            [entry.id for entry in structure.index],
            ["ncx", "c1", "c2", "cover", "pic", "css", "diagram"],
        )
        self.assertEqual(structure.index.lookup_by_id("pic").href, "OEBPS/Images/my pic.png")
        self.assertEqual(structure.index.lookup_by_href("OEBPS/Text/chapter2.xhtml").id, "c2")

    def test_metadata_mapping(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            structure = _load(write_sample_epub(Path(tmp) / "book.epub"))
        self.assertEqual(structure.metadata["title"], "Sample Book")
        self.assertEqual(structure.metadata["creator"], ["Ada Writer", "Bob Editor"])
        self.assertEqual(structure.metadata["language"], "en")
        self.assertEqual(structure.metadata["description"], "")
        self.assertNotIn("meta", structure.metadata)

    def test_toc_tree(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            structure = _load(write_sample_epub(Path(tmp) / "book.epub"))
        self.assertEqual([node.name for node in structure.toc], ["Chapter 1", "Chapter 2"])
        first = structure.toc[0]
        self.assertEqual(first.id, "np1")
        self.assertEqual(first.file_name, "OEBPS/Text/chapter1.xhtml")
        self.assertIsNone(first.fragment)
        self.assertEqual(len(first.children), 1)
        child = first.children[0]
        self.assertEqual(child.src, "OEBPS/Text/chapter2.xhtml#s2")
        self.assertEqual(child.file_name, "OEBPS/Text/chapter2.xhtml")
        self.assertEqual(child.fragment, "s2")
        self.assertEqual([node.id for node in first.walk()], ["np1", "np1-1"])

    def test_missing_ncx_gives_empty_toc(self) -> None:
        opf = SAMPLE_OPF.replace("<item id=\"ncx\" href=\"toc.ncx\" media-type=\"application/x-dtbncx+xml\"/>", "")
        with tempfile.TemporaryDirectory() as tmp:
            structure = _load(write_sample_epub(Path(tmp) / "book.epub", {"OEBPS/content.opf": opf}))
        self.assertEqual(structure.toc, ())
        self.assertIsNone(structure.index.lookup_by_id("ncx"))

    def test_declared_but_absent_ncx_is_entry_not_found(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            epub_file = Path(tmp) / "book.epub"
            files = {
                "OEBPS/content.opf": SAMPLE_OPF,
                "OEBPS/Text/chapter1.xhtml": "<p/>",
            }
            write_epub(epub_file, files)
            with self.assertRaises(EntryNotFound):
                _load(epub_file)

    def test_dangling_spine_ids_are_kept(self) -> None:
        opf = SAMPLE_OPF.replace("<itemref idref=\"c2\"/>", "<itemref idref=\"ghost\"/><itemref idref=\"\"/>")
        with tempfile.TemporaryDirectory() as tmp:
            structure = _load(write_sample_epub(Path(tmp) / "book.epub", {"OEBPS/content.opf": opf}))
        self.assertEqual(structure.reading_order, ("c1", "ghost"))

    def test_descriptor_at_package_root(self) -> None:
        opf = (
            "<package xmlns=\"http://www.idpf.org/2007/opf\" version=\"3.0\">"
            "<metadata xmlns:dc=\"http://purl.org/dc/elements/1.1/\"><dc:title>Root</dc:title></metadata>"
            "<manifest><item id=\"a\" href=\"a.xhtml\" media-type=\"application/xhtml+xml\"/></manifest>"
            "<spine><itemref idref=\"a\"/></spine></package>"
        )
        with tempfile.TemporaryDirectory() as tmp:
            epub_file = write_epub(Path(tmp) / "book.epub", {"content.opf": opf, "a.xhtml": "<p/>"}, opf_path="content.opf")
            structure = _load(epub_file)
        self.assertEqual(structure.base_dir, "")
        self.assertEqual(structure.index.lookup_by_id("a").href, "a.xhtml")
        self.assertEqual(structure.metadata, {"title": "Root"})

    def test_missing_container_is_malformed(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            epub_file = write_epub(Path(tmp) / "book.epub", {"OEBPS/content.opf": SAMPLE_OPF}, opf_path=None)
            with self.assertRaises(MalformedContainer):
                _load(epub_file)

    def test_container_without_rootfile_is_malformed(self) -> None:
        container = (
            "<container version=\"1.0\" xmlns=\"urn:oasis:names:tc:opendocument:xmlns:container\">"
            "<rootfiles></rootfiles></container>"
        )
        with tempfile.TemporaryDirectory() as tmp:
            epub_file = write_epub(Path(tmp) / "book.epub", {"META-INF/container.xml": container}, opf_path=None)
            with self.assertRaises(MalformedContainer):
                _load(epub_file)

    def test_rootfile_without_full_path_is_malformed(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            epub_file = write_epub(Path(tmp) / "book.epub", {}, opf_path="")
            with self.assertRaises(MalformedContainer):
                _load(epub_file)

    def test_missing_descriptor_is_entry_not_found(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            epub_file = write_epub(Path(tmp) / "book.epub", {}, opf_path="OEBPS/content.opf")
            with self.assertRaises(EntryNotFound):
                _load(epub_file)

    def test_unparseable_descriptor_is_package_invalid(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            epub_file = write_epub(Path(tmp) / "book.epub", {"OEBPS/content.opf": b""})
            with self.assertRaises(PackageInvalid):
                _load(epub_file)

    def test_container_template_mentions_full_path(self) -> None:
        self.assertIn("full-path=\"x.opf\"", CONTAINER_XML.format(opf_path="x.opf"))


if __name__ == "__main__":
    unittest.main()
