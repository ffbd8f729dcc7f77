import tempfile
import unittest
from pathlib import Path

from ebooklib import epub

from epub_fixtures import PNG_BYTES

from quire.package import EpubPackage


def _write_ebooklib_book(output_path: Path) -> Path:
    book = epub.EpubBook()
    book.set_identifier("urn:uuid:interop-id")
    book.set_title("Interop")
    book.set_language("en")
    book.add_author("Ada Writer")

    doc = epub.EpubHtml(uid="c1", title="Opening", file_name="Text/chap_01.xhtml", lang="en")
    doc.content = (
        "<html xmlns=\"http://www.w3.org/1999/xhtml\">"
        "<head><title>Opening</title></head>"
        "<body><p onclick=\"x()\">Hello</p><img src=\"../Images/cover.png\" alt=\"cover\"/></body></html>"
    )
    image = epub.EpubImage(uid="cover-img", file_name="Images/cover.png", media_type="image/png", content=PNG_BYTES)
    book.add_item(doc)
    book.add_item(image)
    book.toc = [doc]
    book.spine = ["nav", doc]
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())

    epub.write_epub(str(output_path), book, {"epub3_pages": False})
    return output_path


class EbooklibInteropTests(unittest.TestCase):
    def test_reads_structure_written_by_ebooklib(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            package = EpubPackage(_write_ebooklib_book(Path(tmp) / "book.epub"), image_root="/static")
            structure = package.parse()

            self.assertEqual(structure.base_dir, "EPUB")
            self.assertEqual(package.get_metadata_item("title"), "Interop")
            self.assertEqual(package.get_manifest_item("c1").href, "EPUB/Text/chap_01.xhtml")
            self.assertEqual(package.get_image("cover-img"), PNG_BYTES)
            self.assertIn("c1", package.get_spine())

            toc = package.get_toc()
            self.assertEqual([node.name for node in toc], ["Opening"])
            self.assertEqual(toc[0].file_name, "EPUB/Text/chap_01.xhtml")

            chapter = package.get_chapter("c1")
            self.assertIn('src="/static/EPUB/Images/cover.png"', chapter)
            self.assertIn("data-disabled-onclick", chapter)
            self.assertNotIn("<title>", chapter)


if __name__ == "__main__":
    unittest.main()
