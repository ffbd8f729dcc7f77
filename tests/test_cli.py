import contextlib
import io
import tempfile
import unittest
from pathlib import Path

from epub_fixtures import write_epub, write_sample_epub

from epubextract import main


def _run(argv: list[str]) -> tuple[int, str, str]:
    out = io.StringIO()
    err = io.StringIO()
    with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
        code = main(argv)
    return code, out.getvalue(), err.getvalue()


class CliTests(unittest.TestCase):
    def test_summary_and_toc(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            epub_file = write_sample_epub(Path(tmp) / "book.epub")
            code, out, _ = _run([str(epub_file), "--toc"])
        self.assertEqual(code, 0)
        self.assertIn("Sample Book: 7 manifest entries, 2 in reading order", out)
        self.assertIn("- Chapter 1 (OEBPS/Text/chapter1.xhtml)", out)
        self.assertIn("  - Section 2 (OEBPS/Text/chapter2.xhtml#s2)", out)

    def test_extract_with_type_and_roots(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            epub_file = write_sample_epub(Path(tmp) / "book.epub")
            dest = Path(tmp) / "out"
            dest.mkdir()
            code, out, _ = _run(
                [str(epub_file), "-o", str(dest), "--type", "application/xhtml+xml", "--image-root", "/img"]
            )
            self.assertEqual(code, 0)
            self.assertIn("Extracted 2 files", out)
            chapter = (dest / "OEBPS" / "Text" / "chapter2.xhtml").read_text(encoding="utf-8")
        self.assertIn('src="/img/OEBPS/Images/cover.png"', chapter)
        self.assertIn('href="/OEBPS/Text/chapter1.xhtml"', chapter)

    def test_invalid_package_reports_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            epub_file = write_epub(Path(tmp) / "book.epub", {}, mimetype=b"text/plain")
            code, _, err = _run([str(epub_file)])
        self.assertEqual(code, 2)
        self.assertIn("PackageInvalid", err)

    def test_missing_input(self) -> None:
        code, _, err = _run(["/nonexistent/book.epub"])
        self.assertEqual(code, 1)
        self.assertIn("Input file not found", err)


if __name__ == "__main__":
    unittest.main()
