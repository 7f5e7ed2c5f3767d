import unittest
from datetime import datetime

from filedepot.file_utils import (
    file_extension,
    file_type_category,
    format_date,
    format_file_size,
    generate_storage_name,
)


class FormatFileSizeTests(unittest.TestCase):
    def test_zero_and_negative(self):
        self.assertEqual(format_file_size(0), "0 Bytes")
        self.assertEqual(format_file_size(-5), "0 Bytes")

    def test_units(self):
        self.assertEqual(format_file_size(512), "512 Bytes")
        self.assertEqual(format_file_size(1024), "1 KB")
        self.assertEqual(format_file_size(1536), "1.5 KB")
        self.assertEqual(format_file_size(1024 * 1024), "1 MB")
        self.assertEqual(format_file_size(5 * 1024 ** 3), "5 GB")

    def test_caps_at_terabytes(self):
        self.assertEqual(format_file_size(2048 * 1024 ** 4), "2048 TB")


class FileTypeCategoryTests(unittest.TestCase):
    def test_media_prefixes(self):
        self.assertEqual(file_type_category("image/png"), "image")
        self.assertEqual(file_type_category("video/mp4"), "video")
        self.assertEqual(file_type_category("audio/mpeg"), "audio")

    def test_documents_and_archives(self):
        self.assertEqual(file_type_category("application/pdf"), "document")
        self.assertEqual(file_type_category("text/plain"), "document")
        self.assertEqual(
            file_type_category(
                "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
            ),
            "document",
        )
        self.assertEqual(file_type_category("application/zip"), "archive")
        self.assertEqual(file_type_category("application/x-7z-compressed"), "archive")

    def test_unknown(self):
        self.assertEqual(file_type_category(None), "other")
        self.assertEqual(file_type_category(""), "other")
        self.assertEqual(file_type_category("application/octet-stream"), "other")


class NamingTests(unittest.TestCase):
    def test_extension(self):
        self.assertEqual(file_extension("report.final.pdf"), "PDF")
        self.assertEqual(file_extension("README"), "")

    def test_storage_name_keeps_extension(self):
        first = generate_storage_name("photo.JPG")
        second = generate_storage_name("photo.JPG")
        self.assertTrue(first.endswith(".JPG"))
        self.assertNotEqual(first, second)
        self.assertNotIn(".", generate_storage_name("Makefile"))

    def test_format_date(self):
        self.assertEqual(format_date(datetime(2024, 3, 5, 9, 7)), "2024/03/05 09:07")


if __name__ == "__main__":
    unittest.main()
