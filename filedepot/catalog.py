"""
Catalog browsing: listing, filtering, downloading and deleting file records.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable, Optional

from filedepot.db import DbClient, FileRecord
from filedepot.results import Err, Notice
from filedepot.storage import StorageClient

logger = logging.getLogger(__name__)


def matches_filter(
    record: FileRecord, search_text: str = "", category_id: Optional[str] = None
) -> bool:
    matches_search = (search_text or "").lower() in record.original_name.lower()
    matches_category = category_id is None or record.category_id == category_id
    return matches_search and matches_category


def filter_files(
    records: Iterable[FileRecord],
    search_text: str = "",
    category_id: Optional[str] = None,
) -> list[FileRecord]:
    return [r for r in records if matches_filter(r, search_text, category_id)]


@dataclass(frozen=True)
class CatalogStats:
    total_files: int = 0
    total_downloads: int = 0
    total_size: int = 0

    @classmethod
    def from_files(cls, files: Iterable[FileRecord]) -> "CatalogStats":
        files = list(files)
        return cls(
            total_files=len(files),
            total_downloads=sum(f.download_count for f in files),
            total_size=sum(f.size for f in files),
        )


@dataclass(frozen=True)
class DownloadTicket:
    """Everything the browser needs to start a download."""

    file_id: str
    url: str
    filename: str
    download_count: int


class CatalogBrowser:
    """
    View state for the file list.

    ``files`` holds the last successful fetch; ``visible_files`` applies the
    active search text and category filter to it.
    """

    def __init__(
        self, db: DbClient, storage: StorageClient, *, is_admin: bool = False
    ):
        self.db = db
        self.storage = storage
        self.is_admin = is_admin
        self.files: list[FileRecord] = []
        self.search_text = ""
        self.selected_category: Optional[str] = None

    def fetch(self) -> Optional[Notice]:
        result = self.db.list_files()
        if isinstance(result, Err):
            logger.error("Error fetching files: %s", result.error.message)
            return Notice.error("Could not load the file list")
        self.files = result.data
        return None

    def set_search(self, search_text: Optional[str]) -> None:
        self.search_text = search_text or ""

    def select_category(self, category_id: Optional[str]) -> None:
        self.selected_category = category_id or None

    @property
    def visible_files(self) -> list[FileRecord]:
        return filter_files(self.files, self.search_text, self.selected_category)

    @property
    def is_filtered(self) -> bool:
        return bool(self.search_text or self.selected_category)

    def find(self, file_id: str) -> Optional[FileRecord]:
        for record in self.files:
            if record.id == file_id:
                return record
        return None

    def _resolve(self, file_id: str) -> tuple[Optional[FileRecord], Optional[Notice]]:
        record = self.find(file_id)
        if record:
            return record, None
        result = self.db.get_file(file_id)
        if isinstance(result, Err):
            if result.error.is_not_found:
                return None, Notice.error("File not found", kind="not_found")
            logger.error("Error loading file %s: %s", file_id, result.error.message)
            return None, Notice.error("Could not load the file")
        return result.data, None

    def download(
        self, file_id: str
    ) -> tuple[Optional[DownloadTicket], Optional[Notice]]:
        record, notice = self._resolve(file_id)
        if record is None:
            return None, notice

        url = self.storage.get_public_url(record.storage_path)
        if not url:
            return None, Notice.error("Could not resolve the download link")

        count = record.download_count
        result = self.db.increment_download_count(record.id)
        if isinstance(result, Err):
            # The download still goes ahead; only the counter is stale.
            logger.warning(
                "Could not record download of %s: %s", record.id, result.error.message
            )
        else:
            count = result.data
            self.files = [
                replace(f, download_count=f.download_count + 1) if f.id == record.id else f
                for f in self.files
            ]

        ticket = DownloadTicket(
            file_id=record.id,
            url=url,
            filename=record.original_name,
            download_count=count,
        )
        return ticket, None

    def delete(self, file_id: str, *, confirmed: bool = False) -> Notice:
        if not self.is_admin:
            return Notice.error("Only administrators can delete files", kind="forbidden")
        record, notice = self._resolve(file_id)
        if record is None:
            return notice
        if not confirmed:
            return Notice.info(f'Confirm deletion of "{record.original_name}"', kind="confirm")

        storage_result = self.storage.remove([record.storage_path])
        if isinstance(storage_result, Err):
            logger.error(
                "Error deleting %s from storage: %s",
                record.storage_path,
                storage_result.error.message,
            )

        db_result = self.db.delete_file(record.id)
        if isinstance(db_result, Err):
            logger.error("Error deleting file %s: %s", record.id, db_result.error.message)
            return Notice.error("Delete failed")

        self.files = [f for f in self.files if f.id != record.id]
        logger.info("Deleted file %s (%s)", record.id, record.original_name)
        return Notice.success("File deleted")
