"""
Upload workflow: a per-user queue of files pushed to storage one at a time.

Each queued file is an ``UploadItem`` with its own small state machine:

    pending -> uploading -> complete
                         -> error

``complete`` and ``error`` are terminal. A failing item never stops the rest
of its batch.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Optional

from filedepot.db import DbClient, NewFile
from filedepot.file_utils import generate_storage_name
from filedepot.results import Err, Notice
from filedepot.session import SessionChange
from filedepot.storage import StorageClient

logger = logging.getLogger(__name__)


class UploadStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    COMPLETE = "complete"
    ERROR = "error"


ALLOWED_TRANSITIONS = {
    UploadStatus.PENDING: {UploadStatus.UPLOADING},
    UploadStatus.UPLOADING: {UploadStatus.COMPLETE, UploadStatus.ERROR},
    UploadStatus.COMPLETE: set(),
    UploadStatus.ERROR: set(),
}


@dataclass
class IncomingFile:
    filename: str
    data: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class UploadItem:
    filename: str
    size: int
    content_type: Optional[str] = None
    item_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: UploadStatus = UploadStatus.PENDING
    # None while uploading: transfers report no byte counts.
    progress: Optional[int] = 0
    error: Optional[str] = None
    file_id: Optional[str] = None
    storage_path: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (UploadStatus.COMPLETE, UploadStatus.ERROR)

    def as_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "filename": self.filename,
            "size": self.size,
            "content_type": self.content_type,
            "status": self.status.value,
            "progress": self.progress,
            "error": self.error,
            "file_id": self.file_id,
            "storage_path": self.storage_path,
        }


def batch_notices(batch: Iterable[UploadItem]) -> list[Notice]:
    """Outcome notices for one batch, independent of other batches on the queue."""
    notices = []
    for item in batch:
        if item.status == UploadStatus.COMPLETE:
            notices.append(Notice.success(f"{item.filename} uploaded"))
        elif item.status == UploadStatus.ERROR:
            notices.append(Notice.error(f"{item.filename} failed to upload"))
    return notices


@dataclass
class _QueuedUpload:
    item: UploadItem
    incoming: IncomingFile
    category_id: Optional[str]


class UploadWorkflow:
    def __init__(
        self,
        db: DbClient,
        storage: StorageClient,
        *,
        user_id: Optional[str],
        prefix: str = "uploads",
        on_complete: Optional[Callable[[], None]] = None,
    ):
        self.db = db
        self.storage = storage
        self.user_id = user_id
        self.prefix = prefix.strip("/")
        self.on_complete = on_complete
        self.items: list[UploadItem] = []
        self.notices: list[Notice] = []
        self._queue: list[_QueuedUpload] = []
        # One batch at a time per queue, even across concurrent requests.
        self._lock = threading.Lock()

    def enqueue(
        self, files: Iterable[IncomingFile], category_id: Optional[str] = None
    ) -> list[UploadItem]:
        batch = []
        for incoming in files:
            item = UploadItem(
                filename=incoming.filename,
                size=incoming.size,
                content_type=incoming.content_type or None,
            )
            self.items.append(item)
            self._queue.append(_QueuedUpload(item, incoming, category_id))
            batch.append(item)
        return batch

    def process_next(self) -> Optional[UploadItem]:
        """Upload the oldest pending item. Returns it, or None if the queue is empty."""
        if not self._queue:
            return None
        queued = self._queue.pop(0)
        self._upload(queued)
        return queued.item

    def run(self) -> None:
        while self.process_next() is not None:
            pass

    def submit(
        self,
        files: Iterable[IncomingFile],
        category_id: Optional[str] = None,
        on_complete: Optional[Callable[[], None]] = None,
    ) -> list[UploadItem]:
        with self._lock:
            self.notices = []
            batch = self.enqueue(files, category_id)
            self.run()
            callback = on_complete or self.on_complete
            if callback:
                callback()
        return batch

    def _transition(self, item: UploadItem, status: UploadStatus) -> None:
        if status not in ALLOWED_TRANSITIONS[item.status]:
            raise ValueError(
                f"Upload {item.item_id} cannot move from {item.status.value} to {status.value}"
            )
        item.status = status

    def _fail(self, item: UploadItem, message: str) -> None:
        logger.error("Upload error for %s: %s", item.filename, message)
        self._transition(item, UploadStatus.ERROR)
        item.error = message
        self.notices.append(Notice.error(f"{item.filename} failed to upload"))

    def _upload(self, queued: _QueuedUpload) -> None:
        item, incoming = queued.item, queued.incoming
        storage_name = generate_storage_name(incoming.filename)
        storage_path = f"{self.prefix}/{storage_name}"

        self._transition(item, UploadStatus.UPLOADING)
        item.progress = None
        item.storage_path = storage_path

        put_result = self.storage.put(storage_path, incoming.data, incoming.content_type)
        if isinstance(put_result, Err):
            self._fail(item, put_result.error.message)
            return

        insert_result = self.db.insert_file(
            NewFile(
                name=storage_name,
                original_name=incoming.filename,
                size=incoming.size,
                mime_type=incoming.content_type or None,
                storage_path=storage_path,
                uploaded_by=self.user_id,
                category_id=queued.category_id,
            )
        )
        if isinstance(insert_result, Err):
            cleanup = self.storage.remove([storage_path])
            if isinstance(cleanup, Err):
                logger.error(
                    "Could not remove orphaned object %s: %s",
                    storage_path,
                    cleanup.error.message,
                )
            self._fail(item, insert_result.error.message)
            return

        self._transition(item, UploadStatus.COMPLETE)
        item.progress = 100
        item.file_id = insert_result.data.id
        self.notices.append(Notice.success(f"{item.filename} uploaded"))
        logger.info("Uploaded %s to %s", item.filename, storage_path)

    def dismiss(self, item_id: str) -> bool:
        for item in self.items:
            if item.item_id == item_id:
                if not item.is_terminal:
                    return False
                self.items.remove(item)
                return True
        return False

    def clear_completed(self) -> int:
        before = len(self.items)
        self.items = [i for i in self.items if i.status != UploadStatus.COMPLETE]
        return before - len(self.items)

    @property
    def has_completed(self) -> bool:
        return any(i.status == UploadStatus.COMPLETE for i in self.items)


class UploadQueueRegistry:
    """Keeps one upload queue per signed-in user for the life of the process."""

    def __init__(self, db: DbClient, storage: StorageClient, prefix: str = "uploads"):
        self.db = db
        self.storage = storage
        self.prefix = prefix
        self._queues: dict[str, UploadWorkflow] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> UploadWorkflow:
        with self._lock:
            workflow = self._queues.get(user_id)
            if workflow is None:
                workflow = UploadWorkflow(
                    self.db, self.storage, user_id=user_id, prefix=self.prefix
                )
                self._queues[user_id] = workflow
            return workflow

    def drop(self, user_id: str) -> None:
        with self._lock:
            self._queues.pop(user_id, None)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._queues

    def on_session_change(self, change: SessionChange) -> None:
        if change.previous.user and not change.current.is_authenticated:
            self.drop(change.previous.user.id)
