import threading
import time
import unittest
from dataclasses import dataclass

from filedepot.db import InMemoryDbClient
from filedepot.session import ANONYMOUS, SessionChange, SessionSnapshot, User
from filedepot.storage import InMemoryStorageClient
from filedepot.uploads import (
    IncomingFile,
    UploadItem,
    UploadQueueRegistry,
    UploadStatus,
    UploadWorkflow,
    batch_notices,
)


@dataclass
class SlowStorage(InMemoryStorageClient):
    """Slow puts that record how many run at the same time."""

    delay: float = 0.05
    in_flight: int = 0
    max_in_flight: int = 0

    def __post_init__(self):
        self._counter = threading.Lock()

    def put(self, path, data, content_type=None):
        with self._counter:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        time.sleep(self.delay)
        with self._counter:
            self.in_flight -= 1
        return super().put(path, data, content_type)


def incoming(name, data=b"hello", content_type="text/plain"):
    return IncomingFile(filename=name, data=data, content_type=content_type)


class UploadWorkflowTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.storage = InMemoryStorageClient(rejected_payloads={b"boom"})
        self.workflow = UploadWorkflow(self.db, self.storage, user_id="admin-1")

    def test_single_upload_completes(self):
        refreshed = []
        batch = self.workflow.submit(
            [incoming("notes.txt")], on_complete=lambda: refreshed.append(True)
        )

        item = batch[0]
        self.assertEqual(item.status, UploadStatus.COMPLETE)
        self.assertEqual(item.progress, 100)
        self.assertTrue(item.storage_path.startswith("uploads/"))
        self.assertTrue(item.storage_path.endswith(".txt"))
        self.assertIn(item.storage_path, self.storage.stored_objects)

        record = self.db.files[item.file_id]
        self.assertEqual(record.original_name, "notes.txt")
        self.assertEqual(record.size, 5)
        self.assertEqual(record.uploaded_by, "admin-1")
        self.assertEqual(record.download_count, 0)
        self.assertEqual(refreshed, [True])
        self.assertEqual([n.message for n in self.workflow.notices], ["notes.txt uploaded"])

    def test_failing_item_does_not_stop_batch(self):
        files = [
            incoming("a.txt"),
            incoming("b.txt", data=b"boom"),
            incoming("c.txt"),
        ]
        batch = self.workflow.submit(files)

        statuses = [item.status for item in batch]
        self.assertEqual(
            statuses,
            [UploadStatus.COMPLETE, UploadStatus.ERROR, UploadStatus.COMPLETE],
        )
        self.assertIn("rejected", batch[1].error)
        errors = [n for n in self.workflow.notices if n.is_error]
        self.assertEqual(len(errors), 1)
        self.assertEqual(errors[0].message, "b.txt failed to upload")
        self.assertEqual(len(self.db.files), 2)
        self.assertEqual(
            [n.level for n in batch_notices(batch)], ["success", "error", "success"]
        )

    def test_metadata_failure_removes_object(self):
        self.db.failing_operations.add("insert_file")
        batch = self.workflow.submit([incoming("a.txt")])

        self.assertEqual(batch[0].status, UploadStatus.ERROR)
        self.assertEqual(self.storage.stored_objects, {})
        self.assertEqual(self.db.files, {})

    def test_unknown_category_fails_item(self):
        batch = self.workflow.submit([incoming("a.txt")], category_id="missing")
        self.assertEqual(batch[0].status, UploadStatus.ERROR)

    def test_upload_with_category(self):
        category = self.db.insert_category("Docs", "#6366f1").data
        batch = self.workflow.submit([incoming("a.txt")], category_id=category.id)
        record = self.db.files[batch[0].file_id]
        self.assertEqual(record.category_id, category.id)

    def test_enqueue_then_process_one_at_a_time(self):
        batch = self.workflow.enqueue([incoming("a.txt"), incoming("b.txt")])
        self.assertEqual([i.status for i in batch], [UploadStatus.PENDING] * 2)
        self.assertEqual([i.progress for i in batch], [0, 0])

        self.workflow.process_next()
        self.assertEqual(batch[0].status, UploadStatus.COMPLETE)
        self.assertEqual(batch[1].status, UploadStatus.PENDING)

        self.workflow.process_next()
        self.assertIsNone(self.workflow.process_next())
        self.assertEqual(batch[1].status, UploadStatus.COMPLETE)

    def test_dismiss_only_terminal_items(self):
        pending = self.workflow.enqueue([incoming("later.txt")])[0]
        self.assertFalse(self.workflow.dismiss(pending.item_id))

        self.workflow.run()
        self.assertTrue(self.workflow.dismiss(pending.item_id))
        self.assertEqual(self.workflow.items, [])
        self.assertFalse(self.workflow.dismiss("unknown"))

    def test_clear_completed_keeps_errors(self):
        self.workflow.submit([incoming("a.txt"), incoming("b.txt", data=b"boom")])
        self.assertTrue(self.workflow.has_completed)

        removed = self.workflow.clear_completed()

        self.assertEqual(removed, 1)
        self.assertEqual([i.status for i in self.workflow.items], [UploadStatus.ERROR])
        self.assertFalse(self.workflow.has_completed)

    def test_illegal_transition_rejected(self):
        item = UploadItem(filename="a.txt", size=1)
        with self.assertRaises(ValueError):
            self.workflow._transition(item, UploadStatus.COMPLETE)

        item.status = UploadStatus.COMPLETE
        with self.assertRaises(ValueError):
            self.workflow._transition(item, UploadStatus.UPLOADING)


class ConcurrentSubmitTests(unittest.TestCase):
    def test_overlapping_batches_upload_one_file_at_a_time(self):
        db = InMemoryDbClient()
        storage = SlowStorage()
        workflow = UploadWorkflow(db, storage, user_id="admin-1")
        finished = {}

        def submit(key, names):
            batch = workflow.submit([incoming(name) for name in names])
            finished[key] = (
                [item.status for item in batch],
                [notice.message for notice in batch_notices(batch)],
            )

        first = threading.Thread(target=submit, args=("a", ["a1.txt", "a2.txt"]))
        second = threading.Thread(target=submit, args=("b", ["b1.txt"]))
        first.start()
        time.sleep(0.02)
        second.start()
        first.join(timeout=5)
        second.join(timeout=5)

        self.assertEqual(storage.max_in_flight, 1)
        self.assertEqual(finished["a"][0], [UploadStatus.COMPLETE] * 2)
        self.assertEqual(finished["b"][0], [UploadStatus.COMPLETE])
        self.assertEqual(finished["a"][1], ["a1.txt uploaded", "a2.txt uploaded"])
        self.assertEqual(finished["b"][1], ["b1.txt uploaded"])
        self.assertEqual(len(db.files), 3)


class UploadQueueRegistryTests(unittest.TestCase):
    def test_queue_persists_per_user_and_drops_on_sign_out(self):
        registry = UploadQueueRegistry(InMemoryDbClient(), InMemoryStorageClient())
        first = registry.get("u1")
        self.assertIs(registry.get("u1"), first)
        self.assertIsNot(registry.get("u2"), first)

        signed_in = SessionSnapshot(user=User(id="u1", email="a@example.com"), is_admin=True)
        registry.on_session_change(SessionChange(token="t", previous=signed_in, current=ANONYMOUS))

        self.assertNotIn("u1", registry)
        self.assertIn("u2", registry)


if __name__ == "__main__":
    unittest.main()
