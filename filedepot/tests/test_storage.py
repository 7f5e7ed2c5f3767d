import unittest

from botocore.stub import Stubber

from filedepot.results import Err, Ok
from filedepot.storage import InMemoryStorageClient, S3StorageClient


class InMemoryStorageTests(unittest.TestCase):
    def test_put_url_remove(self):
        storage = InMemoryStorageClient()
        self.assertIsInstance(storage.put("uploads/a b.txt", b"data"), Ok)
        self.assertEqual(
            storage.get_public_url("uploads/a b.txt"),
            "https://example.test/storage/uploads/a%20b.txt",
        )
        self.assertIsInstance(storage.remove(["uploads/a b.txt"]), Ok)
        self.assertEqual(storage.stored_objects, {})

    def test_existing_path_rejected(self):
        storage = InMemoryStorageClient()
        storage.put("uploads/a.txt", b"one")
        result = storage.put("uploads/a.txt", b"two")
        self.assertIsInstance(result, Err)
        self.assertEqual(storage.stored_objects["uploads/a.txt"], b"one")


class S3StorageTests(unittest.TestCase):
    def setUp(self):
        self.storage = S3StorageClient(
            bucket="depot",
            region="us-east-1",
            endpoint="",
            access_key_id="test",
            secret_access_key="test",
        )
        self.stubber = Stubber(self.storage._client)
        self.stubber.activate()
        self.addCleanup(self.stubber.deactivate)

    def test_put_error_becomes_result(self):
        self.stubber.add_client_error(
            "put_object", service_error_code="AccessDenied", service_message="denied"
        )
        result = self.storage.put("uploads/a.txt", b"x", "text/plain")
        self.assertIsInstance(result, Err)
        self.assertEqual(result.error.code, "AccessDenied")

    def test_remove_reports_per_key_errors(self):
        self.stubber.add_response(
            "delete_objects",
            {"Errors": [{"Key": "uploads/a.txt", "Code": "AccessDenied", "Message": "denied"}]},
            {
                "Bucket": "depot",
                "Delete": {"Objects": [{"Key": "uploads/a.txt"}], "Quiet": True},
            },
        )
        result = self.storage.remove(["uploads/a.txt"])
        self.assertIsInstance(result, Err)
        self.assertIn("uploads/a.txt", result.error.message)

    def test_public_url(self):
        presigned = self.storage.get_public_url("uploads/a.txt")
        self.assertIn("uploads/a.txt", presigned)
        self.assertIn("X-Amz-Signature", presigned)

        self.storage.public_base_url = "https://cdn.example.com/"
        self.assertEqual(
            self.storage.get_public_url("uploads/a.txt"),
            "https://cdn.example.com/uploads/a.txt",
        )


if __name__ == "__main__":
    unittest.main()
