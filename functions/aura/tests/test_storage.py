import unittest
from unittest.mock import MagicMock, patch

from aura.errors import StorageError, ValidationError
from aura.storage import (
    InMemoryStorageClient,
    S3StorageClient,
    Upload,
    upload_image,
    validate_upload,
)


class ValidateUploadTests(unittest.TestCase):
    def test_only_images(self):
        with self.assertRaises(ValidationError):
            validate_upload(Upload(b"%PDF", "application/pdf"))
        validate_upload(Upload(b"gif", "image/gif"))

    def test_size_limit(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_upload(Upload(b"x" * (2 * 1024 * 1024 + 1), "image/png"), max_size_mb=2)
        self.assertEqual(str(ctx.exception), "File size exceeds 2MB limit.")


class UploadImageTests(unittest.TestCase):
    def test_returns_url(self):
        storage = InMemoryStorageClient()
        url = upload_image(storage, "posts/u/p", Upload(b"img", "image/png"))
        self.assertEqual(url, "https://example.test/storage/posts/u/p")
        self.assertEqual(storage.stored_objects["posts/u/p"], (b"img", "image/png"))

    def test_backend_failure_becomes_storage_error(self):
        storage = MagicMock()
        storage.upload_bytes.side_effect = ConnectionError("reset")
        with self.assertLogs("aura.storage", level="ERROR"):
            with self.assertRaises(StorageError) as ctx:
                upload_image(storage, "posts/u/p", Upload(b"img", "image/png"))
        self.assertEqual(str(ctx.exception), "Image upload failed. Please try again.")


class S3StorageClientTests(unittest.TestCase):
    @patch("aura.storage.boto3.client")
    def test_upload_puts_public_object(self, mock_client):
        s3 = MagicMock()
        mock_client.return_value = s3
        client = S3StorageClient(
            bucket="aura-media",
            region="us-east-1",
            endpoint="",
            access_key_id="key",
            secret_access_key="secret",
        )

        url = client.upload_bytes("stories/u/s1", b"img", "image/jpeg")

        s3.put_object.assert_called_once_with(
            Bucket="aura-media",
            Key="stories/u/s1",
            Body=b"img",
            ContentType="image/jpeg",
            ACL="public-read",
        )
        self.assertEqual(url, "https://aura-media.s3.us-east-1.amazonaws.com/stories/u/s1")

    @patch("aura.storage.boto3.client")
    def test_public_url_variants(self, mock_client):
        with_base = S3StorageClient("b", "r", "", "", "", public_base_url="https://cdn.test/")
        self.assertEqual(with_base.public_url("a/b"), "https://cdn.test/a/b")

        with_endpoint = S3StorageClient("b", "r", "https://minio.local", "", "")
        self.assertEqual(with_endpoint.public_url("a/b"), "https://minio.local/b/a/b")


if __name__ == "__main__":
    unittest.main()
