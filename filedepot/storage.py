"""
Object storage abstraction for S3-compatible buckets and in-memory testing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Protocol
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from filedepot.results import Err, Ok, Result, StoreError


class StorageClient(Protocol):
    """Defines the operations the app needs from object storage."""

    def put(
        self, path: str, data: bytes, content_type: str | None = None
    ) -> Result[None]:
        ...

    def get_public_url(self, path: str) -> str:
        ...

    def remove(self, paths: Iterable[str]) -> Result[None]:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: dict = field(default_factory=dict)
    # Upload paths are generated, so failing puts are keyed by payload.
    rejected_payloads: set = field(default_factory=set)
    fail_all_removes: bool = False

    def put(
        self, path: str, data: bytes, content_type: str | None = None
    ) -> Result[None]:
        if bytes(data) in self.rejected_payloads:
            return Err(StoreError(f"Upload of {path} rejected"))
        if path in self.stored_objects:
            return Err(StoreError("The resource already exists", code="409"))
        self.stored_objects[path] = bytes(data)
        return Ok(None)

    def get_public_url(self, path: str) -> str:
        return f"{self.base_url}/{quote(path)}"

    def remove(self, paths: Iterable[str]) -> Result[None]:
        paths = list(paths)
        if self.fail_all_removes:
            return Err(StoreError("Removal rejected"))
        for path in paths:
            self.stored_objects.pop(path, None)
        return Ok(None)


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client (AWS, MinIO, COS, Supabase storage S3 API).
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: str = ""
    presign_expires_in: int = 3600

    def __post_init__(self):
        config = Config(signature_version="s3v4")
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def put(
        self, path: str, data: bytes, content_type: str | None = None
    ) -> Result[None]:
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=path,
                Body=data,
                ContentType=content_type or "application/octet-stream",
            )
        except (BotoCoreError, ClientError) as exc:
            return Err(StoreError(str(exc), code=_client_error_code(exc)))
        return Ok(None)

    def get_public_url(self, path: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{quote(path)}"
        return self._client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": self.bucket, "Key": path},
            ExpiresIn=self.presign_expires_in,
        )

    def remove(self, paths: Iterable[str]) -> Result[None]:
        objects = [{"Key": path} for path in paths]
        if not objects:
            return Ok(None)
        try:
            response = self._client.delete_objects(
                Bucket=self.bucket, Delete={"Objects": objects, "Quiet": True}
            )
        except (BotoCoreError, ClientError) as exc:
            return Err(StoreError(str(exc), code=_client_error_code(exc)))
        errors = response.get("Errors") or []
        if errors:
            first = errors[0]
            return Err(
                StoreError(
                    f"{first.get('Key')}: {first.get('Message')}",
                    code=first.get("Code"),
                )
            )
        return Ok(None)


def _client_error_code(exc: Exception) -> str | None:
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code")
    return None
