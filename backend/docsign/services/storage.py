from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from docsign.core.config import settings
from docsign.core.errors import StorageError


def resolve_storage_root() -> Path:
    """
    Directory that holds every locally stored file.
    DOCSIGN_STORAGE wins over the configured value so tests can redirect it.
    """
    raw = os.getenv("DOCSIGN_STORAGE") or settings.docsign_storage or "storage"
    return Path(raw).expanduser().resolve()


class StorageBackend(Protocol):
    def save_bytes(self, *, root: str, name: str, data: bytes, content_type: str = "application/pdf") -> str:
        ...

    def load_bytes(self, path: str) -> bytes:
        ...


@dataclass
class LocalStorage:
    base_dir: Path

    def __post_init__(self) -> None:
        self.base_dir = Path(self.base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def save_bytes(self, *, root: str, name: str, data: bytes, content_type: str = "application/pdf") -> str:  # noqa: ARG002
        target_dir = self.base_dir / root.strip("/")
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            file_path = target_dir / name
            # Write then rename so a reader never sees a half-written artifact.
            tmp_path = file_path.with_suffix(file_path.suffix + ".part")
            tmp_path.write_bytes(data)
            os.replace(tmp_path, file_path)
        except OSError as exc:
            raise StorageError(f"Failed to store {root}/{name}: {exc}") from exc
        return str(file_path.relative_to(self.base_dir).as_posix())

    def load_bytes(self, path: str) -> bytes:
        file_path = Path(path)
        candidate = file_path if file_path.is_absolute() else self.base_dir / path
        if not candidate.exists():
            raise FileNotFoundError(f"File {path!r} was not found in the configured storage.")
        return candidate.read_bytes()


@dataclass
class S3Storage:
    bucket: str
    client: Any

    def save_bytes(self, *, root: str, name: str, data: bytes, content_type: str = "application/pdf") -> str:
        key = f"{root.strip('/')}/{name}"
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Upload to s3://{self.bucket}/{key} failed: {exc}") from exc
        return f"s3://{self.bucket}/{key}"

    def load_bytes(self, path: str) -> bytes:
        if not path.startswith("s3://"):
            raise ValueError("Expected s3:// path for S3 storage")
        _, rest = path.split("s3://", 1)
        bucket, key = rest.split("/", 1)
        try:
            response = self.client.get_object(Bucket=bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Download of {path} failed: {exc}") from exc
        body = response.get("Body")
        return body.read() if body else b""


def get_storage() -> StorageBackend:
    # Tests and explicit local setups always use the filesystem.
    if os.getenv("PYTEST_CURRENT_TEST") or os.getenv("DOCSIGN_STORAGE"):
        return LocalStorage(base_dir=resolve_storage_root())

    if settings.s3_endpoint_url and settings.s3_access_key and settings.s3_secret_key and settings.s3_bucket_documents:
        client = boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.s3_access_key,
            aws_secret_access_key=settings.s3_secret_key,
            config=BotoConfig(signature_version="s3v4"),
            region_name=os.getenv("AWS_REGION", "us-east-1"),
        )
        return S3Storage(
            bucket=settings.s3_bucket_documents,
            client=client,
        )

    return LocalStorage(base_dir=resolve_storage_root())
