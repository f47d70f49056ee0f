"""Signed-document storage.

DocumentStore is the blocking storage port used by the SOA renderer (which
runs it off the event loop). Keys are relative paths of the form
"{agent_id}/{soa_id}.pdf".

Implementations:
- FilesystemDocumentStore: local directory, download links are short-lived
  JWTs served by the API
- S3DocumentStore: S3 bucket, download links are presigned GET URLs
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import boto3
import jwt
from botocore.exceptions import BotoCoreError, ClientError

from config.settings import AuthSettings, SOASettings
from domain.errors import NotFound, StorageError

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
DOWNLOAD_TOKEN_TYPE = "soa_document"


class DocumentStore(ABC):
    """Storage port for rendered SOA documents."""

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str = PDF_CONTENT_TYPE) -> None:
        """Write (or overwrite) an object. Raises StorageError."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete an object; missing objects are not an error."""
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    def signed_url(self, key: str, ttl_seconds: int) -> str:
        """Time-limited download URL for an object."""
        pass


class FilesystemDocumentStore(DocumentStore):
    """Local filesystem implementation of DocumentStore."""

    def __init__(
        self,
        root_path: str | Path,
        base_url: str,
        signing_secret: str,
        algorithm: str = "HS256",
    ):
        """
        Initialize filesystem storage.

        Args:
            root_path: Root directory for document storage
            base_url: Public origin used for download links
            signing_secret: Key used to sign download tokens
            algorithm: JWT algorithm for download tokens
        """
        self._root = Path(root_path).resolve()
        self._root.mkdir(parents=True, exist_ok=True)
        self._base_url = base_url.rstrip("/")
        self._secret = signing_secret
        self._algorithm = algorithm

    @property
    def root(self) -> Path:
        return self._root

    def _path_for(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if self._root not in path.parents:
            raise StorageError(f"Invalid document key: {key!r}")
        return path

    def put(self, key: str, data: bytes, content_type: str = PDF_CONTENT_TYPE) -> None:
        path = self._path_for(key)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(data)
            tmp_path.replace(path)
        except OSError as e:
            logger.error(f"Failed to write document {key}: {e}")
            raise StorageError() from e

    def delete(self, key: str) -> None:
        try:
            self._path_for(key).unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Failed to delete document {key}: {e}")
            raise StorageError() from e

    def exists(self, key: str) -> bool:
        return self._path_for(key).is_file()

    def read(self, key: str) -> bytes:
        path = self._path_for(key)
        if not path.is_file():
            raise NotFound("Document not found")
        return path.read_bytes()

    def signed_url(self, key: str, ttl_seconds: int) -> str:
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {
                "key": key,
                "type": DOWNLOAD_TOKEN_TYPE,
                "iat": now,
                "exp": now + timedelta(seconds=ttl_seconds),
            },
            self._secret,
            algorithm=self._algorithm,
        )
        return f"{self._base_url}/api/soa/documents/{token}"

    def resolve_download(self, token: str) -> str:
        """
        Validate a download token and return its document key.

        Raises:
            NotFound: If the token is invalid, expired or the document is gone
        """
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.InvalidTokenError:
            raise NotFound("Download link is invalid or has expired")

        key = payload.get("key")
        if payload.get("type") != DOWNLOAD_TOKEN_TYPE or not key or not self.exists(key):
            raise NotFound("Document not found")
        return key


class S3DocumentStore(DocumentStore):
    """S3 implementation of DocumentStore."""

    def __init__(self, bucket: str, region: Optional[str] = None, client=None):
        """
        Args:
            bucket: Target bucket
            region: AWS region (defaults to the boto3 environment)
            client: Preconfigured boto3 S3 client (tests)
        """
        self._bucket = bucket
        self._client = client or boto3.client("s3", region_name=region)

    def put(self, key: str, data: bytes, content_type: str = PDF_CONTENT_TYPE) -> None:
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"S3 upload failed for {key}: {e}")
            raise StorageError() from e

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"S3 delete failed for {key}: {e}")
            raise StorageError() from e

    def exists(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self._bucket, Key=key)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise StorageError() from e
        except BotoCoreError as e:
            raise StorageError() from e

    def signed_url(self, key: str, ttl_seconds: int) -> str:
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self._bucket, "Key": key},
                ExpiresIn=ttl_seconds,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"S3 presign failed for {key}: {e}")
            raise StorageError() from e


def build_document_store(settings: SOASettings, auth: AuthSettings) -> DocumentStore:
    """Document store selected by SOA_STORAGE_BACKEND."""
    if settings.storage_backend == "s3":
        if not settings.s3_bucket:
            raise ValueError("SOA_S3_BUCKET is required when SOA_STORAGE_BACKEND=s3")
        logger.info(f"Document store: s3://{settings.s3_bucket}")
        return S3DocumentStore(settings.s3_bucket, settings.s3_region)

    logger.info(f"Document store: {settings.storage_root}")
    return FilesystemDocumentStore(
        settings.storage_root,
        base_url=settings.app_base_url,
        signing_secret=auth.jwt_secret,
        algorithm=auth.jwt_algorithm,
    )
