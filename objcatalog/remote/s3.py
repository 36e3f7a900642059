"""S3 implementation of the remote store capability (boto3)."""

from __future__ import annotations

import asyncio
import io
import logging
from typing import IO, TYPE_CHECKING, Any

import boto3
from boto3.exceptions import Boto3Error
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from objcatalog.exceptions import RemoteTransferError
from objcatalog.remote.base import (
    ConnectionCredentials,
    DeleteOutcome,
    ListPage,
    ObjectHead,
    ProgressCallback,
    RemoteObject,
    RemoteStoreFactory,
    TransferProgress,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from objcatalog.config import Settings

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
_DOWNLOAD_CHUNK_SIZE = 1024 * 1024
MAX_DELETE_BATCH = 1000


def _describe(exc: Exception) -> str:
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = error.get("Code", "")
        message = error.get("Message", "")
        return f"{code}: {message}" if message else str(code or exc)
    return str(exc)


def _is_not_found(exc: Exception) -> bool:
    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "")
        return code in _NOT_FOUND_CODES
    return False


class S3RemoteStore:
    """Remote store backed by one S3 (or S3-compatible) bucket.

    boto3 is blocking, so every request runs in a worker thread. Progress
    callbacks are marshalled back onto the event loop thread.
    """

    def __init__(
        self,
        credentials: ConnectionCredentials,
        *,
        endpoint_url: str | None = None,
        request_timeout_s: float = 30.0,
        max_attempts: int = 5,
        delete_batch_size: int = MAX_DELETE_BATCH,
        client: Any | None = None,
    ) -> None:
        self.bucket = credentials.bucket
        self.delete_batch_size = min(delete_batch_size, MAX_DELETE_BATCH)
        if client is None:
            session = boto3.session.Session(
                aws_access_key_id=credentials.access_key_id,
                aws_secret_access_key=credentials.secret_access_key,
                region_name=credentials.region or None,
            )
            client = session.client(
                "s3",
                endpoint_url=credentials.endpoint_url or endpoint_url,
                config=BotoConfig(
                    connect_timeout=request_timeout_s,
                    read_timeout=request_timeout_s,
                    retries={"max_attempts": max_attempts, "mode": "standard"},
                ),
            )
        self._s3 = client

    @classmethod
    def factory(cls, settings: Settings) -> RemoteStoreFactory:
        """Build a factory that opens a store per resolved connection."""

        def _open(credentials: ConnectionCredentials) -> S3RemoteStore:
            return cls(
                credentials,
                endpoint_url=settings.s3_endpoint_url,
                request_timeout_s=settings.s3_request_timeout_s,
                max_attempts=settings.s3_max_attempts,
                delete_batch_size=settings.delete_batch_size,
            )

        return _open

    async def _call(
        self,
        operation: str,
        key: str | None,
        fn: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except (ClientError, BotoCoreError, Boto3Error) as exc:
            raise RemoteTransferError(operation, key, _describe(exc)) from exc

    def _progress_reporter(
        self, key: str, total: int | None, on_progress: ProgressCallback | None
    ) -> Callable[[int], None] | None:
        """Wrap a progress callback so worker threads can report byte increments."""
        if on_progress is None:
            return None
        loop = asyncio.get_running_loop()
        loaded = 0

        def _report(increment: int) -> None:
            nonlocal loaded
            loaded += increment
            loop.call_soon_threadsafe(on_progress, TransferProgress(key, loaded, total))

        return _report

    async def list_page(self, continuation_token: str | None = None) -> ListPage:
        kwargs: dict[str, Any] = {"Bucket": self.bucket}
        if continuation_token:
            kwargs["ContinuationToken"] = continuation_token
        resp = await self._call("list", None, self._s3.list_objects_v2, **kwargs)
        objects = [
            RemoteObject(
                key=item["Key"],
                size=item.get("Size"),
                last_modified=item.get("LastModified"),
                storage_class=item.get("StorageClass"),
            )
            for item in resp.get("Contents", [])
        ]
        next_token = resp.get("NextContinuationToken") if resp.get("IsTruncated") else None
        logger.debug("Listed %d keys from bucket %s", len(objects), self.bucket)
        return ListPage(objects=objects, next_token=next_token)

    async def head(self, key: str) -> ObjectHead | None:
        try:
            resp = await asyncio.to_thread(self._s3.head_object, Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _is_not_found(exc):
                return None
            raise RemoteTransferError("head", key, _describe(exc)) from exc
        except BotoCoreError as exc:
            raise RemoteTransferError("head", key, _describe(exc)) from exc
        return ObjectHead(
            key=key,
            content_length=resp.get("ContentLength", 0),
            last_modified=resp.get("LastModified"),
            content_type=resp.get("ContentType"),
            storage_class=resp.get("StorageClass"),
            etag=resp.get("ETag"),
        )

    async def get(
        self,
        key: str,
        sink: IO[bytes],
        on_progress: ProgressCallback | None = None,
    ) -> ObjectHead:
        resp = await self._call("get", key, self._s3.get_object, Bucket=self.bucket, Key=key)
        total = resp.get("ContentLength")
        report = self._progress_reporter(key, total, on_progress)

        def _drain() -> None:
            body = resp["Body"]
            try:
                for chunk in body.iter_chunks(_DOWNLOAD_CHUNK_SIZE):
                    sink.write(chunk)
                    if report is not None:
                        report(len(chunk))
            finally:
                body.close()

        await self._call("get", key, _drain)
        return ObjectHead(
            key=key,
            content_length=total or 0,
            last_modified=resp.get("LastModified"),
            content_type=resp.get("ContentType"),
            storage_class=resp.get("StorageClass"),
            etag=resp.get("ETag"),
        )

    async def put(
        self,
        key: str,
        content: bytes | IO[bytes],
        *,
        content_type: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        if isinstance(content, (bytes, bytearray)):
            kwargs: dict[str, Any] = {
                "Bucket": self.bucket,
                "Key": key,
                "Body": bytes(content),
                "ContentLength": len(content),
            }
            if content_type:
                kwargs["ContentType"] = content_type
            await self._call("put", key, self._s3.put_object, **kwargs)
            if on_progress is not None:
                on_progress(TransferProgress(key, len(content), len(content)))
            return

        total: int | None = None
        if isinstance(content, io.IOBase) and content.seekable():
            position = content.tell()
            total = content.seek(0, io.SEEK_END) - position
            content.seek(position)
        extra_args = {"ContentType": content_type} if content_type else None
        # Multipart above the transfer threshold; progress arrives from worker threads.
        await self._call(
            "put",
            key,
            self._s3.upload_fileobj,
            content,
            self.bucket,
            key,
            ExtraArgs=extra_args,
            Callback=self._progress_reporter(key, total, on_progress),
        )

    async def copy(self, source_key: str, dest_key: str) -> None:
        await self._call(
            "copy",
            source_key,
            self._s3.copy_object,
            Bucket=self.bucket,
            Key=dest_key,
            CopySource={"Bucket": self.bucket, "Key": source_key},
        )

    async def delete_many(self, keys: list[str]) -> list[DeleteOutcome]:
        outcomes: list[DeleteOutcome] = []
        for start in range(0, len(keys), self.delete_batch_size):
            batch = keys[start : start + self.delete_batch_size]
            resp = await self._call(
                "delete",
                batch[0],
                self._s3.delete_objects,
                Bucket=self.bucket,
                Delete={"Objects": [{"Key": key} for key in batch], "Quiet": False},
            )
            errors = {
                err.get("Key", ""): f"{err.get('Code', '')}: {err.get('Message', '')}"
                for err in resp.get("Errors", [])
            }
            outcomes.extend(
                DeleteOutcome(key=key, deleted=key not in errors, error=errors.get(key))
                for key in batch
            )
        return outcomes

    async def presign_get(self, key: str, expires_in: int) -> str:
        try:
            url: str = self._s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as exc:
            raise RemoteTransferError("presign", key, _describe(exc)) from exc
        return url
