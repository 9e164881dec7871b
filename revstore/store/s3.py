"""S3 content store.

Stores each path as an S3 object with optional namespace prefix::

    s3://{bucket}/{prefix}/{path}

The object ETag is the revision token.  Revision checks are delegated to
S3 conditional writes, so they are atomic on the server side:

- ``create`` sends ``IfNoneMatch="*"``
- ``update`` and ``delete`` send ``IfMatch=<etag>``

A failed precondition (HTTP 412) or a concurrent conditional write
(HTTP 409) surfaces as ``RevisionConflictError`` / ``PathExistsError``.

Uses ``anyio.to_thread.run_sync`` to run boto3 calls in the thread pool,
matching the same async pattern as LocalContentStore.
"""

from __future__ import annotations

from functools import partial
from typing import Any

import boto3
from anyio import to_thread
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from revstore.errors import PathExistsError, PathNotFoundError, RevisionConflictError, StoreError
from revstore.models import ChildEntry, EntryType, StoredFile
from revstore.store.base import NOT_FOUND, ReadResult

_CONFLICT_CODES = {"PreconditionFailed", "ConditionalRequestConflict", "412", "409"}
_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


def _create_s3_client(
    endpoint_url: str | None,
    access_key: str | None,
    secret_key: str | None,
    region: str | None = None,
    path_style: bool = False,
) -> Any:
    """Create a boto3 S3 client.

    Args:
        endpoint_url: S3 endpoint URL (None for AWS).
        access_key: AWS access key ID.
        secret_key: AWS secret access key.
        region: AWS region name (optional, some endpoints require it).
        path_style: Use path-style addressing instead of virtual-hosted.
            Required by MinIO and some S3-compatible services.
    """
    config = Config(
        request_checksum_calculation="when_required",
        response_checksum_validation="when_required",
        s3={"addressing_style": "path" if path_style else "auto"},
    )

    return boto3.client(
        "s3",
        endpoint_url=endpoint_url,
        aws_access_key_id=access_key,
        aws_secret_access_key=secret_key,
        region_name=region,
        config=config,
    )


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class S3ContentStore:
    """S3 implementation of the ContentStore protocol."""

    def __init__(
        self,
        bucket: str,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        prefix: str | None = None,
        region: str | None = None,
        path_style: bool = False,
        client: Any = None,
    ) -> None:
        self._bucket = bucket
        self._client = client or _create_s3_client(
            endpoint_url, access_key, secret_key, region=region, path_style=path_style
        )
        self._key_prefix = f"{prefix.strip('/')}/" if prefix else ""

    def _object_key(self, path: str) -> str:
        return f"{self._key_prefix}{path.strip('/')}"

    # -- Read ------------------------------------------------------------------

    async def read(self, path: str) -> ReadResult:
        key = self._object_key(path)
        found = await to_thread.run_sync(partial(self._get_object, key))
        if found is None:
            return NOT_FOUND
        body, etag = found
        return StoredFile(path=path.strip("/"), content=body, revision=etag)

    def _get_object(self, key: str) -> tuple[str, str] | None:
        """Get object and read body in the same thread.

        Reading the streaming body must happen in the same thread as
        get_object to avoid issues with chunked transfer encoding.
        """
        try:
            resp = self._client.get_object(Bucket=self._bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                return None
            msg = f"S3 read failed for {key}"
            raise StoreError(msg) from e
        except BotoCoreError as e:
            msg = f"S3 read failed for {key}"
            raise StoreError(msg) from e
        return resp["Body"].read().decode("utf-8"), resp["ETag"]

    async def list_children(self, path: str = "") -> list[ChildEntry]:
        prefix = self._object_key(path)
        prefix = f"{prefix}/" if prefix and not prefix.endswith("/") else prefix
        return await to_thread.run_sync(partial(self._list, prefix))

    def _list(self, prefix: str) -> list[ChildEntry]:
        entries: list[ChildEntry] = []
        paginator = self._client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix, Delimiter="/"):
                for common in page.get("CommonPrefixes", []):
                    full = common["Prefix"].rstrip("/")
                    entries.append(self._entry(full, EntryType.DIR))
                for obj in page.get("Contents", []):
                    entries.append(self._entry(obj["Key"], EntryType.FILE))
        except (ClientError, BotoCoreError) as e:
            msg = f"S3 list failed for {prefix}"
            raise StoreError(msg) from e
        return entries

    def _entry(self, key: str, entry_type: EntryType) -> ChildEntry:
        path = key[len(self._key_prefix) :]
        return ChildEntry(name=path.rsplit("/", 1)[-1], path=path, type=entry_type)

    # -- Write -----------------------------------------------------------------

    async def create(self, path: str, content: str, message: str) -> str:
        key = self._object_key(path)
        return await to_thread.run_sync(partial(self._put, key, content, path, IfNoneMatch="*"))

    async def update(self, path: str, content: str, message: str, revision: str) -> str:
        key = self._object_key(path)
        return await to_thread.run_sync(partial(self._put, key, content, path, IfMatch=revision))

    def _put(self, key: str, content: str, path: str, **conditions: str) -> str:
        try:
            resp = self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=content.encode("utf-8"),
                **conditions,
            )
        except ClientError as e:
            code = _error_code(e)
            if code in _MISSING_CODES:
                raise PathNotFoundError(path) from e
            if code in _CONFLICT_CODES:
                if "IfNoneMatch" in conditions:
                    raise PathExistsError(path) from e
                raise RevisionConflictError(path, conditions.get("IfMatch")) from e
            msg = f"S3 write failed for {key}"
            raise StoreError(msg) from e
        except BotoCoreError as e:
            msg = f"S3 write failed for {key}"
            raise StoreError(msg) from e
        return resp["ETag"]

    async def delete(self, path: str, message: str, revision: str) -> None:
        key = self._object_key(path)
        await to_thread.run_sync(partial(self._delete, key, path, revision))

    def _delete(self, key: str, path: str, revision: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key, IfMatch=revision)
        except ClientError as e:
            code = _error_code(e)
            if code in _MISSING_CODES:
                raise PathNotFoundError(path) from e
            if code in _CONFLICT_CODES:
                raise RevisionConflictError(path, revision) from e
            msg = f"S3 delete failed for {key}"
            raise StoreError(msg) from e
        except BotoCoreError as e:
            msg = f"S3 delete failed for {key}"
            raise StoreError(msg) from e
