"""S3-compatible storage client (AWS S3, MinIO)."""

from __future__ import annotations

import logging

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .storage_client import (
    ObjectAlreadyExistsError,
    ObjectNotFoundError,
    ObjectStorageClient,
    PreconditionFailedError,
    StorageError,
    StorageUnavailableError,
    StoredObject,
)

log = logging.getLogger(__name__)

_ERROR_CODE_MAP: dict[str, type[StorageError]] = {
    "NoSuchKey": ObjectNotFoundError,
    "404": ObjectNotFoundError,
    "NotFound": ObjectNotFoundError,
    "PreconditionFailed": PreconditionFailedError,
    "412": PreconditionFailedError,
    "ConditionalRequestConflict": PreconditionFailedError,
    "409": PreconditionFailedError,
    "AccessDenied": StorageUnavailableError,
    "403": StorageUnavailableError,
    "InvalidAccessKeyId": StorageUnavailableError,
    "SignatureDoesNotMatch": StorageUnavailableError,
    "NoSuchBucket": StorageUnavailableError,
}

_ALREADY_EXISTS_CODES = ("PreconditionFailed", "412")
_CREATE_CONFLICT_CODES = ("ConditionalRequestConflict", "409")

_PRESIGN_OPERATIONS = {
    "GET": "get_object",
    "HEAD": "head_object",
}


class S3StorageClient(ObjectStorageClient):
    """
    S3 互換ストレージのクライアント。

    認証情報は boto3 の既定チェーン（環境変数、共有設定ファイル等）から解決する。
    MinIO 互換のため既定でパススタイルのアドレッシングを使う。
    """

    def __init__(
        self,
        bucket_name: str,
        region: str | None = None,
        endpoint_url: str | None = None,
        force_path_style: bool = True,
        aws_access_key_id: str | None = None,
        aws_secret_access_key: str | None = None,
    ):
        if not bucket_name:
            raise ValueError("bucket_name は必須です。")
        self._bucket = bucket_name

        kwargs: dict = {
            "config": Config(
                region_name=region,
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "standard"},
                s3={"addressing_style": "path" if force_path_style else "auto"},
            ),
        }
        if aws_access_key_id and aws_secret_access_key:
            kwargs["aws_access_key_id"] = aws_access_key_id
            kwargs["aws_secret_access_key"] = aws_secret_access_key
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url

        self._client = boto3.client("s3", **kwargs)

    @property
    def bucket(self) -> str:
        return self._bucket

    def get(self, key: str) -> StoredObject:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
            return StoredObject(key=key, body=response["Body"].read(), etag=response.get("ETag"))
        except ClientError as e:
            raise self._translate_error(e, key) from e
        except BotoCoreError as e:
            raise StorageUnavailableError(f"Failed to read: {key}", key=key) from e

    def head_exists(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self._bucket, Key=key)
            return True
        except ClientError as e:
            translated = self._translate_error(e, key)
            if isinstance(translated, ObjectNotFoundError):
                return False
            raise translated from e
        except BotoCoreError as e:
            raise StorageUnavailableError(f"Failed to check if object exists: {key}", key=key) from e

    def put_if_absent(self, key: str, data: bytes) -> StoredObject:
        """
        キーが存在しない場合だけ書き込む。

        同一キーへの条件付き書き込みが競合すると S3 は 409 を返すため、一度だけ再試行して
        勝者の書き込みを 412 として観測する。再試行でも 409 の場合は既存とみなす。
        """

        try:
            try:
                response = self._create(key, data)
            except ClientError as e:
                if _error_code(e) not in _CREATE_CONFLICT_CODES:
                    raise
                log.info("Conditional create of %r conflicted with a concurrent write, retrying", key)
                response = self._create(key, data)
        except ClientError as e:
            if _error_code(e) in _ALREADY_EXISTS_CODES + _CREATE_CONFLICT_CODES:
                raise ObjectAlreadyExistsError(f"Refusing to overwrite key: {key}", key=key) from e
            raise self._translate_error(e, key) from e
        except BotoCoreError as e:
            raise StorageUnavailableError(f"Failed to upload: {key}", key=key) from e
        return StoredObject(key=key, body=data, etag=response.get("ETag"))

    def _create(self, key: str, data: bytes) -> dict:
        return self._client.put_object(Bucket=self._bucket, Key=key, Body=data, IfNoneMatch="*")

    def put(self, key: str, data: bytes, *, if_match: str | None = None) -> StoredObject:
        params: dict = {"Bucket": self._bucket, "Key": key, "Body": data}
        if if_match is not None:
            params["IfMatch"] = if_match
        try:
            response = self._client.put_object(**params)
        except ClientError as e:
            raise self._translate_error(e, key) from e
        except BotoCoreError as e:
            raise StorageUnavailableError(f"Failed to upload: {key}", key=key) from e
        return StoredObject(key=key, body=data, etag=response.get("ETag"))

    def presign(self, key: str, *, method: str = "GET", expires_in: int) -> str:
        operation = _PRESIGN_OPERATIONS.get(method.upper())
        if operation is None:
            raise ValueError(f"Unsupported method for presigning: {method}")
        try:
            return self._client.generate_presigned_url(
                operation,
                Params={"Bucket": self._bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            log.warning("Failed to presign request for object %r: %s", key, e)
            raise StorageUnavailableError(f"Failed to presign request for object {key!r}", key=key) from e

    def _translate_error(self, error: ClientError, key: str | None = None) -> StorageError:
        exc_cls = _ERROR_CODE_MAP.get(_error_code(error), StorageError)
        return exc_cls(str(error), key=key)


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))
