from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator

import boto3
from botocore.client import Config
from botocore.exceptions import ClientError

from wallpaper_api.core.config import settings


_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


def get_s3_client(*, endpoint_url: str | None = None):
    ep = (endpoint_url or "").strip() or None
    # For AWS S3, endpoint_url must be None.
    # For S3-compatible providers (MinIO/R2/YC), endpoint_url is required.
    return boto3.client(
        "s3",
        endpoint_url=ep or (str(getattr(settings, "s3_endpoint_url", "") or "").strip() or None),
        aws_access_key_id=settings.s3_access_key_id,
        aws_secret_access_key=settings.s3_secret_access_key,
        region_name=settings.s3_region_name,
        config=Config(
            signature_version="s3v4",
            connect_timeout=float(getattr(settings, "s3_connect_timeout_seconds", 3.0)),
            read_timeout=float(getattr(settings, "s3_read_timeout_seconds", 60.0)),
            retries={
                "max_attempts": int(getattr(settings, "s3_max_attempts", 5)),
                "mode": "standard",
            },
            max_pool_connections=int(getattr(settings, "s3_max_pool_connections", 50)),
            s3={
                "addressing_style": str(getattr(settings, "s3_addressing_style", "path")),
            },
        ),
    )


def ensure_bucket_exists(s3=None, bucket: str | None = None) -> None:
    s3 = s3 or get_s3_client()
    bucket = bucket or settings.s3_bucket
    try:
        s3.head_bucket(Bucket=bucket)
    except Exception:
        env = (getattr(settings, "app_env", "") or "").strip().lower()
        # In production we should NOT auto-create buckets.
        if env in {"prod", "production"}:
            raise

        # AWS requires LocationConstraint for non-us-east-1.
        region = str(getattr(settings, "s3_region_name", "") or "").strip() or "us-east-1"
        ep = str(getattr(settings, "s3_endpoint_url", "") or "").strip()
        is_aws = not ep
        if is_aws and region not in {"us-east-1", ""}:
            s3.create_bucket(
                Bucket=bucket,
                CreateBucketConfiguration={"LocationConstraint": region},
            )
        else:
            s3.create_bucket(Bucket=bucket)


@dataclass
class StoredObject:
    key: str
    body: bytes
    etag: str
    http_metadata: dict[str, str] = field(default_factory=dict)

    @property
    def http_etag(self) -> str:
        et = (self.etag or "").strip()
        if et and not et.startswith('"') and not et.startswith("W/"):
            et = f'"{et}"'
        return et


@dataclass(frozen=True)
class ObjectListing:
    key: str
    last_modified: datetime | None
    size: int


# boto3 response field -> HTTP header
_HTTP_METADATA_FIELDS = {
    "ContentType": "Content-Type",
    "ContentLanguage": "Content-Language",
    "ContentDisposition": "Content-Disposition",
    "ContentEncoding": "Content-Encoding",
    "ExpiresString": "Expires",
}


def _is_missing(e: ClientError) -> bool:
    code = str((e.response.get("Error") or {}).get("Code") or "")
    return code in _MISSING_CODES


class ObjectStore:
    """Raw image bytes in an S3-compatible bucket, keyed by image key."""

    def __init__(self, client=None, *, bucket: str | None = None):
        self._client = client
        self.bucket = bucket or settings.s3_bucket

    @property
    def client(self):
        if self._client is None:
            self._client = get_s3_client()
        return self._client

    def get(self, key: str) -> StoredObject | None:
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _is_missing(e):
                return None
            raise

        body = resp["Body"]
        try:
            data = body.read()
        finally:
            close = getattr(body, "close", None)
            if close is not None:
                close()

        meta: dict[str, str] = {}
        for field_name, header in _HTTP_METADATA_FIELDS.items():
            v = resp.get(field_name)
            if v:
                meta[header] = str(v)
        if "Expires" not in meta and isinstance(resp.get("Expires"), datetime):
            meta["Expires"] = resp["Expires"].strftime("%a, %d %b %Y %H:%M:%S GMT")

        return StoredObject(key=key, body=data, etag=str(resp.get("ETag") or ""), http_metadata=meta)

    def put(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        params: dict[str, object] = {"Bucket": self.bucket, "Key": key, "Body": data}
        if content_type:
            params["ContentType"] = content_type
        self.client.put_object(**params)

    def delete(self, key: str) -> None:
        # S3 DeleteObject succeeds for absent keys; some providers answer 404.
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _is_missing(e):
                return
            raise

    def list_objects(self, *, prefix: str = "") -> Iterator[ObjectListing]:
        token: str | None = None
        while True:
            kwargs: dict[str, object] = {
                "Bucket": self.bucket,
                "Prefix": prefix,
                "MaxKeys": 1000,
            }
            if token:
                kwargs["ContinuationToken"] = token

            resp = self.client.list_objects_v2(**kwargs)
            for obj in resp.get("Contents") or []:
                key = obj.get("Key")
                if not key:
                    continue
                lm = obj.get("LastModified")
                yield ObjectListing(
                    key=str(key),
                    last_modified=lm if isinstance(lm, datetime) else None,
                    size=int(obj.get("Size") or 0),
                )

            if not resp.get("IsTruncated"):
                break
            token = str(resp.get("NextContinuationToken") or "") or None
            if not token:
                break

    def ping(self) -> None:
        self.client.head_bucket(Bucket=self.bucket)
