"""Object storage for generated invoice PDFs.

``STORAGE_BUCKET=local`` keeps files under ``LOCAL_STORAGE_PATH``; any other
value is treated as an S3 bucket name.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from io import BytesIO
from pathlib import Path

import boto3
import structlog
from botocore.client import BaseClient
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from invoice_backend.app.core.errors import UpstreamFailure
from invoice_backend.app.core.settings import get_settings

LOGGER = structlog.get_logger(__name__)

# S3 DeleteObjects accepts at most this many keys per call
DELETE_BATCH_SIZE = 1000


def _is_local_mode() -> bool:
    return get_settings().storage_bucket.lower() == "local"


def _local_bucket_root() -> Path:
    root = Path(get_settings().local_storage_path)
    root.mkdir(parents=True, exist_ok=True)
    return root


def _client() -> BaseClient:
    settings = get_settings()
    client_kwargs: dict[str, object] = {"config": Config(signature_version="s3v4")}
    if settings.aws_region:
        client_kwargs["region_name"] = settings.aws_region
    if settings.aws_access_key_id and settings.aws_secret_access_key:
        client_kwargs["aws_access_key_id"] = settings.aws_access_key_id
        client_kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
    return boto3.client("s3", **client_kwargs)


def _safe_segment(value: str | None) -> str:
    ascii_value = (value or "").encode("ascii", errors="ignore").decode("ascii")
    return re.sub(r"[^A-Za-z0-9_-]+", "", ascii_value) or "unknown"


def build_object_key(filename: str, *, partner_code: str | None, reference_date: date) -> str:
    settings = get_settings()
    safe_name = re.sub(r"[\\/]+", "_", filename).strip()
    return (
        f"{settings.storage_prefix}/{_safe_segment(partner_code)}/"
        f"{reference_date.year:04d}/{reference_date.month:02d}/{safe_name}"
    )


def upload_bytes(data: bytes, *, key: str, content_type: str = "application/pdf") -> str:
    """Store ``data`` under ``key`` and return the key."""
    settings = get_settings()
    if _is_local_mode():
        destination = _local_bucket_root() / key
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(data)
        LOGGER.info("stored_local", key=key, path=str(destination), bytes=len(data))
        return key

    try:
        _client().upload_fileobj(
            Fileobj=BytesIO(data),
            Bucket=settings.storage_bucket,
            Key=key,
            ExtraArgs={"ContentType": content_type},
        )
    except (BotoCoreError, NoCredentialsError, ClientError) as exc:
        LOGGER.error("s3_upload_failed", key=key, error=str(exc))
        raise UpstreamFailure("Failed to store invoice PDF") from exc
    LOGGER.info("uploaded_s3", bucket=settings.storage_bucket, key=key, bytes=len(data))
    return key


def generate_signed_url(key: str, *, expires_in: int | None = None, download_name: str | None = None) -> str:
    settings = get_settings()
    if expires_in is None:
        expires_in = settings.signed_url_ttl_hours * 3600

    if _is_local_mode():
        return (_local_bucket_root() / key).resolve().as_uri()

    params: dict[str, str] = {"Bucket": settings.storage_bucket, "Key": key}
    if download_name:
        safe_name = re.sub(r"[^A-Za-z0-9._-]+", "_", download_name)
        params["ResponseContentDisposition"] = f'attachment; filename="{safe_name}"'
    try:
        return _client().generate_presigned_url("get_object", Params=params, ExpiresIn=expires_in)
    except (BotoCoreError, ClientError) as exc:
        LOGGER.error("presign_failed", key=key, error=str(exc))
        raise UpstreamFailure("Failed to issue download URL") from exc


@dataclass
class CleanupStats:
    total_files: int = 0
    expired_files: int = 0
    deleted_files: int = 0
    errors: list[str] = field(default_factory=list)
    dry_run: bool = False
    skipped: bool = False


def _list_local(prefix: str) -> list[tuple[str, datetime]]:
    root = _local_bucket_root()
    base = root / prefix
    if not base.exists():
        return []
    objects = []
    for path in base.rglob("*"):
        if path.is_file():
            modified = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
            objects.append((path.relative_to(root).as_posix(), modified))
    return objects


def _list_s3(client: BaseClient, bucket: str, prefix: str) -> list[tuple[str, datetime]]:
    objects = []
    paginator = client.get_paginator("list_objects_v2")
    for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
        for entry in page.get("Contents", []):
            objects.append((entry["Key"], entry["LastModified"]))
    return objects


def cleanup_expired(
    *,
    ttl_hours: int | None = None,
    dry_run: bool | None = None,
    now: datetime | None = None,
) -> CleanupStats:
    """Delete stored files older than the signed-URL TTL.

    Individual delete failures are collected in ``errors`` rather than raised.
    """
    settings = get_settings()
    ttl_hours = settings.signed_url_ttl_hours if ttl_hours is None else ttl_hours
    dry_run = settings.cleanup_dry_run if dry_run is None else dry_run
    stats = CleanupStats(dry_run=dry_run)

    if settings.cleanup_disabled:
        LOGGER.info("cleanup_skipped", reason="disabled")
        stats.skipped = True
        return stats

    cutoff = (now or datetime.now(timezone.utc)) - timedelta(hours=ttl_hours)
    prefix = settings.storage_prefix
    local = _is_local_mode()
    client = None

    try:
        if local:
            objects = _list_local(prefix)
        else:
            client = _client()
            objects = _list_s3(client, settings.storage_bucket, prefix)
    except (BotoCoreError, ClientError) as exc:
        LOGGER.error("cleanup_list_failed", error=str(exc))
        stats.errors.append(str(exc))
        return stats

    stats.total_files = len(objects)
    expired = [key for key, modified in objects if modified < cutoff]
    stats.expired_files = len(expired)

    if dry_run:
        LOGGER.info("cleanup_dry_run", expired=expired)
    elif local:
        root = _local_bucket_root()
        for key in expired:
            try:
                (root / key).unlink()
                stats.deleted_files += 1
            except OSError as exc:
                stats.errors.append(f"{key}: {exc}")
    else:
        for start in range(0, len(expired), DELETE_BATCH_SIZE):
            batch = expired[start:start + DELETE_BATCH_SIZE]
            try:
                response = client.delete_objects(
                    Bucket=settings.storage_bucket,
                    Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
                )
            except (BotoCoreError, ClientError) as exc:
                stats.errors.append(str(exc))
                continue
            failures = response.get("Errors", [])
            stats.errors.extend(f"{err.get('Key')}: {err.get('Message')}" for err in failures)
            stats.deleted_files += len(batch) - len(failures)

    LOGGER.info(
        "cleanup_completed",
        total_files=stats.total_files,
        expired_files=stats.expired_files,
        deleted_files=stats.deleted_files,
        errors=len(stats.errors),
        dry_run=dry_run,
    )
    return stats
