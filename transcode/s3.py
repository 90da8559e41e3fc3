import logging
from pathlib import Path

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from .errors import StagingIOError, StorageNotFound, StorageUnavailable

logger = logging.getLogger(__name__)

MISSING_OBJECT_CODES = {"404", "NoSuchKey", "NotFound"}


def _client_for(endpoint_url: str):
    session = boto3.session.Session(
        aws_access_key_id=settings.S3_ACCESS_KEY,
        aws_secret_access_key=settings.S3_SECRET_KEY,
        region_name=settings.S3_REGION,
    )
    return session.client(
        "s3",
        endpoint_url=endpoint_url,  # e.g. http://127.0.0.1:9000
        config=BotoConfig(
            s3={"addressing_style": "path"},
            signature_version="s3v4",  # ensures AWS4 signing
        ),
    )


def get_s3_client():
    """
    SDK client for server-side upload/download.
    """
    return _client_for(settings.S3_ENDPOINT_URL)


def get_presign_client():
    """
    Separate client for generating presigned URLs that the browser/curl will call.
    Uses S3_PUBLIC_ENDPOINT so the URL host matches what the client reaches.
    """
    return _client_for(settings.S3_PUBLIC_ENDPOINT)


def _storage_error(e: Exception, key: str):
    """Translate a boto failure into the pipeline's storage errors."""
    if isinstance(e, ClientError):
        code = str(e.response.get("Error", {}).get("Code", ""))
        if code in MISSING_OBJECT_CODES:
            return StorageNotFound(f"s3://{key} does not exist")
        return StorageUnavailable(f"S3 error {code or 'unknown'} on {key}: {e}")
    return StorageUnavailable(f"S3 unreachable for {key}: {e}")


class ObjectStager:
    """
    Moves bytes between the bucket and local scratch paths.

    The clients and bucket are handed in so workers, views and tests can each
    build their own instance; from_settings() is the normal way to get one.
    """

    def __init__(self, client, bucket: str, presign_client=None):
        self.client = client
        self.bucket = bucket
        self.presign_client = presign_client or client

    @classmethod
    def from_settings(cls) -> "ObjectStager":
        return cls(get_s3_client(), settings.S3_BUCKET, presign_client=get_presign_client())

    def fetch_to_local(self, key: str, dest) -> Path:
        """
        Download key to dest. Bytes land in '<dest>.part' first and are only
        renamed into place once the download finished.
        """
        dest = Path(dest)
        part = dest.with_name(dest.name + ".part")
        try:
            self.client.download_file(self.bucket, key, str(part))
            part.replace(dest)
        except (ClientError, BotoCoreError) as e:
            part.unlink(missing_ok=True)
            raise _storage_error(e, key) from e
        except OSError as e:
            part.unlink(missing_ok=True)
            raise StagingIOError(f"could not write {dest}: {e}") from e
        logger.info("Fetched s3://%s/%s -> %s", self.bucket, key, dest)
        return dest

    def push_from_local(self, source, key: str, content_type: str | None = None) -> str:
        """
        Upload a single file with an optional Content-Type. Keys are
        deterministic per job and format, so pushing twice just overwrites.
        """
        extra = {}
        if content_type:
            extra["ContentType"] = content_type
        try:
            self.client.upload_file(str(source), self.bucket, key, ExtraArgs=extra or None)
        except (ClientError, BotoCoreError, S3UploadFailedError) as e:
            raise StorageUnavailable(f"upload of {key} failed: {e}") from e
        except OSError as e:
            raise StagingIOError(f"could not read {source}: {e}") from e
        logger.info("Pushed %s -> s3://%s/%s", source, self.bucket, key)
        return key

    def put_fileobj(self, fileobj, key: str, content_type: str | None = None) -> str:
        extra = {"ContentType": content_type} if content_type else {}
        try:
            self.client.upload_fileobj(fileobj, self.bucket, key, ExtraArgs=extra or None)
        except (ClientError, BotoCoreError, S3UploadFailedError) as e:
            raise StorageUnavailable(f"upload of {key} failed: {e}") from e
        return key

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            err = _storage_error(e, key)
            if isinstance(err, StorageNotFound):
                return False
            raise err from e
        return True

    def signed_retrieval_handle(self, key: str, ttl: int) -> str:
        """
        Create a presigned GET URL to download an object, valid for ttl seconds.
        """
        if not key or not self.exists(key):
            raise StorageNotFound(f"s3://{key} does not exist")
        return self.presign_client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=ttl,
            HttpMethod="GET",
        )
