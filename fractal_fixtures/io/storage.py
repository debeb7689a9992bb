"""
Upload of fixture files to DigitalOcean Spaces (S3-compatible).

Files are uploaded public-read through boto3. Connection problems, 5xx
responses and throttling are retried with exponential backoff; credential
and bucket errors are configuration problems and stop the upload.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError, HTTPClientError, \
    NoCredentialsError, PartialCredentialsError
from botocore.exceptions import ConnectionError as EndpointConnectionFailure

from .config import StorageConfig
from .ledger import LedgerRow
from ..errors import ConfigurationError, TransportError

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    '.png': 'image/png',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.gif': 'image/gif',
    '.webp': 'image/webp',
}

FATAL_ERROR_CODES = {
    'AccessDenied',
    'InvalidAccessKeyId',
    'SignatureDoesNotMatch',
    'NoSuchBucket',
    'AuthorizationHeaderMalformed',
}

THROTTLING_ERROR_CODES = {
    'Throttling',
    'ThrottlingException',
    'SlowDown',
    'RequestLimitExceeded',
    'TooManyRequests',
}


def content_type_for(path: Path) -> str:
    """Content type from the file extension."""
    return CONTENT_TYPES.get(Path(path).suffix.lower(), 'application/octet-stream')


def create_spaces_client(config: StorageConfig):
    """Create a boto3 S3 client pointed at the Spaces region endpoint."""
    session = boto3.session.Session()
    return session.client(
        's3',
        region_name=config.region,
        endpoint_url=f"https://{config.region}.digitaloceanspaces.com",
        aws_access_key_id=config.access_key,
        aws_secret_access_key=config.secret_key,
    )


@dataclass
class UploadReport:
    """Rows for uploaded files and (file, message) pairs for failures."""
    rows: List[LedgerRow] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.rows)

    @property
    def failed(self) -> int:
        return len(self.failures)


class SpacesUploader:
    """Uploads files to a Spaces bucket and reports their public URLs."""

    def __init__(self, config: StorageConfig, client=None,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Initialize uploader.

        Args:
            config: Validated storage configuration
            client: S3 client; created from ``config`` when omitted
            sleep: Backoff sleep function
        """
        self.config = config
        self.client = client if client is not None else create_spaces_client(config)
        self._sleep = sleep

    def object_key(self, key: str) -> str:
        return f"{self.config.key_prefix}{key.lstrip('/')}"

    def cdn_url(self, key: str) -> str:
        return (f"https://{self.config.bucket}.{self.config.region}.cdn.digitaloceanspaces.com/"
                f"{self.object_key(key)}")

    def origin_url(self, key: str) -> str:
        return (f"https://{self.config.bucket}.{self.config.region}.digitaloceanspaces.com/"
                f"{self.object_key(key)}")

    def upload(self, local_path: Path, key: Optional[str] = None) -> Tuple[str, str]:
        """
        Upload one file.

        Args:
            local_path: File to upload
            key: Object key relative to the configured prefix (defaults to the file name)

        Returns:
            (cdn_url, origin_url)

        Raises:
            TransportError: if a transient error persists through all retries
                or the file cannot be read
            ConfigurationError: on credential or bucket errors
        """
        local_path = Path(local_path)
        key = local_path.name if key is None else key
        object_key = self.object_key(key)
        retries = self.config.upload_retries

        for attempt in range(1, retries + 1):
            try:
                with open(local_path, 'rb') as body:
                    self.client.put_object(
                        Bucket=self.config.bucket,
                        Key=object_key,
                        Body=body,
                        ACL='public-read',
                        ContentType=content_type_for(local_path),
                    )
                logger.info(f"Uploaded {local_path.name} -> {object_key}")
                return self.cdn_url(key), self.origin_url(key)

            except (NoCredentialsError, PartialCredentialsError) as e:
                raise ConfigurationError(f"Storage credentials rejected: {e}") from e

            except ClientError as e:
                code = e.response.get('Error', {}).get('Code', '')
                status = e.response.get('ResponseMetadata', {}).get('HTTPStatusCode', 0)
                if code in FATAL_ERROR_CODES or status in (401, 403):
                    raise ConfigurationError(f"Storage rejected upload of {object_key}: {code or status}") from e
                if not (code in THROTTLING_ERROR_CODES or status == 429 or status >= 500):
                    raise TransportError(f"Upload of {object_key} failed: {e}", attempt) from e
                error = e

            except (EndpointConnectionFailure, HTTPClientError) as e:
                error = e

            except BotoCoreError as e:
                raise TransportError(f"Upload of {object_key} failed: {e}", attempt) from e

            except OSError as e:
                # File vanished or became unreadable after it was listed
                raise TransportError(f"Cannot read {local_path}: {e}", attempt) from e

            if attempt < retries:
                delay = self.config.retry_backoff * (2 ** (attempt - 1))
                logger.warning(f"Upload of {object_key} failed (attempt {attempt}/{retries}): "
                               f"{error}; retrying in {delay:.1f}s")
                self._sleep(delay)

        raise TransportError(f"Upload of {object_key} failed after {retries} attempts: {error}", retries)

    def upload_folder(self, folder: Path, max_workers: Optional[int] = None) -> UploadReport:
        """
        Upload every file under ``folder`` concurrently.

        Temporary ``.tmp`` files left by writers are skipped. Keys are paths
        relative to ``folder`` with forward slashes.

        Args:
            folder: Local directory
            max_workers: Upload threads (defaults to config.upload_concurrency)

        Returns:
            UploadReport with ledger rows sorted by file name
        """
        folder = Path(folder)
        if not folder.is_dir():
            raise ConfigurationError(f"Upload folder does not exist: {folder}")

        files = sorted(p for p in folder.rglob('*') if p.is_file() and p.suffix != '.tmp')
        report = UploadReport()
        if not files:
            logger.warning(f"No files to upload in {folder}")
            return report

        workers = max_workers or self.config.upload_concurrency
        logger.info(f"Uploading {len(files)} files from {folder} to "
                    f"{self.config.bucket}/{self.config.key_prefix} with {workers} workers")

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(self.upload, path, path.relative_to(folder).as_posix()): path
                for path in files
            }
            try:
                for future in as_completed(futures):
                    path = futures[future]
                    key = path.relative_to(folder).as_posix()
                    try:
                        cdn_url, origin_url = future.result()
                    except TransportError as e:
                        logger.error(f"Failed to upload {key}: {e}")
                        report.failures.append((key, str(e)))
                        continue
                    report.rows.append(LedgerRow(cdn_url, origin_url, key, path.stat().st_size))
            except ConfigurationError:
                for future in futures:
                    future.cancel()
                raise

        report.rows.sort(key=lambda row: row.file_name)
        report.failures.sort()
        logger.info(f"Upload complete: {report.succeeded} succeeded, {report.failed} failed")
        return report
