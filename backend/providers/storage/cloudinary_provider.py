import asyncio
import hashlib
import io
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import httpx

from config import MB, config
from domain.errors import FileTooLargeError, UploadCancelledError, UploadFailedError
from domain.models import MediaKind, UploadResult
from ..interfaces import ProgressCallback, StorageProvider, UploadOptions, UploadSource

logger = logging.getLogger(__name__)


def build_signature(params: Dict[str, Any], api_secret: str) -> str:
    """
    Cloudinary request signature

    Non-empty params sorted by name, joined as key=value&key=value, secret
    appended, SHA-1 hex digest. resource_type/file/api_key are never signed.
    """
    to_sign = "&".join(
        f"{key}={params[key]}" for key in sorted(params) if params[key] not in (None, "")
    )
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


class BatchProgress:
    # aggregate progress = mean of per file percentages, unreported files count as 0

    def __init__(self, file_count: int, on_progress: Optional[ProgressCallback] = None):
        self._percentages = [0.0] * file_count
        self._on_progress = on_progress

    def update(self, index: int, percent: float):
        percent = min(max(percent, 0.0), 100.0)
        if percent <= self._percentages[index]:
            return  # never go backwards
        self._percentages[index] = percent
        if self._on_progress:
            self._on_progress(self.overall)

    @property
    def overall(self) -> float:
        if not self._percentages:
            return 0.0
        return sum(self._percentages) / len(self._percentages)


class _ProgressReader(io.BytesIO):
    # httpx reads file fields in chunks, report how far it got after each read

    def __init__(self, data: bytes, on_read: Callable[[float], None]):
        super().__init__(data)
        self._total = len(data)
        self._on_read = on_read

    def read(self, size: Optional[int] = -1) -> bytes:
        chunk = super().read(size)
        if self._total:
            self._on_read(self.tell() / self._total * 100)
        return chunk


class CloudinaryStorageProvider(StorageProvider):
    # signed uploads straight to cloudinary, one request per file

    def __init__(
        self,
        cloud_name: str = None,
        api_key: str = None,
        api_secret: str = None,
        base_url: str = None,
        max_image_bytes: int = None,
        max_video_bytes: int = None,
        timeout: float = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.cloud_name = cloud_name or config.cloudinary.cloud_name
        self.api_key = api_key or config.cloudinary.api_key
        self.api_secret = api_secret or config.cloudinary.api_secret
        self.base_url = (base_url or config.cloudinary.base_url).rstrip("/")
        self.max_image_bytes = max_image_bytes or config.uploads.max_image_bytes
        self.max_video_bytes = max_video_bytes or config.uploads.max_video_bytes
        self.timeout = timeout or config.cloudinary.timeout
        self._transport = transport

        if not (self.cloud_name and self.api_key and self.api_secret):
            logger.warning("Cloudinary credentials missing - uploads will fail")

    @property
    def configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    def check_sizes(self, files: List[UploadSource]):
        """Reject the whole batch if any file is over its ceiling"""
        for source in files:
            is_video = source.media_kind is MediaKind.VIDEO
            limit = self.max_video_bytes if is_video else self.max_image_bytes
            if source.size > limit:
                raise FileTooLargeError(
                    f"{source.filename} is too large. "
                    f"{'Videos' if is_video else 'Images'} must be under {limit // MB}MB"
                )

    def upload_url(self, kind: MediaKind) -> str:
        return f"{self.base_url}/{self.cloud_name}/{kind.value}/upload"

    async def upload_files(
        self,
        files: List[UploadSource],
        options: Optional[UploadOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[UploadResult]:
        if not files:
            return []

        # size limits are checked before anything touches the network
        self.check_sizes(files)

        if not self.configured:
            raise UploadFailedError("Upload failed: storage is not configured")
        if cancel_event is not None and cancel_event.is_set():
            raise UploadCancelledError()

        options = options or UploadOptions()
        progress = BatchProgress(len(files), on_progress)
        logger.info(f"Uploading {len(files)} file(s) to cloudinary")

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            tasks = [
                asyncio.ensure_future(self._upload_one(client, source, options, progress, index))
                for index, source in enumerate(files)
            ]
            try:
                # all or nothing, first failure fails the batch
                return await self._wait_or_cancel(asyncio.gather(*tasks), cancel_event)
            except UploadFailedError as e:
                if len(files) > 1:
                    raise UploadFailedError(f"Multiple upload failed: {e.message}") from e
                raise
            finally:
                pending = [task for task in tasks if not task.done()]
                for task in pending:
                    task.cancel()
                if pending:
                    await asyncio.gather(*pending, return_exceptions=True)

    async def _wait_or_cancel(
        self, batch: "asyncio.Future[List[UploadResult]]", cancel_event: Optional[asyncio.Event]
    ) -> List[UploadResult]:
        if cancel_event is None:
            return await batch

        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait({batch, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()

        if batch in done:
            return batch.result()

        batch.cancel()
        logger.info("Upload batch cancelled by user")
        raise UploadCancelledError()

    async def _upload_one(
        self,
        client: httpx.AsyncClient,
        source: UploadSource,
        options: UploadOptions,
        progress: BatchProgress,
        index: int,
    ) -> UploadResult:
        kind = source.media_kind
        timestamp = int(time.time())

        signed = {"timestamp": timestamp, "folder": options.folder, "tags": options.tags}
        data = {
            "api_key": self.api_key,
            "cloud_name": self.cloud_name,
            "timestamp": str(timestamp),
            "signature": build_signature(signed, self.api_secret),
        }
        if kind is MediaKind.VIDEO:
            data["resource_type"] = "video"
        if options.folder:
            data["folder"] = options.folder
        if options.tags:
            data["tags"] = options.tags

        reader = _ProgressReader(source.content, lambda percent: progress.update(index, percent))
        files = {"file": (source.filename, reader, source.content_type or "application/octet-stream")}

        logger.debug(f"Uploading {source.filename} ({source.size} bytes, {kind.value})")

        try:
            response = await client.post(self.upload_url(kind), data=data, files=files)
        except httpx.TimeoutException as e:
            raise UploadFailedError(f"Upload failed: {source.filename} timed out") from e
        except httpx.TransportError as e:
            raise UploadFailedError(f"Upload failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Cloudinary error response {response.status_code}: {response.text[:200]}")
            raise UploadFailedError(f"Upload failed: {response.reason_phrase} - {response.text}")

        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"Cloudinary returned non-JSON body: {response.text[:200]}")
            raise UploadFailedError(f"Upload failed: invalid response for {source.filename}") from e
        if not isinstance(body, dict) or not body.get("public_id") or not body.get("secure_url"):
            raise UploadFailedError(f"Upload failed: incomplete response for {source.filename}")

        progress.update(index, 100.0)
        return UploadResult(
            public_id=body["public_id"],
            secure_url=body["secure_url"],
            original_filename=source.filename,
            size=source.size,
            format=body.get("format"),
            media_kind=kind,
        )
