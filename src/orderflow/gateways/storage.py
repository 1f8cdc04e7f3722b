"""
Object storage and label download.

``InMemoryObjectStorage`` keeps objects in a dict; ``FileSystemObjectStorage``
writes them under a root directory (local development, single-host
deployments). Both return a ``FileRef`` carrying size and sha256.
``HttpLabelDownloader`` fetches label PDFs from the carrier.
"""

import asyncio
import hashlib
import logging
from pathlib import Path
from uuid import UUID

import httpx

from orderflow.gateways.errors import StorageError
from orderflow.models import FileRef
from orderflow.observability import SpanKindEnum, Tracer, create_tracer
from orderflow.observability.attributes import ATTR_GATEWAY, ATTR_GATEWAY_OPERATION

logger = logging.getLogger(__name__)


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class InMemoryObjectStorage:
    """
    Dict-backed object storage for tests and development.

    ``puts`` records every key written, in order, so tests can assert
    exactly-once writes.
    """

    def __init__(self, bucket: str = "lumi-files") -> None:
        self.bucket = bucket
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.puts: list[str] = []

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        created_by: UUID | None = None,
    ) -> FileRef:
        self.objects[key] = (data, content_type)
        self.puts.append(key)
        return FileRef(
            bucket=self.bucket,
            key=key,
            content_type=content_type,
            size_bytes=len(data),
            sha256=sha256_hex(data),
            created_by_user_id=created_by,
        )

    def get(self, key: str) -> bytes | None:
        stored = self.objects.get(key)
        return stored[0] if stored else None


class FileSystemObjectStorage:
    """
    Object storage rooted at a local directory.

    Keys map to relative paths below ``root / bucket``; keys that would
    escape the root are rejected.
    """

    def __init__(self, root: Path | str, bucket: str = "lumi-files") -> None:
        self.bucket = bucket
        self._root = (Path(root) / bucket).resolve()

    def _path_for(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if not path.is_relative_to(self._root):
            raise StorageError("STORAGE_INVALID_KEY", f"Key escapes storage root: {key!r}")
        return path

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        created_by: UUID | None = None,
    ) -> FileRef:
        path = self._path_for(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise StorageError("STORAGE_WRITE_FAILED", str(e)) from e

        logger.debug("Stored object", extra={"key": key, "size_bytes": len(data)})
        return FileRef(
            bucket=self.bucket,
            key=key,
            content_type=content_type,
            size_bytes=len(data),
            sha256=sha256_hex(data),
            created_by_user_id=created_by,
        )

    async def read(self, key: str) -> bytes:
        path = self._path_for(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise StorageError("STORAGE_READ_FAILED", str(e)) from e


class HttpLabelDownloader:
    """Downloads label files over HTTP(S)."""

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._timeout = timeout
        self._transport = transport
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def download(self, url: str) -> bytes:
        with self._tracer.span_with_kind(
            "orderflow.gateway.label_download",
            SpanKindEnum.CLIENT,
            {ATTR_GATEWAY: "label_download", ATTR_GATEWAY_OPERATION: "download"},
        ):
            try:
                async with httpx.AsyncClient(
                    timeout=httpx.Timeout(self._timeout),
                    transport=self._transport,
                    follow_redirects=True,
                ) as client:
                    response = await client.get(url)
            except httpx.TimeoutException as e:
                raise StorageError("LABEL_DOWNLOAD_TIMEOUT", "Label download timeout") from e
            except httpx.HTTPError as e:
                raise StorageError(
                    "LABEL_DOWNLOAD_FAILED", str(e) or "Label download failed"
                ) from e

        if not response.is_success:
            raise StorageError(
                "LABEL_DOWNLOAD_FAILED", f"Label download failed: {response.status_code}"
            )
        return response.content


__all__ = [
    "FileSystemObjectStorage",
    "HttpLabelDownloader",
    "InMemoryObjectStorage",
    "sha256_hex",
]
