"""Unit tests for object storage and the label downloader."""

import hashlib
from uuid import uuid4

import httpx
import pytest

from orderflow.gateways import (
    FileSystemObjectStorage,
    HttpLabelDownloader,
    InMemoryObjectStorage,
    ObjectStorage,
    StorageError,
    sha256_hex,
)

PDF = b"%PDF-1.4 label\n"


class TestInMemoryObjectStorage:
    def test_implements_protocol(self):
        assert isinstance(InMemoryObjectStorage(), ObjectStorage)

    @pytest.mark.asyncio
    async def test_put_returns_file_ref(self):
        storage = InMemoryObjectStorage(bucket="reports")
        owner = uuid4()

        ref = await storage.put("pact-reports/CA.csv", b"a,b\n", "text/csv", owner)

        assert ref.bucket == "reports"
        assert ref.key == "pact-reports/CA.csv"
        assert ref.size_bytes == 4
        assert ref.sha256 == hashlib.sha256(b"a,b\n").hexdigest()
        assert ref.created_by_user_id == owner
        assert storage.get("pact-reports/CA.csv") == b"a,b\n"
        assert storage.puts == ["pact-reports/CA.csv"]

    def test_missing_key(self):
        assert InMemoryObjectStorage().get("nope") is None


class TestFileSystemObjectStorage:
    def test_implements_protocol(self, tmp_path):
        assert isinstance(FileSystemObjectStorage(tmp_path), ObjectStorage)

    @pytest.mark.asyncio
    async def test_put_and_read(self, tmp_path):
        storage = FileSystemObjectStorage(tmp_path)

        ref = await storage.put("shipping-labels/order-1.pdf", PDF, "application/pdf")

        assert (tmp_path / "lumi-files" / "shipping-labels" / "order-1.pdf").read_bytes() == PDF
        assert ref.sha256 == sha256_hex(PDF)
        assert ref.size_bytes == len(PDF)
        assert await storage.read("shipping-labels/order-1.pdf") == PDF

    @pytest.mark.asyncio
    async def test_key_cannot_escape_root(self, tmp_path):
        storage = FileSystemObjectStorage(tmp_path / "store")

        with pytest.raises(StorageError) as exc_info:
            await storage.put("../../outside.pdf", PDF, "application/pdf")

        assert exc_info.value.code == "STORAGE_INVALID_KEY"
        assert not (tmp_path / "outside.pdf").exists()

    @pytest.mark.asyncio
    async def test_read_missing(self, tmp_path):
        with pytest.raises(StorageError) as exc_info:
            await FileSystemObjectStorage(tmp_path).read("missing.csv")

        assert exc_info.value.code == "STORAGE_READ_FAILED"

    @pytest.mark.asyncio
    async def test_write_failure(self, tmp_path):
        (tmp_path / "lumi-files").mkdir()
        (tmp_path / "lumi-files" / "blocked").write_bytes(b"")
        storage = FileSystemObjectStorage(tmp_path)

        with pytest.raises(StorageError) as exc_info:
            await storage.put("blocked/label.pdf", PDF, "application/pdf")

        assert exc_info.value.code == "STORAGE_WRITE_FAILED"


class TestHttpLabelDownloader:
    @pytest.mark.asyncio
    async def test_download(self):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, content=PDF)

        downloader = HttpLabelDownloader(
            transport=httpx.MockTransport(handler), enable_tracing=False
        )

        data = await downloader.download("https://labels.example.test/1.pdf")

        assert data == PDF
        assert seen == ["https://labels.example.test/1.pdf"]

    @pytest.mark.asyncio
    async def test_follows_redirects(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/1.pdf":
                return httpx.Response(
                    302, headers={"Location": "https://cdn.example.test/1.pdf"}
                )
            return httpx.Response(200, content=PDF)

        downloader = HttpLabelDownloader(
            transport=httpx.MockTransport(handler), enable_tracing=False
        )

        assert await downloader.download("https://labels.example.test/1.pdf") == PDF

    @pytest.mark.asyncio
    async def test_error_status(self):
        downloader = HttpLabelDownloader(
            transport=httpx.MockTransport(lambda request: httpx.Response(404)),
            enable_tracing=False,
        )

        with pytest.raises(StorageError) as exc_info:
            await downloader.download("https://labels.example.test/1.pdf")

        assert exc_info.value.code == "LABEL_DOWNLOAD_FAILED"

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        downloader = HttpLabelDownloader(
            transport=httpx.MockTransport(handler), enable_tracing=False
        )

        with pytest.raises(StorageError) as exc_info:
            await downloader.download("https://labels.example.test/1.pdf")

        assert exc_info.value.code == "LABEL_DOWNLOAD_TIMEOUT"
