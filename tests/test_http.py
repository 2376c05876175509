"""Test PanonoHttpClient file transfers."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import aiohttp
import pytest

from panono_core import PanonoHttpClient
from panono_core.errors import (
    PanonoConnectionError,
    PanonoFileError,
    PanonoResponseError,
    PanonoTimeout,
)

from .conftest import create_mock_response

UPF_URL = "http://192.168.80.80/upf/abc.upf"


class TestDownload:
    """Test streaming UPF downloads."""

    async def test_download_writes_file(self, mock_session: MagicMock, tmp_path: Path) -> None:
        """Test chunks are written and the part file is renamed."""
        mock_session.get.return_value = create_mock_response(
            chunks=[b"UPF", b"DATA"], content_length=7
        )
        client = PanonoHttpClient(mock_session)
        dest = tmp_path / "abc.upf"
        progress = MagicMock()

        written = await client.download(UPF_URL, dest, progress=progress)

        assert written == 7
        assert dest.read_bytes() == b"UPFDATA"
        assert not (tmp_path / "abc.upf.part").exists()
        progress.assert_any_call(3, 7)
        progress.assert_called_with(7, 7)
        assert mock_session.get.call_args.args[0] == UPF_URL

    async def test_expected_size_used_without_content_length(
        self, mock_session: MagicMock, tmp_path: Path
    ) -> None:
        mock_session.get.return_value = create_mock_response(chunks=[b"x" * 10])
        client = PanonoHttpClient(mock_session)
        progress = MagicMock()

        await client.download(UPF_URL, tmp_path / "a.upf", expected_size=10, progress=progress)

        progress.assert_called_once_with(10, 10)

    async def test_download_timeout_bounds_idle_time(
        self, mock_session: MagicMock, tmp_path: Path
    ) -> None:
        """Test large downloads are not cut off by a total timeout."""
        mock_session.get.return_value = create_mock_response(chunks=[b"x"])
        client = PanonoHttpClient(mock_session, timeout=30.0)

        await client.download(UPF_URL, tmp_path / "a.upf")

        timeout = mock_session.get.call_args.kwargs["timeout"]
        assert timeout.total is None
        assert timeout.sock_read == 30.0

    async def test_download_non_200_raises_response_error(
        self, mock_session: MagicMock, tmp_path: Path
    ) -> None:
        mock_session.get.return_value = create_mock_response(status=404)
        client = PanonoHttpClient(mock_session)
        dest = tmp_path / "abc.upf"

        with pytest.raises(PanonoResponseError) as exc_info:
            await client.download(UPF_URL, dest)

        assert exc_info.value.status == 404
        assert not dest.exists()
        assert not (tmp_path / "abc.upf.part").exists()

    async def test_download_connection_error(
        self, mock_session: MagicMock, tmp_path: Path
    ) -> None:
        mock_session.get.side_effect = aiohttp.ClientConnectionError("refused")
        client = PanonoHttpClient(mock_session)

        with pytest.raises(PanonoConnectionError):
            await client.download(UPF_URL, tmp_path / "abc.upf")

    async def test_download_timeout(self, mock_session: MagicMock, tmp_path: Path) -> None:
        """Test a stalled body leaves no partial file behind."""
        response = create_mock_response()

        async def stalled(size: int):
            yield b"partial"
            raise TimeoutError

        response.content.iter_chunked = stalled
        mock_session.get.return_value = response
        client = PanonoHttpClient(mock_session)
        dest = tmp_path / "abc.upf"

        with pytest.raises(PanonoTimeout):
            await client.download(UPF_URL, dest)

        assert not dest.exists()
        assert not (tmp_path / "abc.upf.part").exists()

    async def test_download_into_missing_directory(
        self, mock_session: MagicMock, tmp_path: Path
    ) -> None:
        """Test a local write failure surfaces as a client error."""
        mock_session.get.return_value = create_mock_response(chunks=[b"UPF"])
        client = PanonoHttpClient(mock_session)

        with pytest.raises(PanonoFileError, match="Cannot write"):
            await client.download(UPF_URL, tmp_path / "missing" / "abc.upf")


class TestFetch:
    """Test small resource fetches."""

    async def test_fetch_returns_body(self, mock_session: MagicMock) -> None:
        mock_session.get.return_value = create_mock_response(read_data=b"\xff\xd8jpeg")
        client = PanonoHttpClient(mock_session)

        assert await client.fetch("http://192.168.80.80/preview/abc.jpg") == b"\xff\xd8jpeg"

    async def test_fetch_non_200(self, mock_session: MagicMock) -> None:
        mock_session.get.return_value = create_mock_response(status=500)
        client = PanonoHttpClient(mock_session)

        with pytest.raises(PanonoResponseError, match="500"):
            await client.fetch("http://192.168.80.80/preview/abc.jpg")


class TestUploadFirmware:
    """Test firmware upload to the URL reported by get_status."""

    async def test_upload_posts_octet_stream(
        self, mock_session: MagicMock, tmp_path: Path
    ) -> None:
        image = tmp_path / "firmware.bin"
        image.write_bytes(b"\x7fELF")
        mock_session.post.return_value = create_mock_response(status=201)
        client = PanonoHttpClient(mock_session)

        status = await client.upload_firmware("http://192.168.80.80/firmware", image)

        assert status == 201
        call = mock_session.post.call_args
        assert call.args[0] == "http://192.168.80.80/firmware"
        assert call.kwargs["data"] == b"\x7fELF"
        assert call.kwargs["headers"] == {"Content-Type": "application/octet-stream"}

    async def test_upload_rejected(self, mock_session: MagicMock, tmp_path: Path) -> None:
        image = tmp_path / "firmware.bin"
        image.write_bytes(b"\x00")
        mock_session.post.return_value = create_mock_response(status=400)
        client = PanonoHttpClient(mock_session)

        with pytest.raises(PanonoResponseError) as exc_info:
            await client.upload_firmware("http://192.168.80.80/firmware", image)

        assert exc_info.value.status == 400

    async def test_upload_timeout(self, mock_session: MagicMock, tmp_path: Path) -> None:
        image = tmp_path / "firmware.bin"
        image.write_bytes(b"\x00")
        mock_session.post.side_effect = TimeoutError
        client = PanonoHttpClient(mock_session)

        with pytest.raises(PanonoTimeout):
            await client.upload_firmware("http://192.168.80.80/firmware", image)

    async def test_upload_unreadable_image(
        self, mock_session: MagicMock, tmp_path: Path
    ) -> None:
        client = PanonoHttpClient(mock_session)

        with pytest.raises(PanonoFileError, match="Cannot read"):
            await client.upload_firmware(
                "http://192.168.80.80/firmware", tmp_path / "missing.bin"
            )

        mock_session.post.assert_not_called()
