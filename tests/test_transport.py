"""
WordCard Shared-File Transport Tests
"""

from __future__ import annotations

import pytest

from wordcard.core.errors import TransportUnavailable, WriteFailed
from wordcard.sync.transport import CloudDriveTransport, LanDirectoryTransport


class TestLanDirectoryTransport:
    @pytest.mark.asyncio
    async def test_read_missing_file(self, tmp_path):
        transport = LanDirectoryTransport(tmp_path)
        assert transport.path == tmp_path / "sync.json"
        assert await transport.read() is None
        assert await transport.stat() is None

    @pytest.mark.asyncio
    async def test_write_read_stat(self, tmp_path):
        transport = LanDirectoryTransport(tmp_path)
        await transport.write(b'{"cards": []}')
        assert await transport.read() == b'{"cards": []}'
        stat = await transport.stat()
        assert stat is not None and stat.size == len(b'{"cards": []}')

    @pytest.mark.asyncio
    async def test_write_replaces_atomically(self, tmp_path):
        transport = LanDirectoryTransport(tmp_path)
        await transport.write(b"one")
        await transport.write(b"two")
        assert await transport.read() == b"two"
        assert [p.name for p in tmp_path.iterdir()] == ["sync.json"]

    @pytest.mark.asyncio
    async def test_write_reports_the_file_it_wrote(self, tmp_path):
        transport = LanDirectoryTransport(tmp_path)
        written = await transport.write(b"ours")
        assert written == await transport.stat()
        assert written.size == 4

    def test_ensure_ready_creates_directory(self, tmp_path):
        transport = LanDirectoryTransport(tmp_path / "shared" / "cards")
        assert not transport.is_available()
        transport.ensure_ready()
        assert transport.is_available()

    @pytest.mark.asyncio
    async def test_unreachable_directory(self, tmp_path):
        transport = LanDirectoryTransport(tmp_path / "gone")
        with pytest.raises(TransportUnavailable):
            await transport.read()
        with pytest.raises(WriteFailed):
            await transport.write(b"x")


class TestCloudDriveTransport:
    def test_path_layout(self, tmp_path):
        transport = CloudDriveTransport(tmp_path)
        assert transport.path == tmp_path / "Documents" / "WordCardSync.json"

    def test_unavailable_without_container(self, tmp_path):
        transport = CloudDriveTransport(tmp_path / "container")
        assert not transport.is_available()
        with pytest.raises(TransportUnavailable):
            transport.ensure_ready()
        assert not (tmp_path / "container").exists()

    def test_ensure_ready_creates_documents(self, tmp_path):
        transport = CloudDriveTransport(tmp_path)
        assert not transport.is_available()
        transport.ensure_ready()
        assert (tmp_path / "Documents").is_dir()
        assert transport.is_available()
