"""
WordCard Change Source Tests

Covers:
- Polling on modification metadata and availability changes
- Provider notifications
- Kernel file events through watchdog
- Fan-in of several sources
"""

from __future__ import annotations

import asyncio
import os
import threading

import pytest

from wordcard.sync.sources import (
    ChangeSignal,
    ChangeSource,
    FileEventChangeSource,
    NotificationChangeSource,
    PollingChangeSource,
    SignalKind,
    fan_in,
)
from wordcard.sync.transport import LanDirectoryTransport


class _ThreadRecordingTransport(LanDirectoryTransport):
    def __init__(self, directory):
        super().__init__(directory)
        self.threads = set()

    def is_available(self) -> bool:
        self.threads.add(threading.get_ident())
        return super().is_available()


class TestPollingChangeSource:
    def test_interval_must_be_positive(self, tmp_path):
        with pytest.raises(ValueError):
            PollingChangeSource(LanDirectoryTransport(tmp_path), 0)

    @pytest.mark.asyncio
    async def test_signals_on_mtime_change(self, tmp_path):
        transport = LanDirectoryTransport(tmp_path)
        transport.path.write_bytes(b"one")
        os.utime(transport.path, (1_000_000, 1_000_000))

        source = PollingChangeSource(transport, interval=0.01)
        await source.start()

        waiter = asyncio.create_task(source.next_change())
        await asyncio.sleep(0.05)
        assert not waiter.done()

        os.utime(transport.path, (2_000_000, 2_000_000))
        signal = await asyncio.wait_for(waiter, timeout=2)
        assert signal.kind == SignalKind.POLL
        assert signal.detail == "modified"

    @pytest.mark.asyncio
    async def test_signals_on_availability_change(self, tmp_path):
        transport = LanDirectoryTransport(tmp_path / "shared")
        source = PollingChangeSource(transport, interval=0.01)
        await source.start()

        (tmp_path / "shared").mkdir()
        signal = await asyncio.wait_for(source.next_change(), timeout=2)
        assert signal.detail == "missing"

    @pytest.mark.asyncio
    async def test_checks_run_off_the_event_loop(self, tmp_path):
        transport = _ThreadRecordingTransport(tmp_path)
        source = PollingChangeSource(transport, interval=0.01)
        await source.start()
        assert transport.threads
        assert threading.get_ident() not in transport.threads


class TestNotificationChangeSource:
    @pytest.mark.asyncio
    async def test_notify(self):
        source = NotificationChangeSource()
        source.notify("metadata-update")
        signal = await asyncio.wait_for(source.next_change(), timeout=1)
        assert signal.kind == SignalKind.PROVIDER
        assert signal.detail == "metadata-update"

    @pytest.mark.asyncio
    async def test_burst_collapses(self):
        source = NotificationChangeSource()
        for i in range(5):
            source.notify(str(i))
        signal = await source.next_change()
        assert signal.detail == "4"

        waiter = asyncio.create_task(source.next_change())
        await asyncio.sleep(0.02)
        assert not waiter.done()
        waiter.cancel()


class TestFileEventChangeSource:
    @pytest.mark.asyncio
    async def test_write_produces_signal(self, tmp_path):
        path = tmp_path / "sync.json"
        source = FileEventChangeSource(path)
        await source.start()
        try:
            assert source.is_watching
            path.write_bytes(b"{}")
            signal = await asyncio.wait_for(source.next_change(), timeout=5)
            assert signal.kind == SignalKind.FILE_EVENT
        finally:
            await source.stop()
        assert not source.is_watching

    @pytest.mark.asyncio
    async def test_missing_directory_is_not_fatal(self, tmp_path):
        source = FileEventChangeSource(tmp_path / "absent" / "sync.json")
        await source.start()
        assert not source.is_watching
        await source.stop()

    @pytest.mark.asyncio
    async def test_other_files_ignored(self, tmp_path):
        source = FileEventChangeSource(tmp_path / "sync.json")
        await source.start()
        try:
            (tmp_path / "unrelated.txt").write_text("x")
            waiter = asyncio.create_task(source.next_change())
            await asyncio.sleep(0.3)
            assert not waiter.done()
            waiter.cancel()
        finally:
            await source.stop()


class _ListSource(ChangeSource):
    def __init__(self, name, count):
        self.name = name
        self._remaining = count

    async def next_change(self) -> ChangeSignal:
        if self._remaining == 0:
            await asyncio.Event().wait()
        self._remaining -= 1
        return ChangeSignal(kind=SignalKind.PROVIDER, source=self.name)


class _BrokenSource(ChangeSource):
    name = "broken"

    async def next_change(self) -> ChangeSignal:
        raise OSError("boom")


class TestFanIn:
    @pytest.mark.asyncio
    async def test_merges_sources(self):
        stream = fan_in([_ListSource("a", 2), _ListSource("b", 1)])
        seen = []
        async for signal in stream:
            seen.append(signal.source)
            if len(seen) == 3:
                break
        await stream.aclose()
        assert sorted(seen) == ["a", "a", "b"]

    @pytest.mark.asyncio
    async def test_failing_source_does_not_stop_others(self):
        stream = fan_in([_BrokenSource(), _ListSource("ok", 1)])
        signal = await asyncio.wait_for(stream.__anext__(), timeout=2)
        assert signal.source == "ok"
        await stream.aclose()
