"""
WordCard Shared-File Transports

A transport is one shared snapshot file that several replicas read and
write. There is no lock or lease over the file: writes go to a temp file
in the same directory and are renamed into place, so a reader only ever
sees a complete document.

- CloudDriveTransport: a file inside a cloud-synced container folder
- LanDirectoryTransport: a file in a local or network-mounted directory
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import structlog

from wordcard.core.errors import TransportUnavailable, WriteFailed
from wordcard.core.files import atomic_write

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FileStat:
    """Modification metadata of the shared file."""
    mtime: float
    size: int


class SharedFileTransport:
    """Base transport over one shared file path."""

    name = "file"

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def is_available(self) -> bool:
        """True when the file's directory can be reached."""
        return self._path.parent.is_dir()

    def ensure_ready(self) -> None:
        """Prepare the location for writing. The file itself is created by the first export."""
        if not self.is_available():
            raise TransportUnavailable(
                f"Shared location not reachable: {self._path.parent}",
                path=str(self._path),
            )

    # ------------------------------------------------------------------
    # Blocking primitives
    # ------------------------------------------------------------------

    def stat_sync(self) -> Optional[FileStat]:
        try:
            st = os.stat(self._path)
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise TransportUnavailable(str(exc), path=str(self._path)) from exc
        return FileStat(mtime=st.st_mtime, size=st.st_size)

    def read_sync(self) -> Optional[bytes]:
        if not self.is_available():
            raise TransportUnavailable(
                f"Shared location not reachable: {self._path.parent}",
                path=str(self._path),
            )
        try:
            return self._path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise TransportUnavailable(str(exc), path=str(self._path)) from exc

    def write_sync(self, data: bytes) -> FileStat:
        if not self.is_available():
            raise WriteFailed(
                f"Shared location not reachable: {self._path.parent}",
                path=str(self._path),
            )
        st = atomic_write(self._path, data)
        return FileStat(mtime=st.st_mtime, size=st.st_size)

    # ------------------------------------------------------------------
    # Async wrappers (blocking I/O runs in the default executor)
    # ------------------------------------------------------------------

    async def stat(self) -> Optional[FileStat]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.stat_sync)

    async def read(self) -> Optional[bytes]:
        """Whole-file read; None when the file does not exist yet."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.read_sync)

    async def write(self, data: bytes) -> FileStat:
        """Atomic replace; returns the metadata of the file written."""
        loop = asyncio.get_running_loop()
        written = await loop.run_in_executor(None, self.write_sync, data)
        logger.debug("transport.written", transport=self.name, bytes=len(data), mtime=written.mtime)
        return written

    def describe(self) -> str:
        return str(self._path)


class LanDirectoryTransport(SharedFileTransport):
    """Shared file in a directory served to the LAN."""

    name = "lan"

    def __init__(self, directory: Path, file_name: str = "sync.json") -> None:
        super().__init__(Path(directory) / file_name)
        self._directory = Path(directory)

    def ensure_ready(self) -> None:
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise TransportUnavailable(str(exc), path=str(self._directory)) from exc


class CloudDriveTransport(SharedFileTransport):
    """
    Shared file inside a cloud-synced container.

    The container root is owned by the sync provider; when it is missing
    (signed out, provider not running) the transport is unavailable and
    nothing is created.
    """

    name = "cloud"

    def __init__(
        self,
        container: Path,
        file_name: str = "WordCardSync.json",
        documents_dir: str = "Documents",
    ) -> None:
        self._container = Path(container)
        super().__init__(self._container / documents_dir / file_name)

    def is_available(self) -> bool:
        return self._container.is_dir() and self._path.parent.is_dir()

    def ensure_ready(self) -> None:
        if not self._container.is_dir():
            raise TransportUnavailable(
                f"Cloud container not available: {self._container}",
                path=str(self._container),
            )
        if not self._path.parent.is_dir():
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise TransportUnavailable(str(exc), path=str(self._path.parent)) from exc
            logger.info("cloud_transport.documents_created", path=str(self._path.parent))
