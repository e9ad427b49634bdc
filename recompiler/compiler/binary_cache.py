"""On-disk cache of native solc binaries keyed by platform and version."""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path

from recompiler.compiler.fetcher import RemoteFetcher
from recompiler.core.config import Settings

logger = logging.getLogger(__name__)

_EXECUTABLE_MODE = 0o755


def binary_file_name(platform: str, version: str) -> str:
    """Repository file name for a native build, e.g. ``solc-linux-amd64-v0.8.17+commit.8df45f5f``."""
    return f"solc-{platform}-v{version}"


class BinaryCache:
    """Resolve ``(platform, version)`` to a local executable.

    Entries are never expired or re-verified: a file at the expected path
    is assumed to be a good binary. Delete it by hand to force a refetch.
    """

    def __init__(self, settings: Settings, fetcher: RemoteFetcher) -> None:
        self.settings = settings
        self.fetcher = fetcher
        self.root = Path(settings.cache_dir)

    def path_for(self, platform: str, version: str) -> Path:
        return self.root / binary_file_name(platform, version)

    async def resolve(self, platform: str, version: str) -> Path | None:
        """Return the cached binary path, downloading it on first use.

        Args:
            platform: Binary repository platform directory (e.g. ``linux-amd64``)
            version: Normalized compiler version

        Returns:
            Path to an executable, or None when no native build exists
        """
        path = self.path_for(platform, version)
        if path.exists():
            logger.debug("solc cache hit", extra={"path": str(path), "version": version})
            return path

        payload = await self.fetcher.fetch(platform, binary_file_name(platform, version))
        if payload is None:
            return None

        await asyncio.to_thread(self._store, path, payload)
        logger.info(
            "Cached solc %s (%d bytes)", version, len(payload),
            extra={"path": str(path), "platform": platform},
        )
        return path

    @staticmethod
    def _store(path: Path, payload: bytes) -> None:
        """Replace *path* with an executable holding *payload*.

        The binary is written and marked executable under a temporary name,
        then renamed into place, so the cache path never shows a partial or
        non-executable file.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            path.unlink()
        except FileNotFoundError:
            pass

        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(payload)
            os.chmod(tmp_name, _EXECUTABLE_MODE)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
