"""Download native solc binaries from the Solidity binary repository."""

from __future__ import annotations

import logging
import re
from urllib.parse import quote

import httpx

from recompiler.core.config import Settings
from recompiler.core.errors import FetchUnavailableError

logger = logging.getLogger(__name__)

# Some repository entries are plain-text pointers naming the real release
# file, e.g. ``solc-linux-amd64-v0.4.10+commit.f0d539ae``.
_INDIRECTION_RE = re.compile(r"^([\w-]+)-v(\d+\.\d+\.\d+)\+commit\.([a-fA-F0-9]+).*$")


def indirection_target(body: bytes) -> str | None:
    """Return the file name *body* points at, or None if *body* is a binary."""
    try:
        text = body.decode("ascii").strip()
    except UnicodeDecodeError:
        return None
    if _INDIRECTION_RE.fullmatch(text):
        return text
    return None


class RemoteFetcher:
    """Fetch compiler binaries over HTTPS.

    A missing binary is the common case for old versions and exotic
    platforms, so :meth:`fetch` reports it as ``None`` instead of raising.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self.settings = settings
        self._root = settings.binary_repository_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            timeout=settings.http_timeout_seconds,
            follow_redirects=True,
        )

    def url_for(self, platform: str, file_name: str) -> str:
        return f"{self._root}/{platform}/{quote(file_name, safe='')}"

    async def fetch(self, platform: str, file_name: str) -> bytes | None:
        """Fetch ``<root>/<platform>/<file_name>``, following one pointer hop.

        Returns:
            The binary payload, or None when the repository cannot serve it
        """
        try:
            return await self.download(platform, file_name)
        except FetchUnavailableError as exc:
            logger.info("solc binary unavailable: %s", exc.message, extra={"platform": platform})
            return None

    async def download(self, platform: str, file_name: str) -> bytes:
        """Like :meth:`fetch`, but raise :class:`FetchUnavailableError` on a miss."""
        body = await self._get(platform, file_name)

        target = indirection_target(body)
        if target is not None:
            logger.debug("%s points at %s", file_name, target)
            body = await self._get(platform, target)

        return body

    async def _get(self, platform: str, file_name: str) -> bytes:
        url = self.url_for(platform, file_name)
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as exc:
            raise FetchUnavailableError(f"{url}: {exc}") from exc

        if response.status_code != 200:
            raise FetchUnavailableError(
                f"{url} returned HTTP {response.status_code}",
                details={"status_code": response.status_code},
            )
        if not response.content:
            raise FetchUnavailableError(f"{url} returned an empty body")
        return response.content

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
