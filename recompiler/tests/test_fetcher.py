"""Tests for the binary repository fetcher (recompiler/compiler/fetcher.py).

Covers:
- URL construction and file name encoding
- Pointer (indirection) responses followed exactly once
- Missing binaries reported as None, never raised
"""

from __future__ import annotations

import httpx
import pytest

from recompiler.compiler.fetcher import RemoteFetcher, indirection_target
from recompiler.core.config import Settings
from recompiler.core.errors import FetchUnavailableError

ELF_PAYLOAD = b"\x7fELF\x02\x01\x01\x00" + bytes(range(256)) * 4
POINTER = b"solc-linux-amd64-v0.4.10+commit.f0d539ae"


def _fetcher(settings: Settings, handler) -> RemoteFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RemoteFetcher(settings, client=client)


class TestIndirectionTarget:
    def test_pointer_text(self):
        assert indirection_target(POINTER) == POINTER.decode()

    def test_pointer_with_trailing_newline(self):
        assert indirection_target(POINTER + b"\n") == POINTER.decode()

    def test_binary_payload(self):
        assert indirection_target(ELF_PAYLOAD) is None

    def test_plain_text_not_matching(self):
        assert indirection_target(b"<html>Not Found</html>") is None

    def test_prerelease_name_is_not_a_pointer(self):
        # Pointer names carry "+commit" directly after X.Y.Z.
        text = b"solc-macosx-amd64-v0.8.17-nightly.2022.8.9+commit.6b60524c"
        assert indirection_target(text) is None


class TestRemoteFetcher:
    def test_url_encodes_file_name(self, settings: Settings):
        fetcher = RemoteFetcher(settings)
        url = fetcher.url_for("linux-amd64", "solc-linux-amd64-v0.8.17+commit.8df45f5f")
        assert url == (
            "https://binaries.example.org/linux-amd64/"
            "solc-linux-amd64-v0.8.17%2Bcommit.8df45f5f"
        )

    @pytest.mark.asyncio
    async def test_fetch_binary(self, settings: Settings):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, content=ELF_PAYLOAD)

        fetcher = _fetcher(settings, handler)
        body = await fetcher.fetch("linux-amd64", "solc-linux-amd64-v0.8.17+commit.8df45f5f")
        await fetcher.close()

        assert body == ELF_PAYLOAD
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_follows_pointer_once(self, settings: Settings):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.path)
            if len(seen) == 1:
                return httpx.Response(200, content=POINTER)
            return httpx.Response(200, content=ELF_PAYLOAD)

        fetcher = _fetcher(settings, handler)
        body = await fetcher.fetch("linux-amd64", "solc-linux-amd64-v0.4.10")
        await fetcher.close()

        assert body == ELF_PAYLOAD
        assert len(seen) == 2
        assert seen[1].endswith("solc-linux-amd64-v0.4.10%2Bcommit.f0d539ae") or seen[1].endswith(
            "solc-linux-amd64-v0.4.10+commit.f0d539ae"
        )

    @pytest.mark.asyncio
    async def test_pointer_chain_not_followed_twice(self, settings: Settings):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, content=POINTER)

        fetcher = _fetcher(settings, handler)
        body = await fetcher.fetch("linux-amd64", "solc-linux-amd64-v0.4.10")
        await fetcher.close()

        assert calls == 2
        assert body == POINTER

    @pytest.mark.asyncio
    async def test_not_found_returns_none(self, settings: Settings):
        fetcher = _fetcher(settings, lambda request: httpx.Response(404, text="Not Found"))
        assert await fetcher.fetch("linux-amd64", "solc-linux-amd64-v0.1.1") is None
        await fetcher.close()

    @pytest.mark.asyncio
    async def test_pointer_target_missing_returns_none(self, settings: Settings):
        responses = iter([httpx.Response(200, content=POINTER), httpx.Response(404)])
        fetcher = _fetcher(settings, lambda request: next(responses))
        assert await fetcher.fetch("linux-amd64", "solc-linux-amd64-v0.4.10") is None
        await fetcher.close()

    @pytest.mark.asyncio
    async def test_network_error_returns_none(self, settings: Settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        fetcher = _fetcher(settings, handler)
        assert await fetcher.fetch("linux-amd64", "solc-linux-amd64-v0.8.17") is None
        await fetcher.close()

    @pytest.mark.asyncio
    async def test_download_raises_on_miss(self, settings: Settings):
        fetcher = _fetcher(settings, lambda request: httpx.Response(403))
        with pytest.raises(FetchUnavailableError) as excinfo:
            await fetcher.download("linux-amd64", "solc-linux-amd64-v0.8.17")
        await fetcher.close()
        assert excinfo.value.details == {"status_code": 403}
