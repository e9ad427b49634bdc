"""Drive solc for one standard-JSON compilation request."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any

from packaging.version import Version

from recompiler.compiler.binary_cache import BinaryCache
from recompiler.compiler.fallback import (
    CompilerModuleLoader,
    SolcxModuleLoader,
    run_in_process,
    run_isolated,
)
from recompiler.compiler.fetcher import RemoteFetcher
from recompiler.compiler.normalizer import augment_selection, parse_output, synthesize_metadata
from recompiler.compiler.process import SolcProcess
from recompiler.core.config import Settings
from recompiler.core.errors import CompilationError, RecompilerError
from recompiler.core.types import coerce_version, normalize_version

logger = logging.getLogger(__name__)


class CompilerInvoker:
    """Compile with a native binary when one exists, else a fallback module.

    This is the compiler backend handed to the contract verifier.
    """

    def __init__(
        self,
        settings: Settings,
        cache: BinaryCache,
        module_loader: CompilerModuleLoader | None = None,
    ) -> None:
        self.settings = settings
        self.cache = cache
        self.module_loader = module_loader or SolcxModuleLoader()
        self._legacy_threshold = Version(settings.legacy_worker_threshold)

    @classmethod
    def from_settings(cls, settings: Settings) -> CompilerInvoker:
        return cls(settings, BinaryCache(settings, RemoteFetcher(settings)))

    async def compile(
        self,
        version: str,
        request: dict[str, Any],
        force_fallback: bool = False,
    ) -> dict[str, Any]:
        """Compile *request* with solc *version*.

        Args:
            version: Compiler version as recorded in contract metadata
            request: Standard-JSON input; its output selection is extended in place
            force_fallback: Skip the native binary even if one is available

        Returns:
            Parsed standard-JSON output with a synthesized ``metadata`` per contract

        Raises:
            CompilationError: The compiler failed or produced nothing
            CompilerDiagnosticError: The output contains a fatal diagnostic
        """
        version = normalize_version(version)
        augment_selection(request)
        input_json = json.dumps(request)

        start = time.monotonic()
        binary = None
        if not force_fallback:
            binary = await self.cache.resolve(self.settings.platform, version)

        if binary is not None:
            async with SolcProcess(binary) as proc:
                raw = await proc.communicate(
                    input_json.encode("utf-8"),
                    timeout=self.settings.effective_compile_timeout,
                    max_output_bytes=self.settings.max_output_bytes,
                )
        else:
            raw = await self._compile_fallback(version, input_json)

        output = parse_output(raw)
        logger.info(
            "Compiled with solc %s", version,
            extra={
                "version": version,
                "duration_ms": round((time.monotonic() - start) * 1000, 1),
            },
        )
        return synthesize_metadata(output)

    async def _compile_fallback(self, version: str, input_json: str) -> str | None:
        try:
            legacy = coerce_version(version) < self._legacy_threshold
        except ValueError as exc:
            raise CompilationError(f"Cannot interpret compiler version {version!r}") from exc

        if legacy:
            logger.debug("Compiling solc %s in an isolated worker", version, extra={"version": version})
            return await run_isolated(
                self.module_loader,
                version,
                input_json,
                timeout=self.settings.effective_compile_timeout,
            )

        module = await asyncio.to_thread(self.module_loader.load, version)
        if module is None:
            return None
        try:
            return await run_in_process(module, input_json)
        except RecompilerError:
            raise
        except Exception as exc:
            raise CompilationError(f"Fallback compiler for {version} failed: {exc}") from exc

    async def close(self) -> None:
        """Release the binary repository HTTP client."""
        await self.cache.fetcher.close()
