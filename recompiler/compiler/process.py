"""Scoped execution of a native solc binary in standard-JSON mode."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from types import TracebackType

from recompiler.core.errors import (
    CompilationError,
    CompilationTimeoutError,
    CompilerOutputTooLargeError,
)

logger = logging.getLogger(__name__)

STANDARD_JSON_FLAG = "--standard-json"
_READ_CHUNK = 64 * 1024


class SolcProcess:
    """Async context manager owning one ``solc --standard-json`` child.

    Usage:
        async with SolcProcess(binary) as proc:
            stdout = await proc.communicate(payload, timeout=600, max_output_bytes=20_000_000)

    On every exit path stdin is closed and the child is reaped, killing it
    first if it is still running.
    """

    def __init__(self, binary: Path | str) -> None:
        self.binary = str(binary)
        self._proc: asyncio.subprocess.Process | None = None

    async def __aenter__(self) -> SolcProcess:
        try:
            self._proc = await asyncio.create_subprocess_exec(
                self.binary,
                STANDARD_JSON_FLAG,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise CompilationError(f"Cannot execute {self.binary}: {exc}") from exc
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        proc = self._proc
        if proc is None:
            return
        if proc.stdin is not None and not proc.stdin.is_closing():
            proc.stdin.close()
        self._kill()
        await proc.wait()

    def _kill(self) -> None:
        if self._proc is None or self._proc.returncode is not None:
            return
        try:
            self._proc.kill()
        except ProcessLookupError:
            pass

    async def communicate(
        self,
        payload: bytes,
        *,
        timeout: float | None,
        max_output_bytes: int,
    ) -> str:
        """Send *payload* on stdin and return stdout once the child exits.

        Raises:
            CompilerOutputTooLargeError: stdout grew past *max_output_bytes*
            CompilationTimeoutError: the child outlived *timeout* seconds
            CompilationError: non-zero exit status or anything on stderr
        """
        if self._proc is None:
            raise RuntimeError("SolcProcess used outside 'async with'")

        try:
            stdout, stderr = await asyncio.wait_for(
                self._exchange(payload, max_output_bytes), timeout=timeout
            )
        except asyncio.TimeoutError as exc:
            raise CompilationTimeoutError(
                f"Compiler did not finish within {timeout}s",
                details={"binary": self.binary},
            ) from exc

        returncode = await self._proc.wait()
        err_text = stderr.decode("utf-8", errors="replace")
        if returncode != 0:
            raise CompilationError(
                f"Compiler process exited with status {returncode}:\n {err_text}",
                details={"returncode": returncode, "stderr": err_text},
            )
        if err_text:
            raise CompilationError(
                f"Compiler process returned with errors:\n {err_text}",
                details={"stderr": err_text},
            )
        try:
            return stdout.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CompilationError(
                "Compiler output is not valid UTF-8",
                details={"binary": self.binary},
            ) from exc

    async def _exchange(self, payload: bytes, max_output_bytes: int) -> tuple[bytes, bytes]:
        proc = self._proc
        assert proc is not None and proc.stdout is not None and proc.stderr is not None

        tasks = [
            asyncio.ensure_future(self._write_stdin(payload)),
            asyncio.ensure_future(self._read_capped(proc.stdout, max_output_bytes)),
            asyncio.ensure_future(proc.stderr.read()),
        ]
        try:
            _, stdout, stderr = await asyncio.gather(*tasks)
        except BaseException:
            self._kill()
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return stdout, stderr

    async def _write_stdin(self, payload: bytes) -> None:
        stdin = self._proc.stdin if self._proc else None
        if stdin is None:
            raise CompilationError("No stdin on compiler process")
        try:
            stdin.write(payload)
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # solc exited before reading everything; its stderr says why.
            logger.debug("solc closed stdin early", extra={"path": self.binary})
        finally:
            stdin.close()

    async def _read_capped(self, stream: asyncio.StreamReader, limit: int) -> bytes:
        chunks: list[bytes] = []
        total = 0
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                return b"".join(chunks)
            total += len(chunk)
            if total > limit:
                self._kill()
                raise CompilerOutputTooLargeError(
                    "Compilation output size too large",
                    details={"limit_bytes": limit},
                )
            chunks.append(chunk)
