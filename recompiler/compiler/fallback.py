"""Fallback compilers for versions without a native repository build.

The default loader relies on py-solc-x, which keeps its own installation
directory and can provide releases the binary repository does not serve
for the configured platform. Very old compilers (< 0.4.0) leak global
state between compilations, so those run in a throwaway worker process.
"""

from __future__ import annotations

import asyncio
import logging
import multiprocessing
from multiprocessing.connection import Connection
from pathlib import Path
from typing import Protocol

import solcx
from solcx.exceptions import (
    DownloadError,
    SolcInstallationError,
    SolcNotInstalled,
    UnsupportedVersionError,
)
from solcx.install import get_executable
from solcx.wrapper import solc_wrapper

from recompiler.core.errors import CompilationError, CompilationTimeoutError
from recompiler.core.types import coerce_version

logger = logging.getLogger(__name__)


class CompilerModule(Protocol):
    """An in-process compiler: standard-JSON text in, standard-JSON text out."""

    def compile(self, input_json: str) -> str: ...


class CompilerModuleLoader(Protocol):
    """Provides a :class:`CompilerModule` for a compiler version."""

    def load(self, version: str) -> CompilerModule | None: ...


# ── py-solc-x ────────────────────────────────────────────────────────────────


class SolcxModule:
    """Compile through a py-solc-x managed solc installation."""

    def __init__(self, binary: Path) -> None:
        self.binary = binary

    def compile(self, input_json: str) -> str:
        stdout, _stderr, _command, _proc = solc_wrapper(
            solc_binary=self.binary,
            stdin=input_json,
            standard_json=True,
        )
        return stdout


class SolcxModuleLoader:
    """Load compilers with py-solc-x, installing them on first use."""

    def __init__(self, install_dir: str | None = None) -> None:
        self.install_dir = install_dir

    def load(self, version: str) -> SolcxModule | None:
        try:
            release = coerce_version(version)
        except ValueError:
            return None

        try:
            binary = get_executable(str(release), solcx_binary_path=self.install_dir)
        except SolcNotInstalled:
            try:
                solcx.install_solc(str(release), show_progress=False, solcx_binary_path=self.install_dir)
                binary = get_executable(str(release), solcx_binary_path=self.install_dir)
            except (
                DownloadError,
                SolcInstallationError,
                SolcNotInstalled,
                UnsupportedVersionError,
                ValueError,
            ) as exc:
                logger.info("py-solc-x cannot provide solc %s: %s", release, exc)
                return None
        except UnsupportedVersionError as exc:
            logger.info("py-solc-x does not support solc %s: %s", release, exc)
            return None

        return SolcxModule(Path(binary))


# ── Isolated worker ──────────────────────────────────────────────────────────


def _worker_main(
    conn: Connection,
    loader: CompilerModuleLoader,
    version: str,
    input_json: str,
) -> None:
    """Child entry point: send exactly one ``(status, payload)`` message."""
    try:
        module = loader.load(version)
        if module is None:
            conn.send(("error", f"No compiler module for {version}"))
        else:
            conn.send(("ok", module.compile(input_json)))
    except Exception as exc:  # reported to the parent
        conn.send(("error", f"{type(exc).__name__}: {exc}"))
    finally:
        conn.close()


def _await_worker(
    loader: CompilerModuleLoader,
    version: str,
    input_json: str,
    timeout: float | None,
) -> str:
    ctx = multiprocessing.get_context("spawn")
    receiver, sender = ctx.Pipe(duplex=False)
    worker = ctx.Process(
        target=_worker_main,
        args=(sender, loader, version, input_json),
        daemon=True,
    )
    worker.start()
    sender.close()

    try:
        if not receiver.poll(timeout):
            raise CompilationTimeoutError(
                f"Legacy compiler worker did not answer within {timeout}s",
                details={"version": version},
            )
        try:
            status, payload = receiver.recv()
        except EOFError as exc:
            raise CompilationError(
                f"Legacy compiler worker exited with code {worker.exitcode} without a result",
                details={"version": version},
            ) from exc
    finally:
        receiver.close()
        if worker.is_alive():
            worker.kill()
        worker.join()

    if status != "ok":
        raise CompilationError(f"Legacy compiler worker failed: {payload}", details={"version": version})
    return payload


async def run_isolated(
    loader: CompilerModuleLoader,
    version: str,
    input_json: str,
    timeout: float | None = None,
) -> str:
    """Compile in a fresh process and return its single result.

    Raises:
        CompilationError: The worker reported an error or died silently
        CompilationTimeoutError: No answer within *timeout* seconds
    """
    return await asyncio.to_thread(_await_worker, loader, version, input_json, timeout)


async def run_in_process(module: CompilerModule, input_json: str) -> str:
    """Compile with *module* without blocking the event loop."""
    return await asyncio.to_thread(module.compile, input_json)
