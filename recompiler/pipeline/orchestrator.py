"""Artifact orchestrator: recompile a target directory into a verification artifact."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from recompiler.compiler.linker import link_libraries, load_library_map
from recompiler.core.config import Settings
from recompiler.core.errors import (
    ErrorCode,
    InvalidContractError,
    MissingStorageLayoutError,
    RecompilerError,
)
from recompiler.core.logging import bind_target
from recompiler.core.types import VerificationArtifact
from recompiler.verifier.base import CompilerBackend, ContractVerifier

logger = logging.getLogger(__name__)


def write_artifact(artifact: VerificationArtifact, output_dir: Path, name: str) -> Path:
    """Write ``<output_dir>/<name>.json`` atomically and return its path."""
    output_dir.mkdir(parents=True, exist_ok=True)
    destination = output_dir / f"{name}.json"

    fd, tmp_name = tempfile.mkstemp(dir=output_dir, prefix=f".{name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(artifact.to_json_dict(), fh)
        os.replace(tmp_name, destination)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return destination


@dataclass
class BatchReport:
    """Outcome of a batch run, one entry per target directory."""

    succeeded: dict[str, str] = field(default_factory=dict)
    failed: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "failed": self.failed,
            "total": len(self.succeeded) + len(self.failed),
        }


class ArtifactPipeline:
    """Sequences verifier, compiler and linker for one target at a time."""

    def __init__(
        self,
        settings: Settings,
        verifier: ContractVerifier,
        compiler: CompilerBackend,
    ) -> None:
        self.settings = settings
        self.verifier = verifier
        self.compiler = compiler

    async def produce_artifact(self, target_dir: Path) -> VerificationArtifact:
        """Recompile *target_dir* and assemble its verification artifact.

        Raises:
            InvalidContractError: The verifier found no valid candidate
            MissingStorageLayoutError: The compiler emitted no storage layout
            CompilationError: Recompilation failed
            CompilerDiagnosticError: The sources do not compile
            LibraryMapError: ``library-map.json`` is malformed
        """
        candidates = self.verifier.check_paths(self.compiler, [target_dir])
        if not candidates:
            raise InvalidContractError(f"No candidate contract found in {target_dir}")

        candidate = candidates[0]
        if not candidate.is_valid():
            raise InvalidContractError(
                f"Candidate {candidate.name or '?'} in {target_dir} is not valid"
            )

        recompiled = await candidate.recompile()
        metadata = json.loads(recompiled.metadata)
        storage_layout = metadata.get("storageLayout")
        if storage_layout is None:
            raise MissingStorageLayoutError(
                f"{candidate.name or target_dir.name}: compiler emitted no storage layout"
            )

        runtime_bytecode = recompiled.runtime_bytecode
        library_map = load_library_map(target_dir / self.settings.library_map_filename)
        if library_map:
            runtime_bytecode = link_libraries(runtime_bytecode, library_map)

        return VerificationArtifact(
            runtime_bytecode=runtime_bytecode,
            storage_layout=storage_layout,
            abi=metadata.get("abi") or [],
        )

    async def run_target(self, target_dir: Path, output_dir: Path | None = None) -> Path:
        """Produce the artifact for *target_dir* and write it to the results area."""
        target_dir = Path(target_dir)
        name = target_dir.resolve().name
        with bind_target(name):
            start = time.monotonic()
            artifact = await self.produce_artifact(target_dir)
            path = write_artifact(artifact, output_dir or Path(self.settings.output_dir), name)
            logger.info(
                "Wrote %s", path,
                extra={
                    "path": str(path),
                    "duration_ms": round((time.monotonic() - start) * 1000, 1),
                },
            )
            return path

    async def run_batch(
        self,
        target_dirs: list[Path],
        output_dir: Path | None = None,
        concurrency: int | None = None,
    ) -> BatchReport:
        """Run many targets concurrently; one failing target never stops the rest."""
        report = BatchReport()
        semaphore = asyncio.Semaphore(concurrency or self.settings.batch_concurrency)

        async def _one(target_dir: Path) -> None:
            key = str(target_dir)
            async with semaphore:
                try:
                    path = await self.run_target(target_dir, output_dir)
                except RecompilerError as exc:
                    with bind_target(Path(target_dir).name):
                        logger.error("%s", exc.message, extra={"code": exc.code.value})
                    report.failed[key] = exc.to_dict()
                except Exception as exc:
                    with bind_target(Path(target_dir).name):
                        logger.exception("Unexpected failure")
                    report.failed[key] = {
                        "code": ErrorCode.INTERNAL_ERROR.value,
                        "message": f"{type(exc).__name__}: {exc}",
                        "details": None,
                    }
                else:
                    report.succeeded[key] = str(path)

        await asyncio.gather(*(_one(Path(d)) for d in target_dirs))
        return report
