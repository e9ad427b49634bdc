"""Candidate contracts from Sourcify-style ``metadata.json`` bundles.

A bundle directory looks like::

    0x1234.../
        metadata.json          <-- solc metadata of the deployed contract
        library-map.json       <-- optional, placeholder -> address
        sources/
            contracts/Token.sol
            @openzeppelin/contracts/token/ERC20/ERC20.sol

Sources are matched to metadata keys by path. Source hashes are not
checked against the metadata; callers that need that guarantee should
plug in a stricter :class:`~recompiler.verifier.base.ContractVerifier`.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from recompiler.core.errors import CompilationError, InvalidContractError
from recompiler.core.types import RecompiledContract
from recompiler.verifier.base import CompilerBackend

logger = logging.getLogger(__name__)

METADATA_FILE = "metadata.json"
SOURCES_DIR = "sources"


def _read_metadata(directory: Path) -> dict[str, Any] | None:
    path = directory / METADATA_FILE
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.warning("Unreadable %s: %s", path, exc)
        return None
    return data if isinstance(data, dict) else None


def _index_files(directory: Path) -> list[Path]:
    return sorted(p for p in directory.rglob("*") if p.is_file())


def _find_source(directory: Path, key: str, files: list[Path]) -> Path | None:
    """Locate metadata source *key* inside *directory*."""
    relative = key.lstrip("/")
    for candidate in (directory / SOURCES_DIR / relative, directory / relative):
        if candidate.is_file():
            return candidate

    # Sourcify rewrites some paths (absolute paths, ``..``); fall back to
    # the longest suffix match.
    parts = Path(relative).parts
    for depth in range(len(parts), 0, -1):
        suffix = Path(*parts[-depth:])
        for path in files:
            if path.name != suffix.name:
                continue
            if path.as_posix().endswith(suffix.as_posix()):
                return path
    return None


def _reshape_libraries(libraries: dict[str, str]) -> dict[str, dict[str, str]]:
    """``{"file.sol:Lib": addr}`` metadata form to standard-JSON ``{file: {Lib: addr}}``."""
    nested: dict[str, dict[str, str]] = {}
    for qualified, address in libraries.items():
        file_name, _, lib_name = qualified.rpartition(":")
        nested.setdefault(file_name, {})[lib_name] = address
    return nested


class BundleContract:
    """One contract reconstructed from a metadata bundle."""

    def __init__(
        self,
        compiler: CompilerBackend,
        directory: Path,
        metadata: dict[str, Any],
        sources: dict[str, str],
        missing: list[str],
        force_fallback: bool = False,
    ) -> None:
        self.compiler = compiler
        self.directory = directory
        self.metadata = metadata
        self.sources = sources
        self.missing = missing
        self.force_fallback = force_fallback

        target = (metadata.get("settings") or {}).get("compilationTarget") or {}
        self._targets: list[tuple[str, str]] = list(target.items())
        self.source_path, self.name = self._targets[0] if self._targets else ("", "")

    @property
    def compiler_version(self) -> str:
        return (self.metadata.get("compiler") or {}).get("version", "")

    def is_valid(self) -> bool:
        return (
            len(self._targets) == 1
            and not self.missing
            and bool(self.compiler_version)
        )

    def build_request(self) -> dict[str, Any]:
        """Standard-JSON input equivalent to the original compilation."""
        settings = dict(self.metadata.get("settings") or {})
        settings.pop("compilationTarget", None)
        if settings.get("libraries"):
            settings["libraries"] = _reshape_libraries(settings["libraries"])
        settings["outputSelection"] = {"*": {"*": []}}

        return {
            "language": self.metadata.get("language", "Solidity"),
            "sources": {key: {"content": content} for key, content in self.sources.items()},
            "settings": settings,
        }

    async def recompile(self) -> RecompiledContract:
        """Recompile and return the compilation target's output.

        Raises:
            InvalidContractError: The bundle is incomplete
            CompilationError: The compiler emitted nothing for the target
        """
        if not self.is_valid():
            raise InvalidContractError(
                f"{self.directory} is not a complete bundle",
                details={"missing_sources": self.missing},
            )

        output = await self.compiler.compile(
            self.compiler_version, self.build_request(), force_fallback=self.force_fallback
        )
        contract = ((output.get("contracts") or {}).get(self.source_path) or {}).get(self.name)
        if contract is None:
            raise CompilationError(
                f"Compiler output has no {self.source_path}:{self.name}",
                details={"version": self.compiler_version},
            )

        bytecode = ((contract.get("evm") or {}).get("deployedBytecode") or {}).get("object", "")
        return RecompiledContract(
            metadata=contract["metadata"],
            runtime_bytecode=bytecode,
            name=self.name,
            source_path=self.source_path,
        )


class BundleVerifier:
    """Build candidates from every bundle directory passed in."""

    def __init__(self, force_fallback: bool = False) -> None:
        self.force_fallback = force_fallback

    def check_paths(self, compiler: CompilerBackend, paths: list[Path]) -> list[BundleContract]:
        candidates: list[BundleContract] = []
        for directory in paths:
            metadata = _read_metadata(directory)
            if metadata is None:
                logger.info("No %s in %s", METADATA_FILE, directory)
                continue

            files = _index_files(directory)
            sources: dict[str, str] = {}
            missing: list[str] = []
            for key, entry in (metadata.get("sources") or {}).items():
                if isinstance(entry, dict) and "content" in entry:
                    sources[key] = entry["content"]
                    continue
                path = _find_source(directory, key, files)
                if path is None:
                    missing.append(key)
                else:
                    sources[key] = path.read_text(encoding="utf-8")

            if missing:
                logger.warning("%d source(s) missing in %s", len(missing), directory)
            candidates.append(
                BundleContract(
                    compiler, directory, metadata, sources, missing,
                    force_fallback=self.force_fallback,
                )
            )
        return candidates

