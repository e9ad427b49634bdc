"""Interfaces between the recompiler and a contract verifier."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol

from recompiler.core.types import RecompiledContract


class CompilerBackend(Protocol):
    """What a verifier needs from the compiler side."""

    async def compile(
        self,
        version: str,
        request: dict[str, Any],
        force_fallback: bool = False,
    ) -> dict[str, Any]: ...


class CandidateContract(Protocol):
    """A source bundle believed to reproduce one deployed contract."""

    name: str

    def is_valid(self) -> bool: ...

    async def recompile(self) -> RecompiledContract: ...


class ContractVerifier(Protocol):
    """Discovers candidate contracts inside target directories."""

    def check_paths(
        self,
        compiler: CompilerBackend,
        paths: list[Path],
    ) -> list[CandidateContract]: ...
