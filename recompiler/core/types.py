"""Shared types and version helpers used across the recompiler."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from packaging.version import Version
from pydantic import BaseModel, ConfigDict, Field

_SEMVER_CORE_RE = re.compile(r"(\d+)\.(\d+)\.(\d+)")


# ── Compiler versions ────────────────────────────────────────────────────────


def normalize_version(version: str) -> str:
    """Return the canonical spelling of a compiler version.

    Nightly builds are recorded in contract metadata as
    ``0.8.17-ci.2022.8.9+commit.6b60524c`` but published in the binary
    repository as ``0.8.17-nightly.2022.8.9+commit.6b60524c``.
    """
    if "-ci." in version:
        return version.replace("-ci.", "-nightly.")
    return version


def coerce_version(version: str) -> Version:
    """Reduce a full compiler version to its ``X.Y.Z`` release.

    Raises:
        ValueError: If *version* contains no ``X.Y.Z`` triple
    """
    match = _SEMVER_CORE_RE.search(version)
    if not match:
        raise ValueError(f"Not a compiler version: {version!r}")
    return Version(".".join(match.groups()))


# ── Recompilation results ────────────────────────────────────────────────────


@dataclass
class RecompiledContract:
    """What a candidate contract hands back after recompilation."""

    metadata: str
    runtime_bytecode: str
    name: str = ""
    source_path: str = ""


class VerificationArtifact(BaseModel):
    """Runtime bytecode plus the structural data needed for verification."""

    model_config = ConfigDict(populate_by_name=True)

    runtime_bytecode: str = Field(alias="runtimeBytecode")
    storage_layout: dict[str, Any] = Field(alias="storageLayout")
    abi: list[dict[str, Any]] = Field(default_factory=list)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
