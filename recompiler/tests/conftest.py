"""Shared fixtures for the recompiler test suite."""

from __future__ import annotations

import asyncio
import json
import stat
from pathlib import Path
from typing import Any, Awaitable, Callable

import pytest

from recompiler.core.config import Settings


# ── Settings ─────────────────────────────────────────────────────────────────


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated to a temporary cache and results area."""
    return Settings(
        cache_dir=str(tmp_path / "solc-repo"),
        output_dir=str(tmp_path / "out"),
        binary_repository_url="https://binaries.example.org",
        compile_timeout_seconds=10,
        max_output_bytes=1_000_000,
    )


# ── Compiler output ──────────────────────────────────────────────────────────


STORAGE_LAYOUT = {
    "storage": [
        {
            "astId": 3,
            "contract": "contracts/Token.sol:Token",
            "label": "totalSupply",
            "offset": 0,
            "slot": "0",
            "type": "t_uint256",
        }
    ],
    "types": {"t_uint256": {"encoding": "inplace", "label": "uint256", "numberOfBytes": "32"}},
}

ABI = [
    {
        "inputs": [],
        "name": "totalSupply",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    }
]

RUNTIME_BYTECODE = "6080604052348015600f57600080fd5b50__$a1b2c3d4e5f6a7b8c9d0a1b2c3d4e5f6a7$__6002"


def make_output(
    *,
    storage_layout: Any = STORAGE_LAYOUT,
    errors: list[dict[str, Any]] | None = None,
    source: str = "contracts/Token.sol",
    name: str = "Token",
) -> dict[str, Any]:
    """Standard-JSON compiler output for a single contract."""
    contract: dict[str, Any] = {
        "abi": ABI,
        "evm": {"deployedBytecode": {"object": RUNTIME_BYTECODE}},
        "metadata": '{"compiler":{"version":"0.8.17+commit.8df45f5f"}}',
    }
    if storage_layout is not None:
        contract["storageLayout"] = storage_layout
    output: dict[str, Any] = {"contracts": {source: {name: contract}}, "sources": {source: {"id": 0}}}
    if errors is not None:
        output["errors"] = errors
    return output


@pytest.fixture
def compiler_output() -> dict[str, Any]:
    return make_output()


@pytest.fixture
def solc_request() -> dict[str, Any]:
    """A standard-JSON request as a verifier would build it."""
    return {
        "language": "Solidity",
        "sources": {"contracts/Token.sol": {"content": "contract Token { uint256 public totalSupply; }"}},
        "settings": {
            "optimizer": {"enabled": True, "runs": 200},
            "outputSelection": {"*": {"*": ["evm.bytecode.object"]}},
        },
    }


# ── Fake solc binaries ───────────────────────────────────────────────────────


@pytest.fixture
def fake_solc(tmp_path: Path) -> Callable[..., Path]:
    """Write a shell script standing in for ``solc --standard-json``.

    The script drains stdin, then prints *stdout* / *stderr* and exits
    with *exit_code*. *body* replaces the default script entirely.
    """

    def _make(
        stdout: str = "",
        *,
        stderr: str = "",
        exit_code: int = 0,
        body: str | None = None,
        path: Path | None = None,
    ) -> Path:
        target = path or tmp_path / "bin" / "solc"
        target.parent.mkdir(parents=True, exist_ok=True)
        if body is None:
            out_file = target.parent / f"{target.name}.stdout"
            out_file.write_text(stdout, encoding="utf-8")
            lines = ["cat > /dev/null", f"cat '{out_file}'"]
            if stderr:
                lines.append(f"printf '%s' '{stderr}' >&2")
            lines.append(f"exit {exit_code}")
            body = "\n".join(lines)
        target.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
        target.chmod(target.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return target

    return _make


# ── Event loop ───────────────────────────────────────────────────────────


async def heartbeat_ticks(awaitable: Awaitable[Any], interval: float = 0.02) -> tuple[Any, int]:
    """Await *awaitable* while counting how often a sibling task got to run."""
    ticks = 0

    async def _beat() -> None:
        nonlocal ticks
        while True:
            await asyncio.sleep(interval)
            ticks += 1

    beat = asyncio.create_task(_beat())
    try:
        result = await awaitable
    finally:
        beat.cancel()
    return result, ticks


# ── Source bundles ───────────────────────────────────────────────────────────


@pytest.fixture
def bundle_dir(tmp_path: Path) -> Path:
    """A Sourcify-style bundle: metadata.json plus sources/."""
    root = tmp_path / "full_match" / "1" / "0x00000000219ab540356cBB839Cbe05303d7705Fa"
    (root / "sources" / "contracts").mkdir(parents=True)
    (root / "sources" / "contracts" / "Token.sol").write_text(
        "pragma solidity ^0.8.17;\nimport './Lib.sol';\ncontract Token { uint256 public totalSupply; }\n",
        encoding="utf-8",
    )
    (root / "sources" / "contracts" / "Lib.sol").write_text(
        "pragma solidity ^0.8.17;\nlibrary Lib {}\n", encoding="utf-8"
    )
    metadata = {
        "compiler": {"version": "0.8.17+commit.8df45f5f"},
        "language": "Solidity",
        "settings": {
            "compilationTarget": {"contracts/Token.sol": "Token"},
            "evmVersion": "london",
            "libraries": {"contracts/Lib.sol:Lib": "0x5a6b7c8d9e0f1a2b3c4d5e6f7a8b9c0d1e2f3a4b"},
            "metadata": {"bytecodeHash": "ipfs"},
            "optimizer": {"enabled": True, "runs": 200},
            "remappings": [],
        },
        "sources": {
            "contracts/Token.sol": {"keccak256": "0x01", "urls": []},
            "contracts/Lib.sol": {"keccak256": "0x02", "urls": []},
        },
        "version": 1,
    }
    (root / "metadata.json").write_text(json.dumps(metadata), encoding="utf-8")
    return root
