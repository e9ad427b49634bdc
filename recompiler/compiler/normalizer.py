"""Shape standard-JSON compiler input and output for verification."""

from __future__ import annotations

import json
import logging
from typing import Any

from recompiler.core.errors import CompilationError, CompilerDiagnosticError

logger = logging.getLogger(__name__)

REQUIRED_OUTPUTS = ("storageLayout", "abi", "evm.deployedBytecode.object")


def augment_selection(request: dict[str, Any]) -> dict[str, Any]:
    """Make sure every contract selects storage layout, ABI and runtime bytecode.

    Existing selections keep their order; missing ones are appended, so
    applying this twice is the same as applying it once. *request* is
    modified in place and returned.
    """
    settings = request.setdefault("settings", {})
    output_selection = settings.setdefault("outputSelection", {})
    file_selection = output_selection.setdefault("*", {})
    selected = file_selection.setdefault("*", [])
    for output in REQUIRED_OUTPUTS:
        if output not in selected:
            selected.append(output)
    return request


def parse_output(raw: str | None) -> dict[str, Any]:
    """Parse compiler stdout, rejecting empty output and fatal diagnostics.

    Raises:
        CompilationError: *raw* is empty or not JSON
        CompilerDiagnosticError: Any diagnostic has severity ``error``
    """
    if not raw:
        raise CompilationError("Compilation failed. No output from the compiler.")

    try:
        output = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise CompilationError(f"Compiler output is not valid JSON: {exc}") from exc
    if not isinstance(output, dict):
        raise CompilationError("Compiler output is not a JSON object")

    fatal = [d for d in output.get("errors") or [] if d.get("severity") == "error"]
    if fatal:
        error = CompilerDiagnosticError(fatal)
        logger.error(error.message)
        raise error
    return output


def synthesize_metadata(output: dict[str, Any]) -> dict[str, Any]:
    """Attach ``{"storageLayout", "abi"}`` as a JSON string to every contract.

    Some compiler versions never emit storage layout inside their own
    ``metadata`` field, so downstream code reads both fields from here. A
    field the compiler did not produce is stored as ``null``.
    """
    for contracts in (output.get("contracts") or {}).values():
        for contract in contracts.values():
            contract["metadata"] = json.dumps(
                {
                    "storageLayout": contract.get("storageLayout"),
                    "abi": contract.get("abi"),
                }
            )
    return output
