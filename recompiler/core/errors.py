"""Error taxonomy for recompilation.

Every failure carries a stable code so batch drivers can report failures
per directory in a uniform envelope:

    {
        "code": "COMPILER_DIAGNOSTIC",
        "message": "Human-readable description",
        "details": [...optional structured payload...]
    }
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes reported for a failed target."""

    FETCH_UNAVAILABLE = "FETCH_UNAVAILABLE"
    COMPILATION_ERROR = "COMPILATION_ERROR"
    OUTPUT_TOO_LARGE = "OUTPUT_TOO_LARGE"
    COMPILATION_TIMEOUT = "COMPILATION_TIMEOUT"
    COMPILER_DIAGNOSTIC = "COMPILER_DIAGNOSTIC"
    INVALID_CONTRACT = "INVALID_CONTRACT"
    MISSING_STORAGE_LAYOUT = "MISSING_STORAGE_LAYOUT"
    INVALID_LIBRARY_MAP = "INVALID_LIBRARY_MAP"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class RecompilerError(Exception):
    """Base class for all recompilation failures."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class FetchUnavailableError(RecompilerError):
    """The binary repository has no native build for this platform/version."""

    code = ErrorCode.FETCH_UNAVAILABLE


class CompilationError(RecompilerError):
    """The compiler could not be run or produced no usable output."""

    code = ErrorCode.COMPILATION_ERROR


class CompilerOutputTooLargeError(CompilationError):
    """The compiler's output exceeded the configured capacity."""

    code = ErrorCode.OUTPUT_TOO_LARGE


class CompilationTimeoutError(CompilationError):
    """The compiler did not finish within the configured wall clock."""

    code = ErrorCode.COMPILATION_TIMEOUT


class CompilerDiagnosticError(RecompilerError):
    """The compiler ran but reported at least one fatal diagnostic."""

    code = ErrorCode.COMPILER_DIAGNOSTIC

    def __init__(self, diagnostics: list[dict[str, Any]]) -> None:
        super().__init__("Compiler error:\n " + json.dumps(diagnostics), details=diagnostics)
        self.diagnostics = diagnostics


class InvalidContractError(RecompilerError):
    """The verifier rejected the candidate contract for a target."""

    code = ErrorCode.INVALID_CONTRACT


class MissingStorageLayoutError(RecompilerError):
    """Recompilation succeeded but no storage layout was emitted."""

    code = ErrorCode.MISSING_STORAGE_LAYOUT


class LibraryMapError(RecompilerError):
    """A library map file exists but is not a placeholder -> address object."""

    code = ErrorCode.INVALID_LIBRARY_MAP
