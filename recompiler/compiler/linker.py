"""Post-link substitution of library placeholders in runtime bytecode."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from recompiler.core.errors import LibraryMapError

logger = logging.getLogger(__name__)


def link_libraries(bytecode: str, library_map: dict[str, str] | None) -> str:
    """Replace every occurrence of each placeholder with its library address.

    Placeholders (``__$...$__`` or ``__Lib___...``) and hex addresses share
    no characters that could make one replacement create another
    placeholder, so application order does not matter.
    """
    if not library_map:
        return bytecode
    for placeholder, address in library_map.items():
        count = bytecode.count(placeholder)
        if count:
            logger.debug("Linked %s x%d", placeholder, count)
        bytecode = bytecode.replace(placeholder, address)
    return bytecode


def load_library_map(path: Path) -> dict[str, str] | None:
    """Read a ``placeholder -> address`` JSON object, or None if *path* is absent.

    Raises:
        LibraryMapError: The file is not a JSON object of strings
    """
    if not path.exists():
        return None

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise LibraryMapError(f"{path} is not valid JSON: {exc}") from exc

    if not isinstance(data, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in data.items()
    ):
        raise LibraryMapError(f"{path} must map placeholder strings to address strings")
    return data
