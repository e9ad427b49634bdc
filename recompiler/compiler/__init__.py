"""Compiler acquisition, invocation and output shaping.

Components (leaves first):
  - RemoteFetcher   : HTTP retrieval from the binary repository
  - BinaryCache     : (platform, version) → local executable
  - SolcProcess     : scoped ``solc --standard-json`` subprocess
  - fallback        : py-solc-x modules and the legacy isolated worker
  - normalizer      : output selection, diagnostics, synthesized metadata
  - linker          : library placeholder substitution
  - CompilerInvoker : sequences all of the above for one request
"""

from recompiler.compiler.binary_cache import BinaryCache, binary_file_name
from recompiler.compiler.fetcher import RemoteFetcher, indirection_target
from recompiler.compiler.invoker import CompilerInvoker
from recompiler.compiler.linker import link_libraries, load_library_map
from recompiler.compiler.normalizer import (
    REQUIRED_OUTPUTS,
    augment_selection,
    parse_output,
    synthesize_metadata,
)
from recompiler.compiler.process import SolcProcess

__all__ = [
    "BinaryCache",
    "CompilerInvoker",
    "REQUIRED_OUTPUTS",
    "RemoteFetcher",
    "SolcProcess",
    "augment_selection",
    "binary_file_name",
    "indirection_target",
    "link_libraries",
    "load_library_map",
    "parse_output",
    "synthesize_metadata",
]
