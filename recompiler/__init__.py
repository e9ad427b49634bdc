"""Deterministic Solidity recompilation for contract verification."""

__version__ = "0.3.0"
