"""Utility functions for the expense kernel."""

from expense_kernel.utils.hashing import canonical_digest, canonicalize_json, hash_bytes

__all__ = [
    "canonical_digest",
    "canonicalize_json",
    "hash_bytes",
]
