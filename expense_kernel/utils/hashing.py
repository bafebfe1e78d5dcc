"""
Deterministic JSON and digest helpers.

The canonical encoder signs the output of ``canonicalize_json``, and the
config loader fingerprints its input with ``canonical_digest``.  Both depend
on the same property: equal data in, identical bytes out.

Only plain JSON types are accepted.  Anything that needs a textual
representation (amounts, dates, timestamps) is converted by the caller
first, so no implicit ``str()`` ever decides what gets signed.
"""

import hashlib
import json
from typing import Any


def canonicalize_json(data: Any) -> str:
    """
    Compact JSON with keys sorted at every level.

    Raises:
        TypeError: a value is not a plain JSON type.
        ValueError: a float is NaN or infinite.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def hash_bytes(data: bytes) -> str:
    """Hex-encoded SHA-256 of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def canonical_digest(data: Any) -> str:
    """SHA-256 of the UTF-8 canonical JSON form of ``data``."""
    return hash_bytes(canonicalize_json(data).encode("utf-8"))
