"""
Canonical Encoder (``expense_kernel.domain.canonical``).

Responsibility
--------------
Turns a flat mapping of field name -> tagged value into the exact bytes that
get signed and later re-verified.  Signer and verifier run this on
independently reconstructed inputs, so two semantically equal mappings must
produce identical bytes no matter how they were built.

Architecture position
---------------------
**Kernel domain layer** -- pure function.  ZERO I/O.  Imports only
``db/types`` (rounding), ``domain/values`` and ``utils/hashing``.

Invariants enforced
-------------------
* Keys are sorted by field name at every level, nested signature envelopes
  included.  Insertion order of the input mapping never matters.
* The representation of every field comes from its tag, not from the Python
  type of the value:
    - ``DATE``       -> ``YYYY-MM-DD``
    - ``TIMESTAMP``  -> ``YYYY-MM-DDTHH:MM:SS.mmmZ`` (UTC, milliseconds)
    - ``DECIMAL``    -> fixed-point string, exactly two decimal places
    - ``STRING_LIST``-> JSON array, order preserved
    - ``SIGNATURE``  -> JSON object ``{data, publicKey, signedAt, signedBy}``
* Floats are refused for ``DECIMAL``.  A float cannot promise the digits the
  other side will reproduce.
* ``DECIMAL`` values are never rounded here.  Extra trailing zeros are fine,
  but a value with non-zero digits past the fixed width is refused, so a
  sub-cent edit of a stored amount cannot encode to the signed bytes.
  Amounts are rounded (ROUND_HALF_UP) once, when a report is created.

Failure modes
-------------
* ``CanonicalEncodingError`` (a ``ValueError``) when a value does not fit its
  tag, a tag is unknown, or a field name is empty.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from expense_kernel.db.types import AMOUNT_DECIMAL_PLACES, round_money
from expense_kernel.domain.values import (
    SignatureEnvelope,
    format_timestamp,
    parse_timestamp,
)
from expense_kernel.utils.hashing import canonicalize_json


class CanonicalEncodingError(ValueError):
    """Raised when a value cannot be canonically encoded under its tag."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Cannot encode field '{field}': {reason}")


class FieldKind(str, Enum):
    """Tags for the values a canonical payload may carry."""

    STRING = "string"
    DECIMAL = "decimal"
    DATE = "date"
    TIMESTAMP = "timestamp"
    STRING_LIST = "string_list"
    SIGNATURE = "signature"


@dataclass(frozen=True)
class CanonicalValue:
    """A value paired with the tag that decides its representation."""

    kind: FieldKind
    value: Any


def _encode_string(name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise CanonicalEncodingError(name, f"expected str, got {type(value).__name__}")
    return value


def _encode_decimal(name: str, value: Any, decimal_places: int) -> str:
    if isinstance(value, bool) or isinstance(value, float):
        raise CanonicalEncodingError(name, "floats are not accepted for amounts")
    if isinstance(value, int):
        value = Decimal(value)
    elif isinstance(value, str):
        try:
            value = Decimal(value)
        except InvalidOperation:
            raise CanonicalEncodingError(name, f"not a decimal number: {value!r}")
    if not isinstance(value, Decimal):
        raise CanonicalEncodingError(name, f"expected Decimal, got {type(value).__name__}")
    if not value.is_finite():
        raise CanonicalEncodingError(name, "amount must be finite")
    at_scale = round_money(value, decimal_places)
    if at_scale != value:
        raise CanonicalEncodingError(
            name, f"{value} has non-zero digits beyond {decimal_places} decimal places",
        )
    return format(at_scale, "f")


def _encode_date(name: str, value: Any) -> str:
    # datetime is a subclass of date; a point in time is reduced to its UTC day
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        try:
            if len(value) == 10:
                return date.fromisoformat(value).isoformat()
            return parse_timestamp(value).date().isoformat()
        except ValueError:
            raise CanonicalEncodingError(name, f"not a calendar date: {value!r}")
    raise CanonicalEncodingError(name, f"expected date, got {type(value).__name__}")


def _encode_timestamp(name: str, value: Any) -> str:
    if isinstance(value, (str, datetime)):
        try:
            return format_timestamp(parse_timestamp(value))
        except ValueError:
            raise CanonicalEncodingError(name, f"not an ISO-8601 timestamp: {value!r}")
    raise CanonicalEncodingError(name, f"expected datetime, got {type(value).__name__}")


def _encode_string_list(name: str, value: Any) -> list[str]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise CanonicalEncodingError(name, "expected a list of strings")
    items = list(value)
    for item in items:
        if not isinstance(item, str):
            raise CanonicalEncodingError(
                name, f"list item {item!r} is {type(item).__name__}, not str"
            )
    return items


def _encode_signature(name: str, value: Any) -> dict[str, str]:
    if isinstance(value, SignatureEnvelope):
        return value.to_dict()
    if isinstance(value, Mapping):
        try:
            return SignatureEnvelope.from_dict(dict(value)).to_dict()
        except (KeyError, ValueError) as exc:
            raise CanonicalEncodingError(name, f"bad signature envelope: {exc}")
    if value is None:
        raise CanonicalEncodingError(name, "signature is missing")
    raise CanonicalEncodingError(
        name, f"expected SignatureEnvelope, got {type(value).__name__}"
    )


def normalize_value(
    name: str,
    tagged: CanonicalValue,
    decimal_places: int = AMOUNT_DECIMAL_PLACES,
) -> Any:
    """Reduce one tagged value to its JSON-native canonical form."""
    kind = tagged.kind
    if kind is FieldKind.STRING:
        return _encode_string(name, tagged.value)
    if kind is FieldKind.DECIMAL:
        return _encode_decimal(name, tagged.value, decimal_places)
    if kind is FieldKind.DATE:
        return _encode_date(name, tagged.value)
    if kind is FieldKind.TIMESTAMP:
        return _encode_timestamp(name, tagged.value)
    if kind is FieldKind.STRING_LIST:
        return _encode_string_list(name, tagged.value)
    if kind is FieldKind.SIGNATURE:
        return _encode_signature(name, tagged.value)
    raise CanonicalEncodingError(name, f"unknown field kind {kind!r}")


def encode_canonical(
    fields: Mapping[str, CanonicalValue],
    decimal_places: int = AMOUNT_DECIMAL_PLACES,
) -> bytes:
    """Encode a tagged field mapping into deterministic UTF-8 bytes.

    Args:
        fields: Field name -> tagged value.  Only the fields present are
            encoded; which fields belong in a payload is the caller's
            (the transition schema's) decision.
        decimal_places: Fixed-point width for ``DECIMAL`` fields.

    Returns:
        Compact JSON with keys sorted at every level, encoded as UTF-8.
    """
    normalized: dict[str, Any] = {}
    for name, tagged in fields.items():
        if not isinstance(name, str) or not name:
            raise CanonicalEncodingError(str(name), "field names must be non-empty strings")
        if not isinstance(tagged, CanonicalValue):
            raise CanonicalEncodingError(name, "value is not tagged with a FieldKind")
        normalized[name] = normalize_value(name, tagged, decimal_places)
    return canonicalize_json(normalized).encode("utf-8")
