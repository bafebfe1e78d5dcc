"""
Transition payload schemas (``expense_kernel.domain.payloads``).

Responsibility
--------------
Declares, per signing transition, exactly which report fields are signed and
how each one is represented.  A schema turns a report snapshot plus the
signing instant into a tagged mapping for the canonical encoder.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Each step signs a different, explicit field subset:

  ===================  =====================================================
  submission           title, description, amount, date, receipts, signedAt
  validation           submission fields + employeeSignature,
                       action="validate"
  director signing     validation fields + managerSignature, action="sign"
  ===================  =====================================================

* Later steps chain over the whole envelope of the earlier ones, so the
  manager's signature also pins the employee's, and so on.
* ``signedAt`` is the one field taken from the envelope being verified
  rather than from the report; it is always encoded as a timestamp.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from expense_kernel.db.types import AMOUNT_DECIMAL_PLACES
from expense_kernel.domain.canonical import (
    CanonicalValue,
    FieldKind,
    encode_canonical,
)
from expense_kernel.domain.values import ExpenseReport, SignatureSlot


@dataclass(frozen=True)
class FieldSpec:
    """One signed field: wire name, tag, and the report attribute it reads."""

    name: str
    kind: FieldKind
    attribute: str


@dataclass(frozen=True)
class PayloadSchema:
    """Explicit field list for one signing transition."""

    name: str
    fields: tuple[FieldSpec, ...]
    action: str | None = None

    def field_names(self) -> tuple[str, ...]:
        """Every key that appears in the encoded payload, sorted."""
        names = [f.name for f in self.fields] + ["signedAt"]
        if self.action is not None:
            names.append("action")
        return tuple(sorted(names))

    def build(
        self,
        report: ExpenseReport,
        signed_at: datetime,
    ) -> dict[str, CanonicalValue]:
        """Tagged mapping for ``report`` as signed at ``signed_at``."""
        values: dict[str, CanonicalValue] = {
            field.name: CanonicalValue(field.kind, _read(report, field.attribute))
            for field in self.fields
        }
        if self.action is not None:
            values["action"] = CanonicalValue(FieldKind.STRING, self.action)
        values["signedAt"] = CanonicalValue(FieldKind.TIMESTAMP, signed_at)
        return values

    def encode(
        self,
        report: ExpenseReport,
        signed_at: datetime,
        decimal_places: int = AMOUNT_DECIMAL_PLACES,
    ) -> bytes:
        """Canonical bytes for ``report`` as signed at ``signed_at``."""
        return encode_canonical(self.build(report, signed_at), decimal_places)


def _read(report: ExpenseReport, attribute: str) -> Any:
    value = getattr(report, attribute)
    if isinstance(value, tuple):
        return list(value)
    return value


_DOCUMENT_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("title", FieldKind.STRING, "title"),
    FieldSpec("description", FieldKind.STRING, "description"),
    FieldSpec("amount", FieldKind.DECIMAL, "amount"),
    FieldSpec("date", FieldKind.DATE, "date"),
    FieldSpec("receipts", FieldKind.STRING_LIST, "receipts"),
)

SUBMISSION_SCHEMA = PayloadSchema(
    name="submission",
    fields=_DOCUMENT_FIELDS,
)

VALIDATION_SCHEMA = PayloadSchema(
    name="validation",
    fields=_DOCUMENT_FIELDS + (
        FieldSpec("employeeSignature", FieldKind.SIGNATURE, "employee_signature"),
    ),
    action="validate",
)

DIRECTOR_SIGNING_SCHEMA = PayloadSchema(
    name="director_signing",
    fields=_DOCUMENT_FIELDS + (
        FieldSpec("employeeSignature", FieldKind.SIGNATURE, "employee_signature"),
        FieldSpec("managerSignature", FieldKind.SIGNATURE, "manager_signature"),
    ),
    action="sign",
)

SLOT_SCHEMAS: dict[SignatureSlot, PayloadSchema] = {
    SignatureSlot.EMPLOYEE: SUBMISSION_SCHEMA,
    SignatureSlot.MANAGER: VALIDATION_SCHEMA,
    SignatureSlot.DIRECTOR: DIRECTOR_SIGNING_SCHEMA,
}
