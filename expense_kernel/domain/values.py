"""
Domain value objects (``expense_kernel.domain.values``).

Responsibility
--------------
The nouns of the approval chain: roles, statuses, the caller context, the
signature envelope, confirmation/rejection records and the report snapshot
itself.  All frozen.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports from
``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* ``SignatureEnvelope`` is immutable once created; its wire shape
  ``{data, publicKey, signedBy, signedAt}`` is persisted and later
  re-verified, so ``to_dict``/``from_dict`` must stay stable.
* ``signedAt`` is always a UTC instant with millisecond precision.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from expense_kernel.domain.clock import truncate_to_millis


class Role(str, Enum):
    """Roles supplied by the identity/authorization collaborator."""

    EMPLOYEE = "employee"
    MANAGER = "manager"
    DIRECTOR = "director"


class ReportStatus(str, Enum):
    """Expense report lifecycle states."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    VALIDATED = "validated"
    REJECTED = "rejected"
    SIGNED = "signed"
    CONFIRMED = "confirmed"


class SignatureSlot(str, Enum):
    """Write-once signature slots on a report, in chain order."""

    EMPLOYEE = "employee_signature"
    MANAGER = "manager_signature"
    DIRECTOR = "director_signature"


@dataclass(frozen=True)
class Actor:
    """The authenticated caller: identity and role, trusted as-is."""

    identity: str
    role: Role


def format_timestamp(value: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and ``Z`` suffix."""
    value = truncate_to_millis(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return truncate_to_millis(parsed)


@dataclass(frozen=True)
class SignatureEnvelope:
    """One approval step's proof.

    ``public_key`` is a base64 DER SubjectPublicKeyInfo minted for this one
    signing event; there is no key registry.  ``signed_by`` is a claim whose
    trust comes from the authorization layer that allowed the transition.
    """

    data: str
    public_key: str
    signed_by: str
    signed_at: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "signed_at", parse_timestamp(self.signed_at))

    def to_dict(self) -> dict[str, str]:
        """Persisted/wire form."""
        return {
            "data": self.data,
            "publicKey": self.public_key,
            "signedBy": self.signed_by,
            "signedAt": format_timestamp(self.signed_at),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> SignatureEnvelope:
        return cls(
            data=raw["data"],
            public_key=raw["publicKey"],
            signed_by=raw["signedBy"],
            signed_at=parse_timestamp(raw["signedAt"]),
        )


@dataclass(frozen=True)
class UnreadableEnvelope:
    """A populated signature slot whose stored value cannot be parsed.

    Kept instead of raising so the slot still counts as occupied and
    verification can report it as failed.
    """

    raw: Any = field(hash=False)
    reason: str = ""

    @property
    def signed_by(self) -> str:
        if isinstance(self.raw, Mapping):
            return str(self.raw.get("signedBy", ""))
        return ""

    def to_dict(self) -> Any:
        return self.raw


def load_envelope(raw: Any) -> SignatureEnvelope | UnreadableEnvelope | None:
    """Stored slot value -> envelope; damaged values become UnreadableEnvelope."""
    if raw is None:
        return None
    try:
        return SignatureEnvelope.from_dict(raw)
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        return UnreadableEnvelope(raw=raw, reason=f"{type(exc).__name__}: {exc}")


@dataclass(frozen=True)
class DirectorConfirmation:
    """Plain attestation by the director; not a signature."""

    confirmed_by: str
    confirmed_at: datetime

    def to_dict(self) -> dict[str, str]:
        return {
            "confirmedBy": self.confirmed_by,
            "confirmedAt": format_timestamp(self.confirmed_at),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> DirectorConfirmation:
        return cls(
            confirmed_by=raw["confirmedBy"],
            confirmed_at=parse_timestamp(raw["confirmedAt"]),
        )


@dataclass(frozen=True)
class Rejection:
    """Terminal refusal of a report, with the reason given."""

    rejected_by: str
    rejected_at: datetime
    reason: str

    def to_dict(self) -> dict[str, str]:
        return {
            "rejectedBy": self.rejected_by,
            "rejectedAt": format_timestamp(self.rejected_at),
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Rejection:
        return cls(
            rejected_by=raw["rejectedBy"],
            rejected_at=parse_timestamp(raw["rejectedAt"]),
            reason=raw.get("reason", ""),
        )


@dataclass(frozen=True)
class ExpenseReport:
    """Immutable snapshot of a stored expense report."""

    id: UUID
    employee_email: str
    title: str
    description: str
    amount: Decimal
    date: date
    receipts: tuple[str, ...]
    status: ReportStatus
    created_at: datetime
    updated_at: datetime
    employee_signature: SignatureEnvelope | UnreadableEnvelope | None = None
    manager_signature: SignatureEnvelope | UnreadableEnvelope | None = None
    director_signature: SignatureEnvelope | UnreadableEnvelope | None = None
    director_confirmation: DirectorConfirmation | None = None
    rejection: Rejection | None = None

    def signature(self, slot: SignatureSlot) -> SignatureEnvelope | UnreadableEnvelope | None:
        """Envelope stored in ``slot`` (None when empty)."""
        return getattr(self, slot.value)

    def to_dict(self) -> dict[str, Any]:
        """Document form with camelCase keys, as exposed to callers."""

        def _opt(value):
            return value.to_dict() if value is not None else None

        return {
            "id": str(self.id),
            "employeeEmail": self.employee_email,
            "title": self.title,
            "description": self.description,
            "amount": str(self.amount),
            "date": self.date.isoformat(),
            "receipts": list(self.receipts),
            "status": self.status.value,
            "employeeSignature": _opt(self.employee_signature),
            "managerSignature": _opt(self.manager_signature),
            "directorSignature": _opt(self.director_signature),
            "directorConfirmation": _opt(self.director_confirmation),
            "rejection": _opt(self.rejection),
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }


@dataclass(frozen=True)
class ReportVerification:
    """Per-slot verification outcome; None means the slot is empty."""

    report_id: UUID
    employee: bool | None
    manager: bool | None
    director: bool | None = None

    @property
    def all_valid(self) -> bool:
        """Every populated slot verified."""
        results = [r for r in (self.employee, self.manager, self.director) if r is not None]
        return bool(results) and all(results)

    def failed_slots(self) -> tuple[str, ...]:
        """Slots that are populated but did not verify."""
        named = (
            (SignatureSlot.EMPLOYEE, self.employee),
            (SignatureSlot.MANAGER, self.manager),
            (SignatureSlot.DIRECTOR, self.director),
        )
        return tuple(slot.value for slot, ok in named if ok is False)
