"""
Signature verification over stored reports (``expense_kernel.domain.verification``).

Responsibility
--------------
Recomputes, from the report as currently stored, the canonical payload each
populated signature slot covered and checks the stored envelope against it.
If any signed field, or any envelope a later step chained over, has changed
since signing, the affected slot (and every slot after it) fails.

Architecture position
---------------------
**Kernel domain layer** -- pure.  ZERO I/O.

Failure modes
-------------
None raised.  A slot whose envelope is malformed, or whose payload can no
longer be rebuilt (a chained envelope went missing), reports ``False``.
"""

from __future__ import annotations

from expense_kernel.db.types import AMOUNT_DECIMAL_PLACES
from expense_kernel.domain.canonical import CanonicalEncodingError
from expense_kernel.domain.payloads import SLOT_SCHEMAS
from expense_kernel.domain.signing import SignatureEngine
from expense_kernel.domain.values import (
    ExpenseReport,
    ReportVerification,
    SignatureSlot,
    UnreadableEnvelope,
)
from expense_kernel.exceptions import MalformedSignatureError
from expense_kernel.logging_config import get_logger

logger = get_logger("domain.verification")


def verify_slot(
    engine: SignatureEngine,
    report: ExpenseReport,
    slot: SignatureSlot,
    decimal_places: int = AMOUNT_DECIMAL_PLACES,
) -> bool | None:
    """Verify one slot; None when the slot is empty."""
    envelope = report.signature(slot)
    if envelope is None:
        return None
    if isinstance(envelope, UnreadableEnvelope):
        logger.warning(
            "signature_unreadable",
            extra={"report_id": str(report.id), "slot": slot.value, "reason": envelope.reason},
        )
        return False
    try:
        payload = SLOT_SCHEMAS[slot].encode(report, envelope.signed_at, decimal_places)
    except CanonicalEncodingError as exc:
        logger.warning(
            "signature_payload_unrebuildable",
            extra={"report_id": str(report.id), "slot": slot.value, "reason": str(exc)},
        )
        return False
    try:
        valid = engine.verify(envelope, payload)
    except MalformedSignatureError as exc:
        logger.warning(
            "signature_malformed",
            extra={"report_id": str(report.id), "slot": slot.value, "reason": exc.reason},
        )
        return False
    logger.debug(
        "signature_verified",
        extra={"report_id": str(report.id), "slot": slot.value, "valid": valid},
    )
    return valid


def verify_report(
    engine: SignatureEngine,
    report: ExpenseReport,
    decimal_places: int = AMOUNT_DECIMAL_PLACES,
) -> ReportVerification:
    """Verify every populated slot of ``report``."""
    return ReportVerification(
        report_id=report.id,
        employee=verify_slot(engine, report, SignatureSlot.EMPLOYEE, decimal_places),
        manager=verify_slot(engine, report, SignatureSlot.MANAGER, decimal_places),
        director=verify_slot(engine, report, SignatureSlot.DIRECTOR, decimal_places),
    )
