"""
Report signing helper (``expense_kernel.domain.report_signer``).

Builds the canonical payload for a signature slot from a report snapshot and
signs it with the Signature Engine.  Callers that sign on their own side
(the original browser flow) use this to produce exactly the bytes the
verifier will later recompute; the approval service uses it when it signs
on the caller's behalf.
"""

from __future__ import annotations

from expense_kernel.db.types import AMOUNT_DECIMAL_PLACES
from expense_kernel.domain.clock import Clock, SystemClock
from expense_kernel.domain.payloads import SLOT_SCHEMAS
from expense_kernel.domain.signing import SignatureEngine
from expense_kernel.domain.values import ExpenseReport, SignatureEnvelope, SignatureSlot


class ReportSigner:
    """Signs a report snapshot for one slot at the clock's current instant."""

    def __init__(
        self,
        engine: SignatureEngine,
        clock: Clock | None = None,
        decimal_places: int = AMOUNT_DECIMAL_PLACES,
    ) -> None:
        self._engine = engine
        self._clock = clock or SystemClock()
        self._decimal_places = decimal_places

    def sign(
        self,
        slot: SignatureSlot,
        report: ExpenseReport,
        signer_identity: str,
    ) -> SignatureEnvelope:
        signed_at = self._clock.now()
        payload = SLOT_SCHEMAS[slot].encode(report, signed_at, self._decimal_places)
        return self._engine.generate_and_sign(payload, signer_identity, signed_at)

    def sign_submission(self, report: ExpenseReport, signer_identity: str) -> SignatureEnvelope:
        return self.sign(SignatureSlot.EMPLOYEE, report, signer_identity)

    def sign_validation(self, report: ExpenseReport, signer_identity: str) -> SignatureEnvelope:
        return self.sign(SignatureSlot.MANAGER, report, signer_identity)

    def sign_director(self, report: ExpenseReport, signer_identity: str) -> SignatureEnvelope:
        return self.sign(SignatureSlot.DIRECTOR, report, signer_identity)
