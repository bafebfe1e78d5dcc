"""
expense_kernel.services.approval_service -- Expense approval chain.

Responsibility:
    Drives a report through draft -> submitted -> validated -> signed ->
    confirmed (or rejected), attaching a signature envelope at each signing
    step and re-verifying the whole chain before confirmation.  Delegates
    authorization to the pure workflow, payload construction to the
    payload schemas, cryptography to the Signature Engine and persistence
    to the ReportStore.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Every transition is one conditional write keyed on the status read at
      the start of the call.  A lost race surfaces as ConflictError and the
      caller re-fetches; nothing is retried here.
    - Signature slots are write-once (workflow guard plus ``slot IS NULL``
      in the write predicate).
    - A client-supplied envelope must name the caller in ``signedBy`` and,
      with ``verify_on_write``, must verify against the recomputed payload
      before it is stored.
    - confirm re-verifies employee and manager signatures (and the
      director's when present) from the stored document; any failure
      leaves the status untouched.

Failure modes:
    - UnauthorizedError, InvalidStateError, AlreadySignedError from the
      workflow guards.
    - SignatureInvalidError on a bad supplied envelope, an unreadable
      prior envelope, or a broken chain at confirm.
    - MalformedSignatureError on an unusable supplied envelope.
    - CryptoUnavailableError when the service signs and the backend cannot.
    - ConflictError / ReportNotFoundError from the store.
    - InvalidReportError on bad draft input, an empty rejection reason, or
      stored fields that no longer fit the signed payload format.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from expense_kernel.db.types import AMOUNT_DECIMAL_PLACES, round_money
from expense_kernel.domain.canonical import CanonicalEncodingError
from expense_kernel.domain.clock import Clock, SystemClock
from expense_kernel.domain.payloads import SLOT_SCHEMAS
from expense_kernel.domain.report_signer import ReportSigner
from expense_kernel.domain.signing import SignatureEngine
from expense_kernel.domain.values import (
    Actor,
    DirectorConfirmation,
    ExpenseReport,
    Rejection,
    ReportStatus,
    ReportVerification,
    Role,
    SignatureEnvelope,
    SignatureSlot,
    UnreadableEnvelope,
    parse_timestamp,
)
from expense_kernel.domain.verification import verify_report
from expense_kernel.domain.workflow import (
    EXPENSE_APPROVAL_WORKFLOW,
    Transition,
    Workflow,
    authorize_transition,
)
from expense_kernel.exceptions import (
    ConflictError,
    InvalidReportError,
    MalformedSignatureError,
    SignatureInvalidError,
    UnauthorizedError,
)
from expense_kernel.logging_config import LogContext, get_logger
from expense_kernel.services.base import BaseService
from expense_kernel.services.report_store import ReportStore, SqlAlchemyReportStore

logger = get_logger("services.approval")

EnvelopeInput = SignatureEnvelope | Mapping[str, Any]


class ExpenseApprovalService(BaseService):
    """
    Approval lifecycle for expense reports.

    Contract:
        Every public method takes the caller's ``Actor`` explicitly and
        returns the stored snapshot after the change.  The session is
        flushed, never committed.

    Guarantees:
        - Timestamps come from the injected clock.
        - The returned report is what the conditional write produced.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        engine: SignatureEngine | None = None,
        store: ReportStore | None = None,
        verify_on_write: bool = True,
        decimal_places: int = AMOUNT_DECIMAL_PLACES,
        workflow: Workflow = EXPENSE_APPROVAL_WORKFLOW,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._engine = engine or SignatureEngine(clock=self._clock)
        self._store = store or SqlAlchemyReportStore(session, decimal_places)
        self._signer = ReportSigner(self._engine, self._clock, decimal_places)
        self._verify_on_write = verify_on_write
        self._decimal_places = decimal_places
        self._workflow = workflow

    # =========================================================================
    # Creation and reads
    # =========================================================================

    def create_draft(
        self,
        actor: Actor,
        title: str,
        description: str,
        amount: Decimal | int | str | float,
        expense_date: date | str,
        receipts: Iterable[str] = (),
    ) -> ExpenseReport:
        """File a new report in ``draft``, owned by the caller."""
        if actor.role is not Role.EMPLOYEE:
            raise UnauthorizedError(
                "create", actor.identity, actor.role.value, "requires role employee",
            )

        if not isinstance(title, str) or not title.strip():
            raise InvalidReportError("title", "must be a non-empty string")
        if not isinstance(description, str):
            raise InvalidReportError("description", "must be a string")

        receipt_list = list(receipts)
        for receipt in receipt_list:
            if not isinstance(receipt, str):
                raise InvalidReportError(
                    "receipts", f"expected strings, got {type(receipt).__name__}",
                )

        now = self._clock.now()
        report = ExpenseReport(
            id=uuid4(),
            employee_email=actor.identity,
            title=title,
            description=description,
            amount=self._parse_amount(amount),
            date=self._parse_date(expense_date),
            receipts=tuple(receipt_list),
            status=ReportStatus(self._workflow.initial_state),
            created_at=now,
            updated_at=now,
        )

        with LogContext.bind(report_id=str(report.id), actor_id=actor.identity, action="create"):
            stored = self._store.add(report)
            logger.info(
                "report_created",
                extra={"amount": str(stored.amount), "receipt_count": len(stored.receipts)},
            )
        return stored

    def get_report(self, report_id: UUID | str) -> ExpenseReport:
        return self._store.get(report_id)

    def verify_signatures(self, report_id: UUID | str) -> ReportVerification:
        """Per-slot verification of the stored chain.  Read only."""
        report = self._store.get(report_id)
        with LogContext.bind(report_id=str(report.id), action="verify"):
            result = verify_report(self._engine, report, self._decimal_places)
            logger.info(
                "signatures_checked",
                extra={
                    "employee": result.employee,
                    "manager": result.manager,
                    "director": result.director,
                },
            )
        return result

    # =========================================================================
    # Signing transitions
    # =========================================================================

    def submit(
        self,
        report_id: UUID | str,
        actor: Actor,
        signature: EnvelopeInput | None = None,
    ) -> ExpenseReport:
        """Employee signs and submits their own draft."""
        return self._signing_transition("submit", report_id, actor, signature)

    def validate(
        self,
        report_id: UUID | str,
        actor: Actor,
        signature: EnvelopeInput | None = None,
    ) -> ExpenseReport:
        """Manager countersigns a submitted report."""
        return self._signing_transition("validate", report_id, actor, signature)

    def sign(
        self,
        report_id: UUID | str,
        actor: Actor,
        signature: EnvelopeInput | None = None,
    ) -> ExpenseReport:
        """Director signs a validated report, chaining over both prior envelopes."""
        return self._signing_transition("sign", report_id, actor, signature)

    # =========================================================================
    # Terminal transitions
    # =========================================================================

    def confirm(self, report_id: UUID | str, actor: Actor) -> ExpenseReport:
        """Director confirms after the stored chain re-verifies."""
        with LogContext.bind(actor_id=actor.identity, action="confirm"):
            report = self._store.get(report_id)
            with LogContext.bind(report_id=str(report.id)):
                transition = authorize_transition(self._workflow, report, actor, "confirm")

                verification = verify_report(self._engine, report, self._decimal_places)
                failed = verification.failed_slots()
                if failed:
                    logger.warning("confirm_refused", extra={"failed_slots": list(failed)})
                    raise SignatureInvalidError(str(report.id), failed)

                now = self._clock.now()
                return self._commit(
                    report,
                    transition,
                    {
                        "director_confirmation": DirectorConfirmation(
                            confirmed_by=actor.identity, confirmed_at=now,
                        ),
                    },
                    now,
                )

    def reject(self, report_id: UUID | str, actor: Actor, reason: str) -> ExpenseReport:
        """Refuse a report.  Unsigned and terminal."""
        if not isinstance(reason, str) or not reason.strip():
            raise InvalidReportError("reason", "a rejection needs a reason")

        with LogContext.bind(actor_id=actor.identity, action="reject"):
            report = self._store.get(report_id)
            with LogContext.bind(report_id=str(report.id)):
                transition = authorize_transition(self._workflow, report, actor, "reject")
                now = self._clock.now()
                return self._commit(
                    report,
                    transition,
                    {
                        "rejection": Rejection(
                            rejected_by=actor.identity, rejected_at=now, reason=reason,
                        ),
                    },
                    now,
                )

    # =========================================================================
    # Internals
    # =========================================================================

    def _signing_transition(
        self,
        action: str,
        report_id: UUID | str,
        actor: Actor,
        supplied: EnvelopeInput | None,
    ) -> ExpenseReport:
        with LogContext.bind(actor_id=actor.identity, action=action):
            report = self._store.get(report_id)
            with LogContext.bind(report_id=str(report.id)):
                transition = authorize_transition(self._workflow, report, actor, action)
                slot = transition.signature_slot
                unreadable = tuple(
                    required.value
                    for required in transition.requires_signatures
                    if isinstance(report.signature(required), UnreadableEnvelope)
                )
                if unreadable:
                    logger.warning("prior_signature_unreadable", extra={"slots": list(unreadable)})
                    raise SignatureInvalidError(str(report.id), unreadable)

                try:
                    if supplied is None:
                        envelope = self._signer.sign(slot, report, actor.identity)
                    else:
                        envelope = self._accept_envelope(action, slot, report, actor, supplied)
                except CanonicalEncodingError as exc:
                    # Stored fields no longer fit the payload format
                    raise InvalidReportError(exc.field, exc.reason) from exc

                return self._commit(
                    report,
                    transition,
                    {slot.value: envelope},
                    self._clock.now(),
                    require_empty=(slot,),
                )

    def _accept_envelope(
        self,
        action: str,
        slot: SignatureSlot,
        report: ExpenseReport,
        actor: Actor,
        supplied: EnvelopeInput,
    ) -> SignatureEnvelope:
        envelope = self._coerce_envelope(supplied)

        if envelope.signed_by != actor.identity:
            raise UnauthorizedError(
                action, actor.identity, actor.role.value,
                f"signedBy '{envelope.signed_by}' does not match the caller",
            )

        if self._verify_on_write:
            payload = SLOT_SCHEMAS[slot].encode(
                report, envelope.signed_at, self._decimal_places,
            )
            if not self._engine.verify(envelope, payload):
                logger.warning("supplied_signature_invalid", extra={"slot": slot.value})
                raise SignatureInvalidError(str(report.id), (slot.value,))
        return envelope

    @staticmethod
    def _coerce_envelope(supplied: EnvelopeInput) -> SignatureEnvelope:
        if isinstance(supplied, SignatureEnvelope):
            return supplied
        try:
            return SignatureEnvelope.from_dict(supplied)
        except KeyError as exc:
            raise MalformedSignatureError("envelope", f"missing key {exc}")
        except (TypeError, ValueError, AttributeError) as exc:
            raise MalformedSignatureError("signedAt", str(exc))

    def _commit(
        self,
        report: ExpenseReport,
        transition: Transition,
        changes: Mapping[str, Any],
        now: datetime,
        require_empty: Iterable[SignatureSlot] = (),
    ) -> ExpenseReport:
        mutation = dict(changes)
        mutation["status"] = ReportStatus(transition.to_state)
        mutation["updated_at"] = now
        try:
            updated = self._store.conditional_update(
                report.id, report.status, mutation, require_empty,
            )
        except ConflictError:
            logger.warning(
                "transition_conflict",
                extra={"from_state": transition.from_state, "to_state": transition.to_state},
            )
            raise
        logger.info(
            "transition_committed",
            extra={"from_state": transition.from_state, "to_state": transition.to_state},
        )
        return updated

    def _parse_amount(self, amount: Decimal | int | str | float) -> Decimal:
        if isinstance(amount, bool):
            raise InvalidReportError("amount", "must be a number")
        if isinstance(amount, float):
            amount = str(amount)
        try:
            value = Decimal(amount)
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidReportError("amount", f"not a number: {amount!r}")
        if not value.is_finite():
            raise InvalidReportError("amount", "must be finite")
        if value < 0:
            raise InvalidReportError("amount", "must not be negative")
        return round_money(value, self._decimal_places)

    @staticmethod
    def _parse_date(expense_date: date | str) -> date:
        if isinstance(expense_date, datetime):
            return parse_timestamp(expense_date).date()
        if isinstance(expense_date, date):
            return expense_date
        if not isinstance(expense_date, str):
            raise InvalidReportError("date", f"not a date: {expense_date!r}")
        try:
            if len(expense_date) == 10:
                return date.fromisoformat(expense_date)
            return parse_timestamp(expense_date).date()
        except ValueError:
            raise InvalidReportError("date", f"not an ISO-8601 date: {expense_date!r}")
