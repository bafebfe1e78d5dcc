"""
Tests for payload schemas, the report signer and chain verification.

Signatures are produced with ReportSigner over in-memory snapshots; no
database involved.
"""

import json
from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from expense_kernel.domain.payloads import (
    DIRECTOR_SIGNING_SCHEMA,
    SUBMISSION_SCHEMA,
    VALIDATION_SCHEMA,
)
from expense_kernel.domain.values import (
    ExpenseReport,
    ReportStatus,
    SignatureEnvelope,
    SignatureSlot,
    load_envelope,
)
from expense_kernel.domain.verification import verify_report, verify_slot

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def draft():
    return ExpenseReport(
        id=uuid4(),
        employee_email="ana@example.com",
        title="Taxi",
        description="Airport to office",
        amount=Decimal("42.50"),
        date=date(2024, 3, 1),
        receipts=("r1",),
        status=ReportStatus.DRAFT,
        created_at=NOW,
        updated_at=NOW,
    )


@pytest.fixture
def fully_signed(draft, report_signer, deterministic_clock):
    employee_sig = report_signer.sign_submission(draft, "ana@example.com")
    submitted = replace(draft, status=ReportStatus.SUBMITTED, employee_signature=employee_sig)
    deterministic_clock.advance(60)
    manager_sig = report_signer.sign_validation(submitted, "bruno@example.com")
    validated = replace(submitted, status=ReportStatus.VALIDATED, manager_signature=manager_sig)
    deterministic_clock.advance(60)
    director_sig = report_signer.sign_director(validated, "carla@example.com")
    return replace(validated, status=ReportStatus.SIGNED, director_signature=director_sig)


class TestPayloadSchemas:

    def test_submission_fields(self):
        assert SUBMISSION_SCHEMA.field_names() == (
            "amount", "date", "description", "receipts", "signedAt", "title",
        )

    def test_validation_adds_employee_signature_and_action(self):
        names = VALIDATION_SCHEMA.field_names()
        assert "employeeSignature" in names
        assert "action" in names
        assert "managerSignature" not in names

    def test_director_schema_chains_over_both(self):
        names = DIRECTOR_SIGNING_SCHEMA.field_names()
        assert {"employeeSignature", "managerSignature", "action"} <= set(names)

    def test_validation_payload_carries_action(self, fully_signed):
        payload = json.loads(
            VALIDATION_SCHEMA.encode(fully_signed, fully_signed.manager_signature.signed_at)
        )
        assert payload["action"] == "validate"
        assert payload["employeeSignature"] == fully_signed.employee_signature.to_dict()

    def test_submission_payload_uses_envelope_time(self, fully_signed):
        signed_at = fully_signed.employee_signature.signed_at
        payload = json.loads(SUBMISSION_SCHEMA.encode(fully_signed, signed_at))
        assert payload["signedAt"] == "2024-03-01T12:00:00.000Z"
        assert payload["amount"] == "42.50"

    def test_validation_without_employee_signature_cannot_be_built(self, draft):
        from expense_kernel.domain.canonical import CanonicalEncodingError

        with pytest.raises(CanonicalEncodingError):
            VALIDATION_SCHEMA.encode(draft, NOW)


class TestVerifyReport:

    def test_clean_chain_verifies(self, signature_engine, fully_signed):
        result = verify_report(signature_engine, fully_signed)
        assert (result.employee, result.manager, result.director) == (True, True, True)
        assert result.all_valid
        assert result.failed_slots() == ()

    def test_empty_slots_report_none(self, signature_engine, draft):
        result = verify_report(signature_engine, draft)
        assert (result.employee, result.manager, result.director) == (None, None, None)
        assert not result.all_valid

    def test_edited_amount_breaks_every_slot(self, signature_engine, fully_signed):
        edited = replace(fully_signed, amount=Decimal("4250.00"))
        result = verify_report(signature_engine, edited)
        assert result.failed_slots() == (
            "employee_signature", "manager_signature", "director_signature",
        )

    def test_sub_cent_edit_breaks_every_slot(self, signature_engine, fully_signed):
        edited = replace(fully_signed, amount=fully_signed.amount + Decimal("0.004"))
        assert verify_report(signature_engine, edited).failed_slots() == (
            "employee_signature", "manager_signature", "director_signature",
        )

    def test_unreadable_manager_envelope_breaks_it_and_the_chain(
        self, signature_engine, fully_signed,
    ):
        stored = fully_signed.manager_signature.to_dict()
        del stored["signedAt"]
        damaged = replace(fully_signed, manager_signature=load_envelope(stored))
        result = verify_report(signature_engine, damaged)
        assert (result.employee, result.manager, result.director) == (True, False, False)

    def test_added_receipt_breaks_every_slot(self, signature_engine, fully_signed):
        edited = replace(fully_signed, receipts=("r1", "r2"))
        assert verify_report(signature_engine, edited).employee is False

    def test_edited_employee_envelope_breaks_later_slots(self, signature_engine, fully_signed):
        original = fully_signed.employee_signature
        moved = SignatureEnvelope(
            data=original.data,
            public_key=original.public_key,
            signed_by="mallory@example.com",
            signed_at=original.signed_at,
        )
        result = verify_report(signature_engine, replace(fully_signed, employee_signature=moved))
        # the employee signature does not cover signedBy; the chain over it does
        assert result.employee is True
        assert result.manager is False
        assert result.director is False

    def test_corrupted_manager_signature(self, signature_engine, fully_signed):
        manager_sig = fully_signed.manager_signature
        # swap in another valid signature over different bytes
        other = signature_engine.generate_and_sign(b"something else", "bruno@example.com")
        corrupted = replace(
            fully_signed,
            manager_signature=SignatureEnvelope(
                data=other.data,
                public_key=manager_sig.public_key,
                signed_by=manager_sig.signed_by,
                signed_at=manager_sig.signed_at,
            ),
        )
        result = verify_report(signature_engine, corrupted)
        assert result.employee is True
        assert result.manager is False
        assert "manager_signature" in result.failed_slots()

    def test_malformed_envelope_counts_as_invalid(self, signature_engine, fully_signed):
        manager_sig = fully_signed.manager_signature
        broken = replace(
            fully_signed,
            manager_signature=SignatureEnvelope(
                data="***",
                public_key=manager_sig.public_key,
                signed_by=manager_sig.signed_by,
                signed_at=manager_sig.signed_at,
            ),
        )
        assert verify_slot(signature_engine, broken, SignatureSlot.MANAGER) is False

    def test_verify_slot_empty_is_none(self, signature_engine, draft):
        assert verify_slot(signature_engine, draft, SignatureSlot.DIRECTOR) is None
