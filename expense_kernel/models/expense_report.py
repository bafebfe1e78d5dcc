"""
Module: expense_kernel.models.expense_report
Responsibility: ORM persistence for expense reports and their write-once
    signature slots.
Architecture position: Kernel > Models.  May import from db/base.py and
    db/types.py.  DTO conversion imports domain values lazily.

Invariants enforced:
    - Status values limited by a DB check constraint; the workflow decides
      which transitions are legal.
    - Signature slots are JSON columns that store SQL NULL (not JSON
      ``null``) when empty, so the conditional update can guard on
      ``slot IS NULL``.
    - Document fields (title, description, amount, report_date, receipts)
      are written once at draft creation; the store's conditional update
      refuses to touch them.

Failure modes:
    - IntegrityError on an out-of-range status value.
    - KeyError / ValueError from to_dto() when a stored confirmation or
      rejection record is damaged.  A damaged signature envelope loads as
      UnreadableEnvelope and fails verification instead.

Audit relevance:
    The stored envelopes are re-verified against the stored document
    fields on confirm.  Any out-of-band edit of a signed field breaks
    verification of that slot and every slot chained over it.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, CheckConstraint, Date, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from expense_kernel.db.base import TrackedBase
from expense_kernel.db.types import AMOUNT_DECIMAL_PLACES, round_money

if TYPE_CHECKING:
    from expense_kernel.domain.values import ExpenseReport


# Empty slots are stored as SQL NULL so "IS NULL" predicates work
_SlotJSON = JSON(none_as_null=True)


class ExpenseReportModel(TrackedBase):
    """Persistent expense report.

    Contract:
        Mutated only through ReportStore.conditional_update after creation.

    Guarantees:
        - amount is Numeric(38, 9); never a float.
        - created_at/updated_at come from the service's injected clock.
    """

    __tablename__ = "expense_reports"

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'submitted', 'validated', 'rejected', "
            "'signed', 'confirmed')",
            name="ck_expense_reports_valid_status",
        ),
        Index("idx_expense_report_status", "status"),
        Index("idx_expense_report_employee", "employee_email"),
        Index("idx_expense_report_created", "created_at"),
    )

    employee_email: Mapped[str] = mapped_column(String(320), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    report_date: Mapped[date] = mapped_column(Date, nullable=False)
    receipts: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")

    employee_signature: Mapped[dict[str, Any] | None] = mapped_column(
        _SlotJSON, nullable=True,
    )
    manager_signature: Mapped[dict[str, Any] | None] = mapped_column(
        _SlotJSON, nullable=True,
    )
    director_signature: Mapped[dict[str, Any] | None] = mapped_column(
        _SlotJSON, nullable=True,
    )
    director_confirmation: Mapped[dict[str, Any] | None] = mapped_column(
        _SlotJSON, nullable=True,
    )
    rejection: Mapped[dict[str, Any] | None] = mapped_column(
        _SlotJSON, nullable=True,
    )

    def __repr__(self) -> str:
        return f"<ExpenseReport {self.id} {self.employee_email} status={self.status}>"

    def to_dto(self, decimal_places: int = AMOUNT_DECIMAL_PLACES) -> ExpenseReport:
        """Convert ORM model to frozen domain DTO."""
        from expense_kernel.domain.values import (
            DirectorConfirmation,
            ExpenseReport,
            Rejection,
            ReportStatus,
            load_envelope,
        )

        # Drop only zero padding; real sub-unit digits must reach the verifier
        amount = Decimal(self.amount)
        at_scale = round_money(amount, decimal_places)
        if at_scale == amount:
            amount = at_scale

        return ExpenseReport(
            id=self.id,
            employee_email=self.employee_email,
            title=self.title,
            description=self.description,
            amount=amount,
            date=self.report_date,
            receipts=tuple(self.receipts or ()),
            status=ReportStatus(self.status),
            created_at=self.created_at,
            updated_at=self.updated_at,
            employee_signature=load_envelope(self.employee_signature),
            manager_signature=load_envelope(self.manager_signature),
            director_signature=load_envelope(self.director_signature),
            director_confirmation=(
                DirectorConfirmation.from_dict(self.director_confirmation)
                if self.director_confirmation is not None else None
            ),
            rejection=(
                Rejection.from_dict(self.rejection)
                if self.rejection is not None else None
            ),
        )

    @classmethod
    def from_dto(cls, dto: ExpenseReport) -> ExpenseReportModel:
        """Create ORM model from domain DTO."""

        def _opt(value):
            return value.to_dict() if value is not None else None

        return cls(
            id=dto.id,
            employee_email=dto.employee_email,
            title=dto.title,
            description=dto.description,
            amount=dto.amount,
            report_date=dto.date,
            receipts=list(dto.receipts),
            status=dto.status.value,
            created_at=dto.created_at,
            updated_at=dto.updated_at,
            employee_signature=_opt(dto.employee_signature),
            manager_signature=_opt(dto.manager_signature),
            director_signature=_opt(dto.director_signature),
            director_confirmation=_opt(dto.director_confirmation),
            rejection=_opt(dto.rejection),
        )
