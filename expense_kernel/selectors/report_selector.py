"""
Module: expense_kernel.selectors.report_selector
Responsibility: Read-only listing of expense reports.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Visibility: employees only see reports they filed; managers and
      directors see every report.
    - Ordering: newest first by created_at, id as tie-breaker so the order
      is stable.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from expense_kernel.db.types import AMOUNT_DECIMAL_PLACES
from expense_kernel.domain.values import Actor, ExpenseReport, ReportStatus, Role
from expense_kernel.models.expense_report import ExpenseReportModel
from expense_kernel.selectors.base import BaseSelector


class ReportSelector(BaseSelector):
    """Queries over the ``expense_reports`` table."""

    def __init__(self, session: Session, decimal_places: int = AMOUNT_DECIMAL_PLACES):
        super().__init__(session)
        self._decimal_places = decimal_places

    def list_reports(
        self,
        actor: Actor,
        status: ReportStatus | str | None = None,
    ) -> list[ExpenseReport]:
        """Reports visible to ``actor``, optionally filtered by status."""
        stmt = select(ExpenseReportModel)
        if status is not None:
            stmt = stmt.where(ExpenseReportModel.status == ReportStatus(status).value)
        if actor.role is Role.EMPLOYEE:
            stmt = stmt.where(ExpenseReportModel.employee_email == actor.identity)
        stmt = stmt.order_by(
            ExpenseReportModel.created_at.desc(),
            ExpenseReportModel.id.desc(),
        )
        models = self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalars().all()
        return [m.to_dto(self._decimal_places) for m in models]

