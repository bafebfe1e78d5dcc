"""
session_scope commits what services flushed, and rolls back on error.

These tests write through the module-level session factory, so they commit
for real; the table is emptied afterwards.
"""

import pytest
from sqlalchemy import delete, func, select

from expense_kernel.db.engine import init_engine_from_url, session_scope
from expense_kernel.domain.values import ReportStatus
from expense_kernel.exceptions import InvalidStateError
from expense_kernel.models.expense_report import ExpenseReportModel
from expense_kernel.services.approval_service import ExpenseApprovalService


@pytest.fixture
def committed_reports(db_engine, db_tables):
    yield
    with db_engine.begin() as conn:
        conn.execute(delete(ExpenseReportModel))


def _count(db_engine) -> int:
    with db_engine.connect() as conn:
        return conn.execute(select(func.count()).select_from(ExpenseReportModel)).scalar_one()


class TestSessionScope:

    def test_commits_on_success(
        self, committed_reports, db_engine, deterministic_clock, employee,
    ):
        with session_scope() as session:
            service = ExpenseApprovalService(session, clock=deterministic_clock)
            draft = service.create_draft(employee, "Taxi", "", "42.50", "2024-03-01")
            service.submit(draft.id, employee)

        assert _count(db_engine) == 1
        with session_scope() as session:
            stored = ExpenseApprovalService(session).get_report(draft.id)
        assert stored.status is ReportStatus.SUBMITTED

    def test_rolls_back_refused_transition(
        self, committed_reports, db_engine, deterministic_clock, employee, manager,
    ):
        with pytest.raises(InvalidStateError):
            with session_scope() as session:
                service = ExpenseApprovalService(session, clock=deterministic_clock)
                draft = service.create_draft(employee, "Taxi", "", "42.50", "2024-03-01")
                service.validate(draft.id, manager)

        assert _count(db_engine) == 0


class TestEngineInit:

    @pytest.mark.parametrize("url", ["sqlite://", "sqlite:///:memory:"])
    def test_in_memory_sqlite_refused(self, url):
        with pytest.raises(ValueError):
            init_engine_from_url(url)
