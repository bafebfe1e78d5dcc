"""Kernel services: the report store and the approval service."""

from expense_kernel.services.approval_service import ExpenseApprovalService
from expense_kernel.services.report_store import ReportStore, SqlAlchemyReportStore

__all__ = [
    "ExpenseApprovalService",
    "ReportStore",
    "SqlAlchemyReportStore",
]
