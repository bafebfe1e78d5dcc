"""ORM models for the expense kernel."""

from expense_kernel.models.expense_report import ExpenseReportModel

__all__ = ["ExpenseReportModel"]
