"""Read-only selectors."""

from expense_kernel.selectors.report_selector import ReportSelector

__all__ = ["ReportSelector"]
