"""Tests for ReportSelector.list_reports visibility, filtering and ordering."""

import pytest

from expense_kernel.domain.values import ReportStatus


@pytest.fixture
def three_reports(approval_service, employee, other_employee, deterministic_clock):
    first = approval_service.create_draft(employee, "Taxi", "", "42.50", "2024-03-01", ["r1"])
    deterministic_clock.advance(60)
    second = approval_service.create_draft(other_employee, "Hotel", "", "310.00", "2024-03-02")
    deterministic_clock.advance(60)
    third = approval_service.create_draft(employee, "Lunch", "", "18.90", "2024-03-03")
    approval_service.submit(third.id, employee)
    return first, second, third


class TestListReports:

    def test_employee_sees_only_own_reports(self, report_selector, three_reports, employee):
        first, _, third = three_reports
        reports = report_selector.list_reports(employee)
        assert [r.id for r in reports] == [third.id, first.id]

    def test_manager_sees_everything_newest_first(self, report_selector, three_reports, manager):
        first, second, third = three_reports
        reports = report_selector.list_reports(manager)
        assert [r.id for r in reports] == [third.id, second.id, first.id]

    def test_status_filter(self, report_selector, three_reports, director):
        _, _, third = three_reports
        submitted = report_selector.list_reports(director, status=ReportStatus.SUBMITTED)
        assert [r.id for r in submitted] == [third.id]

    def test_status_filter_accepts_plain_string(self, report_selector, three_reports, manager):
        drafts = report_selector.list_reports(manager, status="draft")
        assert len(drafts) == 2
        assert all(r.status is ReportStatus.DRAFT for r in drafts)

    def test_unknown_status_refused(self, report_selector, manager):
        with pytest.raises(ValueError):
            report_selector.list_reports(manager, status="approved")

    def test_empty(self, report_selector, employee):
        assert report_selector.list_reports(employee) == []
