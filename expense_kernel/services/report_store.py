"""
ReportStore -- persistence seam for expense reports.

Responsibility:
    Fetches report snapshots, inserts new drafts, and applies every
    post-creation change as a single conditional write keyed on the
    status the caller last observed.

Architecture position:
    Kernel > Services.  The approval service depends on the ``ReportStore``
    protocol; ``SqlAlchemyReportStore`` is the production implementation.

Invariants enforced:
    - Compare-and-set: ``conditional_update`` issues
      ``UPDATE ... WHERE id = :id AND status = :expected`` (plus
      ``slot IS NULL`` for each slot being filled).  Exactly one of two
      racing writers can match; the other sees zero rows and gets
      ``ConflictError``.
    - Only lifecycle columns can change after creation: status, the three
      signature slots, the director confirmation, the rejection and
      updated_at.  Document fields are immutable.
    - Flush-only: the store never commits.

Failure modes:
    - ReportNotFoundError: no row with that id.
    - ConflictError: the row exists but no longer matches the expected
      status (or a slot being filled is already populated).
    - ValueError: a mutation names a column that may not change.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from expense_kernel.db.types import AMOUNT_DECIMAL_PLACES
from expense_kernel.domain.values import ExpenseReport, ReportStatus, SignatureSlot
from expense_kernel.exceptions import ConflictError, ReportNotFoundError
from expense_kernel.logging_config import get_logger
from expense_kernel.models.expense_report import ExpenseReportModel

logger = get_logger("services.report_store")

MUTABLE_COLUMNS = frozenset({
    "status",
    SignatureSlot.EMPLOYEE.value,
    SignatureSlot.MANAGER.value,
    SignatureSlot.DIRECTOR.value,
    "director_confirmation",
    "rejection",
    "updated_at",
})


def _as_uuid(report_id: UUID | str) -> UUID:
    if isinstance(report_id, UUID):
        return report_id
    try:
        return UUID(str(report_id))
    except ValueError:
        raise ReportNotFoundError(str(report_id))


def _column_value(value: Any) -> Any:
    """Serialize a domain value into its column representation."""
    if isinstance(value, ReportStatus):
        return value.value
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


class ReportStore(Protocol):
    """What the approval service needs from persistence."""

    def get(self, report_id: UUID | str) -> ExpenseReport: ...

    def add(self, report: ExpenseReport) -> ExpenseReport: ...

    def conditional_update(
        self,
        report_id: UUID | str,
        expected_status: ReportStatus,
        mutation: Mapping[str, Any],
        require_empty: Iterable[SignatureSlot] = (),
    ) -> ExpenseReport: ...


class SqlAlchemyReportStore:
    """ReportStore over the ``expense_reports`` table."""

    def __init__(
        self,
        session: Session,
        decimal_places: int = AMOUNT_DECIMAL_PLACES,
    ):
        self.session = session
        self._decimal_places = decimal_places

    def get(self, report_id: UUID | str) -> ExpenseReport:
        """Fresh snapshot of the stored row."""
        rid = _as_uuid(report_id)
        model = self.session.execute(
            select(ExpenseReportModel)
            .where(ExpenseReportModel.id == rid)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise ReportNotFoundError(str(rid))
        return model.to_dto(self._decimal_places)

    def add(self, report: ExpenseReport) -> ExpenseReport:
        model = ExpenseReportModel.from_dto(report)
        self.session.add(model)
        self.session.flush()
        logger.info(
            "report_stored",
            extra={"report_id": str(report.id), "status": report.status.value},
        )
        return model.to_dto(self._decimal_places)

    def conditional_update(
        self,
        report_id: UUID | str,
        expected_status: ReportStatus,
        mutation: Mapping[str, Any],
        require_empty: Iterable[SignatureSlot] = (),
    ) -> ExpenseReport:
        """Apply ``mutation`` only if the row is still in ``expected_status``.

        Returns the updated snapshot.
        """
        rid = _as_uuid(report_id)
        illegal = set(mutation) - MUTABLE_COLUMNS
        if illegal:
            raise ValueError(f"Columns may not be updated: {sorted(illegal)}")

        predicates = [
            ExpenseReportModel.id == rid,
            ExpenseReportModel.status == ReportStatus(expected_status).value,
        ]
        for slot in require_empty:
            predicates.append(getattr(ExpenseReportModel, slot.value).is_(None))

        values = {key: _column_value(value) for key, value in mutation.items()}
        result = self.session.execute(
            update(ExpenseReportModel)
            .where(*predicates)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            exists = self.session.execute(
                select(ExpenseReportModel.id).where(ExpenseReportModel.id == rid)
            ).scalar_one_or_none()
            if exists is None:
                raise ReportNotFoundError(str(rid))
            raise ConflictError(str(rid), ReportStatus(expected_status).value)

        return self.get(rid)
