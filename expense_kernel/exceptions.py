"""
Typed Exception Hierarchy for the Expense Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every refused transition must be reported to the caller as a distinct,
stable error kind.  Callers decide what to do (re-fetch on conflict,
escalate on a broken signature, show a permission message), so they must be
able to catch by type and read structured data, never parse messages.

Example - WRONG way to handle errors:
    try:
        service.validate(report_id, actor)
    except Exception as e:
        if "another actor" in str(e):  # FRAGILE - message might change
            refetch()

Example - RIGHT way (what this module enables):
    try:
        service.validate(report_id, actor)
    except ConflictError as e:           # Typed catch
        report = service.get_report(e.report_id)
    except AlreadySignedError as e:      # Structured data
        api_response(code=e.code, slot=e.slot)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from ExpenseKernelError:

    ExpenseKernelError (base)
    |
    +-- AuthorizationError
    |   +-- UnauthorizedError
    |
    +-- WorkflowError
    |   +-- InvalidStateError
    |   +-- AlreadySignedError
    |
    +-- SignatureError
    |   +-- SignatureInvalidError
    |   +-- MalformedSignatureError
    |   +-- CryptoUnavailableError
    |
    +-- ConcurrencyError
    |   +-- ConflictError
    |
    +-- ReportError
        +-- ReportNotFoundError
        +-- InvalidReportError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                  | When Raised
----------------|-----------------------|-----------------------------------------
Authorization   | UNAUTHORIZED          | Caller role/identity may not act
----------------|-----------------------|-----------------------------------------
Workflow        | INVALID_STATE         | Transition not legal from current status
                | ALREADY_SIGNED        | Signature slot already populated
----------------|-----------------------|-----------------------------------------
Signature       | SIGNATURE_INVALID     | Signature does not verify
                | MALFORMED_SIGNATURE   | Bad base64 / unparseable public key
                | CRYPTO_UNAVAILABLE    | Backend cannot produce keys/signatures
----------------|-----------------------|-----------------------------------------
Concurrency     | CONFLICT              | Lost a conditional update race
----------------|-----------------------|-----------------------------------------
Report          | REPORT_NOT_FOUND      | Report ID doesn't exist
                | INVALID_REPORT        | Report fields fail validation

===============================================================================
HANDLING PATTERNS
===============================================================================

1. CONFLICT IS A RE-FETCH SIGNAL, NOT A FAILURE OF THE DOCUMENT:

    try:
        service.validate(report_id, manager)
    except ConflictError:
        report = service.get_report(report_id)   # caller decides to retry

2. SIGNATURE ERRORS ARE TERMINAL FOR THE ATTEMPT:

    except SignatureInvalidError as e:
        alert_auditors(e.report_id, e.slots)

3. NOTHING HERE IS FATAL TO THE PROCESS.  A failed transition always leaves
   the stored document in its previous, still-valid state.

===============================================================================
"""


class ExpenseKernelError(Exception):
    """
    Base exception for all expense kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "EXPENSE_KERNEL_ERROR"


# Authorization exceptions


class AuthorizationError(ExpenseKernelError):
    """Base exception for authorization errors."""

    code: str = "AUTHORIZATION_ERROR"


class UnauthorizedError(AuthorizationError):
    """Caller's role or identity is not allowed to perform the action."""

    code: str = "UNAUTHORIZED"

    def __init__(self, action: str, identity: str, role: str, reason: str):
        self.action = action
        self.identity = identity
        self.role = role
        self.reason = reason
        super().__init__(
            f"{identity} ({role}) may not {action}: {reason}"
        )


# Workflow exceptions


class WorkflowError(ExpenseKernelError):
    """Base exception for approval workflow errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidStateError(WorkflowError):
    """Transition is not legal from the report's current status."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        report_id: str,
        action: str,
        current_status: str,
        allowed_statuses: tuple[str, ...],
        reason: str = "",
    ):
        self.report_id = report_id
        self.action = action
        self.current_status = current_status
        self.allowed_statuses = allowed_statuses
        self.reason = reason
        message = (
            f"Cannot {action} report {report_id} in status '{current_status}' "
            f"(allowed: {', '.join(allowed_statuses) or 'none'})"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class AlreadySignedError(WorkflowError):
    """Signature slot is already populated; slots are write-once."""

    code: str = "ALREADY_SIGNED"

    def __init__(self, report_id: str, slot: str, signed_by: str):
        self.report_id = report_id
        self.slot = slot
        self.signed_by = signed_by
        super().__init__(
            f"Report {report_id} already carries {slot} by {signed_by}"
        )


# Signature exceptions


class SignatureError(ExpenseKernelError):
    """Base exception for signing and verification errors."""

    code: str = "SIGNATURE_ERROR"


class SignatureInvalidError(SignatureError):
    """
    One or more signatures failed verification.

    Raised when a client-supplied envelope does not match the recomputed
    payload, and by confirm when any stored signature no longer verifies.
    """

    code: str = "SIGNATURE_INVALID"

    def __init__(self, report_id: str, slots: tuple[str, ...]):
        self.report_id = report_id
        self.slots = slots
        super().__init__(
            f"Signature verification failed for report {report_id}: "
            f"{', '.join(slots)}"
        )


class MalformedSignatureError(SignatureError):
    """Signature envelope is structurally unusable (not a crypto mismatch)."""

    code: str = "MALFORMED_SIGNATURE"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Malformed signature {field}: {reason}")


class CryptoUnavailableError(SignatureError):
    """The cryptographic backend cannot produce keys or signatures."""

    code: str = "CRYPTO_UNAVAILABLE"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Signing primitives unavailable: {reason}")


# Concurrency exceptions


class ConcurrencyError(ExpenseKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConflictError(ConcurrencyError):
    """
    Conditional update lost: the stored status was no longer the expected one.

    The core never retries.  Re-fetch the report and decide again.
    """

    code: str = "CONFLICT"

    def __init__(self, report_id: str, expected_status: str):
        self.report_id = report_id
        self.expected_status = expected_status
        super().__init__(
            f"Conflict on report {report_id}: status is no longer "
            f"'{expected_status}', report was modified by another actor"
        )


# Report exceptions


class ReportError(ExpenseKernelError):
    """Base exception for report data errors."""

    code: str = "REPORT_ERROR"


class ReportNotFoundError(ReportError):
    """Report with given ID was not found."""

    code: str = "REPORT_NOT_FOUND"

    def __init__(self, report_id: str):
        self.report_id = report_id
        super().__init__(f"Expense report not found: {report_id}")


class InvalidReportError(ReportError):
    """Report fields fail validation at creation time."""

    code: str = "INVALID_REPORT"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid report field '{field}': {reason}")
