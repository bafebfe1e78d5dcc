"""
Approval state machine (``expense_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the expense approval lifecycle and the single
function that decides whether a caller may fire a transition on a report.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``; terminal states
  (``rejected``, ``confirmed``) have no outgoing edges.
* Signature slots are write-once: a transition that fills a slot is refused
  with ``AlreadySignedError`` when the slot is already populated.
* Guard order is fixed: role, creator, slot occupancy, status, required
  prior signatures.  A second ``validate`` therefore reports
  ``AlreadySigned`` even though the status has moved on.
* Stateless: everything is read from the report snapshot and the caller
  context passed in.

Transition table
----------------
=========  ==========  ====================  ============  =============
action     role        from                  to            fills slot
=========  ==========  ====================  ============  =============
submit     employee*   draft                 submitted     employee
validate   manager     submitted             validated     manager
sign       director    validated             signed        director
confirm    director    validated, signed     confirmed     (attestation)
reject     manager     submitted             rejected      --
reject     director    submitted, validated, rejected      --
                       signed
=========  ==========  ====================  ============  =============

``*`` the report's own creator only.
"""

from __future__ import annotations

from dataclasses import dataclass

from expense_kernel.domain.values import (
    Actor,
    ExpenseReport,
    ReportStatus,
    Role,
    SignatureSlot,
)
from expense_kernel.exceptions import (
    AlreadySignedError,
    InvalidStateError,
    UnauthorizedError,
)


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- ``authorize_transition`` does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in the approval workflow.

    ``signature_slot`` is the write-once slot the transition fills, if any.
    ``requires_signatures`` are slots that must already be populated.
    """
    from_state: str
    to_state: str
    action: str
    roles: tuple[Role, ...]
    guard: Guard | None = None
    signature_slot: SignatureSlot | None = None
    requires_signatures: tuple[SignatureSlot, ...] = ()
    creator_only: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states``.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(f"initial state {self.initial_state!r} not in states")
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"transition {t.action} {t.from_state}->{t.to_state} "
                    "references an unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(f"terminal state {t.from_state!r} has an outgoing edge")

    def actions(self) -> tuple[str, ...]:
        """Distinct action names, in declaration order."""
        seen: dict[str, None] = {}
        for t in self.transitions:
            seen.setdefault(t.action, None)
        return tuple(seen)

    def transitions_for(self, action: str) -> tuple[Transition, ...]:
        return tuple(t for t in self.transitions if t.action == action)

    def from_states(self, action: str) -> tuple[str, ...]:
        """States ``action`` may fire from, in declaration order."""
        states: dict[str, None] = {}
        for t in self.transitions_for(action):
            states.setdefault(t.from_state, None)
        return tuple(states)


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

REPORT_CREATOR = Guard(
    name="report_creator",
    description="Only the employee who filed the report may submit it",
)

EMPLOYEE_SIGNED = Guard(
    name="employee_signed",
    description="The employee signature is present",
)

CHAIN_VERIFIES = Guard(
    name="chain_verifies",
    description="Every stored signature re-verifies against the current report",
)


# -----------------------------------------------------------------------------
# Expense Report Approval Workflow
# -----------------------------------------------------------------------------

_DRAFT = ReportStatus.DRAFT.value
_SUBMITTED = ReportStatus.SUBMITTED.value
_VALIDATED = ReportStatus.VALIDATED.value
_SIGNED = ReportStatus.SIGNED.value
_CONFIRMED = ReportStatus.CONFIRMED.value
_REJECTED = ReportStatus.REJECTED.value

EXPENSE_APPROVAL_WORKFLOW = Workflow(
    name="expense_approval",
    description="Employee -> manager -> director signed approval chain",
    initial_state=_DRAFT,
    states=(_DRAFT, _SUBMITTED, _VALIDATED, _SIGNED, _CONFIRMED, _REJECTED),
    transitions=(
        Transition(
            _DRAFT, _SUBMITTED, action="submit",
            roles=(Role.EMPLOYEE,),
            guard=REPORT_CREATOR,
            signature_slot=SignatureSlot.EMPLOYEE,
            creator_only=True,
        ),
        Transition(
            _SUBMITTED, _VALIDATED, action="validate",
            roles=(Role.MANAGER,),
            guard=EMPLOYEE_SIGNED,
            signature_slot=SignatureSlot.MANAGER,
            requires_signatures=(SignatureSlot.EMPLOYEE,),
        ),
        Transition(
            _VALIDATED, _SIGNED, action="sign",
            roles=(Role.DIRECTOR,),
            signature_slot=SignatureSlot.DIRECTOR,
            requires_signatures=(SignatureSlot.EMPLOYEE, SignatureSlot.MANAGER),
        ),
        Transition(
            _VALIDATED, _CONFIRMED, action="confirm",
            roles=(Role.DIRECTOR,),
            guard=CHAIN_VERIFIES,
            requires_signatures=(SignatureSlot.EMPLOYEE, SignatureSlot.MANAGER),
        ),
        Transition(
            _SIGNED, _CONFIRMED, action="confirm",
            roles=(Role.DIRECTOR,),
            guard=CHAIN_VERIFIES,
            requires_signatures=(SignatureSlot.EMPLOYEE, SignatureSlot.MANAGER),
        ),
        Transition(
            _SUBMITTED, _REJECTED, action="reject",
            roles=(Role.MANAGER, Role.DIRECTOR),
        ),
        Transition(
            _VALIDATED, _REJECTED, action="reject",
            roles=(Role.DIRECTOR,),
        ),
        Transition(
            _SIGNED, _REJECTED, action="reject",
            roles=(Role.DIRECTOR,),
        ),
    ),
    terminal_states=(_CONFIRMED, _REJECTED),
)


def authorize_transition(
    workflow: Workflow,
    report: ExpenseReport,
    actor: Actor,
    action: str,
) -> Transition:
    """Return the transition ``actor`` may fire on ``report``, or raise.

    Raises:
        ValueError: ``action`` is not part of ``workflow``.
        UnauthorizedError: role not allowed, or not the report's creator.
        AlreadySignedError: the slot this action fills is populated.
        InvalidStateError: not legal from the current status, or a
            required prior signature is missing.
    """
    candidates = workflow.transitions_for(action)
    if not candidates:
        raise ValueError(f"Unknown action {action!r} for workflow {workflow.name}")

    report_id = str(report.id)
    role_name = actor.role.value

    allowed_roles = {role for t in candidates for role in t.roles}
    if actor.role not in allowed_roles:
        raise UnauthorizedError(
            action, actor.identity, role_name,
            f"requires role {' or '.join(sorted(r.value for r in allowed_roles))}",
        )

    if any(t.creator_only for t in candidates) and actor.identity != report.employee_email:
        raise UnauthorizedError(
            action, actor.identity, role_name, "only the report's creator may do this",
        )

    for slot in {t.signature_slot for t in candidates if t.signature_slot is not None}:
        existing = report.signature(slot)
        if existing is not None:
            raise AlreadySignedError(report_id, slot.value, existing.signed_by)

    current = report.status.value
    transition = next((t for t in candidates if t.from_state == current), None)
    if transition is None:
        raise InvalidStateError(
            report_id, action, current, workflow.from_states(action),
        )

    if actor.role not in transition.roles:
        raise UnauthorizedError(
            action, actor.identity, role_name,
            f"not allowed from status '{current}'",
        )

    missing = [s.value for s in transition.requires_signatures if report.signature(s) is None]
    if missing:
        raise InvalidStateError(
            report_id, action, current, workflow.from_states(action),
            reason=f"missing {', '.join(missing)}",
        )

    return transition
