"""
Config -> Kernel Bridges.

Functions that turn an ``ExpenseApprovalsConfig`` into kernel objects.
They live here (the producer) because the kernel must NEVER import
expense_config.

Usage:
    from expense_config import get_active_config
    from expense_config.bridges import bootstrap, service_from_config

    config = get_active_config()
    bootstrap(config)
    with session_scope() as session:
        service = service_from_config(config, session)
"""

from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from expense_config.schema import ExpenseApprovalsConfig
from expense_kernel.db.engine import create_tables, init_engine_from_url
from expense_kernel.domain.clock import Clock
from expense_kernel.domain.signing import SignatureEngine
from expense_kernel.domain.values import Actor, Role
from expense_kernel.exceptions import UnauthorizedError
from expense_kernel.logging_config import configure_logging
from expense_kernel.selectors.report_selector import ReportSelector
from expense_kernel.services.approval_service import ExpenseApprovalService


def resolve_role(
    config: ExpenseApprovalsConfig,
    external_role: str,
    identity: str = "",
) -> Role:
    """Map an identity provider's role string onto a kernel Role.

    Raises:
        UnauthorizedError: the role is not known to the configuration.
    """
    canonical = config.role_aliases.get(str(external_role).strip().lower())
    if canonical is None:
        raise UnauthorizedError("resolve_role", identity, str(external_role), "unknown role")
    return Role(canonical)


def actor_from_claims(config: ExpenseApprovalsConfig, identity: str, role: str) -> Actor:
    """Build the caller context from authenticated claims."""
    return Actor(identity=identity, role=resolve_role(config, role, identity))


def signature_engine_from_config(
    config: ExpenseApprovalsConfig,
    clock: Clock | None = None,
) -> SignatureEngine:
    """SignatureEngine on the configured curve, hash and signature encoding."""
    return SignatureEngine(
        clock=clock,
        signature_format=config.signing.signature_format,
        curve=config.signing.curve,
        hash_name=config.signing.hash,
    )


def service_from_config(
    config: ExpenseApprovalsConfig,
    session: Session,
    clock: Clock | None = None,
) -> ExpenseApprovalService:
    """ExpenseApprovalService wired with the configured workflow settings."""
    return ExpenseApprovalService(
        session,
        clock=clock,
        engine=signature_engine_from_config(config, clock),
        verify_on_write=config.workflow.verify_on_write,
        decimal_places=config.workflow.amount_decimal_places,
    )


def selector_from_config(config: ExpenseApprovalsConfig, session: Session) -> ReportSelector:
    return ReportSelector(session, decimal_places=config.workflow.amount_decimal_places)


def bootstrap(config: ExpenseApprovalsConfig, create_schema: bool = True) -> Engine:
    """Configure logging, initialize the engine and (optionally) create tables."""
    configure_logging(level=config.logging.level)
    engine = init_engine_from_url(config.database.url, echo=config.database.echo)
    if create_schema:
        create_tables()
    return engine
