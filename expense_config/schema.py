"""
ExpenseApprovalsConfig schema.

Frozen dataclasses the loader parses YAML into.  Pure data; validation
lives in ``expense_config.loader``.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    echo: bool = False


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class SigningConfig:
    """Signature engine parameters.  Only P-256 / SHA-256 is supported."""

    curve: str = "secp256r1"
    hash: str = "sha256"
    signature_format: str = "p1363"  # p1363 (r||s, WebCrypto) or der


@dataclass(frozen=True)
class WorkflowConfig:
    verify_on_write: bool = True
    amount_decimal_places: int = 2


@dataclass(frozen=True)
class ExpenseApprovalsConfig:
    """The runtime configuration artifact."""

    database: DatabaseConfig
    logging: LoggingConfig
    signing: SigningConfig
    workflow: WorkflowConfig
    # external role name -> employee / manager / director
    role_aliases: dict[str, str] = field(default_factory=dict)
    checksum: str = ""
    source: str = ""
