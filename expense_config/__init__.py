"""
expense_config -- single public entrypoint for runtime configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration -- sits above ``expense_kernel``.  The kernel MUST NEVER
    import from ``expense_config``; ``expense_config.bridges`` translates
    the parsed configuration into kernel objects.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Deterministic checksum: the same effective settings always produce
      the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the requested config file does not exist.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``ValueError`` -- a setting is missing or out of range.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``EXPENSE_CONFIG_TRACE`` log entry with the source path, checksum and
    the signing/workflow settings in force.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from expense_config.loader import load_yaml_file, parse_config
from expense_config.schema import ExpenseApprovalsConfig

_logger = logging.getLogger("expense_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_PATH_ENV = "EXPENSE_APPROVALS_CONFIG"
DATABASE_URL_ENV = "DATABASE_URL"


def get_active_config(config_path: Path | str | None = None) -> ExpenseApprovalsConfig:
    """The ONLY public configuration entrypoint.

    Resolution order for the file: ``config_path``, then
    ``$EXPENSE_APPROVALS_CONFIG``, then the packaged ``defaults.yaml``.
    ``$DATABASE_URL`` overrides ``database.url`` when set.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If configuration validation fails.
    """
    path = Path(config_path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    data = load_yaml_file(path)
    config = parse_config(
        data,
        database_url=os.environ.get(DATABASE_URL_ENV),
        source=str(path),
    )

    _logger.info(
        "EXPENSE_CONFIG_TRACE",
        extra={
            "trace_type": "EXPENSE_CONFIG_TRACE",
            "config_source": config.source,
            "checksum": config.checksum,
            "signature_format": config.signing.signature_format,
            "verify_on_write": config.workflow.verify_on_write,
            "amount_decimal_places": config.workflow.amount_decimal_places,
            "role_alias_count": len(config.role_aliases),
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ExpenseApprovalsConfig",
    "get_active_config",
]
