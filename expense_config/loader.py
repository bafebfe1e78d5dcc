"""
Configuration Loader (``expense_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``expense_config.schema`` dataclasses.  The single public entry point for
runtime config is ``expense_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown or out-of-range values raise ``ValueError``; there are no silent
  fallbacks for values that are present but wrong.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  effective settings (after defaults and validation) for configuration
  identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid setting  -> ``ValueError``.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any

import yaml

from expense_config.schema import (
    DatabaseConfig,
    ExpenseApprovalsConfig,
    LoggingConfig,
    SigningConfig,
    WorkflowConfig,
)
from expense_kernel.domain.signing import SIGNATURE_FORMATS, SUPPORTED_CURVES, SUPPORTED_HASHES
from expense_kernel.utils.hashing import canonical_digest

SUPPORTED_SIGNATURE_FORMATS = SIGNATURE_FORMATS
CANONICAL_ROLES = ("employee", "manager", "director")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"'{name}' must be a mapping, got {type(section).__name__}")
    return section


def _choice(value: Any, allowed: tuple[str, ...], name: str) -> str:
    text = str(value).lower()
    if text not in allowed:
        raise ValueError(f"{name} must be one of {allowed}, got {value!r}")
    return text


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    url = data.get("url")
    if not url or not isinstance(url, str):
        raise ValueError("database.url is required")
    return DatabaseConfig(url=url, echo=bool(data.get("echo", False)))


def parse_logging(data: dict[str, Any]) -> LoggingConfig:
    level = str(data.get("level", "INFO")).upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"logging.level is not a logging level: {level!r}")
    return LoggingConfig(level=level)


def parse_signing(data: dict[str, Any]) -> SigningConfig:
    return SigningConfig(
        curve=_choice(data.get("curve", "secp256r1"), SUPPORTED_CURVES, "signing.curve"),
        hash=_choice(data.get("hash", "sha256"), SUPPORTED_HASHES, "signing.hash"),
        signature_format=_choice(
            data.get("signature_format", "p1363"),
            SUPPORTED_SIGNATURE_FORMATS,
            "signing.signature_format",
        ),
    )


def parse_workflow(data: dict[str, Any]) -> WorkflowConfig:
    places = data.get("amount_decimal_places", 2)
    if isinstance(places, bool) or not isinstance(places, int) or not 0 <= places <= 9:
        raise ValueError(
            f"workflow.amount_decimal_places must be an integer 0-9, got {places!r}"
        )
    return WorkflowConfig(
        verify_on_write=bool(data.get("verify_on_write", True)),
        amount_decimal_places=places,
    )


def parse_role_aliases(data: dict[str, Any]) -> dict[str, str]:
    """External role name -> canonical role.  Canonical names map to themselves."""
    aliases = {role: role for role in CANONICAL_ROLES}
    raw = data.get("aliases") or {}
    if not isinstance(raw, dict):
        raise ValueError("roles.aliases must be a mapping")
    for external, canonical in raw.items():
        aliases[str(external).lower()] = _choice(
            canonical, CANONICAL_ROLES, f"roles.aliases.{external}",
        )
    return aliases


def parse_config(
    data: dict[str, Any],
    database_url: str | None = None,
    source: str = "",
) -> ExpenseApprovalsConfig:
    """Parse a loaded YAML dict.  ``database_url`` overrides ``database.url``."""
    database = dict(_section(data, "database"))
    if database_url:
        database["url"] = database_url

    sections = {
        "database": parse_database(database),
        "logging": parse_logging(_section(data, "logging")),
        "signing": parse_signing(_section(data, "signing")),
        "workflow": parse_workflow(_section(data, "workflow")),
    }
    role_aliases = parse_role_aliases(_section(data, "roles"))

    # Fingerprint the effective settings, not the raw file
    fingerprint = {name: asdict(value) for name, value in sections.items()}
    fingerprint["role_aliases"] = role_aliases

    return ExpenseApprovalsConfig(
        **sections,
        role_aliases=role_aliases,
        checksum=compute_checksum(fingerprint),
        source=source,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Postconditions:
        - Identical ``data`` always produces identical checksums.
    """
    return canonical_digest(data)
