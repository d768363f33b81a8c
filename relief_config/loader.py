"""
Configuration loader (``relief_config.loader``).

Responsibility
--------------
Load a YAML file and parse it into a frozen ``EngineConfig``.  Callers
obtain configuration through ``relief_config.get_active_config()``; this
module is the parsing step only.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or invalid values  -> ``ValueError``.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from relief_config.schema import EngineConfig, OperationMatchPolicy, UploadConfig

_ENGINE_KEYS = frozenset({
    "default_currency",
    "proof_variance_tolerance_percent",
    "operation_request_match",
    "conflict_retries",
    "database_url",
    "uploads",
})
_UPLOAD_KEYS = frozenset({"max_files", "expense_proof_file_types", "meal_batch_file_types"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def parse_decimal(value: Any, key: str) -> Decimal:
    if isinstance(value, float):
        # YAML reads 2.5 as float; go through str to keep the literal digits
        value = repr(value)
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{key}: not a decimal: {value!r}") from None


def parse_uploads(data: dict[str, Any]) -> UploadConfig:
    unknown = set(data) - _UPLOAD_KEYS
    if unknown:
        raise ValueError(f"uploads: unknown keys {sorted(unknown)}")
    defaults = UploadConfig()
    return UploadConfig(
        max_files=int(data.get("max_files", defaults.max_files)),
        expense_proof_file_types=tuple(
            str(t).lower() for t in data.get("expense_proof_file_types", defaults.expense_proof_file_types)
        ),
        meal_batch_file_types=tuple(
            str(t).lower() for t in data.get("meal_batch_file_types", defaults.meal_batch_file_types)
        ),
    )


def parse_engine_config(data: dict[str, Any], source: str = "inline") -> EngineConfig:
    """Parse the ``engine`` mapping of a config file."""
    unknown = set(data) - _ENGINE_KEYS
    if unknown:
        raise ValueError(f"engine: unknown keys {sorted(unknown)}")
    defaults = EngineConfig()
    return EngineConfig(
        default_currency=str(data.get("default_currency", defaults.default_currency)).upper(),
        proof_variance_tolerance_percent=parse_decimal(
            data.get("proof_variance_tolerance_percent", defaults.proof_variance_tolerance_percent),
            "proof_variance_tolerance_percent",
        ),
        operation_request_match=OperationMatchPolicy(
            data.get("operation_request_match", defaults.operation_request_match.value)
        ),
        conflict_retries=int(data.get("conflict_retries", defaults.conflict_retries)),
        database_url=str(data.get("database_url", defaults.database_url)),
        uploads=parse_uploads(data.get("uploads") or {}),
        source=source,
    )


def load_config(path: Path) -> EngineConfig:
    """Load an ``EngineConfig`` from a YAML file with a top-level ``engine`` key."""
    raw = load_yaml_file(path)
    return parse_engine_config(raw.get("engine") or {}, source=str(path))
