"""
relief_config -- single public entrypoint for engine configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains
    configuration.  It reads the packaged ``defaults.yaml`` unless
    ``RELIEF_CONFIG_FILE`` names another file, then applies the
    ``RELIEF_DATABASE_URL`` override.

Audit relevance:
    Every call emits a ``RELIEF_CONFIG_TRACE`` log record naming the source
    file and the policy-relevant settings (variance tolerance, operation
    match policy) so a disputed proof or request can be traced back to the
    configuration that governed it.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path

from relief_config.loader import load_config, parse_engine_config
from relief_config.schema import EngineConfig, OperationMatchPolicy, UploadConfig

_logger = logging.getLogger("relief_kernel.config")

DEFAULT_CONFIG_FILE = Path(__file__).parent / "defaults.yaml"

CONFIG_FILE_ENV = "RELIEF_CONFIG_FILE"
DATABASE_URL_ENV = "RELIEF_DATABASE_URL"


def get_active_config(config_file: Path | None = None) -> EngineConfig:
    """Load the active configuration.

    Args:
        config_file: Explicit file; defaults to ``$RELIEF_CONFIG_FILE`` or
            the packaged ``defaults.yaml``.

    Raises:
        FileNotFoundError: the selected file does not exist.
        ValueError: the file fails schema validation.
    """
    env_file = os.environ.get(CONFIG_FILE_ENV)
    path = config_file or (Path(env_file) if env_file else DEFAULT_CONFIG_FILE)
    config = load_config(path)

    db_url = os.environ.get(DATABASE_URL_ENV)
    if db_url:
        config = dataclasses.replace(config, database_url=db_url)

    _logger.info(
        "RELIEF_CONFIG_TRACE",
        extra={
            "trace_type": "RELIEF_CONFIG_TRACE",
            "config_source": config.source,
            "default_currency": config.default_currency,
            "proof_variance_tolerance_percent": str(config.proof_variance_tolerance_percent),
            "operation_request_match": config.operation_request_match.value,
            "conflict_retries": config.conflict_retries,
        },
    )
    return config


__all__ = [
    "EngineConfig",
    "OperationMatchPolicy",
    "UploadConfig",
    "get_active_config",
    "load_config",
    "parse_engine_config",
]
