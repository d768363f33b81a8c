"""
Configuration schema (``relief_config.schema``).

Frozen dataclasses produced by the loader.  Validation happens in
``__post_init__`` so an invalid file can never yield a config object.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from relief_kernel.domain.currency import CurrencyRegistry


class OperationMatchPolicy(str, Enum):
    """How an operation request total is reconciled against its bucket."""

    EXACT = "exact"
    CEILING = "ceiling"
    NONE = "none"


@dataclass(frozen=True)
class UploadConfig:
    """Media upload limits enforced before delegating to object storage."""

    max_files: int = 10
    expense_proof_file_types: tuple[str, ...] = ("jpg", "jpeg", "png", "pdf")
    meal_batch_file_types: tuple[str, ...] = ("jpg", "png", "mp4")

    def __post_init__(self) -> None:
        if self.max_files < 1:
            raise ValueError("uploads.max_files must be at least 1")


@dataclass(frozen=True)
class EngineConfig:
    """Runtime configuration for the relief engine."""

    default_currency: str = "VND"
    # 0 flags any divergence.
    proof_variance_tolerance_percent: Decimal = Decimal("0")
    operation_request_match: OperationMatchPolicy = OperationMatchPolicy.EXACT
    conflict_retries: int = 1
    database_url: str = "sqlite:///relief.db"
    uploads: UploadConfig = field(default_factory=UploadConfig)
    source: str = "defaults"

    def __post_init__(self) -> None:
        if not CurrencyRegistry.is_supported(self.default_currency):
            raise ValueError(f"default_currency {self.default_currency!r} is not supported")
        if self.proof_variance_tolerance_percent < 0:
            raise ValueError("proof_variance_tolerance_percent cannot be negative")
        if self.conflict_retries < 0:
            raise ValueError("conflict_retries cannot be negative")
