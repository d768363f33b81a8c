"""
Pure calculation engines for the relief workflow.

Engines never touch the database, the clock or the network.  Services load
state, call an engine, and persist its result.
"""

from relief_engines.allocation import BudgetSplit, FundsAllocation, allocate, validate_split
from relief_engines.campaign_status import (
    CampaignStatus,
    derive_campaign_status,
    funding_progress,
    select_current_phase,
)
from relief_engines.consumption import UsageLine, check_consumption, usage_totals
from relief_engines.phase_status import (
    DerivedPhaseStatus,
    PhaseSnapshot,
    PhaseStatus,
    derive_phase_status,
)
from relief_engines.reconciliation import (
    LineAmount,
    ProofVariance,
    check_bucket_match,
    check_line_items,
    compute_proof_variance,
)

__all__ = [
    "BudgetSplit",
    "CampaignStatus",
    "DerivedPhaseStatus",
    "FundsAllocation",
    "LineAmount",
    "PhaseSnapshot",
    "PhaseStatus",
    "ProofVariance",
    "UsageLine",
    "allocate",
    "check_bucket_match",
    "check_consumption",
    "check_line_items",
    "compute_proof_variance",
    "derive_campaign_status",
    "derive_phase_status",
    "funding_progress",
    "select_current_phase",
    "usage_totals",
    "validate_split",
]
