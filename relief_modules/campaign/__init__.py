"""
Campaign Module (``relief_modules.campaign``).

Campaigns own an ordered list of phases; the campaign status is an
aggregate of the phase statuses.
"""

from relief_modules.campaign.models import Campaign, CampaignDraft, CampaignStatus
from relief_modules.campaign.service import CampaignService

__all__ = ["Campaign", "CampaignDraft", "CampaignService", "CampaignStatus"]
