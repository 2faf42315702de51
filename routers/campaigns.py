# Campaigns Router for Encore
# Artists create and manage funding campaigns; anyone signed in can browse them

from dataclasses import asdict
from decimal import Decimal
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List

from core.metadata_verifier import MetadataVerifier
from database.config import get_db
from database.models import User
from schemas.funding import CampaignCreate, CampaignResponse, FundingStatsResponse
from auth.roles import UserType as UserTypeRole
from auth.decorators import require_user_type
from auth.dependencies import get_current_user
from services.campaign_service import CampaignService
from services.funding_ledger import FundingLedger
from services.investment_service import InvestmentService

router = APIRouter(prefix="/campaigns", tags=["Campaigns"])


def get_metadata_verifier() -> MetadataVerifier:
    return MetadataVerifier()


# ============================================================================
# ARTIST ENDPOINTS
# ============================================================================

@router.post("", response_model=CampaignResponse, status_code=status.HTTP_201_CREATED)
async def create_campaign(
    campaign_data: CampaignCreate,
    db: Session = Depends(get_db),
    verifier: MetadataVerifier = Depends(get_metadata_verifier),
    current_user: User = Depends(require_user_type(UserTypeRole.ARTIST))
):
    """
    Create a campaign with its milestones.
    Verified songs go live immediately; the rest wait for admin review.
    """
    return CampaignService(db, verifier=verifier).create_campaign(current_user, campaign_data)


@router.get("/mine", response_model=List[CampaignResponse])
async def get_my_campaigns(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_user_type(UserTypeRole.ARTIST))
):
    """Get all campaigns owned by the current artist."""
    return CampaignService(db).list_campaigns(current_user)


@router.delete("/{campaign_id}")
async def delete_campaign(
    campaign_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_user_type(UserTypeRole.ARTIST))
):
    campaign = CampaignService(db).delete_campaign(current_user, campaign_id)
    return {"message": "Campaign deleted", "campaign_id": campaign.id}


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@router.get("/{campaign_id}", response_model=CampaignResponse)
async def get_campaign(
    campaign_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return CampaignService(db).get_campaign(campaign_id)


@router.get("/{campaign_id}/funding", response_model=FundingStatsResponse)
async def get_campaign_funding(
    campaign_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Live funding progress for a campaign."""
    campaign = CampaignService(db).get_campaign(campaign_id)
    return FundingLedger(db).funding_stats(campaign).to_dict()


@router.get("/{campaign_id}/roi-preview")
async def preview_roi(
    campaign_id: str,
    amount: Decimal = Query(..., gt=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Projected return for a hypothetical investment of ``amount``."""
    preview = InvestmentService(db).preview_investment(campaign_id, amount)
    return asdict(preview)
