# Pydantic Schemas for campaigns, investments and milestone unlocks

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from decimal import Decimal
from enum import Enum

from database.funding_models import (
    CampaignDuration, CampaignStatus, MilestoneStatus, RequestStatus, TransferStatus,
    InvestmentStatus, InvestmentType, PaymentStatus
)


# ============================================================================
# ENUMS
# ============================================================================

class ReviewAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


# ============================================================================
# CAMPAIGN SCHEMAS
# ============================================================================

class MilestoneCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., description="Amount released when this milestone is approved")
    description: Optional[str] = None
    order: int = Field(..., ge=1)


class CampaignCreate(BaseModel):
    song_title: str = Field(..., min_length=1, max_length=255)
    artist_name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    genre: str = Field(..., min_length=1, max_length=50)
    duration: CampaignDuration = CampaignDuration.ONE_YEAR
    release_type: str = "single"
    isrc: Optional[str] = Field(None, max_length=20)
    spotify_url: Optional[str] = None
    youtube_url: Optional[str] = None
    deezer_url: Optional[str] = None
    image_key: Optional[str] = None
    funding_goal: Decimal = Field(..., gt=0)
    milestones: List[MilestoneCreate] = []


class MilestoneResponse(BaseModel):
    id: str
    name: str
    amount: float
    description: Optional[str]
    order: int
    status: MilestoneStatus
    approved_at: Optional[datetime]

    class Config:
        from_attributes = True


class CampaignResponse(BaseModel):
    id: str
    artist_id: str
    song_title: str
    artist_name: str
    description: Optional[str]
    genre: str
    duration: CampaignDuration
    funding_goal: float
    expected_roi_percentage: Optional[float]
    automatic_roi: Optional[Dict[str, Any]]
    status: CampaignStatus
    is_active: bool
    rejection_reason: Optional[str]
    created_at: Optional[datetime]
    milestones: List[MilestoneResponse]

    class Config:
        from_attributes = True


class CampaignReview(BaseModel):
    action: ReviewAction
    reason: Optional[str] = Field(None, description="Required when rejecting")


class FundingStatsResponse(BaseModel):
    total_raised: float
    funding_goal: float
    funding_percentage: float
    display_percentage: float
    remaining_capacity: float
    investor_count: int


# ============================================================================
# INVESTMENT SCHEMAS
# ============================================================================

class InvestmentCreate(BaseModel):
    campaign_id: str
    amount: Decimal = Field(..., gt=0)
    transaction_id: Optional[str] = Field(None, description="Processor charge id for this contribution")
    investment_type: InvestmentType = InvestmentType.ROYALTY


class InvestmentResponse(BaseModel):
    id: str
    campaign_id: str
    investor_id: str
    amount: float
    ownership_percentage: float
    expected_return: float
    actual_return: float
    investment_type: InvestmentType
    status: InvestmentStatus
    maturity_date: Optional[datetime]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class PayoutResponse(BaseModel):
    id: str
    investment_id: str
    campaign_id: str
    revenue_id: str
    amount: float
    ownership_share: float
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


# ============================================================================
# FUND UNLOCK SCHEMAS
# ============================================================================

class FundUnlockSubmit(BaseModel):
    campaign_id: str


class FundRequestDecision(BaseModel):
    action: ReviewAction
    admin_response: Optional[str] = None


class FundRequestResponse(BaseModel):
    id: str
    campaign_id: str
    artist_id: str
    milestone_id: str
    status: RequestStatus
    transfer_status: Optional[TransferStatus]
    transfer_id: Optional[str]
    requested_at: Optional[datetime]
    responded_at: Optional[datetime]
    admin_id: Optional[str]
    admin_response: Optional[str]

    class Config:
        from_attributes = True


class ProofSubmit(BaseModel):
    campaign_id: str
    milestone_id: str
    description: str = Field(..., min_length=1)
    proof: str = Field(..., min_length=1, description="Object key returned by the upload endpoint")


class ProofDecision(BaseModel):
    action: ReviewAction
    admin_response: Optional[str] = None


class ProofResponse(BaseModel):
    id: str
    campaign_id: str
    artist_id: str
    milestone_id: str
    description: str
    proof: str
    status: RequestStatus
    admin_id: Optional[str]
    admin_response: Optional[str]
    submitted_at: Optional[datetime]
    reviewed_at: Optional[datetime]

    class Config:
        from_attributes = True


# ============================================================================
# REVENUE SCHEMAS
# ============================================================================

class RevenueCreate(BaseModel):
    campaign_id: str
    source: str = Field(..., min_length=1, max_length=50)
    amount: Decimal = Field(..., gt=0)
    stream_count: int = Field(0, ge=0)
    country: Optional[str] = "US"
    platform_data: Optional[Dict[str, Any]] = None


class RevenueResponse(BaseModel):
    id: str
    campaign_id: str
    source: str
    amount: float
    stream_count: int
    country: Optional[str]
    payout_rate: Optional[float]
    is_processed: bool
    processed_at: Optional[datetime]

    class Config:
        from_attributes = True


# ============================================================================
# WEBHOOK SCHEMAS
# ============================================================================

class PaymentStatusEvent(BaseModel):
    transaction_id: str
    status: PaymentStatus
