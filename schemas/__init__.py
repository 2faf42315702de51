# Schemas module for Encore Platform

from schemas.funding import (
    # Enums
    ReviewAction,

    # Campaign schemas
    MilestoneCreate,
    MilestoneResponse,
    CampaignCreate,
    CampaignResponse,
    CampaignReview,
    FundingStatsResponse,

    # Investment schemas
    InvestmentCreate,
    InvestmentResponse,
    PayoutResponse,

    # Fund unlock schemas
    FundUnlockSubmit,
    FundRequestDecision,
    FundRequestResponse,
    ProofSubmit,
    ProofDecision,
    ProofResponse,

    # Revenue and webhook schemas
    RevenueCreate,
    RevenueResponse,
    PaymentStatusEvent,
)
