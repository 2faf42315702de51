"""
Admin Review Router
Campaign approval, fund unlock decisions and milestone proof review
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from core import file_store
from core.payment_gateway import PaymentGateway, get_payment_gateway
from database.config import get_db
from database.models import User
from database.funding_models import RequestStatus
from schemas.funding import (
    CampaignResponse, CampaignReview, FundRequestDecision, FundRequestResponse,
    ProofDecision, ProofResponse
)
from auth.decorators import require_admin
from services.campaign_service import CampaignService
from services.milestone_protocol import MilestoneUnlockProtocol

router = APIRouter(prefix="/admin", tags=["Admin - Review"])


# ============================================================================
# CAMPAIGN REVIEW
# ============================================================================

@router.get("/campaigns/drafts")
async def get_draft_campaigns(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin())
):
    """Campaigns whose metadata could not be verified automatically."""
    result = CampaignService(db).list_draft_campaigns(page, limit)
    result["items"] = [CampaignResponse.model_validate(c) for c in result["items"]]
    return result


@router.get("/campaigns/{campaign_id}")
async def get_campaign_details(
    campaign_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin())
):
    details = CampaignService(db).campaign_details(campaign_id)
    return {
        "campaign": CampaignResponse.model_validate(details["campaign"]),
        "funding_stats": details["funding"].to_dict(),
    }


@router.post("/campaigns/{campaign_id}/review", response_model=CampaignResponse)
async def review_campaign(
    campaign_id: str,
    request: CampaignReview,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin())
):
    return CampaignService(db).review_campaign(current_user, campaign_id, request.action, request.reason)


# ============================================================================
# FUND UNLOCK REQUESTS
# ============================================================================

@router.get("/fund-requests")
async def get_fund_requests(
    status_filter: Optional[RequestStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin())
):
    result = MilestoneUnlockProtocol(db).list_fund_unlock_requests(status_filter, page, limit)
    result["items"] = [FundRequestResponse.model_validate(r) for r in result["items"]]
    return result


@router.get("/fund-requests/{request_id}")
async def get_fund_request_details(
    request_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin())
):
    details = MilestoneUnlockProtocol(db).fund_request_details(request_id)
    details["request"] = FundRequestResponse.model_validate(details["request"])
    details["campaign"] = CampaignResponse.model_validate(details["campaign"])
    return details


@router.post("/fund-requests/{request_id}/decision", response_model=FundRequestResponse)
def decide_fund_request(
    request_id: str,
    request: FundRequestDecision,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    current_user: User = Depends(require_admin())
):
    """
    Approve or reject a pending fund unlock request.
    Approval transfers the milestone amount to the artist's connected account.
    A failed transfer leaves the request pending and can be retried.
    """
    protocol = MilestoneUnlockProtocol(db, gateway=gateway)
    return protocol.approve_reject_fund_request(current_user, request_id, request.action, request.admin_response)


# ============================================================================
# MILESTONE PROOFS
# ============================================================================

@router.get("/milestone-proofs")
async def get_milestone_proofs(
    status_filter: Optional[RequestStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin())
):
    result = MilestoneUnlockProtocol(db).list_milestone_proofs(status_filter, page, limit)
    result["items"] = [ProofResponse.model_validate(p) for p in result["items"]]
    return result


@router.get("/milestone-proofs/{proof_id}")
async def get_milestone_proof_details(
    proof_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin())
):
    details = MilestoneUnlockProtocol(db).milestone_proof_details(proof_id)
    details["proof_url"] = file_store.generate_view_url(details["proof"].proof)
    details["proof"] = ProofResponse.model_validate(details["proof"])
    details["campaign"] = CampaignResponse.model_validate(details["campaign"])
    return details


@router.post("/milestone-proofs/{proof_id}/decision", response_model=ProofResponse)
async def decide_milestone_proof(
    proof_id: str,
    request: ProofDecision,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin())
):
    return MilestoneUnlockProtocol(db).approve_reject_milestone_proof(
        current_user, proof_id, request.action, request.admin_response
    )
