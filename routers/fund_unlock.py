# Fund Unlock Router for Encore
# Artists request milestone tranches and submit proof of completed work

from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy.orm import Session
from typing import List

from core import file_store
from database.config import get_db
from database.models import User
from schemas.funding import FundUnlockSubmit, FundRequestResponse, ProofSubmit, ProofResponse
from auth.roles import UserType as UserTypeRole
from auth.decorators import require_user_type
from services.campaign_service import CampaignService
from services.errors import ValidationError
from services.milestone_protocol import MilestoneUnlockProtocol

router = APIRouter(prefix="/fund-unlock", tags=["Fund Unlock"])

artist_only = require_user_type(UserTypeRole.ARTIST)

MAX_PROOF_SIZE = 20 * 1024 * 1024  # 20 MB


# ============================================================================
# FUND UNLOCK REQUESTS
# ============================================================================

@router.post("/requests", response_model=FundRequestResponse, status_code=status.HTTP_201_CREATED)
async def submit_fund_unlock_request(
    request: FundUnlockSubmit,
    db: Session = Depends(get_db),
    current_user: User = Depends(artist_only)
):
    """
    Ask for the next eligible milestone's funds.
    The campaign must be at least 50% funded and the previous milestone's proof approved.
    """
    return MilestoneUnlockProtocol(db).submit_fund_unlock_request(current_user, request.campaign_id)


@router.get("/status/{campaign_id}")
async def get_fund_unlock_status(
    campaign_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(artist_only)
):
    """Recomputed on every call: pending request, funding, proof gate and shortfall."""
    return MilestoneUnlockProtocol(db).get_fund_unlock_status(current_user, campaign_id).to_dict()


# ============================================================================
# MILESTONE PROOFS
# ============================================================================

@router.post("/proofs/upload", status_code=status.HTTP_201_CREATED)
async def upload_proof_artifact(
    campaign_id: str,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(artist_only)
):
    """Store a proof file and return the object key to submit with the proof."""
    CampaignService(db).get_owned_campaign(current_user, campaign_id)

    contents = await file.read()
    if len(contents) > MAX_PROOF_SIZE:
        raise ValidationError("Proof file exceeds the 20 MB limit")

    return file_store.upload_proof_artifact(
        campaign_id, contents, file.filename or "proof", file.content_type or "application/octet-stream"
    )


@router.post("/proofs", response_model=ProofResponse, status_code=status.HTTP_201_CREATED)
async def submit_milestone_proof(
    request: ProofSubmit,
    db: Session = Depends(get_db),
    current_user: User = Depends(artist_only)
):
    """Submit (or resubmit after rejection) proof for a funded milestone."""
    return MilestoneUnlockProtocol(db).add_milestone_proof(
        current_user,
        request.campaign_id,
        request.milestone_id,
        request.description,
        request.proof,
    )


@router.get("/proofs/{campaign_id}", response_model=List[ProofResponse])
async def get_campaign_proofs(
    campaign_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(artist_only)
):
    return MilestoneUnlockProtocol(db).list_milestone_proofs_for_campaign(current_user, campaign_id)
