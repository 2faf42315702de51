# Investments Router for Encore
# Fans and labels back campaigns and follow their returns

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from database.config import get_db
from database.models import User
from schemas.funding import InvestmentCreate, InvestmentResponse, PayoutResponse
from auth.roles import UserType as UserTypeRole
from auth.decorators import require_user_type
from services.investment_service import InvestmentService

router = APIRouter(prefix="/investments", tags=["Investments"])

investor_only = require_user_type(UserTypeRole.FAN, UserTypeRole.LABEL)


@router.post("", response_model=InvestmentResponse, status_code=status.HTTP_201_CREATED)
async def create_investment(
    request: InvestmentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(investor_only)
):
    """
    Record a captured contribution and the resulting ownership stake.
    Rejected when it would take the campaign past its funding goal.
    """
    return InvestmentService(db).invest(
        current_user,
        request.campaign_id,
        request.amount,
        transaction_id=request.transaction_id,
        investment_type=request.investment_type,
    )


@router.get("/mine", response_model=List[InvestmentResponse])
async def get_my_investments(
    db: Session = Depends(get_db),
    current_user: User = Depends(investor_only)
):
    return InvestmentService(db).list_investments(current_user)


@router.get("/payouts", response_model=List[PayoutResponse])
async def get_my_payouts(
    db: Session = Depends(get_db),
    current_user: User = Depends(investor_only)
):
    """Every revenue payout credited to the current investor."""
    return InvestmentService(db).list_payouts(current_user)


@router.get("/{investment_id}", response_model=InvestmentResponse)
async def get_investment(
    investment_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(investor_only)
):
    return InvestmentService(db).get_investment(current_user, investment_id)
