# Revenue Router for Encore
# Records confirmed royalty income and distributes it to investors

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from database.config import get_db
from database.models import User
from schemas.funding import RevenueCreate, RevenueResponse
from auth.roles import Permission
from auth.decorators import require_permission
from services.payout_distributor import PayoutDistributor

router = APIRouter(prefix="/revenue", tags=["Revenue"])

can_record_revenue = require_permission(Permission.RECORD_REVENUE)


@router.post("", response_model=RevenueResponse, status_code=status.HTTP_201_CREATED)
async def record_revenue(
    request: RevenueCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(can_record_revenue)
):
    """Record a revenue event and pay every active investor their share."""
    return PayoutDistributor(db).process_revenue(
        request.campaign_id,
        request.source,
        request.amount,
        stream_count=request.stream_count,
        country=request.country,
        platform_data=request.platform_data,
    )


@router.post("/{revenue_id}/distribute")
async def distribute_revenue(
    revenue_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(can_record_revenue)
):
    """Retry the fan-out for an event whose earlier distribution failed."""
    payouts = PayoutDistributor(db).distribute(revenue_id)
    return {"revenue_id": revenue_id, "payouts_created": len(payouts)}


@router.get("/campaign/{campaign_id}", response_model=List[RevenueResponse])
async def get_campaign_revenue(
    campaign_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(can_record_revenue)
):
    return PayoutDistributor(db).list_revenue_events(campaign_id)
