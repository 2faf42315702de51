# Payment Webhooks
# Processor callbacks that correct the status of recorded contributions

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from config.app_config import PAYMENT_WEBHOOK_SECRET
from database.config import get_db
from schemas.funding import PaymentStatusEvent
from services.funding_ledger import FundingLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


def verify_webhook_secret(x_webhook_secret: Optional[str] = Header(None)):
    if not PAYMENT_WEBHOOK_SECRET:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment webhook is not configured"
        )
    if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, PAYMENT_WEBHOOK_SECRET):
        logger.warning("Payment webhook called with an invalid secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook secret")


@router.post("/payments", dependencies=[Depends(verify_webhook_secret)])
async def payment_status_webhook(
    event: PaymentStatusEvent,
    db: Session = Depends(get_db)
):
    """Reconcile a contribution's status with the processor's record."""
    payment = FundingLedger(db).reconcile_contribution_status(event.transaction_id, event.status)
    return {"payment_id": payment.id, "status": payment.status.value}
