# Payout Distributor
# Fans a confirmed revenue event out to every active investor, pro rata by ownership

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Dict, Any, List
import logging

from sqlalchemy import desc
from sqlalchemy.orm import Session

from database.funding_models import (
    Campaign, Investment, InvestmentStatus, RevenueEvent, Payout
)
from services.errors import ValidationError, NotFoundError, StateConflictError
from services.funding_ledger import to_money, CENT

logger = logging.getLogger(__name__)


def payout_amount(revenue_amount, ownership_percentage) -> Decimal:
    share = Decimal(str(revenue_amount)) * Decimal(str(ownership_percentage)) / 100
    return share.quantize(CENT, rounding=ROUND_HALF_UP)


class PayoutDistributor:

    def __init__(self, db: Session):
        self.db = db

    def process_revenue(
        self,
        campaign_id: str,
        source: str,
        amount,
        stream_count: int = 0,
        country: Optional[str] = None,
        platform_data: Optional[Dict[str, Any]] = None,
    ) -> RevenueEvent:
        """Record a revenue event, then distribute it."""
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("Revenue amount must be greater than zero")
        if stream_count is None or stream_count < 0:
            raise ValidationError("Stream count cannot be negative")
        if not source:
            raise ValidationError("Revenue source is required")

        campaign = self.db.query(Campaign).filter(Campaign.id == campaign_id).first()
        if not campaign:
            raise NotFoundError("Campaign not found")

        revenue = RevenueEvent(
            campaign_id=campaign.id,
            source=source,
            amount=amount,
            stream_count=stream_count,
            country=country or "US",
            payout_rate=float(amount) / (stream_count or 1),
            platform_data=platform_data,
            is_processed=False,
        )
        self.db.add(revenue)
        self.db.commit()
        self.db.refresh(revenue)
        logger.info(f"Revenue event {revenue.id} of {amount} from {source} recorded for campaign {campaign.id}")

        self.distribute(revenue.id)
        self.db.refresh(revenue)
        return revenue

    def distribute(self, revenue_id: str) -> List[Payout]:
        """
        Create payouts for an unprocessed revenue event.

        Runs in a single transaction: payouts, return increments and the
        processed flag commit together or not at all. A processed event is
        refused, so a retry never pays twice.
        """
        revenue = self.db.query(RevenueEvent).filter(
            RevenueEvent.id == revenue_id
        ).with_for_update().first()
        if not revenue:
            raise NotFoundError("Revenue event not found")
        if revenue.is_processed:
            self.db.rollback()
            raise StateConflictError("Revenue event has already been processed")

        try:
            claimed = self.db.query(RevenueEvent).filter(
                RevenueEvent.id == revenue.id,
                RevenueEvent.is_processed.is_(False)
            ).update({
                RevenueEvent.is_processed: True,
                RevenueEvent.processed_at: datetime.utcnow(),
            }, synchronize_session=False)
            if claimed == 0:
                raise StateConflictError("Revenue event has already been processed")

            paid_investments = {
                row.investment_id for row in self.db.query(Payout.investment_id).filter(
                    Payout.revenue_id == revenue.id
                )
            }
            investments = self.db.query(Investment).filter(
                Investment.campaign_id == revenue.campaign_id,
                Investment.status == InvestmentStatus.ACTIVE
            ).all()

            payouts = []
            for investment in investments:
                if investment.id in paid_investments:
                    continue
                amount = payout_amount(revenue.amount, investment.ownership_percentage)
                payout = Payout(
                    investment_id=investment.id,
                    investor_id=investment.investor_id,
                    campaign_id=revenue.campaign_id,
                    revenue_id=revenue.id,
                    amount=amount,
                    ownership_share=investment.ownership_percentage,
                )
                self.db.add(payout)
                self.db.query(Investment).filter(Investment.id == investment.id).update({
                    Investment.actual_return: Investment.actual_return + amount
                }, synchronize_session=False)
                payouts.append(payout)

            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"Payout fan-out for revenue event {revenue_id} rolled back")
            raise

        logger.info(f"Revenue event {revenue_id} distributed to {len(payouts)} investors")
        return payouts

    def list_revenue_events(self, campaign_id: str):
        return self.db.query(RevenueEvent).filter(
            RevenueEvent.campaign_id == campaign_id
        ).order_by(desc(RevenueEvent.created_at)).all()
