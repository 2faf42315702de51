# Investments: contribution + ownership record, ROI previews, investor dashboards

import calendar
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
import logging

from sqlalchemy import desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config.app_config import MINIMUM_INVESTMENT_AMOUNT
from config.roi_tables import DEFAULT_ROI_TABLES
from database.models import User
from database.funding_models import (
    Campaign, CampaignStatus, Investment, InvestmentStatus, InvestmentType, Payout, PaymentStatus
)
from services.errors import ValidationError, NotFoundError, AuthorizationError, StateConflictError
from services.funding_ledger import FundingLedger, to_money, format_amount
from services.roi_engine import ROIProjectionEngine, InvestorROIPreview

logger = logging.getLogger(__name__)

OWNERSHIP_QUANTUM = Decimal("0.0001")


def add_months(start: datetime, months: int) -> datetime:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def ownership_percentage(amount: Decimal, funding_goal: Decimal) -> Decimal:
    return (to_money(amount) * 100 / to_money(funding_goal)).quantize(OWNERSHIP_QUANTUM, rounding=ROUND_HALF_UP)


class InvestmentService:

    def __init__(self, db: Session, engine: Optional[ROIProjectionEngine] = None):
        self.db = db
        self.engine = engine or ROIProjectionEngine()
        self.ledger = FundingLedger(db)

    def _active_campaign(self, campaign_id: str) -> Campaign:
        campaign = self.db.query(Campaign).filter(
            Campaign.id == campaign_id,
            Campaign.is_deleted.is_(False)
        ).first()
        if not campaign:
            raise NotFoundError("Campaign not found")
        if campaign.status != CampaignStatus.ACTIVE or not campaign.is_active:
            raise StateConflictError("Campaign is not accepting investments")
        return campaign

    def invest(
        self,
        investor: User,
        campaign_id: str,
        amount,
        transaction_id: Optional[str] = None,
        investment_type: InvestmentType = InvestmentType.ROYALTY,
    ) -> Investment:
        amount = to_money(amount)
        if amount < MINIMUM_INVESTMENT_AMOUNT:
            raise ValidationError(f"Minimum investment is {format_amount(MINIMUM_INVESTMENT_AMOUNT)}")

        campaign = self._active_campaign(campaign_id)
        if campaign.artist_id == investor.id:
            raise AuthorizationError("You cannot invest in your own campaign")

        try:
            payment = self.ledger.record_contribution(
                campaign.id, investor.id, amount, PaymentStatus.SUCCESS, transaction_id
            )
            projected = self.engine.calculate_investor_return_from_roi(
                amount, campaign.expected_roi_percentage or 0, campaign.funding_goal
            )
            investment = Investment(
                campaign_id=campaign.id,
                investor_id=investor.id,
                artist_id=campaign.artist_id,
                payment_id=payment.id,
                amount=amount,
                ownership_percentage=ownership_percentage(amount, campaign.funding_goal),
                expected_return=to_money(projected.projected_return),
                actual_return=Decimal("0.00"),
                investment_type=investment_type,
                status=InvestmentStatus.ACTIVE,
                maturity_date=add_months(datetime.utcnow(), DEFAULT_ROI_TABLES.months_for(campaign.duration.value)),
            )
            self.db.add(investment)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise StateConflictError("This payment has already been recorded")
        except (ValidationError, StateConflictError, NotFoundError):
            self.db.rollback()
            raise

        self.db.refresh(investment)
        logger.info(
            f"Investment {investment.id}: {investor.id} put {amount} into campaign {campaign.id} "
            f"({investment.ownership_percentage}% ownership)"
        )
        return investment

    def preview_investment(self, campaign_id: str, amount) -> InvestorROIPreview:
        campaign = self._active_campaign(campaign_id)
        snapshot = campaign.automatic_roi or {}
        return self.engine.calculate_investor_automatic_roi(
            float(to_money(amount)),
            float(campaign.funding_goal),
            snapshot.get("investor_share", 0),
            snapshot.get("confidence", 0),
        )

    def list_investments(self, investor: User):
        return self.db.query(Investment).filter(
            Investment.investor_id == investor.id
        ).order_by(desc(Investment.created_at)).all()

    def get_investment(self, investor: User, investment_id: str) -> Investment:
        investment = self.db.query(Investment).filter(Investment.id == investment_id).first()
        if not investment:
            raise NotFoundError("Investment not found")
        if investment.investor_id != investor.id:
            raise AuthorizationError("You can only view your own investments")
        return investment

    def list_payouts(self, investor: User):
        return self.db.query(Payout).filter(
            Payout.investor_id == investor.id
        ).order_by(desc(Payout.created_at)).all()
