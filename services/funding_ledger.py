# Funding Ledger
# Single source of truth for campaign funding totals

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
import logging

from sqlalchemy import func, distinct
from sqlalchemy.orm import Session

from database.funding_models import (
    Campaign, Payment, PaymentType, PaymentStatus, Investment, InvestmentStatus
)
from services.errors import ValidationError, NotFoundError, StateConflictError

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(value) -> str:
    """5000.00 -> '5000', 12.5 -> '12.50'"""
    amount = to_money(value)
    if amount == amount.to_integral_value():
        return str(amount.quantize(Decimal(1)))
    return str(amount)


@dataclass
class FundingStats:
    total_raised: Decimal
    funding_goal: Decimal
    funding_percentage: Decimal  # unclamped
    remaining_capacity: Decimal
    investor_count: int

    @property
    def display_percentage(self) -> float:
        """Clamped to 100 for progress bars."""
        return min(round(float(self.funding_percentage), 2), 100.0)

    def to_dict(self) -> dict:
        return {
            "total_raised": self.total_raised,
            "funding_goal": self.funding_goal,
            "funding_percentage": round(float(self.funding_percentage), 2),
            "display_percentage": self.display_percentage,
            "remaining_capacity": self.remaining_capacity,
            "investor_count": self.investor_count,
        }


class FundingLedger:
    """Funding totals are always derived from successful contribution rows.

    Milestone transfers and failed payments never count.
    """

    def __init__(self, db: Session):
        self.db = db

    def _successful_contributions(self, campaign_id: str):
        return self.db.query(Payment).filter(
            Payment.campaign_id == campaign_id,
            Payment.payment_type == PaymentType.CONTRIBUTION,
            Payment.status == PaymentStatus.SUCCESS
        )

    def total_raised(self, campaign_id: str) -> Decimal:
        total = self.db.query(func.coalesce(func.sum(Payment.amount), 0)).filter(
            Payment.campaign_id == campaign_id,
            Payment.payment_type == PaymentType.CONTRIBUTION,
            Payment.status == PaymentStatus.SUCCESS
        ).scalar()
        return to_money(total)

    def funding_percentage(self, campaign: Campaign, total_raised: Optional[Decimal] = None) -> Decimal:
        if total_raised is None:
            total_raised = self.total_raised(campaign.id)
        goal = to_money(campaign.funding_goal)
        if goal <= 0:
            return Decimal(0)
        return total_raised * 100 / goal

    def remaining_capacity(self, campaign: Campaign, total_raised: Optional[Decimal] = None) -> Decimal:
        if total_raised is None:
            total_raised = self.total_raised(campaign.id)
        return max(ZERO, to_money(campaign.funding_goal) - total_raised)

    def investor_count(self, campaign_id: str) -> int:
        return self.db.query(func.count(distinct(Payment.user_id))).filter(
            Payment.campaign_id == campaign_id,
            Payment.payment_type == PaymentType.CONTRIBUTION,
            Payment.status == PaymentStatus.SUCCESS
        ).scalar() or 0

    def funding_stats(self, campaign: Campaign) -> FundingStats:
        total = self.total_raised(campaign.id)
        return FundingStats(
            total_raised=total,
            funding_goal=to_money(campaign.funding_goal),
            funding_percentage=self.funding_percentage(campaign, total),
            remaining_capacity=self.remaining_capacity(campaign, total),
            investor_count=self.investor_count(campaign.id),
        )

    def investor_ownership(self, campaign_id: str, investor_id: str) -> Decimal:
        total = self.db.query(func.coalesce(func.sum(Investment.ownership_percentage), 0)).filter(
            Investment.campaign_id == campaign_id,
            Investment.investor_id == investor_id,
            Investment.status == InvestmentStatus.ACTIVE
        ).scalar()
        return Decimal(str(total))

    def _lock_campaign(self, campaign_id: str) -> Campaign:
        # Serializes concurrent contributions to the same campaign
        campaign = self.db.query(Campaign).filter(
            Campaign.id == campaign_id,
            Campaign.is_deleted.is_(False)
        ).with_for_update().first()
        if not campaign:
            raise NotFoundError("Campaign not found")
        return campaign

    def _check_capacity(self, campaign: Campaign, amount: Decimal):
        remaining = self.remaining_capacity(campaign)
        if remaining <= 0:
            raise StateConflictError("Funding goal already reached")
        if amount > remaining:
            raise StateConflictError(
                f"Investment amount exceeds remaining funding capacity. Maximum: {format_amount(remaining)}"
            )

    def record_contribution(
        self,
        campaign_id: str,
        investor_id: str,
        amount,
        status: PaymentStatus = PaymentStatus.SUCCESS,
        transaction_id: Optional[str] = None,
        currency: str = "usd",
    ) -> Payment:
        """
        Record a contribution under the campaign row lock.

        Successful contributions that would push the total past the goal are
        rejected. The caller owns the transaction and must commit.
        """
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("Contribution amount must be greater than zero")

        campaign = self._lock_campaign(campaign_id)
        if status == PaymentStatus.SUCCESS:
            self._check_capacity(campaign, amount)

        payment = Payment(
            campaign_id=campaign.id,
            user_id=investor_id,
            amount=amount,
            currency=currency,
            payment_type=PaymentType.CONTRIBUTION,
            status=status,
            transaction_id=transaction_id,
        )
        self.db.add(payment)
        self.db.flush()
        logger.info(f"Contribution {payment.id} of {amount} recorded for campaign {campaign.id} ({status.value})")
        return payment

    def reconcile_contribution_status(self, transaction_id: str, status: PaymentStatus) -> Payment:
        """Apply a processor status correction to an existing contribution."""
        payment = self.db.query(Payment).filter(
            Payment.transaction_id == transaction_id,
            Payment.payment_type == PaymentType.CONTRIBUTION
        ).first()
        if not payment:
            raise NotFoundError("Payment not found")

        if payment.status == status:
            return payment

        if status == PaymentStatus.SUCCESS:
            campaign = self._lock_campaign(payment.campaign_id)
            try:
                self._check_capacity(campaign, to_money(payment.amount))
            except StateConflictError:
                logger.warning(
                    f"Reconciling payment {payment.id} to success would exceed the goal "
                    f"of campaign {campaign.id}; refund required"
                )
                self.db.rollback()
                raise

        payment.status = status
        self.db.commit()
        self.db.refresh(payment)
        logger.info(f"Payment {payment.id} reconciled to {status.value}")
        return payment
