# Funding Models for Encore
# Campaigns, milestones, contributions, unlock requests, proofs, investments and payouts

from sqlalchemy import (
    Column, String, Integer, DateTime, ForeignKey, Text, JSON, Enum, Boolean,
    Float, Numeric, Index, UniqueConstraint, text
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from datetime import datetime
import enum

from database.models import Base, generate_uuid
from services.errors import NotFoundError, StateConflictError


def _enum(enum_cls, name):
    return Enum(enum_cls, values_callable=lambda x: [e.value for e in x], name=name)


# ============================================================================
# ENUMS
# ============================================================================

class CampaignStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    REJECTED = "rejected"


class CampaignDuration(str, enum.Enum):
    SIX_MONTHS = "6_months"
    ONE_YEAR = "1_year"
    TWO_YEARS = "2_years"
    FIVE_YEARS = "5_years"
    LIFETIME = "lifetime"


class MilestoneStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"


class PaymentType(str, enum.Enum):
    CONTRIBUTION = "contribution"
    MILESTONE_TRANSFER = "milestone_transfer"


class PaymentStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"


class RequestStatus(str, enum.Enum):
    """Shared by fund unlock requests and milestone proofs."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class TransferStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    UNRECORDED = "unrecorded"
    FAILED = "failed"


class InvestmentStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class InvestmentType(str, enum.Enum):
    ROYALTY = "royalty"
    EQUITY = "equity"
    REVENUE_SHARE = "revenue_share"


class StreamingPlatform(str, enum.Enum):
    SPOTIFY = "spotify"
    YOUTUBE = "youtube"


# ============================================================================
# CAMPAIGN
# ============================================================================

class Campaign(Base):
    """A funding campaign for one song or release.

    Milestones belong to the campaign aggregate. Their status only changes
    through ``approve_milestone``.
    """
    __tablename__ = "campaigns"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    artist_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    song_title = Column(String(255), nullable=False)
    artist_name = Column(String(255), nullable=False)
    description = Column(Text)
    genre = Column(String(50), nullable=False)
    duration = Column(_enum(CampaignDuration, "campaignduration"), nullable=False, default=CampaignDuration.ONE_YEAR)
    release_type = Column(String(50), default="single")
    isrc = Column(String(20))
    spotify_url = Column(String(500))
    youtube_url = Column(String(500))
    deezer_url = Column(String(500))
    image_key = Column(String(500))

    funding_goal = Column(Numeric(12, 2), nullable=False)
    expected_roi_percentage = Column(Float)
    automatic_roi = Column(JSON)  # projection snapshot, written once at creation
    verification_data = Column(JSON)

    status = Column(_enum(CampaignStatus, "campaignstatus"), nullable=False, default=CampaignStatus.DRAFT)
    is_active = Column(Boolean, default=False)
    is_deleted = Column(Boolean, default=False)
    deleted_at = Column(DateTime)
    rejection_reason = Column(Text)
    reviewed_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"))
    reviewed_at = Column(DateTime)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    artist = relationship("User", back_populates="campaigns", foreign_keys=[artist_id])
    milestones = relationship(
        "Milestone",
        back_populates="campaign",
        order_by="Milestone.order",
        cascade="all, delete-orphan"
    )

    @property
    def milestone_total(self):
        return sum((m.amount for m in self.milestones), 0)

    def milestone_by_id(self, milestone_id):
        for milestone in self.milestones:
            if milestone.id == milestone_id:
                return milestone
        return None

    def last_approved_milestone(self):
        """Highest-order approved milestone, or None."""
        approved = [m for m in self.milestones if m.status == MilestoneStatus.APPROVED]
        return max(approved, key=lambda m: m.order) if approved else None

    def next_milestone_after(self, milestone):
        for candidate in self.milestones:
            if candidate.order > milestone.order:
                return candidate
        return None

    def amount_through(self, milestone):
        """Sum of milestone amounts up to and including ``milestone``."""
        return sum((m.amount for m in self.milestones if m.order <= milestone.order), 0)

    def approve_milestone(self, milestone_id):
        milestone = self.milestone_by_id(milestone_id)
        if milestone is None:
            raise NotFoundError("Milestone not found in this campaign")
        if milestone.status == MilestoneStatus.APPROVED:
            raise StateConflictError(f"Milestone '{milestone.name}' is already approved")
        milestone.status = MilestoneStatus.APPROVED
        milestone.approved_at = datetime.utcnow()
        return milestone


class Milestone(Base):
    __tablename__ = "campaign_milestones"
    __table_args__ = (
        UniqueConstraint("campaign_id", "milestone_order", name="uq_milestone_campaign_order"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    campaign_id = Column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(Text)
    order = Column("milestone_order", Integer, nullable=False)
    status = Column(_enum(MilestoneStatus, "milestonestatus"), nullable=False, default=MilestoneStatus.PENDING)
    approved_at = Column(DateTime)

    campaign = relationship("Campaign", back_populates="milestones")


# ============================================================================
# LEDGER
# ============================================================================

class Payment(Base):
    """Contribution from an investor, or a milestone transfer to the artist."""
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    campaign_id = Column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(10), default="usd")
    payment_type = Column(_enum(PaymentType, "paymenttype"), nullable=False, default=PaymentType.CONTRIBUTION)
    status = Column(_enum(PaymentStatus, "paymentstatus"), nullable=False)
    transaction_id = Column(String(255), unique=True)  # processor charge / session id
    transfer_id = Column(String(255))  # processor transfer id for milestone transfers
    milestone_id = Column(String(36), ForeignKey("campaign_milestones.id", ondelete="SET NULL"))
    fund_unlock_request_id = Column(String(36), ForeignKey("fund_unlock_requests.id", ondelete="SET NULL"))
    description = Column(Text)
    transaction_date = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class FundUnlockRequest(Base):
    __tablename__ = "fund_unlock_requests"
    __table_args__ = (
        # At most one pending request per campaign
        Index(
            "uq_fund_unlock_pending_campaign",
            "campaign_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    campaign_id = Column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False)
    artist_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    milestone_id = Column(String(36), ForeignKey("campaign_milestones.id", ondelete="CASCADE"), nullable=False)
    status = Column(_enum(RequestStatus, "fundrequeststatus"), nullable=False, default=RequestStatus.PENDING)

    # Transfer reservation, set before the external call is made
    transfer_status = Column(_enum(TransferStatus, "transferstatus"))
    transfer_id = Column(String(255))
    transfer_error = Column(Text)
    reserved_at = Column(DateTime)

    requested_at = Column(DateTime, server_default=func.now())
    responded_at = Column(DateTime)
    admin_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"))
    admin_response = Column(Text)

    campaign = relationship("Campaign")
    milestone = relationship("Milestone")
    artist = relationship("User", foreign_keys=[artist_id])


class MilestoneProof(Base):
    __tablename__ = "milestone_proofs"
    __table_args__ = (
        UniqueConstraint("campaign_id", "milestone_id", name="uq_milestone_proof"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    campaign_id = Column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    artist_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    milestone_id = Column(String(36), ForeignKey("campaign_milestones.id", ondelete="CASCADE"), nullable=False)
    description = Column(Text, nullable=False)
    proof = Column(String(500), nullable=False)  # file store object key
    status = Column(_enum(RequestStatus, "proofstatus"), nullable=False, default=RequestStatus.PENDING)
    admin_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"))
    admin_response = Column(Text)
    submitted_at = Column(DateTime, server_default=func.now())
    reviewed_at = Column(DateTime)

    campaign = relationship("Campaign")
    milestone = relationship("Milestone")


# ============================================================================
# INVESTMENTS & REVENUE
# ============================================================================

class Investment(Base):
    __tablename__ = "investments"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    campaign_id = Column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    investor_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    artist_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    payment_id = Column(String(36), ForeignKey("payments.id", ondelete="SET NULL"))
    amount = Column(Numeric(12, 2), nullable=False)
    ownership_percentage = Column(Numeric(9, 4), nullable=False)
    expected_return = Column(Numeric(12, 2), nullable=False, default=0)
    actual_return = Column(Numeric(12, 2), nullable=False, default=0)
    investment_type = Column(_enum(InvestmentType, "investmenttype"), default=InvestmentType.ROYALTY)
    status = Column(_enum(InvestmentStatus, "investmentstatus"), nullable=False, default=InvestmentStatus.ACTIVE)
    maturity_date = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())

    campaign = relationship("Campaign")
    investor = relationship("User", back_populates="investments", foreign_keys=[investor_id])


class RevenueEvent(Base):
    __tablename__ = "revenue_events"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    campaign_id = Column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    source = Column(String(50), nullable=False)  # spotify, youtube, apple_music, other
    amount = Column(Numeric(12, 2), nullable=False)
    stream_count = Column(Integer, default=0)
    country = Column(String(100))
    payout_rate = Column(Float)
    platform_data = Column(JSON)
    is_processed = Column(Boolean, nullable=False, default=False)
    processed_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())


class Payout(Base):
    """Immutable audit row: one per (investment, revenue event)."""
    __tablename__ = "payouts"
    __table_args__ = (
        UniqueConstraint("investment_id", "revenue_id", name="uq_payout_investment_revenue"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    investment_id = Column(String(36), ForeignKey("investments.id", ondelete="CASCADE"), nullable=False)
    investor_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    campaign_id = Column(String(36), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False)
    revenue_id = Column(String(36), ForeignKey("revenue_events.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    ownership_share = Column(Numeric(9, 4), nullable=False)
    created_at = Column(DateTime, server_default=func.now())


# ============================================================================
# STREAMING ACCOUNTS
# ============================================================================

class StreamingAccount(Base):
    """Platform data captured by the OAuth glue for a connected account."""
    __tablename__ = "streaming_accounts"
    __table_args__ = (
        UniqueConstraint("user_id", "platform", name="uq_streaming_account_user_platform"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    platform = Column(_enum(StreamingPlatform, "streamingplatform"), nullable=False)
    platform_user_id = Column(String(255))
    platform_data = Column(JSON)
    country = Column(String(100))
    connected_at = Column(DateTime, server_default=func.now())
    last_synced_at = Column(DateTime)

    user = relationship("User", back_populates="streaming_accounts")
