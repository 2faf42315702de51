# Campaign lifecycle: creation, admin review, soft delete

from datetime import datetime
from decimal import Decimal
from typing import Optional
import logging

from sqlalchemy import desc
from sqlalchemy.orm import Session

from core.entitlement import has_active_entitlement
from core.metadata_verifier import MetadataVerifier, SongMetadata
from core.streaming_provider import StreamingDataProvider
from database.models import User, UserType
from database.funding_models import (
    Campaign, CampaignStatus, Milestone, MilestoneStatus, Payment, PaymentType, PaymentStatus
)
from schemas.funding import CampaignCreate, ReviewAction
from services.errors import (
    ValidationError, NotFoundError, AuthorizationError, StateConflictError, InvariantViolation
)
from services.funding_ledger import FundingLedger, to_money, format_amount
from services.performance_aggregator import PerformanceAggregator
from services.roi_engine import ROIProjectionEngine, CampaignInputs

logger = logging.getLogger(__name__)


def validate_milestones(funding_goal: Decimal, milestones) -> None:
    if not milestones:
        raise ValidationError("At least one milestone is required")

    orders = [m.order for m in milestones]
    if len(set(orders)) != len(orders):
        raise ValidationError("Milestone order values must be unique")

    for milestone in milestones:
        if to_money(milestone.amount) <= 0:
            raise ValidationError(f"Milestone '{milestone.name}' must have a positive amount")

    total = sum((to_money(m.amount) for m in milestones), Decimal(0))
    if total != to_money(funding_goal):
        raise ValidationError(
            f"Sum of milestone amounts ({format_amount(total)}) must equal "
            f"the funding goal ({format_amount(funding_goal)})"
        )


def check_milestone_invariant(campaign: Campaign) -> None:
    """Abort when persisted milestones no longer sum to the funding goal."""
    total = to_money(campaign.milestone_total)
    if total != to_money(campaign.funding_goal):
        raise InvariantViolation(
            f"Campaign {campaign.id} milestones sum to {format_amount(total)} "
            f"but the funding goal is {format_amount(campaign.funding_goal)}"
        )


class CampaignService:

    def __init__(
        self,
        db: Session,
        verifier: Optional[MetadataVerifier] = None,
        engine: Optional[ROIProjectionEngine] = None,
        aggregator: Optional[PerformanceAggregator] = None,
    ):
        self.db = db
        self.verifier = verifier or MetadataVerifier()
        self.engine = engine or ROIProjectionEngine()
        self.aggregator = aggregator or PerformanceAggregator()
        self.ledger = FundingLedger(db)

    # ------------------------------------------------------------------
    # Artist operations
    # ------------------------------------------------------------------

    def create_campaign(self, artist: User, payload: CampaignCreate) -> Campaign:
        if artist.user_type != UserType.ARTIST:
            raise AuthorizationError("Only artists can create campaigns")
        if not has_active_entitlement(artist):
            raise AuthorizationError("An active subscription is required to create campaigns")

        validate_milestones(payload.funding_goal, payload.milestones)

        verification = self.verifier.verify(SongMetadata(
            song_title=payload.song_title,
            artist_name=payload.artist_name,
            spotify_url=payload.spotify_url,
            youtube_url=payload.youtube_url,
            deezer_url=payload.deezer_url,
            isrc=payload.isrc,
        ))
        if verification.platforms_verified == 0:
            reasons = "; ".join(verification.errors) or "no platform returned a match"
            raise ValidationError(f"Song metadata could not be verified: {reasons}")

        snapshot = self.aggregator.for_artist(StreamingDataProvider(self.db), artist.id)
        verification_data = verification.to_dict()
        projection = self.engine.calculate_automatic_roi(
            CampaignInputs(
                funding_goal=float(payload.funding_goal),
                genre=payload.genre,
                duration=payload.duration.value,
            ),
            snapshot,
            verification_data,
        )

        automatic_roi = projection.to_dict()
        automatic_roi["performance"] = snapshot.to_dict()

        campaign = Campaign(
            artist_id=artist.id,
            song_title=payload.song_title,
            artist_name=payload.artist_name,
            description=payload.description,
            genre=payload.genre.lower(),
            duration=payload.duration,
            release_type=payload.release_type,
            isrc=payload.isrc,
            spotify_url=payload.spotify_url,
            youtube_url=payload.youtube_url,
            deezer_url=payload.deezer_url,
            image_key=payload.image_key,
            funding_goal=to_money(payload.funding_goal),
            expected_roi_percentage=projection.expected_roi_percentage,
            automatic_roi=automatic_roi,
            verification_data=verification_data,
            status=CampaignStatus.ACTIVE if verification.is_verified else CampaignStatus.DRAFT,
            is_active=verification.is_verified,
        )
        for milestone in sorted(payload.milestones, key=lambda m: m.order):
            campaign.milestones.append(Milestone(
                name=milestone.name,
                amount=to_money(milestone.amount),
                description=milestone.description,
                order=milestone.order,
                status=MilestoneStatus.PENDING,
            ))

        self.db.add(campaign)
        self.db.commit()
        self.db.refresh(campaign)

        logger.info(
            f"Campaign {campaign.id} created by {artist.id} as {campaign.status.value} "
            f"(roi={projection.expected_roi_percentage}%, fallback={projection.is_fallback})"
        )
        return campaign

    def list_campaigns(self, artist: User):
        return self.db.query(Campaign).filter(
            Campaign.artist_id == artist.id,
            Campaign.is_deleted.is_(False)
        ).order_by(desc(Campaign.created_at)).all()

    def get_campaign(self, campaign_id: str) -> Campaign:
        campaign = self.db.query(Campaign).filter(
            Campaign.id == campaign_id,
            Campaign.is_deleted.is_(False)
        ).first()
        if not campaign:
            raise NotFoundError("Campaign not found")
        return campaign

    def get_owned_campaign(self, artist: User, campaign_id: str) -> Campaign:
        campaign = self.get_campaign(campaign_id)
        if campaign.artist_id != artist.id:
            raise AuthorizationError("You can only manage your own campaigns")
        return campaign

    def delete_campaign(self, artist: User, campaign_id: str) -> Campaign:
        """Soft delete. Campaigns holding investor money are kept."""
        campaign = self.get_owned_campaign(artist, campaign_id)

        has_contributions = self.db.query(Payment.id).filter(
            Payment.campaign_id == campaign.id,
            Payment.payment_type == PaymentType.CONTRIBUTION,
            Payment.status == PaymentStatus.SUCCESS
        ).first()
        if has_contributions:
            raise StateConflictError("Campaigns with investor contributions cannot be deleted")

        campaign.is_deleted = True
        campaign.is_active = False
        campaign.deleted_at = datetime.utcnow()
        self.db.commit()
        logger.info(f"Campaign {campaign.id} soft-deleted by {artist.id}")
        return campaign

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    def list_draft_campaigns(self, page: int = 1, limit: int = 20) -> dict:
        query = self.db.query(Campaign).filter(
            Campaign.status == CampaignStatus.DRAFT,
            Campaign.is_deleted.is_(False)
        ).order_by(desc(Campaign.created_at))

        total = query.count()
        campaigns = query.offset((page - 1) * limit).limit(limit).all()
        return {
            "items": campaigns,
            "total": total,
            "page": page,
            "pages": (total + limit - 1) // limit
        }

    def review_campaign(self, admin: User, campaign_id: str, action: ReviewAction,
                        reason: Optional[str] = None) -> Campaign:
        campaign = self.get_campaign(campaign_id)
        if campaign.status != CampaignStatus.DRAFT:
            raise StateConflictError(f"Only draft campaigns can be reviewed (status: {campaign.status.value})")

        if action == ReviewAction.APPROVE:
            check_milestone_invariant(campaign)
            campaign.status = CampaignStatus.ACTIVE
            campaign.is_active = True
        else:
            if not reason:
                raise ValidationError("A reason is required when rejecting a campaign")
            campaign.status = CampaignStatus.REJECTED
            campaign.is_active = False
            campaign.rejection_reason = reason

        campaign.reviewed_by = admin.id
        campaign.reviewed_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(campaign)
        logger.info(f"Campaign {campaign.id} {campaign.status.value} by admin {admin.id}")
        return campaign

    def campaign_details(self, campaign_id: str) -> dict:
        campaign = self.get_campaign(campaign_id)
        return {
            "campaign": campaign,
            "funding": self.ledger.funding_stats(campaign),
        }
