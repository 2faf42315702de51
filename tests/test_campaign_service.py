"""Tests for campaign creation, review and deletion."""

from decimal import Decimal

import pytest

from core.metadata_verifier import PlatformMatch, VerificationSummary
from database.models import SubscriptionStatus, UserType
from database.funding_models import CampaignDuration, CampaignStatus, MilestoneStatus
from schemas.funding import CampaignCreate, MilestoneCreate, ReviewAction
from services.campaign_service import CampaignService, validate_milestones
from services.errors import AuthorizationError, StateConflictError, ValidationError


class FakeVerifier:

    def __init__(self, verified=True, found=True, popularity=55):
        self.verified = verified
        self.found = found
        self.popularity = popularity
        self.calls = []

    def verify(self, song):
        self.calls.append(song)
        match = PlatformMatch(
            platform="spotify",
            found=self.found,
            title_match=100 if self.verified else 75,
            artist_match=100,
            track_data={"popularity": self.popularity} if self.found else {},
        )
        return VerificationSummary(
            spotify=match,
            is_verified=self.verified and self.found,
            confidence=100 if self.verified else 75,
            platforms_verified=1 if self.found else 0,
            total_platforms=1,
            errors=[] if self.found else ["Spotify verification failed - track not found or inaccessible"],
        )


def payload(**overrides):
    values = dict(
        song_title="Midnight Drive",
        artist_name="Luna Ray",
        genre="Pop",
        duration=CampaignDuration.ONE_YEAR,
        spotify_url="https://open.spotify.com/track/4uLU6hMCjMI75M1A2tKUQC",
        funding_goal=Decimal("10000"),
        milestones=[
            MilestoneCreate(name="Recording", amount=Decimal("3000"), order=1),
            MilestoneCreate(name="Marketing", amount=Decimal("7000"), order=2),
        ],
    )
    values.update(overrides)
    return CampaignCreate(**values)


class TestValidateMilestones:

    def test_sum_must_equal_goal(self):
        milestones = [MilestoneCreate(name="Recording", amount=Decimal("3000"), order=1)]

        with pytest.raises(ValidationError) as exc:
            validate_milestones(Decimal("10000"), milestones)
        assert exc.value.message == "Sum of milestone amounts (3000) must equal the funding goal (10000)"

    def test_orders_must_be_unique(self):
        milestones = [
            MilestoneCreate(name="A", amount=Decimal("5000"), order=1),
            MilestoneCreate(name="B", amount=Decimal("5000"), order=1),
        ]

        with pytest.raises(ValidationError):
            validate_milestones(Decimal("10000"), milestones)

    def test_amounts_must_be_positive(self):
        milestones = [
            MilestoneCreate(name="A", amount=Decimal("10500"), order=1),
            MilestoneCreate(name="B", amount=Decimal("-500"), order=2),
        ]

        with pytest.raises(ValidationError):
            validate_milestones(Decimal("10000"), milestones)

    def test_at_least_one_milestone(self):
        with pytest.raises(ValidationError):
            validate_milestones(Decimal("10000"), [])


class TestCreateCampaign:

    def test_verified_campaign_goes_live(self, db, artist):
        service = CampaignService(db, verifier=FakeVerifier())

        campaign = service.create_campaign(artist, payload())

        assert campaign.status == CampaignStatus.ACTIVE
        assert campaign.is_active is True
        assert campaign.genre == "pop"
        assert [m.order for m in campaign.milestones] == [1, 2]
        assert all(m.status == MilestoneStatus.PENDING for m in campaign.milestones)
        assert campaign.automatic_roi["baseline_metrics"]["spotify_popularity"] == 55
        assert "performance" in campaign.automatic_roi
        assert campaign.expected_roi_percentage == campaign.automatic_roi["expected_roi_percentage"]

    def test_partially_verified_campaign_waits_for_review(self, db, artist):
        service = CampaignService(db, verifier=FakeVerifier(verified=False))

        campaign = service.create_campaign(artist, payload())

        assert campaign.status == CampaignStatus.DRAFT
        assert campaign.is_active is False

    def test_unmatched_song_is_rejected(self, db, artist):
        service = CampaignService(db, verifier=FakeVerifier(found=False))

        with pytest.raises(ValidationError) as exc:
            service.create_campaign(artist, payload())
        assert "could not be verified" in exc.value.message

    def test_milestones_checked_before_verification(self, db, artist):
        verifier = FakeVerifier()
        service = CampaignService(db, verifier=verifier)

        with pytest.raises(ValidationError):
            service.create_campaign(artist, payload(funding_goal=Decimal("9000")))
        assert verifier.calls == []

    def test_fans_cannot_create_campaigns(self, db, fan):
        with pytest.raises(AuthorizationError):
            CampaignService(db, verifier=FakeVerifier()).create_campaign(fan, payload())

    def test_lapsed_subscription_blocks_creation(self, db, make_user):
        artist = make_user(UserType.ARTIST, subscription_status=SubscriptionStatus.EXPIRED)

        with pytest.raises(AuthorizationError):
            CampaignService(db, verifier=FakeVerifier()).create_campaign(artist, payload())


class TestReviewAndDelete:

    def test_admin_approves_draft(self, db, admin, artist, make_campaign):
        campaign = make_campaign(artist, status=CampaignStatus.DRAFT)

        reviewed = CampaignService(db).review_campaign(admin, campaign.id, ReviewAction.APPROVE)

        assert reviewed.status == CampaignStatus.ACTIVE
        assert reviewed.reviewed_by == admin.id

    def test_rejection_needs_reason(self, db, admin, artist, make_campaign):
        campaign = make_campaign(artist, status=CampaignStatus.DRAFT)
        service = CampaignService(db)

        with pytest.raises(ValidationError):
            service.review_campaign(admin, campaign.id, ReviewAction.REJECT)

        rejected = service.review_campaign(admin, campaign.id, ReviewAction.REJECT, "Wrong ISRC")
        assert rejected.status == CampaignStatus.REJECTED
        assert rejected.rejection_reason == "Wrong ISRC"

    def test_active_campaign_cannot_be_reviewed(self, db, admin, artist, make_campaign):
        campaign = make_campaign(artist)

        with pytest.raises(StateConflictError):
            CampaignService(db).review_campaign(admin, campaign.id, ReviewAction.APPROVE)

    def test_delete_is_soft(self, db, artist, make_campaign):
        campaign = make_campaign(artist)

        deleted = CampaignService(db).delete_campaign(artist, campaign.id)

        assert deleted.is_deleted is True
        assert deleted.deleted_at is not None
        assert CampaignService(db).list_campaigns(artist) == []

    def test_campaign_with_contributions_cannot_be_deleted(self, db, artist, make_campaign, contribute):
        campaign = make_campaign(artist)
        contribute(campaign, "100")

        with pytest.raises(StateConflictError):
            CampaignService(db).delete_campaign(artist, campaign.id)

    def test_only_owner_can_delete(self, db, make_user, artist, make_campaign):
        campaign = make_campaign(artist)

        with pytest.raises(AuthorizationError):
            CampaignService(db).delete_campaign(make_user(UserType.ARTIST), campaign.id)
