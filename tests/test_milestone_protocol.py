"""Tests for the milestone-gated fund unlock protocol.

Covers the request preconditions in order (pending request, funding
threshold, proof gate, shortfall, eligible target), admin approval with
the payment gateway, transfer failure and retry, and proof resubmission.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from database.funding_models import (
    Campaign, FundUnlockRequest, MilestoneProof, MilestoneStatus, Payment, PaymentStatus, PaymentType,
    RequestStatus, TransferStatus
)
from schemas.funding import ReviewAction
from services.errors import (
    AuthorizationError, ExternalServiceError, NotFoundError, StateConflictError, InvariantViolation
)
from services.milestone_protocol import MilestoneUnlockProtocol, PENDING_REQUEST_MESSAGE


@pytest.fixture
def protocol(db, gateway):
    return MilestoneUnlockProtocol(db, gateway=gateway)


@pytest.fixture
def half_funded(make_campaign, contribute, artist):
    campaign = make_campaign(artist)
    contribute(campaign, "2500")
    contribute(campaign, "2500")
    return campaign


def approve_first_milestone(protocol, artist, admin, campaign):
    request = protocol.submit_fund_unlock_request(artist, campaign.id)
    return protocol.approve_reject_fund_request(admin, request.id, ReviewAction.APPROVE)


def approve_proof(protocol, artist, admin, campaign, milestone):
    proof = protocol.add_milestone_proof(
        artist, campaign.id, milestone.id, "Studio sessions finished", "proofs/recording.pdf"
    )
    return protocol.approve_reject_milestone_proof(admin, proof.id, ReviewAction.APPROVE)


class TestSubmitFundUnlockRequest:

    def test_first_request_targets_first_milestone(self, protocol, artist, half_funded):
        request = protocol.submit_fund_unlock_request(artist, half_funded.id)

        assert request.status == RequestStatus.PENDING
        assert request.milestone_id == half_funded.milestones[0].id
        assert request.transfer_status is None

    def test_threshold_is_inclusive_at_fifty_percent(self, protocol, artist, make_campaign, contribute):
        campaign = make_campaign(artist)
        contribute(campaign, "4990")

        with pytest.raises(StateConflictError) as exc:
            protocol.submit_fund_unlock_request(artist, campaign.id)
        assert "reaches 50% of its funding goal" in exc.value.message
        assert "currently 49.9%" in exc.value.message

        contribute(campaign, "10")
        request = protocol.submit_fund_unlock_request(artist, campaign.id)
        assert request.milestone_id == campaign.milestones[0].id

    def test_failed_contributions_do_not_count_toward_threshold(self, protocol, artist, make_campaign, contribute):
        campaign = make_campaign(artist)
        contribute(campaign, "4000")
        contribute(campaign, "3000", status=PaymentStatus.FAILED)

        with pytest.raises(StateConflictError):
            protocol.submit_fund_unlock_request(artist, campaign.id)

    def test_second_pending_request_is_refused(self, protocol, artist, half_funded):
        protocol.submit_fund_unlock_request(artist, half_funded.id)

        with pytest.raises(StateConflictError) as exc:
            protocol.submit_fund_unlock_request(artist, half_funded.id)
        assert exc.value.message == PENDING_REQUEST_MESSAGE

    def test_database_rejects_concurrent_pending_requests(self, db, protocol, artist, half_funded, monkeypatch):
        protocol.submit_fund_unlock_request(artist, half_funded.id)

        # Simulate a racing submission that passed the pre-check
        monkeypatch.setattr(protocol, "_pending_request", lambda campaign_id: None)
        with pytest.raises(StateConflictError) as exc:
            protocol.submit_fund_unlock_request(artist, half_funded.id)

        assert exc.value.message == PENDING_REQUEST_MESSAGE
        assert db.query(FundUnlockRequest).count() == 1

    def test_only_owner_can_submit(self, protocol, make_user, half_funded):
        from database.models import UserType
        other_artist = make_user(UserType.ARTIST)

        with pytest.raises(AuthorizationError):
            protocol.submit_fund_unlock_request(other_artist, half_funded.id)

    def test_unknown_campaign(self, protocol, artist):
        with pytest.raises(NotFoundError):
            protocol.submit_fund_unlock_request(artist, "missing")

    def test_no_eligible_milestone(self, protocol, artist, make_campaign, contribute):
        campaign = make_campaign(artist, milestones=(("Everything", "10000"),))
        contribute(campaign, "6000")

        with pytest.raises(StateConflictError) as exc:
            protocol.submit_fund_unlock_request(artist, campaign.id)
        assert exc.value.message == "No milestone is available for unlock at current funding level"

    def test_broken_milestone_sum_aborts(self, db, protocol, artist, half_funded):
        half_funded.milestones[1].amount = Decimal("6000")
        db.commit()

        with pytest.raises(InvariantViolation):
            protocol.submit_fund_unlock_request(artist, half_funded.id)


class TestEndToEndUnlock:

    def test_milestone_release_sequence(self, db, protocol, gateway, artist, admin, half_funded, contribute):
        campaign = half_funded
        first, second = campaign.milestones

        # Scenario 1: 50% funded, first milestone released
        approved = approve_first_milestone(protocol, artist, admin, campaign)
        db.refresh(campaign)
        assert approved.status == RequestStatus.APPROVED
        assert approved.transfer_status == TransferStatus.SUCCEEDED
        assert campaign.milestones[0].status == MilestoneStatus.APPROVED
        assert gateway.calls[0]["amount"] == Decimal("3000")
        assert gateway.calls[0]["destination"] == artist.stripe_connect_id
        assert gateway.calls[0]["idempotency_key"] == f"fund-unlock-{approved.id}"

        # Scenario 2: proof missing
        with pytest.raises(StateConflictError) as exc:
            protocol.submit_fund_unlock_request(artist, campaign.id)
        assert exc.value.message == (
            "Proof of completion for milestone 'Recording' must be approved before requesting more funds"
        )

        # Scenario 3: proof approved, still short of the second milestone
        approve_proof(protocol, artist, admin, campaign, first)
        with pytest.raises(StateConflictError) as exc:
            protocol.submit_fund_unlock_request(artist, campaign.id)
        assert exc.value.message == "Insufficient funds for milestone 'Marketing': need 5000 more"

        # Scenario 4: fully funded, second milestone released
        contribute(campaign, "5000")
        request = protocol.submit_fund_unlock_request(artist, campaign.id)
        assert request.milestone_id == second.id

        protocol.approve_reject_fund_request(admin, request.id, ReviewAction.APPROVE)
        db.refresh(campaign)
        assert all(m.status == MilestoneStatus.APPROVED for m in campaign.milestones)
        assert gateway.calls[-1]["amount"] == Decimal("7000")

        transfers = db.query(Payment).filter(Payment.payment_type == PaymentType.MILESTONE_TRANSFER).all()
        assert sorted(p.amount for p in transfers) == [Decimal("3000.00"), Decimal("7000.00")]

    def test_milestone_transfers_do_not_change_total_raised(self, db, protocol, artist, admin, half_funded):
        from services.funding_ledger import FundingLedger

        approve_first_milestone(protocol, artist, admin, half_funded)

        assert FundingLedger(db).total_raised(half_funded.id) == Decimal("5000.00")


class TestApproveRejectFundRequest:

    def test_transfer_failure_leaves_request_pending_and_retryable(
        self, db, protocol, gateway, artist, admin, half_funded
    ):
        request = protocol.submit_fund_unlock_request(artist, half_funded.id)
        gateway.fail_next()

        with pytest.raises(ExternalServiceError) as exc:
            protocol.approve_reject_fund_request(admin, request.id, ReviewAction.APPROVE)
        assert exc.value.retryable is True

        db.refresh(request)
        db.refresh(half_funded)
        assert request.status == RequestStatus.PENDING
        assert request.transfer_status == TransferStatus.FAILED
        assert "timed out" in request.transfer_error
        assert half_funded.milestones[0].status == MilestoneStatus.PENDING
        assert db.query(Payment).filter(Payment.payment_type == PaymentType.MILESTONE_TRANSFER).count() == 0

        gateway.fail_with = None
        approved = protocol.approve_reject_fund_request(admin, request.id, ReviewAction.APPROVE)

        assert approved.status == RequestStatus.APPROVED
        assert {call["idempotency_key"] for call in gateway.calls} == {f"fund-unlock-{request.id}"}

    def test_in_progress_request_cannot_be_approved_twice(self, db, protocol, artist, admin, half_funded):
        request = protocol.submit_fund_unlock_request(artist, half_funded.id)
        request.transfer_status = TransferStatus.IN_PROGRESS
        request.reserved_at = datetime.utcnow()
        db.commit()

        with pytest.raises(StateConflictError):
            protocol.approve_reject_fund_request(admin, request.id, ReviewAction.APPROVE)
        with pytest.raises(StateConflictError):
            protocol.approve_reject_fund_request(admin, request.id, ReviewAction.REJECT)

    def test_stale_reservation_can_be_reclaimed_by_approval(self, db, protocol, gateway, artist, admin, half_funded):
        request = protocol.submit_fund_unlock_request(artist, half_funded.id)
        # Worker died between reserving and finishing the transfer
        request.transfer_status = TransferStatus.IN_PROGRESS
        request.reserved_at = datetime.utcnow() - timedelta(hours=1)
        db.commit()

        # The transfer may already have gone out, so rejection stays closed
        with pytest.raises(StateConflictError):
            protocol.approve_reject_fund_request(admin, request.id, ReviewAction.REJECT)

        approved = protocol.approve_reject_fund_request(admin, request.id, ReviewAction.APPROVE)

        assert approved.status == RequestStatus.APPROVED
        assert approved.transfer_status == TransferStatus.SUCCEEDED
        assert approved.reserved_at is None
        assert [call["idempotency_key"] for call in gateway.calls] == [f"fund-unlock-{request.id}"]

    def test_finalize_failure_after_transfer_only_allows_approve_retry(
        self, db, protocol, gateway, artist, admin, half_funded, monkeypatch
    ):
        request = protocol.submit_fund_unlock_request(artist, half_funded.id)
        original = Campaign.approve_milestone
        attempts = []

        def approve_milestone_once_broken(campaign, milestone_id):
            attempts.append(milestone_id)
            if len(attempts) == 1:
                raise RuntimeError("database connection lost")
            return original(campaign, milestone_id)

        monkeypatch.setattr(Campaign, "approve_milestone", approve_milestone_once_broken)

        with pytest.raises(RuntimeError):
            protocol.approve_reject_fund_request(admin, request.id, ReviewAction.APPROVE)

        db.refresh(request)
        db.refresh(half_funded)
        assert request.status == RequestStatus.PENDING
        assert request.transfer_status == TransferStatus.UNRECORDED
        assert request.transfer_id == "tr_test_1"
        assert half_funded.milestones[0].status == MilestoneStatus.PENDING

        with pytest.raises(StateConflictError) as exc:
            protocol.approve_reject_fund_request(admin, request.id, ReviewAction.REJECT)
        assert "already transferred (tr_test_1)" in exc.value.message

        with pytest.raises(StateConflictError) as exc:
            protocol.submit_fund_unlock_request(artist, half_funded.id)
        assert exc.value.message == PENDING_REQUEST_MESSAGE

        approved = protocol.approve_reject_fund_request(admin, request.id, ReviewAction.APPROVE)

        assert approved.status == RequestStatus.APPROVED
        assert approved.transfer_id == "tr_test_1"
        assert {call["idempotency_key"] for call in gateway.calls} == {f"fund-unlock-{request.id}"}
        assert len(gateway.transfers) == 1
        transfers = db.query(Payment).filter(Payment.payment_type == PaymentType.MILESTONE_TRANSFER).all()
        assert [(p.amount, p.transfer_id) for p in transfers] == [(Decimal("3000.00"), "tr_test_1")]

    def test_approved_request_cannot_be_decided_again(self, protocol, artist, admin, half_funded):
        approved = approve_first_milestone(protocol, artist, admin, half_funded)

        with pytest.raises(StateConflictError) as exc:
            protocol.approve_reject_fund_request(admin, approved.id, ReviewAction.REJECT)
        assert "already been approved" in exc.value.message

    def test_reject_keeps_milestone_pending(self, db, protocol, gateway, artist, admin, half_funded):
        request = protocol.submit_fund_unlock_request(artist, half_funded.id)

        rejected = protocol.approve_reject_fund_request(
            admin, request.id, ReviewAction.REJECT, "Upload the studio invoice first"
        )

        db.refresh(half_funded)
        assert rejected.status == RequestStatus.REJECTED
        assert rejected.admin_response == "Upload the studio invoice first"
        assert half_funded.milestones[0].status == MilestoneStatus.PENDING
        assert gateway.calls == []

        # A rejected request no longer blocks a new one
        again = protocol.submit_fund_unlock_request(artist, half_funded.id)
        assert again.status == RequestStatus.PENDING

    def test_artist_without_payout_account(self, db, protocol, gateway, artist, admin, half_funded):
        request = protocol.submit_fund_unlock_request(artist, half_funded.id)
        artist.is_stripe_account_connected = False
        db.commit()

        with pytest.raises(StateConflictError):
            protocol.approve_reject_fund_request(admin, request.id, ReviewAction.APPROVE)
        assert gateway.calls == []


class TestMilestoneProofs:

    def test_proof_requires_released_milestone(self, protocol, artist, half_funded):
        with pytest.raises(StateConflictError):
            protocol.add_milestone_proof(
                artist, half_funded.id, half_funded.milestones[0].id, "Done", "proofs/a.pdf"
            )

    def test_duplicate_pending_proof_is_refused(self, protocol, artist, admin, half_funded):
        approve_first_milestone(protocol, artist, admin, half_funded)
        milestone = half_funded.milestones[0]
        protocol.add_milestone_proof(artist, half_funded.id, milestone.id, "Done", "proofs/a.pdf")

        with pytest.raises(StateConflictError):
            protocol.add_milestone_proof(artist, half_funded.id, milestone.id, "Done again", "proofs/b.pdf")

    def test_rejected_proof_can_be_resubmitted(self, db, protocol, artist, admin, half_funded):
        approve_first_milestone(protocol, artist, admin, half_funded)
        milestone = half_funded.milestones[0]
        proof = protocol.add_milestone_proof(artist, half_funded.id, milestone.id, "Done", "proofs/a.pdf")
        protocol.approve_reject_milestone_proof(admin, proof.id, ReviewAction.REJECT, "File is unreadable")

        resubmitted = protocol.add_milestone_proof(
            artist, half_funded.id, milestone.id, "Mixed and mastered", "proofs/b.pdf"
        )

        assert resubmitted.id == proof.id
        assert resubmitted.status == RequestStatus.PENDING
        assert resubmitted.proof == "proofs/b.pdf"
        assert resubmitted.admin_response is None
        assert db.query(MilestoneProof).count() == 1

    def test_rejected_proof_keeps_gate_closed(self, protocol, artist, admin, half_funded):
        approve_first_milestone(protocol, artist, admin, half_funded)
        milestone = half_funded.milestones[0]
        proof = protocol.add_milestone_proof(artist, half_funded.id, milestone.id, "Done", "proofs/a.pdf")
        protocol.approve_reject_milestone_proof(admin, proof.id, ReviewAction.REJECT)

        with pytest.raises(StateConflictError) as exc:
            protocol.submit_fund_unlock_request(artist, half_funded.id)
        assert "Proof of completion" in exc.value.message


class TestFundUnlockStatus:

    def test_status_before_any_request(self, protocol, artist, half_funded):
        status = protocol.get_fund_unlock_status(artist, half_funded.id).to_dict()

        assert status["has_pending_request"] is False
        assert status["threshold_met"] is True
        assert status["can_request_unlock"] is True
        assert status["target_milestone"]["order"] == 1
        assert status["funding_stats"]["funding_percentage"] == 50.0

    def test_status_reports_pending_request(self, protocol, artist, half_funded):
        request = protocol.submit_fund_unlock_request(artist, half_funded.id)

        status = protocol.get_fund_unlock_status(artist, half_funded.id).to_dict()

        assert status["has_pending_request"] is True
        assert status["pending_request"]["request_id"] == request.id
        assert status["can_request_unlock"] is False

    def test_status_reports_proof_gate_and_shortfall(self, protocol, artist, admin, half_funded):
        approve_first_milestone(protocol, artist, admin, half_funded)

        blocked = protocol.get_fund_unlock_status(artist, half_funded.id).to_dict()
        assert blocked["proof_required_for"]["name"] == "Recording"
        assert blocked["can_request_unlock"] is False

        approve_proof(protocol, artist, admin, half_funded, half_funded.milestones[0])
        short = protocol.get_fund_unlock_status(artist, half_funded.id).to_dict()
        assert short["proof_required_for"] is None
        assert short["next_milestone"]["name"] == "Marketing"
        assert short["shortfall"] == Decimal("5000.00")
        assert short["can_request_unlock"] is False
