# Milestone Unlock Protocol
# Ordered, proof-gated release of pooled investor funds to the artist.
#
# Request:  pending -> approved | rejected
# Proof:    pending -> approved | rejected, rejected -> pending (resubmission)
# Milestone: pending -> approved, only through Campaign.approve_milestone

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional
import logging

from sqlalchemy import and_, desc, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config.app_config import TRANSFER_RESERVATION_TIMEOUT_SECONDS, UNLOCK_FUNDING_THRESHOLD_PERCENT
from core.payment_gateway import PaymentGateway, get_payment_gateway
from database.models import User
from database.funding_models import (
    Campaign, CampaignStatus, Milestone, MilestoneStatus, FundUnlockRequest, MilestoneProof,
    RequestStatus, TransferStatus, Payment, PaymentType, PaymentStatus
)
from schemas.funding import ReviewAction
from services.campaign_service import check_milestone_invariant
from services.errors import (
    ValidationError, NotFoundError, AuthorizationError, StateConflictError
)
from services.funding_ledger import FundingLedger, FundingStats, ZERO, format_amount, to_money

logger = logging.getLogger(__name__)

PENDING_REQUEST_MESSAGE = "A fund unlock request is already pending for this campaign"


@dataclass
class UnlockGate:
    """Where a campaign stands against each unlock precondition."""
    last_approved: Optional[Milestone]
    proof_blocking: Optional[Milestone]
    next_milestone: Optional[Milestone]
    amount_needed: Optional[Decimal]
    shortfall: Decimal
    target: Optional[Milestone]


@dataclass
class UnlockStatus:
    campaign_id: str
    pending_request: Optional[FundUnlockRequest]
    funding: FundingStats
    gate: UnlockGate
    threshold_met: bool
    can_request_unlock: bool

    def to_dict(self) -> dict:
        gate = self.gate
        return {
            "campaign_id": self.campaign_id,
            "has_pending_request": self.pending_request is not None,
            "pending_request": {
                "request_id": self.pending_request.id,
                "milestone_id": self.pending_request.milestone_id,
                "status": self.pending_request.status.value,
                "transfer_status": self.pending_request.transfer_status.value
                if self.pending_request.transfer_status else None,
                "requested_at": self.pending_request.requested_at,
            } if self.pending_request else None,
            "funding_stats": self.funding.to_dict(),
            "threshold_met": self.threshold_met,
            "proof_required_for": _milestone_ref(gate.proof_blocking),
            "next_milestone": _milestone_ref(gate.next_milestone),
            "amount_needed": gate.amount_needed,
            "shortfall": gate.shortfall,
            "target_milestone": _milestone_ref(gate.target),
            "can_request_unlock": self.can_request_unlock,
        }


def _milestone_ref(milestone: Optional[Milestone]) -> Optional[dict]:
    if milestone is None:
        return None
    return {
        "id": milestone.id,
        "name": milestone.name,
        "order": milestone.order,
        "amount": milestone.amount,
        "status": milestone.status.value,
    }


class MilestoneUnlockProtocol:

    def __init__(self, db: Session, gateway: Optional[PaymentGateway] = None,
                 threshold_percent: float = UNLOCK_FUNDING_THRESHOLD_PERCENT,
                 reservation_timeout: float = TRANSFER_RESERVATION_TIMEOUT_SECONDS):
        self.db = db
        self.gateway = gateway or get_payment_gateway()
        self.threshold = Decimal(str(threshold_percent))
        self.reservation_timeout = reservation_timeout
        self.ledger = FundingLedger(db)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _owned_campaign(self, artist: User, campaign_id: str, action: str) -> Campaign:
        campaign = self.db.query(Campaign).filter(
            Campaign.id == campaign_id,
            Campaign.is_deleted.is_(False)
        ).first()
        if not campaign:
            raise NotFoundError("Campaign not found")
        if campaign.artist_id != artist.id:
            raise AuthorizationError(f"You can only {action} for your own campaigns")
        return campaign

    def _pending_request(self, campaign_id: str) -> Optional[FundUnlockRequest]:
        return self.db.query(FundUnlockRequest).filter(
            FundUnlockRequest.campaign_id == campaign_id,
            FundUnlockRequest.status == RequestStatus.PENDING
        ).first()

    def _has_approved_proof(self, campaign_id: str, milestone_id: str) -> bool:
        return self.db.query(MilestoneProof.id).filter(
            MilestoneProof.campaign_id == campaign_id,
            MilestoneProof.milestone_id == milestone_id,
            MilestoneProof.status == RequestStatus.APPROVED
        ).first() is not None

    def evaluate_gate(self, campaign: Campaign, funding: FundingStats) -> UnlockGate:
        last_approved = campaign.last_approved_milestone()

        proof_blocking = None
        if last_approved is not None and not self._has_approved_proof(campaign.id, last_approved.id):
            proof_blocking = last_approved

        next_milestone = None
        amount_needed = None
        shortfall = ZERO
        if last_approved is not None and proof_blocking is None:
            next_milestone = campaign.next_milestone_after(last_approved)
            if next_milestone is not None:
                amount_needed = to_money(campaign.amount_through(next_milestone))
                shortfall = max(ZERO, amount_needed - funding.total_raised)

        # First unapproved milestone whose own share of the goal is covered
        target = None
        goal = funding.funding_goal
        for milestone in campaign.milestones:
            if milestone.status == MilestoneStatus.APPROVED:
                continue
            threshold = to_money(milestone.amount) * 100 / goal if goal > 0 else Decimal(0)
            if threshold <= funding.funding_percentage:
                target = milestone
                break

        return UnlockGate(
            last_approved=last_approved,
            proof_blocking=proof_blocking,
            next_milestone=next_milestone,
            amount_needed=amount_needed,
            shortfall=shortfall,
            target=target,
        )

    # ------------------------------------------------------------------
    # Artist: fund unlock requests
    # ------------------------------------------------------------------

    def submit_fund_unlock_request(self, artist: User, campaign_id: str) -> FundUnlockRequest:
        campaign = self._owned_campaign(artist, campaign_id, "submit fund unlock requests")
        if campaign.status != CampaignStatus.ACTIVE:
            raise StateConflictError("Fund unlock requests can only be submitted for active campaigns")
        if not campaign.milestones:
            raise StateConflictError("Campaign must have milestones to submit fund unlock requests")
        check_milestone_invariant(campaign)

        if self._pending_request(campaign.id) is not None:
            raise StateConflictError(PENDING_REQUEST_MESSAGE)

        funding = self.ledger.funding_stats(campaign)
        if funding.funding_percentage < self.threshold:
            raise StateConflictError(
                f"Fund unlock requests can only be submitted when the campaign reaches "
                f"{format_amount(self.threshold)}% of its funding goal "
                f"(currently {round(float(funding.funding_percentage), 2)}%)"
            )

        gate = self.evaluate_gate(campaign, funding)
        if gate.proof_blocking is not None:
            raise StateConflictError(
                f"Proof of completion for milestone '{gate.proof_blocking.name}' must be "
                f"approved before requesting more funds"
            )
        if gate.next_milestone is not None and gate.shortfall > 0:
            raise StateConflictError(
                f"Insufficient funds for milestone '{gate.next_milestone.name}': "
                f"need {format_amount(gate.shortfall)} more"
            )
        if gate.target is None:
            raise StateConflictError("No milestone is available for unlock at current funding level")

        request = FundUnlockRequest(
            campaign_id=campaign.id,
            artist_id=artist.id,
            milestone_id=gate.target.id,
            status=RequestStatus.PENDING,
        )
        self.db.add(request)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost the race against a concurrent submission
            self.db.rollback()
            raise StateConflictError(PENDING_REQUEST_MESSAGE)

        self.db.refresh(request)
        logger.info(
            f"Fund unlock request {request.id} submitted for campaign {campaign.id}, "
            f"milestone '{gate.target.name}' ({format_amount(gate.target.amount)})"
        )
        return request

    def get_fund_unlock_status(self, artist: User, campaign_id: str) -> UnlockStatus:
        """Live view of unlock eligibility. Nothing here is cached or stored."""
        campaign = self._owned_campaign(artist, campaign_id, "check fund unlock requests")
        pending = self._pending_request(campaign.id)
        funding = self.ledger.funding_stats(campaign)
        gate = self.evaluate_gate(campaign, funding)
        threshold_met = funding.funding_percentage >= self.threshold

        can_request = (
            campaign.status == CampaignStatus.ACTIVE
            and pending is None
            and threshold_met
            and gate.proof_blocking is None
            and not (gate.next_milestone is not None and gate.shortfall > 0)
            and gate.target is not None
        )
        return UnlockStatus(
            campaign_id=campaign.id,
            pending_request=pending,
            funding=funding,
            gate=gate,
            threshold_met=threshold_met,
            can_request_unlock=can_request,
        )

    # ------------------------------------------------------------------
    # Admin: approve / reject fund requests
    # ------------------------------------------------------------------

    def get_fund_request(self, request_id: str) -> FundUnlockRequest:
        request = self.db.query(FundUnlockRequest).filter(FundUnlockRequest.id == request_id).first()
        if not request:
            raise NotFoundError("Fund unlock request not found")
        return request

    def _rejectable(self, request_id: str):
        # No transfer has been issued, or the last attempt failed before any money moved
        return self.db.query(FundUnlockRequest).filter(
            FundUnlockRequest.id == request_id,
            FundUnlockRequest.status == RequestStatus.PENDING,
            FundUnlockRequest.transfer_id.is_(None),
            or_(
                FundUnlockRequest.transfer_status.is_(None),
                FundUnlockRequest.transfer_status == TransferStatus.FAILED
            )
        )

    def _reservable(self, request_id: str, now: datetime):
        stale_before = now - timedelta(seconds=self.reservation_timeout)
        return self.db.query(FundUnlockRequest).filter(
            FundUnlockRequest.id == request_id,
            FundUnlockRequest.status == RequestStatus.PENDING,
            or_(
                FundUnlockRequest.transfer_status.is_(None),
                FundUnlockRequest.transfer_status.in_([TransferStatus.FAILED, TransferStatus.UNRECORDED]),
                and_(
                    FundUnlockRequest.transfer_status == TransferStatus.IN_PROGRESS,
                    or_(
                        FundUnlockRequest.reserved_at.is_(None),
                        FundUnlockRequest.reserved_at < stale_before
                    )
                )
            )
        )

    def approve_reject_fund_request(self, admin: User, request_id: str, action: ReviewAction,
                                    admin_response: Optional[str] = None) -> FundUnlockRequest:
        request = self.get_fund_request(request_id)
        if request.status != RequestStatus.PENDING:
            raise StateConflictError(f"Fund unlock request has already been {request.status.value}")

        if action == ReviewAction.REJECT:
            return self._reject_request(admin, request, admin_response)
        return self._approve_request(admin, request, admin_response)

    def _reject_request(self, admin, request, admin_response):
        updated = self._rejectable(request.id).update({
            FundUnlockRequest.status: RequestStatus.REJECTED,
            FundUnlockRequest.responded_at: datetime.utcnow(),
            FundUnlockRequest.admin_id: admin.id,
            FundUnlockRequest.admin_response: admin_response,
        }, synchronize_session=False)
        self.db.commit()
        if updated == 0:
            self.db.refresh(request)
            if request.transfer_id:
                raise StateConflictError(
                    f"Funds were already transferred ({request.transfer_id}); "
                    f"the request can only be approved"
                )
            raise StateConflictError("Fund unlock request is no longer pending or a transfer is in progress")

        self.db.refresh(request)
        logger.info(f"Fund unlock request {request.id} rejected by admin {admin.id}")
        return request

    def _approve_request(self, admin, request, admin_response):
        campaign = request.campaign
        artist = request.artist
        if not artist.has_payout_destination:
            raise StateConflictError("Artist has not connected a verified payout account")

        milestone = campaign.milestone_by_id(request.milestone_id)
        if milestone is None:
            raise NotFoundError("Milestone not found in this campaign")
        if milestone.status == MilestoneStatus.APPROVED:
            raise StateConflictError(f"Milestone '{milestone.name}' is already approved")
        check_milestone_invariant(campaign)

        amount = to_money(milestone.amount)
        destination = artist.stripe_connect_id
        request_id = request.id

        # Phase 1: reserve the request so no other admin can act on it
        now = datetime.utcnow()
        reserved = self._reservable(request_id, now).update({
            FundUnlockRequest.transfer_status: TransferStatus.IN_PROGRESS,
            FundUnlockRequest.reserved_at: now,
        }, synchronize_session=False)
        self.db.commit()
        if reserved == 0:
            raise StateConflictError("Fund unlock request is already being processed")

        # Phase 2: external transfer, deduplicated by request id
        try:
            transfer = self.gateway.create_transfer(
                destination,
                amount,
                idempotency_key=f"fund-unlock-{request_id}",
                metadata={
                    "campaign_id": campaign.id,
                    "milestone_id": milestone.id,
                    "fund_unlock_request_id": request_id,
                },
            )
        except Exception as e:
            self._release_reservation(request_id, TransferStatus.FAILED, str(e))
            logger.warning(f"Transfer for fund unlock request {request_id} failed: {e}")
            raise

        # Phase 3: finalize ledger entry, milestone and request together
        try:
            request = self.get_fund_request(request_id)
            campaign = request.campaign
            campaign.approve_milestone(milestone.id)
            self.db.add(Payment(
                campaign_id=campaign.id,
                user_id=artist.id,
                amount=amount,
                payment_type=PaymentType.MILESTONE_TRANSFER,
                status=PaymentStatus.SUCCESS,
                transfer_id=transfer.id,
                milestone_id=milestone.id,
                fund_unlock_request_id=request_id,
                description=f"Milestone transfer: {milestone.name}",
            ))
            request.status = RequestStatus.APPROVED
            request.transfer_status = TransferStatus.SUCCEEDED
            request.transfer_id = transfer.id
            request.transfer_error = None
            request.reserved_at = None
            request.responded_at = datetime.utcnow()
            request.admin_id = admin.id
            request.admin_response = admin_response
            self.db.commit()
        except Exception as e:
            # Money has moved: keep the transfer id so only an approve retry, with the same key, is possible
            self._release_reservation(
                request_id, TransferStatus.UNRECORDED,
                f"Finalization failed after transfer {transfer.id}: {e}",
                transfer_id=transfer.id,
            )
            logger.error(f"Fund unlock request {request_id} not finalized after transfer {transfer.id}: {e}")
            raise

        self.db.refresh(request)
        logger.info(
            f"Fund unlock request {request_id} approved by admin {admin.id}: "
            f"transferred {format_amount(amount)} for milestone '{milestone.name}' ({transfer.id})"
        )
        return request

    def _release_reservation(self, request_id: str, transfer_status: TransferStatus, error: str,
                             transfer_id: Optional[str] = None):
        self.db.rollback()
        values = {
            FundUnlockRequest.transfer_status: transfer_status,
            FundUnlockRequest.transfer_error: error[:1000],
            FundUnlockRequest.reserved_at: None,
        }
        if transfer_id:
            values[FundUnlockRequest.transfer_id] = transfer_id
        self.db.query(FundUnlockRequest).filter(
            FundUnlockRequest.id == request_id,
            FundUnlockRequest.transfer_status == TransferStatus.IN_PROGRESS
        ).update(values, synchronize_session=False)
        self.db.commit()

    def list_fund_unlock_requests(self, status: Optional[RequestStatus] = None,
                                  page: int = 1, limit: int = 20) -> dict:
        query = self.db.query(FundUnlockRequest)
        if status:
            query = query.filter(FundUnlockRequest.status == status)
        query = query.order_by(desc(FundUnlockRequest.requested_at))

        total = query.count()
        requests = query.offset((page - 1) * limit).limit(limit).all()
        return {
            "items": requests,
            "total": total,
            "page": page,
            "pages": (total + limit - 1) // limit
        }

    def fund_request_details(self, request_id: str) -> dict:
        request = self.get_fund_request(request_id)
        campaign = request.campaign
        return {
            "request": request,
            "campaign": campaign,
            "milestone": _milestone_ref(campaign.milestone_by_id(request.milestone_id)),
            "funding_stats": self.ledger.funding_stats(campaign).to_dict(),
            "artist_payout_connected": request.artist.has_payout_destination,
        }

    # ------------------------------------------------------------------
    # Milestone proofs
    # ------------------------------------------------------------------

    def add_milestone_proof(self, artist: User, campaign_id: str, milestone_id: str,
                            description: str, proof: str) -> MilestoneProof:
        if not description or not proof:
            raise ValidationError("Description and proof are required")

        campaign = self._owned_campaign(artist, campaign_id, "submit milestone proofs")
        milestone = campaign.milestone_by_id(milestone_id)
        if milestone is None:
            raise NotFoundError("Milestone not found in this campaign")
        if milestone.status != MilestoneStatus.APPROVED:
            raise StateConflictError("Proof can only be submitted for milestones whose funds were released")

        existing = self.db.query(MilestoneProof).filter(
            MilestoneProof.campaign_id == campaign.id,
            MilestoneProof.milestone_id == milestone.id
        ).first()

        if existing is None:
            record = MilestoneProof(
                campaign_id=campaign.id,
                artist_id=artist.id,
                milestone_id=milestone.id,
                description=description,
                proof=proof,
                status=RequestStatus.PENDING,
            )
            self.db.add(record)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                raise StateConflictError("A proof for this milestone is already pending review")
            self.db.refresh(record)
            logger.info(f"Proof {record.id} submitted for milestone '{milestone.name}' of campaign {campaign.id}")
            return record

        if existing.status == RequestStatus.PENDING:
            raise StateConflictError("A proof for this milestone is already pending review")
        if existing.status == RequestStatus.APPROVED:
            raise StateConflictError("Proof for this milestone has already been approved")

        # Rejected proofs are resubmitted in place
        updated = self.db.query(MilestoneProof).filter(
            MilestoneProof.id == existing.id,
            MilestoneProof.status == RequestStatus.REJECTED
        ).update({
            MilestoneProof.description: description,
            MilestoneProof.proof: proof,
            MilestoneProof.status: RequestStatus.PENDING,
            MilestoneProof.admin_id: None,
            MilestoneProof.admin_response: None,
            MilestoneProof.reviewed_at: None,
            MilestoneProof.submitted_at: datetime.utcnow(),
        }, synchronize_session=False)
        self.db.commit()
        if updated == 0:
            raise StateConflictError("A proof for this milestone is already pending review")

        self.db.refresh(existing)
        logger.info(f"Proof {existing.id} resubmitted for milestone '{milestone.name}'")
        return existing

    def get_milestone_proof(self, proof_id: str) -> MilestoneProof:
        proof = self.db.query(MilestoneProof).filter(MilestoneProof.id == proof_id).first()
        if not proof:
            raise NotFoundError("Milestone proof not found")
        return proof

    def approve_reject_milestone_proof(self, admin: User, proof_id: str, action: ReviewAction,
                                       admin_response: Optional[str] = None) -> MilestoneProof:
        proof = self.get_milestone_proof(proof_id)
        if proof.status != RequestStatus.PENDING:
            raise StateConflictError(f"Milestone proof has already been {proof.status.value}")

        new_status = RequestStatus.APPROVED if action == ReviewAction.APPROVE else RequestStatus.REJECTED
        updated = self.db.query(MilestoneProof).filter(
            MilestoneProof.id == proof.id,
            MilestoneProof.status == RequestStatus.PENDING
        ).update({
            MilestoneProof.status: new_status,
            MilestoneProof.admin_id: admin.id,
            MilestoneProof.admin_response: admin_response,
            MilestoneProof.reviewed_at: datetime.utcnow(),
        }, synchronize_session=False)
        self.db.commit()
        if updated == 0:
            raise StateConflictError("Milestone proof is no longer pending")

        self.db.refresh(proof)
        logger.info(f"Milestone proof {proof.id} {new_status.value} by admin {admin.id}")
        return proof

    def list_milestone_proofs(self, status: Optional[RequestStatus] = None,
                              page: int = 1, limit: int = 20) -> dict:
        query = self.db.query(MilestoneProof)
        if status:
            query = query.filter(MilestoneProof.status == status)
        query = query.order_by(desc(MilestoneProof.submitted_at))

        total = query.count()
        proofs = query.offset((page - 1) * limit).limit(limit).all()
        return {
            "items": proofs,
            "total": total,
            "page": page,
            "pages": (total + limit - 1) // limit
        }

    def milestone_proof_details(self, proof_id: str) -> dict:
        proof = self.get_milestone_proof(proof_id)
        return {
            "proof": proof,
            "campaign": proof.campaign,
            "milestone": _milestone_ref(proof.milestone),
        }

    def list_milestone_proofs_for_campaign(self, artist: User, campaign_id: str):
        campaign = self._owned_campaign(artist, campaign_id, "view milestone proofs")
        return self.db.query(MilestoneProof).filter(
            MilestoneProof.campaign_id == campaign.id
        ).order_by(desc(MilestoneProof.submitted_at)).all()
