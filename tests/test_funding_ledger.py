"""Tests for FundingLedger: derived totals, the funding cap and reconciliation."""

from decimal import Decimal

import pytest

from database.funding_models import Payment, PaymentStatus, PaymentType
from services.errors import NotFoundError, StateConflictError, ValidationError
from services.funding_ledger import FundingLedger, FundingStats, format_amount, to_money


@pytest.fixture
def ledger(db):
    return FundingLedger(db)


@pytest.fixture
def campaign(make_campaign, artist):
    return make_campaign(artist)


class TestMoneyHelpers:

    def test_to_money_rounds_half_up(self):
        assert to_money("10.005") == Decimal("10.01")
        assert to_money(None) == Decimal("0.00")

    def test_format_amount_drops_zero_cents(self):
        assert format_amount(Decimal("5000.00")) == "5000"
        assert format_amount("12.5") == "12.50"


class TestTotals:

    def test_empty_campaign(self, ledger, campaign):
        stats = ledger.funding_stats(campaign)

        assert stats.total_raised == Decimal("0.00")
        assert stats.funding_percentage == 0
        assert stats.remaining_capacity == Decimal("10000.00")
        assert stats.investor_count == 0

    def test_only_successful_contributions_count(self, db, ledger, campaign, contribute, artist):
        contribute(campaign, "1500")
        contribute(campaign, "1000", status=PaymentStatus.FAILED)
        db.add(Payment(
            campaign_id=campaign.id,
            user_id=artist.id,
            amount=Decimal("3000"),
            payment_type=PaymentType.MILESTONE_TRANSFER,
            status=PaymentStatus.SUCCESS,
        ))
        db.commit()

        assert ledger.total_raised(campaign.id) == Decimal("1500.00")
        assert ledger.investor_count(campaign.id) == 1

    def test_investor_count_is_distinct(self, ledger, campaign, contribute, fan):
        contribute(campaign, "100", investor=fan)
        contribute(campaign, "200", investor=fan)
        contribute(campaign, "300")

        assert ledger.investor_count(campaign.id) == 2

    def test_display_percentage_is_clamped(self):
        stats = FundingStats(
            total_raised=Decimal("12000"),
            funding_goal=Decimal("10000"),
            funding_percentage=Decimal("120"),
            remaining_capacity=Decimal("0"),
            investor_count=3,
        )

        assert stats.display_percentage == 100.0
        assert stats.to_dict()["funding_percentage"] == 120.0


class TestRecordContribution:

    def test_contribution_up_to_goal_is_accepted(self, ledger, campaign, contribute):
        contribute(campaign, "6000")
        contribute(campaign, "4000")

        assert ledger.remaining_capacity(campaign) == Decimal("0.00")

    def test_contribution_after_goal_reached_is_rejected(self, ledger, campaign, contribute, fan):
        contribute(campaign, "10000")

        with pytest.raises(StateConflictError) as exc:
            ledger.record_contribution(campaign.id, fan.id, "1")
        assert exc.value.message == "Funding goal already reached"

    def test_contribution_over_remaining_capacity_is_rejected(self, ledger, campaign, contribute, fan):
        contribute(campaign, "9000")

        with pytest.raises(StateConflictError) as exc:
            ledger.record_contribution(campaign.id, fan.id, "1500")
        assert exc.value.message == "Investment amount exceeds remaining funding capacity. Maximum: 1000"

    def test_failed_contribution_bypasses_cap(self, ledger, campaign, contribute, fan):
        contribute(campaign, "10000")

        payment = ledger.record_contribution(campaign.id, fan.id, "50", PaymentStatus.FAILED)

        assert payment.status == PaymentStatus.FAILED
        assert ledger.total_raised(campaign.id) == Decimal("10000.00")

    @pytest.mark.parametrize("amount", ["0", "-5"])
    def test_non_positive_amount(self, ledger, campaign, fan, amount):
        with pytest.raises(ValidationError):
            ledger.record_contribution(campaign.id, fan.id, amount)

    def test_unknown_campaign(self, ledger, fan):
        with pytest.raises(NotFoundError):
            ledger.record_contribution("missing", fan.id, "10")


class TestReconcileContributionStatus:

    def test_failed_payment_becomes_success(self, ledger, campaign, contribute):
        contribute(campaign, "500", status=PaymentStatus.FAILED, transaction_id="ch_1")

        payment = ledger.reconcile_contribution_status("ch_1", PaymentStatus.SUCCESS)

        assert payment.status == PaymentStatus.SUCCESS
        assert ledger.total_raised(campaign.id) == Decimal("500.00")

    def test_success_becomes_failed(self, ledger, campaign, contribute):
        contribute(campaign, "500", transaction_id="ch_2")

        ledger.reconcile_contribution_status("ch_2", PaymentStatus.FAILED)

        assert ledger.total_raised(campaign.id) == Decimal("0.00")

    def test_reconcile_refuses_to_overshoot_goal(self, ledger, campaign, contribute):
        contribute(campaign, "500", status=PaymentStatus.FAILED, transaction_id="ch_3")
        contribute(campaign, "10000")

        with pytest.raises(StateConflictError):
            ledger.reconcile_contribution_status("ch_3", PaymentStatus.SUCCESS)
        assert ledger.total_raised(campaign.id) == Decimal("10000.00")

    def test_unknown_transaction(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.reconcile_contribution_status("ch_missing", PaymentStatus.SUCCESS)
