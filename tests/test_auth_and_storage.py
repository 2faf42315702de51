"""Tests for role resolution, entitlement and proof file storage."""

from datetime import datetime, timedelta
from unittest.mock import Mock

from botocore.exceptions import ClientError

from auth.decorators import get_user_type
from auth.dependencies import create_access_token, decode_access_token
from auth.roles import Permission, UserType, has_any_permission, has_permission
from core import file_store
from core.entitlement import has_active_entitlement
from database.models import SubscriptionStatus, User, UserRole
from database.models import UserType as StoredUserType


class TestRoles:

    def test_admin_has_every_permission(self):
        assert all(has_permission(UserType.ADMIN, p) for p in Permission)

    def test_investors_cannot_review(self):
        assert has_permission(UserType.FAN, Permission.INVEST)
        assert not has_any_permission(UserType.LABEL, [Permission.REVIEW_FUND_REQUESTS, Permission.RECORD_REVENUE])

    def test_artist_permissions(self):
        assert has_permission(UserType.ARTIST, Permission.REQUEST_FUND_UNLOCK)
        assert not has_permission(UserType.ARTIST, Permission.INVEST)

    def test_legacy_admin_role_wins(self):
        user = User(email="ops@example.com", role=UserRole.ADMIN, user_type=StoredUserType.FAN)

        assert get_user_type(user) == UserType.ADMIN

    def test_missing_type_defaults_to_fan(self):
        assert get_user_type(User(email="x@example.com", role=UserRole.USER)) == UserType.FAN


class TestTokens:

    def test_round_trip(self):
        token = create_access_token("luna@example.com")

        assert decode_access_token(token).email == "luna@example.com"

    def test_expired_and_garbage_tokens(self):
        expired = create_access_token("luna@example.com", expires_delta=timedelta(minutes=-5))

        assert decode_access_token(expired) is None
        assert decode_access_token("not-a-token") is None


class TestEntitlement:

    def test_active_pro_member(self):
        user = User(is_pro_member=True, subscription_status=SubscriptionStatus.ACTIVE)

        assert has_active_entitlement(user) is True

    def test_lapsed_subscription(self):
        user = User(
            is_pro_member=True,
            subscription_status=SubscriptionStatus.TRIAL,
            subscription_ends_at=datetime.utcnow() - timedelta(days=1),
        )

        assert has_active_entitlement(user) is False

    def test_not_a_pro_member(self):
        assert has_active_entitlement(User(is_pro_member=False, subscription_status=SubscriptionStatus.ACTIVE)) is False


class TestFileStore:

    def test_upload_proof_artifact(self):
        client = Mock()

        result = file_store.upload_proof_artifact(
            "campaign-1", b"%PDF-1.4", "session log.pdf", "application/pdf", client=client
        )

        assert result["object_key"].startswith("milestone-proofs/campaign-1/")
        assert result["object_key"].endswith("-session_log.pdf")
        assert result["file_size"] == 8
        client.put_object.assert_called_once()
        assert client.put_object.call_args.kwargs["ContentType"] == "application/pdf"

    def test_missing_bucket_is_created(self):
        client = Mock()
        client.head_bucket.side_effect = ClientError({"Error": {"Code": "404"}}, "HeadBucket")

        file_store.ensure_bucket_exists(client)

        client.create_bucket.assert_called_once_with(Bucket=file_store.STORAGE_BUCKET)
