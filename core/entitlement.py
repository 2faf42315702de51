# Subscription entitlement gate

from datetime import datetime

from database.models import User, SubscriptionStatus


def has_active_entitlement(user: User) -> bool:
    """True when the user holds a paid subscription that has not lapsed."""
    if not user.is_pro_member:
        return False
    if user.subscription_status not in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIAL):
        return False
    if user.subscription_ends_at and user.subscription_ends_at < datetime.utcnow():
        return False
    return True
