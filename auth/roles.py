# Role-Based Access Control for Encore Platform
# This module defines user roles and permissions for the funding platform

from enum import Enum
from typing import List, Set


class UserType(str, Enum):
    """User types on the platform."""
    ARTIST = "artist"
    LABEL = "label"
    FAN = "fan"
    ADMIN = "admin"


class Permission(str, Enum):
    """Fine-grained permissions for the platform."""

    # Artist permissions
    CREATE_CAMPAIGNS = "create_campaigns"
    MANAGE_OWN_CAMPAIGNS = "manage_own_campaigns"
    REQUEST_FUND_UNLOCK = "request_fund_unlock"
    SUBMIT_MILESTONE_PROOF = "submit_milestone_proof"

    # Investor permissions
    INVEST = "invest"
    VIEW_OWN_INVESTMENTS = "view_own_investments"

    # Common permissions
    VIEW_CAMPAIGNS = "view_campaigns"

    # Admin permissions
    REVIEW_CAMPAIGNS = "review_campaigns"
    REVIEW_FUND_REQUESTS = "review_fund_requests"
    REVIEW_MILESTONE_PROOFS = "review_milestone_proofs"
    RECORD_REVENUE = "record_revenue"


INVESTOR_PERMISSIONS: Set[Permission] = {
    Permission.INVEST,
    Permission.VIEW_OWN_INVESTMENTS,
    Permission.VIEW_CAMPAIGNS,
}

# Role to permissions mapping
ROLE_PERMISSIONS: dict[UserType, Set[Permission]] = {
    UserType.ARTIST: {
        Permission.CREATE_CAMPAIGNS,
        Permission.MANAGE_OWN_CAMPAIGNS,
        Permission.REQUEST_FUND_UNLOCK,
        Permission.SUBMIT_MILESTONE_PROOF,
        Permission.VIEW_CAMPAIGNS,
    },

    UserType.LABEL: set(INVESTOR_PERMISSIONS),

    UserType.FAN: set(INVESTOR_PERMISSIONS),

    UserType.ADMIN: {
        # Admin has ALL permissions
        *Permission.__members__.values()
    },
}


def get_permissions_for_role(user_type: UserType) -> Set[Permission]:
    """Get all permissions for a given user type."""
    return ROLE_PERMISSIONS.get(user_type, set())


def has_permission(user_type: UserType, permission: Permission) -> bool:
    """Check if a user type has a specific permission."""
    return permission in get_permissions_for_role(user_type)


def has_any_permission(user_type: UserType, permissions: List[Permission]) -> bool:
    """Check if a user type has any of the given permissions."""
    user_permissions = get_permissions_for_role(user_type)
    return any(p in user_permissions for p in permissions)
