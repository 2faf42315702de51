# Database Models for Encore Platform

from sqlalchemy import Column, String, DateTime, Enum, Boolean
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
import enum

Base = declarative_base()

def generate_uuid():
    return str(uuid.uuid4())

# Enums
class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    TRIAL = "trial"
    NONE = "none"

class UserRole(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"


class UserType(str, enum.Enum):
    ARTIST = "artist"
    LABEL = "label"
    FAN = "fan"
    ADMIN = "admin"


# Models
class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False, default="")
    name = Column(String(255))
    role = Column(Enum(UserRole, values_callable=lambda x: [e.value for e in x], name="userrole"), default=UserRole.USER)
    user_type = Column(Enum(UserType, values_callable=lambda x: [e.value for e in x], name="usertype"), default=UserType.FAN)
    subscription_status = Column(
        Enum(SubscriptionStatus, values_callable=lambda x: [e.value for e in x], name="subscriptionstatus"),
        default=SubscriptionStatus.NONE
    )
    is_pro_member = Column(Boolean, default=False)
    subscription_ends_at = Column(DateTime)

    # Stripe Connect payout destination
    stripe_connect_id = Column(String(255), unique=True)
    is_stripe_account_connected = Column(Boolean, default=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    campaigns = relationship("Campaign", back_populates="artist", foreign_keys="Campaign.artist_id")
    investments = relationship("Investment", back_populates="investor", foreign_keys="Investment.investor_id")
    streaming_accounts = relationship("StreamingAccount", back_populates="user", cascade="all, delete-orphan")

    @property
    def has_payout_destination(self):
        return bool(self.stripe_connect_id) and bool(self.is_stripe_account_connected)
