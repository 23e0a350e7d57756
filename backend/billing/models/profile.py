"""UserProfile model"""
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from billing.models.base import Base


class UserProfile(Base):
    """User profile; billing owns only the subscription and credit fields"""
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=True, index=True)
    stripe_customer_id = Column(String(255), unique=True, nullable=True, index=True)
    subscription_status = Column(String(50), nullable=True)  # Stripe status: active, past_due, canceled, ...
    subscription_tier = Column(String(100), nullable=True)  # Plan display name
    subscription_credits_balance = Column(Integer, default=0, nullable=False)
    purchased_credits_balance = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    subscriptions = relationship("Subscription", back_populates="user", cascade="all, delete-orphan")
    credit_transactions = relationship("CreditTransaction", back_populates="user", cascade="all, delete-orphan")

    @property
    def total_credits_balance(self) -> int:
        return (self.subscription_credits_balance or 0) + (self.purchased_credits_balance or 0)
