"""Subscription model"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from billing.models.base import Base


class Subscription(Base):
    """Mirror of a Stripe subscription, keyed by the Stripe subscription id"""
    __tablename__ = "subscriptions"

    id = Column(String(255), primary_key=True)  # sub_...
    user_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(50), nullable=False)
    price_id = Column(String(255), nullable=False)
    current_period_start = Column(DateTime(timezone=True), nullable=False)
    current_period_end = Column(DateTime(timezone=True), nullable=False)
    trial_end = Column(DateTime(timezone=True), nullable=True)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    canceled_at = Column(DateTime(timezone=True), nullable=True)
    # Downgrade booked to take effect when the subscription schedule completes
    scheduled_price_id = Column(String(255), nullable=True)
    scheduled_change_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    user = relationship("UserProfile", back_populates="subscriptions")
