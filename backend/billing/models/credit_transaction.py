"""CreditTransaction model"""
from sqlalchemy import Column, Integer, String, ForeignKey, Index, DateTime, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from billing.models.base import Base


class CreditTransaction(Base):
    """Append-only credit ledger"""
    __tablename__ = "credit_transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # Positive for grants, negative for clawbacks
    transaction_type = Column(String(50), nullable=False)  # 'subscription', 'purchase', 'bonus', 'clawback'
    reference_id = Column(String(255), nullable=True)  # invoice_<id>, session_<id>, <ref>_clawback
    description = Column(Text, nullable=True)
    balance_after = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False, index=True)

    # Relationships
    user = relationship("UserProfile", back_populates="credit_transactions")

    __table_args__ = (
        UniqueConstraint('user_id', 'reference_id', 'transaction_type', name='uq_credit_transactions_user_ref_type'),
        Index('ix_credit_transactions_user_created', 'user_id', 'created_at'),
        Index('ix_credit_transactions_reference', 'reference_id'),
    )
