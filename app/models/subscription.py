"""
Findly — Subscription Model
Stripe subscription tracking, one row per processor subscription.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Boolean

from app.core.database import Base


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(String(64), primary_key=True, default=lambda: uuid.uuid4().hex)
    plan = Column(String(50), nullable=False)  # e.g. plus-monthly
    reference_id = Column(String(255), nullable=False, index=True)  # user id
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    stripe_subscription_id = Column(String(255), unique=True, nullable=True)
    status = Column(String(50), default="incomplete", nullable=False)  # active, canceled, incomplete, past_due, ...
    period_start = Column(DateTime(timezone=True), nullable=True)
    period_end = Column(DateTime(timezone=True), nullable=True)
    cancel_at_period_end = Column(Boolean, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    def __repr__(self):
        return f"<Subscription(id='{self.id}', plan='{self.plan}', status='{self.status}')>"
