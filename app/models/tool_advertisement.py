"""
Findly — ToolAdvertisement Model
Time-boxed paid placement: pending -> active -> expired.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship

from app.core.database import Base


class AdvertisementStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"


class AdvertisementPlacement(str, Enum):
    HOMEPAGE = "homepage"
    ALL = "all"


class ToolAdvertisement(Base):
    __tablename__ = "tool_advertisements"

    id = Column(String(64), primary_key=True, default=lambda: uuid.uuid4().hex)
    tool_id = Column(String(255), ForeignKey("tools.id", ondelete="CASCADE"), nullable=False, index=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False, index=True)
    placement = Column(
        SAEnum(AdvertisementPlacement, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    status = Column(
        SAEnum(AdvertisementStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        default=AdvertisementStatus.PENDING,
        nullable=False,
    )
    stripe_session_id = Column(String(255), nullable=True)
    total_price = Column(Integer, nullable=False)  # cents
    duration = Column(Integer, nullable=False)  # days
    discount_percentage = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    tool = relationship("Tool", back_populates="advertisements")

    def __repr__(self):
        return f"<ToolAdvertisement(id='{self.id}', tool_id='{self.tool_id}', status={self.status})>"
