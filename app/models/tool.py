"""
Findly — Tool Model
A catalog entry. `origin` decides which lifecycle owns `featured`:
subscription tools follow the plan quota, advertisement tools follow
their campaign.
"""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Column, String, Boolean, DateTime, Text, ForeignKey
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship

from app.core.database import Base


class ToolOrigin(str, Enum):
    SUBSCRIPTION = "subscription"
    ADVERTISEMENT = "advertisement"


class Tool(Base):
    __tablename__ = "tools"

    id = Column(String(255), primary_key=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=False)
    url = Column(Text, nullable=False)
    logo_url = Column(Text, nullable=True)
    app_image_url = Column(Text, nullable=True)
    category = Column(String(100), nullable=True, index=True)
    featured = Column(Boolean, default=False, nullable=False)
    origin = Column(
        SAEnum(ToolOrigin, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        default=ToolOrigin.SUBSCRIPTION,
        nullable=False,
    )
    requires_subscription = Column(Boolean, default=True, nullable=False)
    boosted_from_id = Column(String(255), nullable=True)  # set on boost duplicates only
    promo_code = Column(String(100), nullable=True)
    promo_discount = Column(String(10), nullable=True)
    submitted_by = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    submitter = relationship("User", back_populates="tools")
    advertisements = relationship("ToolAdvertisement", back_populates="tool", cascade="all, delete-orphan")

    @property
    def is_advertisement(self) -> bool:
        return self.origin == ToolOrigin.ADVERTISEMENT

    def __repr__(self):
        return f"<Tool(id='{self.id}', slug='{self.slug}', origin={self.origin}, featured={self.featured})>"
