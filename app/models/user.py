"""
Findly — User Model
Only the columns the catalog needs; identity lives with the auth service.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, String, Boolean, DateTime, Text
from sqlalchemy.orm import relationship

from app.core.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(255), primary_key=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False, default="")
    role = Column(String(50), nullable=True)  # "admin" or None
    banned = Column(Boolean, default=False, nullable=False)
    ban_reason = Column(Text, nullable=True)
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    # Gates the once-a-month manual choice of featured tools
    last_tool_selection_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    tools = relationship("Tool", back_populates="submitter", cascade="all, delete-orphan")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def __repr__(self):
        return f"<User(id='{self.id}', email='{self.email}')>"
