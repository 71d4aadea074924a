import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base, utcnow


class User(Base):
    """API user. schooladmin users are bound to exactly one school; superadmin users to none."""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    username = Column(String(50), nullable=False, unique=True, index=True)
    password_hash = Column(Text, nullable=False)
    # superadmin | schooladmin
    role = Column(String(20), nullable=False)
    school_id = Column(Uuid, ForeignKey("schools.id", ondelete="RESTRICT"), nullable=True)
    # Only the most recently issued refresh token is honoured
    refresh_token = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    school = relationship("School")
