"""Tenant root. Classrooms and students hang off a school through school_id."""
import uuid

from sqlalchemy import JSON, Column, DateTime, String, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base, utcnow


class School(Base):
    __tablename__ = "schools"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False, index=True)
    address = Column(String(200), nullable=True)
    contact_email = Column(String(100), nullable=True)
    phone = Column(String(20), nullable=True)
    # {"logo": <uri>, "description": <text>}
    profile = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    classrooms = relationship("Classroom", back_populates="school")
    students = relationship("Student", back_populates="school")
