"""School-scoped classroom. school_id never changes after creation."""
import uuid

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base, utcnow


class Classroom(Base):
    __tablename__ = "classrooms"
    __table_args__ = (CheckConstraint("capacity >= 1", name="ck_classroom_capacity_positive"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("schools.id", ondelete="RESTRICT"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    capacity = Column(Integer, nullable=False)
    # Unique resource tags, e.g. ["projector", "lab equipment"]
    resources = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    school = relationship("School", back_populates="classrooms")
    students = relationship("Student", back_populates="classroom")
