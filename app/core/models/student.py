"""Student belongs to one school (immutable) and at most one classroom (set through enrollment)."""
import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base, utcnow


class Student(Base):
    __tablename__ = "students"
    __table_args__ = (Index("ix_students_school_classroom", "school_id", "classroom_id"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("schools.id", ondelete="RESTRICT"), nullable=False)
    classroom_id = Column(Uuid, ForeignKey("classrooms.id", ondelete="RESTRICT"), nullable=True, index=True)
    name = Column(String(100), nullable=False)
    age = Column(Integer, nullable=True)
    enrollment_date = Column(DateTime(timezone=True), nullable=True)
    # {"photo": <uri>, "bio": <text>}
    profile = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    school = relationship("School", back_populates="students")
    classroom = relationship("Classroom", back_populates="students")
