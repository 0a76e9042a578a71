# backoffice/models/class_model.py - Class sections scoped to one academic year
from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Integer, DateTime, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from backoffice.models.base import Base, utcnow


class ClassSection(Base):
    __tablename__ = "class_sections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    level_id: Mapped[int] = mapped_column(Integer, ForeignKey("levels.id", ondelete="RESTRICT"), nullable=False, index=True)
    academic_year_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("academic_years.id", ondelete="CASCADE"), nullable=False, index=True
    )
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    homeroom_teacher_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    supervisor_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    level: Mapped["Level"] = relationship("Level", back_populates="class_sections")
    academic_year: Mapped["AcademicYear"] = relationship("AcademicYear", back_populates="class_sections")
    enrollments: Mapped[list["Enrollment"]] = relationship("Enrollment", back_populates="class_section")

    __table_args__ = (
        Index("uq_class_section_name_per_year", "academic_year_id", "name", unique=True),
        CheckConstraint("capacity > 0", name="ck_class_section_capacity_positive"),
    )
