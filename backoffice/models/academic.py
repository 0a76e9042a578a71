# backoffice/models/academic.py - Academic years and levels
from __future__ import annotations
import enum
from datetime import date, datetime
from sqlalchemy import String, Integer, Boolean, Date, DateTime, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from backoffice.models.base import Base, utcnow


class YearStatus(str, enum.Enum):
    PLANNED = "planned"
    CURRENT = "current"
    FINISHED = "finished"
    ARCHIVED = "archived"

    @property
    def rank(self) -> int:
        return YEAR_STATUS_ORDER.index(self)

    def can_become(self, target: "YearStatus") -> bool:
        """Status only moves one step forward: planned -> current -> finished -> archived"""
        return target.rank == self.rank + 1


YEAR_STATUS_ORDER = [YearStatus.PLANNED, YearStatus.CURRENT, YearStatus.FINISHED, YearStatus.ARCHIVED]


class AcademicYear(Base):
    __tablename__ = "academic_years"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    label: Mapped[str] = mapped_column(String(64), nullable=False)  # "2024-2025"
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=YearStatus.PLANNED.value)
    # Persisted browsing preference, distinct from status == current
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    class_sections: Mapped[list["ClassSection"]] = relationship("ClassSection", back_populates="academic_year")
    fee_schedules: Mapped[list["FeeSchedule"]] = relationship("FeeSchedule", back_populates="academic_year")

    __table_args__ = (
        Index("uq_academic_year_label", "label", unique=True),
        CheckConstraint("status IN ('planned','current','finished','archived')", name="ck_academic_year_status"),
        CheckConstraint("end_date > start_date", name="ck_academic_year_dates"),
    )


class Level(Base):
    """Immutable reference data; order defines natural progression"""
    __tablename__ = "levels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    cycle: Mapped[str] = mapped_column(String(32), nullable=False)  # primaire, college, lycee
    order: Mapped[int] = mapped_column("level_order", Integer, nullable=False, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    class_sections: Mapped[list["ClassSection"]] = relationship("ClassSection", back_populates="level")

    __table_args__ = (
        Index("uq_level_name", "name", unique=True),
    )
