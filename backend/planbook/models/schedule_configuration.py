from datetime import date, datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from planbook.db.base import Base


class Weekday(str, Enum):
    Monday = "Monday"
    Tuesday = "Tuesday"
    Wednesday = "Wednesday"
    Thursday = "Thursday"
    Friday = "Friday"
    Saturday = "Saturday"
    Sunday = "Sunday"


class SpecialPeriodType(str, Enum):
    Lunch = "Lunch"
    HallDuty = "HallDuty"
    CafeteriaDuty = "CafeteriaDuty"
    StudyHall = "StudyHall"
    Prep = "Prep"
    OtherDuty = "OtherDuty"


DEFAULT_PERIOD_BACKGROUND = "#2196F3"
DEFAULT_PERIOD_FONT = "#FFFFFF"


class ScheduleConfiguration(Base):
    __tablename__ = "schedule_configurations"
    __table_args__ = (
        CheckConstraint("periods_per_day >= 1 AND periods_per_day <= 10", name="ck_schedule_configurations_periods"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    school_year: Mapped[str | None] = mapped_column(String(20), nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    periods_per_day: Mapped[int] = mapped_column(Integer, nullable=False, default=6)
    # Canonical weekday names, e.g. ["Monday", "Tuesday"].
    teaching_days: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    period_assignments: Mapped[list["PeriodAssignment"]] = relationship(
        back_populates="configuration",
        cascade="all, delete-orphan",
        order_by="PeriodAssignment.period",
    )


class PeriodAssignment(Base):
    __tablename__ = "period_assignments"
    __table_args__ = (
        UniqueConstraint("configuration_id", "period", name="uq_period_assignments_configuration_period"),
        CheckConstraint(
            "course_id IS NULL OR special_period_type IS NULL",
            name="ck_period_assignments_course_or_special",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    configuration_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("schedule_configurations.id", ondelete="CASCADE"), index=True, nullable=False
    )
    period: Mapped[int] = mapped_column(Integer, nullable=False)
    course_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("courses.id", ondelete="SET NULL"), nullable=True)
    special_period_type: Mapped[SpecialPeriodType | None] = mapped_column(
        SAEnum(SpecialPeriodType, name="special_period_type"), nullable=True
    )
    teaching_days: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    room: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    background_color: Mapped[str] = mapped_column(String(20), nullable=False, default=DEFAULT_PERIOD_BACKGROUND)
    font_color: Mapped[str] = mapped_column(String(20), nullable=False, default=DEFAULT_PERIOD_FONT)

    configuration: Mapped[ScheduleConfiguration] = relationship(back_populates="period_assignments")
