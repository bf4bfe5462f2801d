import datetime as dt
from enum import Enum

from sqlalchemy import (
    JSON,
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
from planbook.models.course import Lesson


class SpecialDayType(str, Enum):
    Assembly = "Assembly"
    Testing = "Testing"
    Holiday = "Holiday"
    ProfessionalDevelopment = "ProfessionalDevelopment"
    FieldTrip = "FieldTrip"
    WeatherDelay = "WeatherDelay"
    EarlyDismissal = "EarlyDismissal"


class EventCategory(str, Enum):
    Lesson = "Lesson"
    SpecialPeriod = "SpecialPeriod"
    SpecialDay = "SpecialDay"


DEFAULT_SPECIAL_DAY_BACKGROUND = "#e74c3c"
DEFAULT_SPECIAL_DAY_FONT = "#FFFFFF"


class Schedule(Base):
    __tablename__ = "schedules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    configuration_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("schedule_configurations.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    events: Mapped[list["ScheduleEvent"]] = relationship(
        back_populates="schedule",
        cascade="all, delete-orphan",
        order_by=lambda: (ScheduleEvent.date, ScheduleEvent.period),
    )
    special_days: Mapped[list["SpecialDay"]] = relationship(
        back_populates="schedule",
        cascade="all, delete-orphan",
        order_by="SpecialDay.date",
    )


class SpecialDay(Base):
    __tablename__ = "special_days"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    schedule_id: Mapped[int] = mapped_column(Integer, ForeignKey("schedules.id", ondelete="CASCADE"), index=True, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    periods: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    event_type: Mapped[SpecialDayType] = mapped_column(SAEnum(SpecialDayType, name="special_day_type"), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    background_color: Mapped[str] = mapped_column(String(20), nullable=False, default=DEFAULT_SPECIAL_DAY_BACKGROUND)
    font_color: Mapped[str] = mapped_column(String(20), nullable=False, default=DEFAULT_SPECIAL_DAY_FONT)

    schedule: Mapped[Schedule] = relationship(back_populates="special_days")


class ScheduleEvent(Base):
    __tablename__ = "schedule_events"
    __table_args__ = (UniqueConstraint("schedule_id", "date", "period", name="uq_schedule_events_cell"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    schedule_id: Mapped[int] = mapped_column(Integer, ForeignKey("schedules.id", ondelete="CASCADE"), index=True, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    period: Mapped[int] = mapped_column(Integer, nullable=False)
    course_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("courses.id", ondelete="SET NULL"), nullable=True)
    lesson_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("lessons.id", ondelete="SET NULL"), nullable=True)
    special_day_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("special_days.id", ondelete="SET NULL"), nullable=True
    )
    # "Lesson", "Error", "Unassigned", a SpecialDayType or a SpecialPeriodType value.
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    event_category: Mapped[EventCategory | None] = mapped_column(
        SAEnum(EventCategory, name="event_category"), nullable=True
    )
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    schedule_sort: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    schedule: Mapped[Schedule] = relationship(back_populates="events")
    lesson: Mapped[Lesson | None] = relationship()
    special_day: Mapped[SpecialDay | None] = relationship()

    @property
    def title(self) -> str | None:
        if self.lesson is not None:
            return self.lesson.title
        if self.special_day is not None:
            return self.special_day.title
        return None
