"""create planbook tables

Revision ID: 20261017_0001
Revises: None
Create Date: 2026-10-17 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None


special_period_type_enum = sa.Enum(
    "Lunch", "HallDuty", "CafeteriaDuty", "StudyHall", "Prep", "OtherDuty", name="special_period_type"
)
special_day_type_enum = sa.Enum(
    "Assembly",
    "Testing",
    "Holiday",
    "ProfessionalDevelopment",
    "FieldTrip",
    "WeatherDelay",
    "EarlyDismissal",
    name="special_day_type",
)
event_category_enum = sa.Enum("Lesson", "SpecialPeriod", "SpecialDay", name="event_category")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "courses",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_courses_user_id", "courses", ["user_id"])

    op.create_table(
        "topics",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )
    op.create_index("ix_topics_course_id", "topics", ["course_id"])

    op.create_table(
        "sub_topics",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("topic_id", sa.Integer(), sa.ForeignKey("topics.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )
    op.create_index("ix_sub_topics_topic_id", "sub_topics", ["topic_id"])

    op.create_table(
        "lessons",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("topic_id", sa.Integer(), sa.ForeignKey("topics.id", ondelete="CASCADE"), nullable=True),
        sa.Column("sub_topic_id", sa.Integer(), sa.ForeignKey("sub_topics.id", ondelete="CASCADE"), nullable=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("objective", sa.Text(), nullable=True),
        sa.Column("methods", sa.Text(), nullable=True),
        sa.Column("materials", sa.Text(), nullable=True),
        sa.Column("assessment", sa.Text(), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "(topic_id IS NOT NULL AND sub_topic_id IS NULL) OR (topic_id IS NULL AND sub_topic_id IS NOT NULL)",
            name="ck_lessons_single_container",
        ),
    )
    op.create_index("ix_lessons_user_id", "lessons", ["user_id"])
    op.create_index("ix_lessons_topic_id", "lessons", ["topic_id"])
    op.create_index("ix_lessons_sub_topic_id", "lessons", ["sub_topic_id"])

    op.create_table(
        "schedule_configurations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("school_year", sa.String(length=20), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("periods_per_day", sa.Integer(), nullable=False, server_default="6"),
        sa.Column("teaching_days", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "periods_per_day >= 1 AND periods_per_day <= 10", name="ck_schedule_configurations_periods"
        ),
    )
    op.create_index("ix_schedule_configurations_user_id", "schedule_configurations", ["user_id"])

    op.create_table(
        "period_assignments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "configuration_id",
            sa.Integer(),
            sa.ForeignKey("schedule_configurations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("period", sa.Integer(), nullable=False),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("courses.id", ondelete="SET NULL"), nullable=True),
        sa.Column("special_period_type", special_period_type_enum, nullable=True),
        sa.Column("teaching_days", sa.JSON(), nullable=False),
        sa.Column("room", sa.String(length=100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("background_color", sa.String(length=20), nullable=False, server_default="#2196F3"),
        sa.Column("font_color", sa.String(length=20), nullable=False, server_default="#FFFFFF"),
        sa.UniqueConstraint("configuration_id", "period", name="uq_period_assignments_configuration_period"),
        sa.CheckConstraint(
            "course_id IS NULL OR special_period_type IS NULL",
            name="ck_period_assignments_course_or_special",
        ),
    )
    op.create_index("ix_period_assignments_configuration_id", "period_assignments", ["configuration_id"])

    op.create_table(
        "schedules",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "configuration_id",
            sa.Integer(),
            sa.ForeignKey("schedule_configurations.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_schedules_user_id", "schedules", ["user_id"])

    op.create_table(
        "special_days",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("schedule_id", sa.Integer(), sa.ForeignKey("schedules.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("periods", sa.JSON(), nullable=False),
        sa.Column("event_type", special_day_type_enum, nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("background_color", sa.String(length=20), nullable=False, server_default="#e74c3c"),
        sa.Column("font_color", sa.String(length=20), nullable=False, server_default="#FFFFFF"),
    )
    op.create_index("ix_special_days_schedule_id", "special_days", ["schedule_id"])

    op.create_table(
        "schedule_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("schedule_id", sa.Integer(), sa.ForeignKey("schedules.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("period", sa.Integer(), nullable=False),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("courses.id", ondelete="SET NULL"), nullable=True),
        sa.Column("lesson_id", sa.Integer(), sa.ForeignKey("lessons.id", ondelete="SET NULL"), nullable=True),
        sa.Column(
            "special_day_id", sa.Integer(), sa.ForeignKey("special_days.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("event_type", sa.String(length=50), nullable=False),
        sa.Column("event_category", event_category_enum, nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("schedule_sort", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("schedule_id", "date", "period", name="uq_schedule_events_cell"),
    )
    op.create_index("ix_schedule_events_schedule_id", "schedule_events", ["schedule_id"])


def downgrade() -> None:
    op.drop_index("ix_schedule_events_schedule_id", table_name="schedule_events")
    op.drop_table("schedule_events")
    op.drop_index("ix_special_days_schedule_id", table_name="special_days")
    op.drop_table("special_days")
    op.drop_index("ix_schedules_user_id", table_name="schedules")
    op.drop_table("schedules")
    op.drop_index("ix_period_assignments_configuration_id", table_name="period_assignments")
    op.drop_table("period_assignments")
    op.drop_index("ix_schedule_configurations_user_id", table_name="schedule_configurations")
    op.drop_table("schedule_configurations")
    op.drop_index("ix_lessons_sub_topic_id", table_name="lessons")
    op.drop_index("ix_lessons_topic_id", table_name="lessons")
    op.drop_index("ix_lessons_user_id", table_name="lessons")
    op.drop_table("lessons")
    op.drop_index("ix_sub_topics_topic_id", table_name="sub_topics")
    op.drop_table("sub_topics")
    op.drop_index("ix_topics_course_id", table_name="topics")
    op.drop_table("topics")
    op.drop_index("ix_courses_user_id", table_name="courses")
    op.drop_table("courses")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    event_category_enum.drop(op.get_bind(), checkfirst=True)
    special_day_type_enum.drop(op.get_bind(), checkfirst=True)
    special_period_type_enum.drop(op.get_bind(), checkfirst=True)
