from planbook.models.course import Course, Lesson, SubTopic, Topic  # noqa: F401
from planbook.models.schedule import (  # noqa: F401
    EventCategory,
    Schedule,
    ScheduleEvent,
    SpecialDay,
    SpecialDayType,
)
from planbook.models.schedule_configuration import (  # noqa: F401
    PeriodAssignment,
    ScheduleConfiguration,
    SpecialPeriodType,
    Weekday,
)
from planbook.models.user import User  # noqa: F401
