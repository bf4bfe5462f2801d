from pydantic import BaseModel, Field, field_validator, model_validator


class CourseCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None

    @field_validator("title")
    @classmethod
    def normalize_title(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Title cannot be empty")
        return trimmed


class CourseOut(BaseModel):
    id: int
    title: str
    description: str | None = None
    archived: bool

    model_config = {"from_attributes": True}


class TopicCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    sort_order: int = Field(default=0, ge=0)


class TopicOut(TopicCreate):
    id: int
    course_id: int

    model_config = {"from_attributes": True}


class SubTopicCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    sort_order: int = Field(default=0, ge=0)


class SubTopicOut(SubTopicCreate):
    id: int
    topic_id: int

    model_config = {"from_attributes": True}


class LessonContent(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    objective: str | None = None
    methods: str | None = None
    materials: str | None = None
    assessment: str | None = None


class LessonCreate(LessonContent):
    topic_id: int | None = None
    sub_topic_id: int | None = None
    sort_order: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def validate_container(self) -> "LessonCreate":
        if (self.topic_id is None) == (self.sub_topic_id is None):
            raise ValueError("A lesson belongs to exactly one of topic_id or sub_topic_id")
        return self


class LessonUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    objective: str | None = None
    methods: str | None = None
    materials: str | None = None
    assessment: str | None = None
    topic_id: int | None = None
    sub_topic_id: int | None = None
    sort_order: int | None = Field(default=None, ge=0)
    archived: bool | None = None

    @model_validator(mode="after")
    def validate_container(self) -> "LessonUpdate":
        if self.topic_id is not None and self.sub_topic_id is not None:
            raise ValueError("A lesson cannot move into a topic and a subtopic at once")
        return self


class LessonOut(LessonContent):
    id: int
    topic_id: int | None = None
    sub_topic_id: int | None = None
    sort_order: int
    archived: bool

    model_config = {"from_attributes": True}


class SequencedLessonOut(BaseModel):
    position: int
    lesson_id: int
    title: str
    topic_sort_order: int
    position_in_topic: int
    sort_order: int
