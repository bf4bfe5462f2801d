import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from planbook.api.deps import get_current_user, get_db, get_rebuild_coordinator
from planbook.core.exceptions import AccessDeniedError, ResourceNotFoundError
from planbook.models.course import Course, Lesson, SubTopic, Topic
from planbook.models.user import User
from planbook.schemas.course import (
    CourseCreate,
    CourseOut,
    LessonCreate,
    LessonOut,
    LessonUpdate,
    SequencedLessonOut,
    SubTopicCreate,
    SubTopicOut,
    TopicCreate,
    TopicOut,
)
from planbook.services import schedule_store as store
from planbook.services.lesson_sequencer import sequence_lessons
from planbook.services.rebuild_coordinator import RebuildCoordinator
from planbook.services.schedule_service import rebuild_schedules_for_course

router = APIRouter()
logger = logging.getLogger(__name__)

REQUIRED_LESSON_FIELDS = frozenset({"title", "sort_order", "archived"})


def _owned_topic(db: Session, topic_id: int, user: User) -> Topic:
    topic = db.get(Topic, topic_id)
    if topic is None:
        raise ResourceNotFoundError("Topic", topic_id)
    store.load_course(db, course_id=topic.course_id, user_id=user.id)
    return topic


def _owned_sub_topic(db: Session, sub_topic_id: int, user: User) -> SubTopic:
    sub_topic = db.get(SubTopic, sub_topic_id)
    if sub_topic is None:
        raise ResourceNotFoundError("SubTopic", sub_topic_id)
    _owned_topic(db, sub_topic.topic_id, user)
    return sub_topic


def _queue_course_rebuilds(
    db: Session, coordinator: RebuildCoordinator, *, course_ids: set[int | None], user: User, reason: str
) -> None:
    for course_id in sorted(course_id for course_id in course_ids if course_id is not None):
        job_ids = rebuild_schedules_for_course(
            db,
            course_id=course_id,
            user_id=user.id,
            reason=reason,
            enqueue=coordinator.enqueue_rebuild,
        )
        if job_ids:
            logger.info(
                "LESSON CHANGE REBUILDS | course_id=%s | user_id=%s | reason=%s | jobs=%s",
                course_id,
                user.id,
                reason,
                len(job_ids),
            )


@router.get("/courses", response_model=list[CourseOut])
def list_courses(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> list[CourseOut]:
    return list(db.execute(select(Course).where(Course.user_id == current_user.id).order_by(Course.id)).scalars())


@router.post("/courses", response_model=CourseOut, status_code=status.HTTP_201_CREATED)
def create_course(
    payload: CourseCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CourseOut:
    course = Course(user_id=current_user.id, **payload.model_dump())
    db.add(course)
    db.commit()
    db.refresh(course)
    return course


@router.post("/courses/{course_id}/topics", response_model=TopicOut, status_code=status.HTTP_201_CREATED)
def create_topic(
    course_id: int,
    payload: TopicCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TopicOut:
    store.load_course(db, course_id=course_id, user_id=current_user.id)
    topic = Topic(course_id=course_id, **payload.model_dump())
    db.add(topic)
    db.commit()
    db.refresh(topic)
    return topic


@router.post("/topics/{topic_id}/subtopics", response_model=SubTopicOut, status_code=status.HTTP_201_CREATED)
def create_sub_topic(
    topic_id: int,
    payload: SubTopicCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SubTopicOut:
    _owned_topic(db, topic_id, current_user)
    sub_topic = SubTopic(topic_id=topic_id, **payload.model_dump())
    db.add(sub_topic)
    db.commit()
    db.refresh(sub_topic)
    return sub_topic


@router.post("/lessons", response_model=LessonOut, status_code=status.HTTP_201_CREATED)
def create_lesson(
    payload: LessonCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    coordinator: RebuildCoordinator = Depends(get_rebuild_coordinator),
) -> LessonOut:
    if payload.topic_id is not None:
        _owned_topic(db, payload.topic_id, current_user)
    else:
        _owned_sub_topic(db, payload.sub_topic_id, current_user)

    lesson = Lesson(user_id=current_user.id, **payload.model_dump())
    db.add(lesson)
    db.commit()
    db.refresh(lesson)

    _queue_course_rebuilds(
        db,
        coordinator,
        course_ids={store.course_id_for_lesson(db, lesson)},
        user=current_user,
        reason="lesson-created",
    )
    return lesson


@router.put("/lessons/{lesson_id}", response_model=LessonOut)
def update_lesson(
    lesson_id: int,
    payload: LessonUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    coordinator: RebuildCoordinator = Depends(get_rebuild_coordinator),
) -> LessonOut:
    lesson = db.get(Lesson, lesson_id)
    if lesson is None:
        raise ResourceNotFoundError("Lesson", lesson_id)
    if lesson.user_id != current_user.id:
        raise AccessDeniedError("Lesson", lesson_id)
    previous_course_id = store.course_id_for_lesson(db, lesson)

    data = payload.model_dump(exclude_unset=True)
    if data.get("topic_id") is not None:
        _owned_topic(db, data["topic_id"], current_user)
        lesson.topic_id, lesson.sub_topic_id = data.pop("topic_id"), None
        data.pop("sub_topic_id", None)
    elif data.get("sub_topic_id") is not None:
        _owned_sub_topic(db, data["sub_topic_id"], current_user)
        lesson.topic_id, lesson.sub_topic_id = None, data.pop("sub_topic_id")
        data.pop("topic_id", None)
    else:
        data.pop("topic_id", None)
        data.pop("sub_topic_id", None)
    for key, value in data.items():
        # An explicit null clears optional content; required columns keep their value.
        if value is None and key in REQUIRED_LESSON_FIELDS:
            continue
        setattr(lesson, key, value)

    db.commit()
    db.refresh(lesson)

    _queue_course_rebuilds(
        db,
        coordinator,
        course_ids={previous_course_id, store.course_id_for_lesson(db, lesson)},
        user=current_user,
        reason="lesson-updated",
    )
    return lesson


@router.get("/courses/{course_id}/lessons", response_model=list[SequencedLessonOut])
def list_course_lessons(
    course_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[SequencedLessonOut]:
    store.load_course(db, course_id=course_id, user_id=current_user.id)
    sequence = sequence_lessons(store.load_course_lessons(db, course_id=course_id, user_id=current_user.id))
    return [
        SequencedLessonOut(
            position=position,
            lesson_id=lesson.lesson_id,
            title=lesson.title,
            topic_sort_order=lesson.topic_sort_order,
            position_in_topic=lesson.position_in_topic,
            sort_order=lesson.sort_order,
        )
        for position, lesson in enumerate(sequence)
    ]
