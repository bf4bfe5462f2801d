import logging
from contextlib import nullcontext

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from planbook.api.deps import get_current_user, get_db, get_rebuild_coordinator, get_schedule_service
from planbook.core.exceptions import ScheduleGenerationError
from planbook.models.schedule_configuration import PeriodAssignment, ScheduleConfiguration
from planbook.models.user import User
from planbook.schemas.schedule import (
    GenerationPreviewOut,
    GenerationResultOut,
    ScheduleEventOut,
    ValidationResultOut,
    preview_out,
    validation_out,
)
from planbook.schemas.schedule_configuration import (
    PeriodAssignmentIn,
    ScheduleConfigurationCreate,
    ScheduleConfigurationOut,
    ScheduleConfigurationUpdate,
)
from planbook.services import schedule_store as store
from planbook.services.rebuild_coordinator import RebuildCoordinator
from planbook.services.schedule_service import ScheduleGenerationService

router = APIRouter()
logger = logging.getLogger(__name__)


def _build_assignments(
    db: Session, assignments: list[PeriodAssignmentIn], *, teaching_days: list[str], user: User
) -> list[PeriodAssignment]:
    rows: list[PeriodAssignment] = []
    for item in assignments:
        if item.course_id is not None:
            store.load_course(db, course_id=item.course_id, user_id=user.id)
        data = item.model_dump()
        if data["teaching_days"] is None:
            data["teaching_days"] = list(teaching_days)
        rows.append(PeriodAssignment(**data))
    return rows


@router.get("/configurations", response_model=list[ScheduleConfigurationOut])
def list_configurations(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ScheduleConfigurationOut]:
    return list(
        db.execute(
            select(ScheduleConfiguration)
            .options(selectinload(ScheduleConfiguration.period_assignments))
            .where(ScheduleConfiguration.user_id == current_user.id)
            .order_by(ScheduleConfiguration.id)
        ).scalars()
    )


@router.post("/configurations", response_model=ScheduleConfigurationOut, status_code=status.HTTP_201_CREATED)
def create_configuration(
    payload: ScheduleConfigurationCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ScheduleConfigurationOut:
    data = payload.model_dump(exclude={"period_assignments"})
    configuration = ScheduleConfiguration(user_id=current_user.id, **data)
    configuration.period_assignments = _build_assignments(
        db, payload.period_assignments, teaching_days=payload.teaching_days, user=current_user
    )
    db.add(configuration)
    db.commit()
    db.refresh(configuration)
    return configuration


@router.get("/configurations/{configuration_id}", response_model=ScheduleConfigurationOut)
def get_configuration(
    configuration_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ScheduleConfigurationOut:
    return store.load_configuration(db, configuration_id=configuration_id, user_id=current_user.id)


@router.put("/configurations/{configuration_id}", response_model=ScheduleConfigurationOut)
def update_configuration(
    configuration_id: int,
    payload: ScheduleConfigurationUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    coordinator: RebuildCoordinator = Depends(get_rebuild_coordinator),
) -> ScheduleConfigurationOut:
    configuration = store.load_configuration(db, configuration_id=configuration_id, user_id=current_user.id)
    assignments = _build_assignments(
        db, payload.period_assignments, teaching_days=payload.teaching_days, user=current_user
    )
    for key, value in payload.model_dump(exclude={"period_assignments"}).items():
        setattr(configuration, key, value)
    # Flush removals first so re-used period numbers do not trip the unique constraint.
    configuration.period_assignments.clear()
    db.flush()
    configuration.period_assignments.extend(assignments)
    db.commit()
    db.refresh(configuration)

    schedule = store.schedule_for_configuration(db, configuration_id=configuration.id)
    if schedule is not None:
        coordinator.enqueue_rebuild(
            schedule_id=schedule.id,
            configuration_id=configuration.id,
            user_id=current_user.id,
            reason="configuration-updated",
        )
    return configuration


@router.delete("/configurations/{configuration_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_configuration(
    configuration_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Response:
    configuration = store.load_configuration(db, configuration_id=configuration_id, user_id=current_user.id)
    schedule = store.schedule_for_configuration(db, configuration_id=configuration.id)
    if schedule is not None:
        db.delete(schedule)
    db.delete(configuration)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/configurations/{configuration_id}/validate", response_model=ValidationResultOut)
def validate_configuration(
    configuration_id: int,
    current_user: User = Depends(get_current_user),
    service: ScheduleGenerationService = Depends(get_schedule_service),
) -> ValidationResultOut:
    return validation_out(service.validate(configuration_id, current_user.id))


@router.get("/configurations/{configuration_id}/preview", response_model=GenerationPreviewOut)
def preview_configuration(
    configuration_id: int,
    current_user: User = Depends(get_current_user),
    service: ScheduleGenerationService = Depends(get_schedule_service),
) -> GenerationPreviewOut:
    return preview_out(service.preview(configuration_id, current_user.id))


@router.post("/configurations/{configuration_id}/generate", response_model=GenerationResultOut)
def generate_schedule(
    configuration_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ScheduleGenerationService = Depends(get_schedule_service),
    coordinator: RebuildCoordinator = Depends(get_rebuild_coordinator),
) -> GenerationResultOut:
    configuration = store.load_configuration(db, configuration_id=configuration_id, user_id=current_user.id)
    existing = store.schedule_for_configuration(db, configuration_id=configuration.id)
    with coordinator.schedule_lock(existing.id) if existing is not None else nullcontext():
        outcome = service.generate(configuration.id, current_user.id)
    if not outcome.success:
        raise ScheduleGenerationError(
            "Schedule configuration is not valid for generation",
            details={"errors": outcome.errors, "warnings": outcome.warnings},
        )
    events = store.list_schedule_events(db, schedule_id=outcome.schedule_id)
    return GenerationResultOut(
        success=True,
        schedule_id=outcome.schedule_id,
        total_events=outcome.total_events,
        events=[ScheduleEventOut.model_validate(event) for event in events],
        warnings=outcome.warnings,
        events_by_period=outcome.events_by_period,
        events_by_type=outcome.events_by_type,
    )
