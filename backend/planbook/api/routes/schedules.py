import logging
from datetime import date

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from planbook.api.deps import get_current_user, get_db, get_rebuild_coordinator, get_schedule_service
from planbook.core.exceptions import ResourceNotFoundError, ScheduleGenerationError
from planbook.models.schedule import Schedule, SpecialDay
from planbook.models.user import User
from planbook.schemas.schedule import (
    ContinuationRequest,
    JobStatusOut,
    PeriodRegenerationRequest,
    RebuildEnqueuedOut,
    RebuildRequest,
    ScheduleDetailOut,
    ScheduleEventOut,
    ScheduleOut,
    SequenceStateOut,
    SpecialDayCreate,
    SpecialDayOut,
    job_status_out,
    sequence_state_out,
)
from planbook.services import schedule_store as store
from planbook.services.rebuild_coordinator import ACTIVE_STATES, RebuildCoordinator
from planbook.services.schedule_service import ScheduleGenerationService

router = APIRouter()
logger = logging.getLogger(__name__)


def _events_out(rows) -> list[ScheduleEventOut]:
    return [ScheduleEventOut.model_validate(row) for row in rows]


@router.get("/schedules", response_model=list[ScheduleOut])
def list_schedules(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> list[ScheduleOut]:
    return list(db.execute(select(Schedule).where(Schedule.user_id == current_user.id).order_by(Schedule.id)).scalars())


@router.get("/schedules/{schedule_id}", response_model=ScheduleDetailOut)
def get_schedule(
    schedule_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ScheduleDetailOut:
    schedule = store.load_schedule(db, schedule_id=schedule_id, user_id=current_user.id)
    return ScheduleDetailOut(
        id=schedule.id,
        configuration_id=schedule.configuration_id,
        title=schedule.title,
        created_at=schedule.created_at,
        updated_at=schedule.updated_at,
        events=_events_out(store.list_schedule_events(db, schedule_id=schedule.id)),
    )


@router.get("/schedules/{schedule_id}/events", response_model=list[ScheduleEventOut])
def list_events(
    schedule_id: int,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ScheduleEventOut]:
    store.load_schedule(db, schedule_id=schedule_id, user_id=current_user.id)
    rows = store.list_schedule_events(db, schedule_id=schedule_id, start_date=start_date, end_date=end_date)
    return _events_out(rows)


@router.get("/schedules/{schedule_id}/special-days", response_model=list[SpecialDayOut])
def list_special_days(
    schedule_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[SpecialDayOut]:
    schedule = store.load_schedule(db, schedule_id=schedule_id, user_id=current_user.id)
    return list(
        db.execute(
            select(SpecialDay).where(SpecialDay.schedule_id == schedule.id).order_by(SpecialDay.date, SpecialDay.id)
        ).scalars()
    )


@router.post(
    "/schedules/{schedule_id}/special-days",
    response_model=SpecialDayOut,
    status_code=status.HTTP_201_CREATED,
)
def create_special_day(
    schedule_id: int,
    payload: SpecialDayCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ScheduleGenerationService = Depends(get_schedule_service),
    coordinator: RebuildCoordinator = Depends(get_rebuild_coordinator),
) -> SpecialDayOut:
    schedule = store.load_schedule(db, schedule_id=schedule_id, user_id=current_user.id)
    configuration = store.load_configuration(db, configuration_id=schedule.configuration_id, user_id=current_user.id)
    out_of_range = [period for period in payload.periods if period > configuration.periods_per_day]
    if out_of_range:
        raise ScheduleGenerationError(
            f"Periods {out_of_range} exceed the configured {configuration.periods_per_day} periods per day",
            details={"periods": out_of_range},
        )

    special_day = SpecialDay(schedule_id=schedule.id, **payload.model_dump())
    # The new row and the regenerated events commit together.
    with coordinator.schedule_lock(schedule.id):
        db.add(special_day)
        db.flush()
        try:
            service.regenerate_schedule(schedule.id, current_user.id)
        except Exception:
            db.rollback()
            raise
    db.refresh(special_day)
    logger.info(
        "SPECIAL DAY CREATED | schedule_id=%s | special_day_id=%s | date=%s | periods=%s | type=%s",
        schedule.id,
        special_day.id,
        special_day.date,
        special_day.periods,
        special_day.event_type.value,
    )
    return SpecialDayOut.model_validate(special_day)


@router.delete("/schedules/{schedule_id}/special-days/{special_day_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_special_day(
    schedule_id: int,
    special_day_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ScheduleGenerationService = Depends(get_schedule_service),
    coordinator: RebuildCoordinator = Depends(get_rebuild_coordinator),
) -> Response:
    schedule = store.load_schedule(db, schedule_id=schedule_id, user_id=current_user.id)
    special_day = db.get(SpecialDay, special_day_id)
    if special_day is None or special_day.schedule_id != schedule.id:
        raise ResourceNotFoundError("SpecialDay", special_day_id)
    with coordinator.schedule_lock(schedule.id):
        db.delete(special_day)
        db.flush()
        try:
            service.regenerate_schedule(schedule.id, current_user.id)
        except Exception:
            db.rollback()
            raise
    logger.info("SPECIAL DAY DELETED | schedule_id=%s | special_day_id=%s", schedule.id, special_day_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/schedules/{schedule_id}/sequence-state", response_model=SequenceStateOut)
def get_sequence_state(
    schedule_id: int,
    after_date: date = Query(...),
    current_user: User = Depends(get_current_user),
    service: ScheduleGenerationService = Depends(get_schedule_service),
) -> SequenceStateOut:
    return sequence_state_out(service.analyze_sequence_state(schedule_id, after_date, current_user.id))


@router.post("/schedules/{schedule_id}/continue", response_model=list[ScheduleEventOut])
def continue_sequences(
    schedule_id: int,
    payload: ContinuationRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ScheduleGenerationService = Depends(get_schedule_service),
    coordinator: RebuildCoordinator = Depends(get_rebuild_coordinator),
) -> list[ScheduleEventOut]:
    schedule = store.load_schedule(db, schedule_id=schedule_id, user_id=current_user.id)
    with coordinator.schedule_lock(schedule.id):
        rows = service.continue_sequences(
            schedule.id,
            current_user.id,
            after_date=payload.after_date,
            end_date=payload.end_date,
            specific_periods=payload.specific_periods,
        )
    return _events_out(rows)


@router.post("/schedules/{schedule_id}/periods/{period}/regenerate", response_model=list[ScheduleEventOut])
def regenerate_period(
    schedule_id: int,
    period: int,
    payload: PeriodRegenerationRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ScheduleGenerationService = Depends(get_schedule_service),
    coordinator: RebuildCoordinator = Depends(get_rebuild_coordinator),
) -> list[ScheduleEventOut]:
    schedule = store.load_schedule(db, schedule_id=schedule_id, user_id=current_user.id)
    with coordinator.schedule_lock(schedule.id):
        rows = service.regenerate_period(schedule.id, period, current_user.id, from_date=payload.from_date)
    return _events_out(rows)


@router.post(
    "/schedules/{schedule_id}/rebuild",
    response_model=RebuildEnqueuedOut,
    status_code=status.HTTP_202_ACCEPTED,
)
def enqueue_rebuild(
    schedule_id: int,
    payload: RebuildRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    coordinator: RebuildCoordinator = Depends(get_rebuild_coordinator),
) -> RebuildEnqueuedOut:
    schedule = store.load_schedule(db, schedule_id=schedule_id, user_id=current_user.id)
    job_id = coordinator.enqueue_rebuild(
        schedule_id=schedule.id,
        configuration_id=schedule.configuration_id,
        user_id=current_user.id,
        reason=payload.reason,
    )
    return RebuildEnqueuedOut(job_id=job_id, schedule_id=schedule.id)


@router.get("/schedules/{schedule_id}/rebuild", response_model=JobStatusOut)
def get_rebuild_status(
    schedule_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    coordinator: RebuildCoordinator = Depends(get_rebuild_coordinator),
) -> JobStatusOut:
    schedule = store.load_schedule(db, schedule_id=schedule_id, user_id=current_user.id)
    return job_status_out(
        coordinator.get_rebuild_status(schedule.id),
        in_progress=coordinator.is_rebuild_in_progress(schedule.id),
    )


@router.get("/rebuild-jobs/{job_id}", response_model=JobStatusOut)
def get_job_status(
    job_id: str,
    current_user: User = Depends(get_current_user),
    coordinator: RebuildCoordinator = Depends(get_rebuild_coordinator),
) -> JobStatusOut:
    job = coordinator.get_job_status(job_id)
    return job_status_out(job, in_progress=job.state in ACTIVE_STATES)
