from collections.abc import Generator
from functools import lru_cache, partial

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from planbook.core.config import get_settings
from planbook.core.security import decode_token
from planbook.db.session import SessionLocal
from planbook.models.user import User
from planbook.services.rebuild_coordinator import InProcessJobQueue, RebuildCoordinator
from planbook.services.schedule_service import ScheduleGenerationService, run_schedule_rebuild

security = HTTPBearer()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    token = credentials.credentials
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(token)
        user_id = payload.get("sub")
        if user_id is None:
            raise credentials_exception
    except JWTError as exc:
        raise credentials_exception from exc

    user = db.get(User, user_id)
    if user is None:
        raise credentials_exception
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")
    return user


def get_schedule_service(db: Session = Depends(get_db)) -> ScheduleGenerationService:
    return ScheduleGenerationService(db)


@lru_cache
def get_rebuild_coordinator() -> RebuildCoordinator:
    settings = get_settings()
    queue = InProcessJobQueue(
        max_workers=settings.rebuild_worker_count,
        max_attempts=settings.rebuild_max_attempts,
        retention_seconds=settings.rebuild_job_retention_seconds,
    )
    return RebuildCoordinator(queue, partial(run_schedule_rebuild, session_factory=SessionLocal))
