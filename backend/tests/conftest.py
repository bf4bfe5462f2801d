from dataclasses import replace
from datetime import datetime, timezone
from threading import Lock
import uuid

import pytest
from fastapi.testclient import TestClient  # in-process HTTP client, no server needed
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from planbook.api.deps import get_db, get_rebuild_coordinator
from planbook.db.base import Base
from planbook.main import app
from planbook.services.rebuild_coordinator import JobState, JobStatus, RebuildCoordinator
from planbook.services.schedule_service import run_schedule_rebuild
import planbook.models  # noqa: F401


class InlineJobQueue:
    """Runs each job as soon as it is enqueued so API tests see finished rebuilds."""

    def __init__(self) -> None:
        self.jobs: dict[str, JobStatus] = {}
        self.latest: dict[str, str] = {}
        self.enqueued_keys: list[str] = []
        # When paused, jobs stay Enqueued and never run.
        self.paused = False
        self.locks: dict[str, Lock] = {}
        # Keys whose lock was taken outside a job run, in order.
        self.locked_keys: list[str] = []

    def enqueue(self, key, task, *, reason=None):
        job_id = uuid.uuid4().hex
        now = datetime.now(timezone.utc)
        status = JobStatus(job_id=job_id, key=key, state=JobState.Processing, reason=reason, created_at=now, started_at=now, attempts=1)
        self.jobs[job_id] = status
        self.latest[key] = job_id
        self.enqueued_keys.append(key)
        if self.paused:
            self.jobs[job_id] = replace(status, state=JobState.Enqueued, started_at=None, attempts=0)
            return job_id
        try:
            with self.locks.setdefault(key, Lock()):
                task()
        except Exception as exc:
            self.jobs[job_id] = replace(status, state=JobState.Failed, completed_at=datetime.now(timezone.utc), error=str(exc))
        else:
            self.jobs[job_id] = replace(status, state=JobState.Succeeded, completed_at=datetime.now(timezone.utc))
        return job_id

    def cancel(self, key):
        return False

    def status(self, key):
        job_id = self.latest.get(key)
        if job_id is None:
            return JobStatus(job_id=None, key=key, state=JobState.NotFound)
        return self.jobs[job_id]

    def job_status(self, job_id):
        return self.jobs.get(job_id) or JobStatus(job_id=job_id, state=JobState.NotFound)

    def key_lock(self, key):
        self.locked_keys.append(key)
        return self.locks.setdefault(key, Lock())


@pytest.fixture()
def session_factory():
    engine = create_engine(  # isolated in-memory DB shared across threads
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def job_queue():
    return InlineJobQueue()


@pytest.fixture()
def client(session_factory, job_queue):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    coordinator = RebuildCoordinator(job_queue, lambda task: run_schedule_rebuild(task, session_factory=session_factory))
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_rebuild_coordinator] = lambda: coordinator

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def _register_and_login(client, email, name):
    password = "password123"
    response = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
    assert response.status_code == 201
    login = client.post("/api/auth/login", json={"email": email, "password": password})
    assert login.status_code == 200
    return {"Authorization": f"Bearer {login.json()['access_token']}"}


@pytest.fixture()
def register_user(client):
    def register(email="teacher@example.com", name="Pat Teacher"):
        return _register_and_login(client, email, name)

    return register


@pytest.fixture()
def auth_headers(register_user):
    return register_user()
