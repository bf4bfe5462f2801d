from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from planbook.api.routes import auth, configurations, courses, health, schedules
from planbook.core.config import get_settings
from planbook.core.exceptions import AppError
from planbook.core.logging_config import configure_logging
from planbook.db.bootstrap import ensure_schema

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging(settings.log_level)
    if settings.auto_create_schema:
        ensure_schema(create_missing=True)
    yield


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "details": exc.details},
    )


app = FastAPI(title=settings.project_name, lifespan=lifespan)
app.add_exception_handler(AppError, app_error_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(auth.router, prefix=f"{settings.api_prefix}/auth", tags=["auth"])
app.include_router(courses.router, prefix=settings.api_prefix, tags=["courses"])
app.include_router(configurations.router, prefix=settings.api_prefix, tags=["configurations"])
app.include_router(schedules.router, prefix=settings.api_prefix, tags=["schedules"])
