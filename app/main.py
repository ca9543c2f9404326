import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from app import database
from app.config import settings
from app.routers.tasks import router as tasks_router
from app.routers.users import router as users_router
from app.routers.auth import router as auth_router
from app.routers.projects import router as projects_router
from app.routers.backup import router as backup_router

from app.services.scheduler import setup_scheduler, wait_for_database
from app.services.supervisor import CircuitBreaker, IdleSupervisor

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Requests that must keep working while the database is down
UNGUARDED_PATHS = {"/health"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("[STARTUP] Testing database connection...")
    await wait_for_database()

    scheduler = setup_scheduler(app.state.idle_supervisor)
    logger.info("[STARTUP] Idle check scheduled every %ss", settings.IDLE_CHECK_SECONDS)

    yield

    scheduler.shutdown(wait=False)
    await database.dispose()
    logger.info("[SHUTDOWN] Pool has ended")


app = FastAPI(
    lifespan=lifespan,
    title="Team Task Tracker API",
    description="Personal, team, project and co-work task tracking with admin backup",
    version="1.0.0",
)

app.state.circuit_breaker = CircuitBreaker(
    failure_threshold=settings.CIRCUIT_FAILURE_THRESHOLD,
    reset_timeout=settings.CIRCUIT_RESET_SECONDS,
)
app.state.idle_supervisor = IdleSupervisor(idle_timeout=settings.IDLE_TIMEOUT_MINUTES * 60)


def _unavailable(retry_after: int):
    return JSONResponse(
        status_code=503,
        content={
            "message": "Service temporarily unavailable, please try again later",
            "retryAfter": retry_after,
        },
        headers={"Retry-After": str(retry_after)},
    )


@app.middleware("http")
async def database_health_guard(request: Request, call_next):
    app.state.idle_supervisor.touch()
    if request.url.path in UNGUARDED_PATHS:
        return await call_next(request)

    breaker = request.app.state.circuit_breaker
    if not breaker.allow_request():
        logger.info("[CIRCUIT] Breaker is open, rejecting %s %s", request.method, request.url.path)
        return _unavailable(breaker.retry_after())

    try:
        await database.ping()
    except Exception as e:
        logger.warning("[CIRCUIT] Database probe failed: %s", e)
        breaker.record_failure()
        return _unavailable(int(breaker.reset_timeout))
    breaker.record_success()
    return await call_next(request)


# Enable CORS for the frontend
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex="https?://.*",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Task-Count", "Retry-After"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ())[1:])
        problems.append(f"{location}: {err.get('msg')}" if location else err.get("msg"))
    return JSONResponse(status_code=400, content={"message": "; ".join(problems) or "Invalid request"})


# Global exception handler to ensure a JSON body on failure
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("500 Error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"message": "Internal Server Error"},
    )


app.include_router(auth_router)
app.include_router(users_router)
app.include_router(projects_router)
app.include_router(tasks_router)
app.include_router(backup_router)


@app.get("/")
def root():
    return {"message": "Team Task Tracker API running"}


@app.get("/health")
async def health():
    breaker = app.state.circuit_breaker
    return {"status": "ok", "circuit": breaker.state, "idleSeconds": round(app.state.idle_supervisor.idle_for())}
