import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from coursehub.config import Settings, get_settings
from coursehub.database import check_connection, create_tables, make_engine, make_session_factory
from coursehub.errors import register_error_handlers
from coursehub.routers import admin_users, assignments, courses, modules, progress, student, videos
from coursehub.routers.auth import router as auth_router
from coursehub.services.local_files import ensure_uploads_dir
from coursehub.services.deadlines import start_deadline
from coursehub.services.media import MediaCdn
from coursehub.services.tokens import utcnow

logger = logging.getLogger(__name__)

UPLOAD_PATH_SUFFIXES = ("/videos/upload",)


def request_timeout(settings: Settings, path: str) -> int:
    if path.endswith(UPLOAD_PATH_SUFFIXES):
        return settings.upload_request_timeout_seconds
    return settings.request_timeout_seconds


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    if settings.auto_create_tables:
        create_tables(app.state.engine)
    if not check_connection(app.state.engine):
        logger.warning("Database is not reachable; requests touching it will fail")
    logger.info("CourseHub API started (%s)", settings.app_env)
    yield
    app.state.engine.dispose()
    logger.info("CourseHub API stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(title="CourseHub API", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = make_engine(settings)
    app.state.session_factory = make_session_factory(app.state.engine)
    app.state.media_cdn = MediaCdn.from_settings(settings)

    # Enable CORS for the web client
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def enforce_timeout(request: Request, call_next):
        timeout = request_timeout(settings, request.url.path)
        start_deadline(request, timeout)
        try:
            return await asyncio.wait_for(call_next(request), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error("Request timed out after %ss: %s %s", timeout, request.method, request.url.path)
            return JSONResponse(status_code=504, content={"success": False, "message": "Request timeout"})

    register_error_handlers(app)

    # Register routers
    app.include_router(auth_router, prefix="/api")
    app.include_router(courses.router, prefix="/api")
    app.include_router(modules.router, prefix="/api")
    app.include_router(videos.router, prefix="/api")
    app.include_router(assignments.router, prefix="/api")
    app.include_router(student.router, prefix="/api")
    app.include_router(progress.router, prefix="/api")
    app.include_router(admin_users.router, prefix="/api")

    ensure_uploads_dir(settings.uploads_dir)
    app.mount("/uploads", StaticFiles(directory=settings.uploads_dir), name="uploads")

    @app.get("/health")
    def health():
        return {
            "status": "OK",
            "timestamp": utcnow().isoformat(),
            "environment": settings.app_env,
        }

    @app.get("/")
    def root():
        return {"success": True, "message": "CourseHub API is running"}

    return app
