"""
FastAPI backend for the corporate intranet portal.

Tasks, projects, the employee directory and direct messages, with an
in-memory query cache and Server-Sent Events streams for live updates.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from core.container import container
from core.errors import CatchAllExceptionsMiddleware, register_error_handlers
from core.health import get_health_status, set_startup_time
from core.logging import configure_logging, get_logger
from middleware.auth import AuthMiddleware
from routers import auth, dashboard, messages, projects, tasks, users

# Initialize settings and logging
settings = container.settings()
configure_logging(settings)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info("Starting intranet portal backend")
    set_startup_time()

    await container.database().startup()
    await container.cache_sweeper().start()
    await container.session_cache_sweeper().start()

    logger.info("Services started successfully")
    yield

    await container.session_cache_sweeper().stop()
    await container.cache_sweeper().stop()
    container.cache().clear()
    container.session_cache().clear()
    await container.database().shutdown()
    logger.info("Services shutdown complete")


app = FastAPI(
    title="Intranet Portal",
    version="1.0.0",
    description="Task tracking, directory and messaging backend with live updates",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)

register_error_handlers(app)

# Innermost: turn anything unhandled into a logged 500
app.add_middleware(CatchAllExceptionsMiddleware)

# Session check runs before any protected handler
app.add_middleware(AuthMiddleware)

logger.info("Configuring CORS middleware", origins=settings.cors_origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(tasks.router)
app.include_router(projects.router)
app.include_router(users.router)
app.include_router(messages.router)
app.include_router(dashboard.router)


@app.get("/health")
async def health_check():
    """Liveness plus database, cache and broadcaster state."""
    return await get_health_status(
        database=container.database(),
        cache=container.cache(),
        sweeper=container.cache_sweeper(),
        broadcaster=container.task_events(),
    )


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting intranet portal backend",
                host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers
    )
