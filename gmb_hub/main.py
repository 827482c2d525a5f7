"""
GMB Hub
Main FastAPI application
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gmb_hub import __version__
from gmb_hub.api import dashboard, health, reviews, sync
from gmb_hub.config import get_settings
from gmb_hub.services.auto_reply_service import auto_reply_dispatcher
from gmb_hub.utils.logger import log

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}")

    try:
        from gmb_hub.models.base import init_db
        init_db()
        log.info("Database initialized")
    except Exception as e:
        log.error(f"Database initialization error: {str(e)}")

    if settings.enable_scheduler:
        from gmb_hub.scheduler import start_scheduler
        try:
            start_scheduler()
        except Exception as e:
            log.error(f"Scheduler startup error: {str(e)}")

    yield

    # Shutdown
    if settings.enable_scheduler:
        from gmb_hub.scheduler import stop_scheduler
        stop_scheduler()
    await auto_reply_dispatcher.drain()
    log.info("Shutting down application")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    Google Business Profile sync and analytics service

    - Syncs locations, reviews, media, daily performance metrics and monthly
      search keyword impressions for each connected account
    - Computes a dashboard health score, bottlenecks, trends and highlights
    - Posts review replies (single, bulk and automatic)
    """,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router)
app.include_router(sync.router)
app.include_router(dashboard.router)
app.include_router(reviews.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("gmb_hub.main:app", host=settings.api_host, port=settings.api_port, reload=settings.debug)
