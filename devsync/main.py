"""Main FastAPI application"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from devsync import __version__
from devsync.api import development_requests, github, sync
from devsync.api.github import WEBHOOK_PATH
from devsync.config import settings
from devsync.models.base import init_db
from devsync.scheduler import scheduler
from devsync.security import BasicAuthMiddleware
from devsync.services.outbound import get_outbound_sync

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    logger.info("Starting development request sync service")
    init_db()
    # Pick the real or no-op GitHub client once, up front.
    get_outbound_sync()
    if settings.github_webhook_secret is None:
        logger.warning("GITHUB_WEBHOOK_SECRET not set - webhook signatures are not verified")
    scheduler.start()
    yield
    # Shutdown
    logger.info("Stopping development request sync service")
    scheduler.stop()


app = FastAPI(
    title="Development Request Sync",
    description="Keep development requests in sync with GitHub issues",
    version=__version__,
    lifespan=lifespan,
)

# Optional built-in auth (recommended if exposed beyond localhost/private networks)
if settings.auth_enabled:
    if not settings.auth_username or not settings.auth_password:
        raise RuntimeError("AUTH_ENABLED=true requires AUTH_USERNAME and AUTH_PASSWORD to be set")
    app.add_middleware(
        BasicAuthMiddleware,
        username=settings.auth_username,
        password=settings.auth_password,
        open_paths={"/health", WEBHOOK_PATH},
    )

# Include API routers
app.include_router(development_requests.router)
app.include_router(github.router)
app.include_router(sync.router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "devsync"}


def run():
    import uvicorn

    uvicorn.run(
        "devsync.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
