"""FastAPI application entry point."""
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.api import auth, dashboard, health, jobs, onboarding, repos, sse
from app.config import settings
from app.core.logging import setup_logging
from app.core.tracing import TracingContext
from app.database.mongo import close_client, get_database
from app.middleware.error_codes import register_exception_handlers
from app.repositories.user_profile import UserProfileRepository
from app.services.analysis_client import AnalysisClient
from app.services.identity.github_provider import GithubOAuthIdentityProvider
from app.services.live_view import LiveViewCache
from app.services.onboarding_service import OnboardingRegistry
from app.services.profile_service import ProfileService
from app.services.session import SessionContext
from app.store.events import ChangeFeed
from app.store.exceptions import StoreError
from app.store.mongo_store import MongoRemoteStore

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()

    store = MongoRemoteStore(get_database(), feed=ChangeFeed(settings.REDIS_URL))
    try:
        await asyncio.to_thread(store.ensure_indexes)
    except StoreError as exc:
        logger.warning(f"Could not ensure indexes: {exc}")

    provider = GithubOAuthIdentityProvider.from_settings(settings)
    session = SessionContext(provider, ProfileService(UserProfileRepository(store)))
    session.start()

    app.state.store = store
    app.state.live_views = LiveViewCache(store)
    app.state.identity_provider = provider
    app.state.session = session
    app.state.analysis_client = AnalysisClient(settings.ANALYSIS_API_URL)
    app.state.onboarding = OnboardingRegistry(
        finished_ttl=settings.ONBOARDING_FINISHED_TTL_SECONDS,
        idle_ttl=settings.ONBOARDING_IDLE_TTL_SECONDS,
    )
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} started")

    try:
        yield
    finally:
        session.close()
        await app.state.onboarding.close()
        close_client()
        logger.info(f"{settings.APP_NAME} stopped")


def configure_app(app: FastAPI) -> FastAPI:
    """Exception handlers, request tracing and routers."""
    register_exception_handlers(app)

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        TracingContext.clear()
        correlation_id = request.headers.get(CORRELATION_HEADER)
        if correlation_id:
            TracingContext.set(correlation_id=correlation_id)
        else:
            correlation_id = TracingContext.get_or_create_correlation_id()
        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response

    app.include_router(health.router, prefix="/api", tags=["Health"])
    app.include_router(auth.router, prefix="/api")
    app.include_router(repos.router, prefix="/api")
    app.include_router(jobs.router, prefix="/api")
    app.include_router(dashboard.router, prefix="/api/dashboard", tags=["Dashboard"])
    app.include_router(onboarding.router, prefix="/api")
    app.include_router(sse.router, prefix="/api")
    return app


app = FastAPI(
    title=f"{settings.APP_NAME} API",
    description="Live repository views and onboarding for the documentation dashboard",
    version=settings.APP_VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_BASE_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

configure_app(app)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": f"{settings.APP_NAME} API",
        "version": settings.APP_VERSION,
        "docs": "/api/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
