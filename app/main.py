from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Optional
import asyncio
import logging

from app.core.config import Settings, settings
from app.core.security_config import configure_security_middleware, get_cors_config
from app.api.v1.endpoints import activity as activity_endpoints
from app.api.v1.endpoints import analytics as analytics_endpoints
from app.api import health as health_router
from app.infrastructure.users.in_memory_user_directory import InMemoryUserDirectory
from app.services.user_activity_service import UserActivityService

logging.basicConfig(level=settings.LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app_instance: FastAPI):
        logger.info("Application startup sequence initiated...")

        user_directory = InMemoryUserDirectory()
        service = UserActivityService(user_directory=user_directory, settings=app_settings)
        app_instance.state.user_directory = user_directory
        app_instance.state.user_activity_service = service

        app_instance.state._retention_sweep_task = None
        if app_settings.START_RETENTION_SWEEP:
            app_instance.state._retention_sweep_task = asyncio.create_task(
                service.run_periodic_sweep(app_settings.RETENTION_SWEEP_INTERVAL_SECONDS)
            )
            logger.info("Started retention sweep background task")
        else:
            logger.info("Retention sweep background task disabled via settings.START_RETENTION_SWEEP")

        try:
            yield
        finally:
            logger.info("Application shutdown sequence initiated...")
            sweep_task = getattr(app_instance.state, "_retention_sweep_task", None)
            if sweep_task:
                sweep_task.cancel()
                try:
                    await sweep_task
                except asyncio.CancelledError:
                    pass

    app_instance = FastAPI(
        title=app_settings.APP_NAME,
        debug=app_settings.DEBUG,
        version="0.1.0",
        lifespan=lifespan,
        openapi_url=f"{app_settings.API_V1_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app_instance.state.settings = app_settings

    security = configure_security_middleware(app_instance, app_settings)
    app_instance.add_middleware(CORSMiddleware, **get_cors_config(security))

    api_v1_router_prefix = app_settings.API_V1_PREFIX
    app_instance.include_router(
        analytics_endpoints.router,
        prefix=f"{api_v1_router_prefix}/analytics",
        tags=["V1 - User Analytics"]
    )
    app_instance.include_router(
        activity_endpoints.router,
        prefix=f"{api_v1_router_prefix}/activity",
        tags=["V1 - Activity Recording"]
    )
    app_instance.include_router(health_router.router, tags=["Health Checks"])

    @app_instance.get("/", tags=["Root"])
    async def read_root():
        return {"message": f"Welcome to {app_settings.APP_NAME} - Version {app_instance.version}"}

    return app_instance


app = create_app()
