import logging.config

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.metrics import router as metrics_router
from app.api.routes import router as api_router
from app.api.ws import router as ws_router
from app.config import Settings, get_settings
from app.services.realtime import create_realtime


def configure_logging(level: str) -> None:
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                }
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "standard",
                }
            },
            "root": {"handlers": ["default"], "level": level.upper()},
            # Connection lifecycle stays visible even when the root level is raised.
            "loggers": {"palaver.realtime": {"level": "INFO"}},
        }
    )


def create_app(settings: Settings) -> FastAPI:
    """Build the API with one realtime core owned by ``app.state``."""

    application = FastAPI(title=settings.app_name, debug=settings.debug)
    application.state.realtime = create_realtime()

    application.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin).rstrip("/") for origin in settings.cors_origins],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.get("/health", tags=["system"])
    def health_check() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok", "environment": settings.environment}

    @application.on_event("shutdown")
    async def _shutdown() -> None:
        await application.state.realtime.shutdown()

    application.include_router(api_router, prefix="/api")
    application.include_router(ws_router)
    application.include_router(metrics_router)
    return application


settings = get_settings()
configure_logging(settings.log_level)
app = create_app(settings)
