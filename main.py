"""FastAPI application entrypoint."""

from fastapi import FastAPI

from src.core.config import settings
from src.core.exceptions import register_exception_handlers
from src.core.logging_config import configure_logging
from src.modules.appointments.router import admin_router as admin_appointments_router
from src.modules.appointments.router import router as appointments_router
from src.modules.notifications.router import router as notifications_router
from src.modules.schedule.router import router as schedule_router
from src.modules.service_records.router import router as service_records_router


def create_app() -> FastAPI:
    configure_logging(settings.log_level)
    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        version="0.1.0",
    )
    register_exception_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(schedule_router)
    app.include_router(appointments_router)
    app.include_router(service_records_router)
    app.include_router(notifications_router)
    app.include_router(admin_appointments_router)

    return app


app = create_app()
