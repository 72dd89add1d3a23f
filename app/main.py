import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.router import api_router
from app.core.config import settings
from app.core.errors import register_error_handlers
from app.db.session import close_database, open_database
from app.jobs.scheduler import start_scheduler
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.maintenance import MaintenanceMiddleware
from app.middleware.request_context import RequestContextMiddleware
from app.services.event_bus import event_bus

logging.basicConfig(level=logging.INFO)
logging.getLogger("apscheduler").setLevel(logging.WARNING)
logging.getLogger("apscheduler.scheduler").setLevel(logging.WARNING)


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    register_error_handlers(app)

    # Last added runs first.
    app.add_middleware(
        MaintenanceMiddleware,
        exempt_prefixes=settings.maintenance_exempt_prefixes,
        redirect_path=settings.maintenance_redirect_path,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "environment": settings.environment}

    app.include_router(api_router)

    @app.on_event("startup")
    async def _startup() -> None:
        await open_database(app, settings.database_url, create_tables=settings.auto_create_tables)
        app.state.scheduler = None
        if settings.enable_scheduler:
            app.state.scheduler = start_scheduler(app.state.session_factory)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        scheduler = getattr(app.state, "scheduler", None)
        if scheduler:
            scheduler.shutdown()
        await close_database(app)
        await event_bus.close()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), reload=True)
