import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from render_portal.api.v1 import boards, collaboration, notifications, preferences, projects
from render_portal.core.config import Settings, load_settings
from render_portal.core.logging import configure_logging
from render_portal.db.registry import build_db, set_db
from render_portal.middleware.trace import TraceMiddleware
from render_portal.services.email import build_email_sender, set_email_sender

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    configure_logging()
    settings = settings or load_settings()

    set_db(build_db(settings))
    set_email_sender(build_email_sender(settings))

    app = FastAPI(
        title="Render Portal API",
        description="Render projects, collaborators, invitations and whiteboard snapshots.",
        version="1.0.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins) or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(TraceMiddleware)

    for module in (projects, collaboration, notifications, boards, preferences):
        app.include_router(module.router, prefix="/api/v1")

    @app.get("/health")
    @app.get("/api/v1/health")
    async def health_check():
        return {"status": "healthy", "env": settings.app_env, "db_backend": settings.db_backend}

    logger.info("render portal started: env=%s db=%s", settings.app_env, settings.db_backend)
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("render_portal.main:app", host="0.0.0.0", port=8000)
