from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .conversations import routers as conversation_router

from .core.config import Settings
from .core.dependencies import get_settings
from .core.middleware import logging_middleware
from .utils.logging_config import setup_logging


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.log_level, json=settings.log_json)

    app = FastAPI(title="Conversations")
    app.include_router(
        conversation_router.router, prefix="/conversations", tags=["Conversations"]
    )

    app.middleware("http")(logging_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
