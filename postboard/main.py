from __future__ import annotations

import logging
from logging.config import dictConfig

from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware

from .config import get_settings
from .errors import register_error_handlers
from .routes import posts
from .services.storage import ensure_upload_root


def configure_logging(level: str = "INFO") -> None:
    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            }
        },
        "root": {
            "handlers": ["default"],
            "level": level,
        },
    }
    dictConfig(logging_config)


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    application = FastAPI(title="Postboard", version="1.0.0")
    application.add_middleware(SessionMiddleware, secret_key=settings.session_secret)
    register_error_handlers(application)
    application.include_router(posts.router)

    @application.on_event("startup")
    async def on_startup() -> None:
        root = await ensure_upload_root(get_settings().upload_path)
        logging.getLogger(__name__).info("Upload directory ready", extra={"path": str(root)})

    return application


app = create_app()
