from __future__ import annotations

# Atomize API
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from atomize.logger import logger  # noqa: E402
from atomize.presentation.http.router import router  # noqa: E402
from atomize.settings import get_settings  # noqa: E402


def create_app() -> FastAPI:
    app = FastAPI(title="Atomize - Task Generation API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_settings().api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    logger.info("Atomize API ready (platform=%s)", get_settings().platform.provider)
    return app


app = create_app()
