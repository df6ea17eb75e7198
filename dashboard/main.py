from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI

from .config import load_settings
from .runtime import DashboardRuntime
from .server import build_app


logger = logging.getLogger(__name__)

settings = load_settings()
logging.basicConfig(
    level=getattr(logging, settings.app.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

runtime = DashboardRuntime(settings)
app: FastAPI = build_app(runtime)


def run() -> None:
    logger.info("Serving dashboard on %s:%d", settings.api.host, settings.api.port)
    uvicorn.run(app, host=settings.api.host, port=settings.api.port)


if __name__ == "__main__":
    run()
