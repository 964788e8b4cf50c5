from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from prometheus_fastapi_instrumentator import Instrumentator

from cropscan.config import Settings
from cropscan.controllers import v1
from cropscan.db import init_db
from cropscan.errors import ApiError
from cropscan.logger import setup_logging
from cropscan.services.inference import close_inference, init_inference
from cropscan.services.storage import close_storage, init_storage

settings = Settings()
setup_logging(settings.log_level.upper())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_storage(settings)
    init_inference(settings)
    await asyncio.to_thread(init_db, settings)
    yield
    await close_inference()
    await close_storage()


app = FastAPI(
    title="Crop Scan Diagnostics API",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(ApiError)
async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "%s %s failed: %s",
            request.method,
            request.url.path,
            exc.message,
            extra={"context": {"code": exc.code.value}},
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


app.include_router(v1.router)

if settings.blob_backend.strip().lower() == "local":
    # local images are served from the same process
    Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
    app.mount(
        settings.upload_url_prefix,
        StaticFiles(directory=settings.upload_dir),
        name="uploads",
    )

Instrumentator().instrument(app).expose(app)
