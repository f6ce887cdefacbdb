"""FastAPI application: lifespan wiring and error mapping."""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from clipreel import validate_dependencies, __version__
from clipreel.api.routes import router
from clipreel.config import settings
from clipreel.db import init_database, shutdown
from clipreel.errors import EmptyBatch, InvalidJobState, NotFound, PipelineError

logger = logging.getLogger(__name__)

_STATUS_FOR_ERROR = {
    NotFound: 404,
    InvalidJobState: 409,
    EmptyBatch: 422,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Check ffmpeg, create the schema and the compile work root; dispose the engine on exit."""
    ffmpeg_version = validate_dependencies()
    await init_database()
    settings.storage.work_dir.mkdir(parents=True, exist_ok=True)
    logger.info(f"clipreel API {__version__} ready ({ffmpeg_version})")

    yield

    await shutdown()
    logger.info("clipreel API stopped")


app = FastAPI(
    title="clipreel API",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(router)


@app.exception_handler(PipelineError)
async def pipeline_exception_handler(request: Request, exc: PipelineError):
    status_code = next(
        (code for cls, code in _STATUS_FOR_ERROR.items() if isinstance(exc, cls)), 500
    )
    if status_code == 500:
        logger.error(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc}")
    return JSONResponse(status_code=status_code, content={"error": str(exc)})


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Keep stack traces out of API responses."""
    logger.error(f"Unhandled exception in {request.method} {request.url.path}: {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"},
    )
