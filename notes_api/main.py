import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from notes_api.cache.layer import cache_layer
from notes_api.core.config import get_settings
from notes_api.routers import health, notes
from notes_api.services.exceptions import (
    ForbiddenError,
    NotFoundError,
    NoteServiceError,
    ValidationError,
)

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await cache_layer.init_cache()
    yield
    await cache_layer.close()


app = FastAPI(
    title="Notes API",
    description="Personal notes with cached tag and text search",
    swagger_ui_parameters={"displayRequestDuration": True},
    version="1.0.0",
    lifespan=lifespan,
)

_STATUS_BY_ERROR = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
}


@app.exception_handler(NoteServiceError)
async def note_service_error_handler(request: Request, exc: NoteServiceError):
    status_code = _STATUS_BY_ERROR.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


# Include routers
app.include_router(notes.router)
app.include_router(health.router)


@app.get("/")
async def root():
    return {
        "message": "Welcome to Notes API",
        "docs": "/docs",
        "version": "1.0.0",
    }
