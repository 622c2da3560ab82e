from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette import status

from .core.config import get_settings
from .core.errors import (
    AssetAlreadyExists,
    AssetNotFound,
    DataNotFound,
    InvalidAssetIdentifier,
    InvalidAssetType,
    InvalidAssetURL,
    InvalidImageFormat,
    InvalidQueryFilter,
    NestError,
    UnableToConvertData,
)
from .core.logging import get_logger
from .routers import assets, health
from .services.nest import close_nest

settings = get_settings()

app = FastAPI(title=settings.app_name, version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(assets.router, prefix=settings.api_prefix)

_STATUS_BY_ERROR = {
    AssetNotFound: status.HTTP_404_NOT_FOUND,
    DataNotFound: status.HTTP_404_NOT_FOUND,
    AssetAlreadyExists: status.HTTP_409_CONFLICT,
    InvalidAssetURL: status.HTTP_400_BAD_REQUEST,
    InvalidAssetIdentifier: status.HTTP_400_BAD_REQUEST,
    InvalidAssetType: status.HTTP_400_BAD_REQUEST,
    InvalidImageFormat: status.HTTP_400_BAD_REQUEST,
    InvalidQueryFilter: status.HTTP_400_BAD_REQUEST,
    UnableToConvertData: status.HTTP_400_BAD_REQUEST,
}


@app.exception_handler(NestError)
async def _nest_error_handler(request: Request, exc: NestError) -> JSONResponse:
    status_code = _STATUS_BY_ERROR.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        get_logger().error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "error": type(exc).__name__})


@app.on_event("startup")
def _configure_logging() -> None:
    get_logger(settings.log_level).info("Storage root: %s", settings.resolved_storage_root)


@app.on_event("shutdown")
def _close_default_nest() -> None:
    close_nest()
