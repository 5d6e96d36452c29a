import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.database import close_engine, init_db
from app.routers import auth, categories, documents, notifications
from app.services.cache_service import cache_service
from app.services.notification_service import init_hub, shutdown_hub
from app.utils.errors import AppError, ErrorKind
from app.utils.logging import setup_logging

logger = logging.getLogger("app")

VERSION = "0.1.0"

_HTTP_ERROR_CODES = {
    401: "UNAUTHENTICATED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await init_db()
    init_hub()
    logger.info("Document hub started")
    yield
    await shutdown_hub()
    await cache_service.close()
    await close_engine()
    logger.info("Document hub stopped")


app = FastAPI(
    title="Document Hub",
    description="Multi-user document storage with live updates",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.client_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(status_code: int, message: str, code: str, details=None) -> JSONResponse:
    error = {"message": message, "code": code}
    if details is not None:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.kind is ErrorKind.INTERNAL:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message, exc_info=exc)
        return _error_response(exc.status_code, "Internal server error", exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_envelope())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(part) for part in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return _error_response(400, "Validation failed", "VALIDATION_ERROR", details)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = _HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    return _error_response(exc.status_code, str(exc.detail), code)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("%s on %s", type(exc).__name__, request.url.path, exc_info=exc)
    return _error_response(500, "Internal server error", "INTERNAL_ERROR")


app.include_router(auth.router, prefix=settings.api_prefix)
app.include_router(categories.router, prefix=settings.api_prefix)
app.include_router(documents.router, prefix=settings.api_prefix)
app.include_router(notifications.router, prefix=settings.api_prefix)


@app.get("/health")
async def health():
    return {"status": "ok", "version": VERSION}
