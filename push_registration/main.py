"""Main FastAPI application for the push registration service."""
import logging
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, settings
from .database import Database
from .errors import InvalidOperation, StorageUnavailable
from .routers import registrations_router
from .services.registration_store import RegistrationStore

logger = logging.getLogger(__name__)

ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    404: "MATCHING_RESOURCE_NOT_FOUND",
    503: "SERVICE_UNAVAILABLE",
}


def configure_logging(level: str):
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _error(status_code: int, message: str) -> JSONResponse:
    code = ERROR_CODES.get(status_code) or HTTPStatus(status_code).name
    return JSONResponse(status_code=status_code, content={"code": code, "message": message})


def register_error_handlers(app: FastAPI):
    """Map store and request errors onto JSON error responses."""

    @app.exception_handler(InvalidOperation)
    async def invalid_operation_handler(request: Request, exc: InvalidOperation):
        logger.warning(f"Rejected {request.method} {request.url.path}: {exc}")
        return _error(400, str(exc))

    @app.exception_handler(StorageUnavailable)
    async def storage_unavailable_handler(request: Request, exc: StorageUnavailable):
        logger.error(f"Storage unavailable for {request.method} {request.url.path}: {exc}")
        return _error(503, "The registration store is currently unavailable")

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError):
        return _error(400, str(exc.errors()))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and exc.detail == "Not Found":
            message = "A resource with the name in the request can not be found in the API"
        else:
            message = str(exc.detail)
        return _error(exc.status_code, message)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error for {request.method} {request.url.path}: {exc}", exc_info=exc)
        return _error(500, "Internal server error")


def create_app(cfg: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    cfg = cfg or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan - startup and shutdown."""
        logger.info("Starting push registration service")

        database = Database.from_settings(cfg).open()
        store = RegistrationStore(database, claim_lease=cfg.claim_lease)
        await store.ensure_indexes()
        if store.claim_lease is None:
            logger.info("Claim lease disabled: unresolved claims are never reclaimed")
        else:
            logger.info(f"Claim lease: {store.claim_lease}")

        app.state.database = database
        app.state.registration_store = store
        logger.info("Database initialized")

        yield

        await database.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="Push Registration",
        description="Push token registrations and endpoint resolution batches",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, restrict to your domain
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(registrations_router)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    return app


configure_logging(settings.log_level)

# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.web_port)
