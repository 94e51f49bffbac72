import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from invoicer.core.errors import ConfigurationError
from invoicer.infrastructure import InventoryApiError

logger = logging.getLogger("invoicer.errors")


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_exc_handler(request: Request, exc: HTTPException):
        logger.warning(
            "HTTPException path=%s status=%s detail=%r",
            request.url.path, exc.status_code, exc.detail
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail) if exc.detail else "HTTP error"},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):
        logger.warning("ValidationError path=%s errors=%s", request.url.path, exc.errors())
        return JSONResponse(
            status_code=422,
            content={"error": "Validation error", "details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_exc_handler(request: Request, exc: ConfigurationError):
        logger.warning("ConfigurationError path=%s error=%s", request.url.path, exc)
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(InventoryApiError)
    async def inventory_exc_handler(request: Request, exc: InventoryApiError):
        logger.warning("InventoryApiError path=%s status=%s error=%s", request.url.path, exc.status_code, exc.message)
        return JSONResponse(
            status_code=502,
            content={"error": exc.message, "full_response": exc.full_response},
        )

    @app.exception_handler(Exception)
    async def unhandled_exc_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error at path=%s", request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

