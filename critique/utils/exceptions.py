import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from critique.models.status import IllegalStatusTransition
from critique.utils.response import error_response

logger = logging.getLogger(__name__)


class AppException(Exception):
    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(exc.message),
        )

    @app.exception_handler(IllegalStatusTransition)
    async def illegal_transition_handler(request: Request, exc: IllegalStatusTransition) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content=error_response(str(exc), data={"current": exc.current, "target": exc.target}),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=error_response("Internal server error"),
        )
