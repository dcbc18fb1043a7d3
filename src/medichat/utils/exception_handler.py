# src/medichat/utils/exception_handler.py
from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError, IntegrityError, OperationalError
from slowapi.errors import RateLimitExceeded
from .logger import setup_logger
from .exceptions import ServiceError, ErrorCode, ERROR_STATUS

logger = setup_logger("EXCEPTION_HANDLER")


def _error_body(error: str, message, status_code: int) -> dict:
    return {"error": error, "message": message, "status": status_code}


def setup_exception_handlers(app: FastAPI):
    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        if exc.status_code >= 500:
            logger.error(f"{exc.code.value} on {request.url.path}: {exc.detail}")
        elif exc.status_code == status.HTTP_404_NOT_FOUND:
            logger.info(f"Not found ({exc.code.value}) on {request.url.path}")
        else:
            logger.warning(f"{exc.code.value} on {request.url.path}: {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.code.value, exc.detail, exc.status_code),
            headers=exc.headers,
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        error_names = {
            status.HTTP_400_BAD_REQUEST: "BAD_REQUEST",
            status.HTTP_401_UNAUTHORIZED: ErrorCode.UNAUTHENTICATED.value,
            status.HTTP_403_FORBIDDEN: "FORBIDDEN",
            status.HTTP_404_NOT_FOUND: "NOT_FOUND",
            status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
            status.HTTP_409_CONFLICT: "CONFLICT",
            413: "PAYLOAD_TOO_LARGE",
        }
        error = error_names.get(exc.status_code, "HTTP_ERROR")
        logger.warning(f"HTTP Exception {exc.status_code}: {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(error, exc.detail, exc.status_code),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
        if isinstance(exc, OperationalError):
            logger.error(f"Database unavailable: {exc}")
            code = ErrorCode.DATABASE_NOT_AVAILABLE
            status_code = ERROR_STATUS[code]
            return JSONResponse(
                status_code=status_code,
                content=_error_body(code.value, "Database not available", status_code),
            )

        logger.error(f"Database error: {str(exc)}", exc_info=True)
        if isinstance(exc, IntegrityError):
            error = "CONFLICT"
            detail = "Database integrity error - possible duplicate or constraint violation"
            status_code = status.HTTP_409_CONFLICT
        else:
            error = "DATABASE_ERROR"
            detail = "Database operation failed"
            status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

        return JSONResponse(
            status_code=status_code,
            content=_error_body(error, detail, status_code),
        )

    @app.exception_handler(ConnectionRefusedError)
    async def connection_refused_handler(request: Request, exc: ConnectionRefusedError):
        logger.error(f"Database connection refused: {exc}")
        code = ErrorCode.DATABASE_NOT_AVAILABLE
        return JSONResponse(
            status_code=ERROR_STATUS[code],
            content=_error_body(
                code.value, "Database not available", ERROR_STATUS[code]
            ),
        )

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
        logger.warning(f"Rate limit exceeded on {request.url.path}: {exc.detail}")
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content=_error_body(
                "RATE_LIMITED",
                f"Too many requests - limit is {exc.detail}",
                status.HTTP_429_TOO_MANY_REQUESTS,
            ),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unexpected error: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(
                "INTERNAL_ERROR",
                "Internal server error",
                status.HTTP_500_INTERNAL_SERVER_ERROR,
            ),
        )
