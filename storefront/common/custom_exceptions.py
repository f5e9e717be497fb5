from fastapi import FastAPI, Request,status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from storefront import logger
from storefront.common.utils import build_error, json_error
from storefront.common.constants import request_id_ctx


async def fallback_handler(request: Request, exc: Exception):

    rid = request_id_ctx.get(None)

    logger.error(
        "unexpected.exception",
        extra={
            "path": request.url.path,
            "method": request.method,
        },
        exc_info=(type(exc), exc, exc.__traceback__),
    )

    payload = build_error(code="SERVER_ERROR", message="Internal Server Error", request_id=rid)
    return json_error(payload, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    rid = request_id_ctx.get(None)
    errors = exc.errors()
    logger.warning(
        "request.validation_failed",
        extra={
            "errors": errors,
            "path": request.url.path,
        },
    )

    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
    msg = first.get("msg") or "Invalid request"
    message = f"{field}: {msg}" if field else msg

    payload = build_error(code="VALIDATION_ERROR", message=message, request_id=rid)
    return json_error(payload, status_code=status.HTTP_400_BAD_REQUEST)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):

    rid = request_id_ctx.get(None)
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"

    payload = build_error(code=f"HTTP_{exc.status_code}", message=message, request_id=rid)
    return json_error(payload, status_code=exc.status_code, headers=getattr(exc, "headers", None))


def register_all_exceptions(app: FastAPI):

    app.add_exception_handler(
        Exception, # anything not handled below
        fallback_handler
    )

    app.add_exception_handler(
        RequestValidationError,
        validation_exception_handler
    )

    app.add_exception_handler(
        StarletteHTTPException, # also covers fastapi.HTTPException and router 404/405
        http_exception_handler
    )
