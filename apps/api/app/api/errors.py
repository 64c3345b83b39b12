import logging
from typing import NoReturn
from urllib.parse import quote, urlencode

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse

from app.core.config import settings
from app.services.errors import NotFoundError, PermissionDeniedError, UpstreamServiceError

logger = logging.getLogger(__name__)


def raise_http_error(exc: Exception) -> NoReturn:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, PermissionDeniedError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    if isinstance(exc, UpstreamServiceError):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    if isinstance(exc, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    raise exc


def admin_redirect(path: str, *, success: str | None = None, error: str | None = None) -> RedirectResponse:
    url = settings.admin_base_path.rstrip("/") + "/" + path.lstrip("/")
    params = {key: value for key, value in (("success", success), ("error", error)) if value}
    if params:
        url = f"{url}?{urlencode(params, quote_via=quote)}"
    return RedirectResponse(url=url, status_code=status.HTTP_303_SEE_OTHER)


def _format_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "invalid request"
    first = errors[0]
    location = ".".join(str(item) for item in first.get("loc", ()) if item not in {"body", "query", "path", "form"})
    message = str(first.get("msg") or "invalid value")
    return f"{location}: {message}" if location else message


async def _validation_exception_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": _format_validation_error(exc)})


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "internal server error"},
    )


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
