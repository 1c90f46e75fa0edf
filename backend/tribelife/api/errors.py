"""Error mapping shared by the API routers."""

from __future__ import annotations

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tribelife.domain.common.errors import PolicyError


def policy_http_error(exc: PolicyError) -> HTTPException:
	detail = exc.code if exc.detail == exc.code else {"code": exc.code, "message": exc.detail}
	return HTTPException(status_code=exc.status_code, detail=detail)


def install_error_handlers(app: FastAPI) -> None:
	@app.exception_handler(StarletteHTTPException)
	async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
		payload = {"detail": exc.detail, "request_id": getattr(request.state, "request_id", None)}
		return JSONResponse(status_code=exc.status_code, content=payload)

	@app.exception_handler(RequestValidationError)
	async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
		payload = {
			"detail": "validation_error",
			"errors": exc.errors(),
			"request_id": getattr(request.state, "request_id", None),
		}
		return JSONResponse(status_code=422, content=payload)
