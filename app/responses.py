import math
from datetime import datetime
from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from app.logger import get_logger

log = get_logger("api")


class ApiError(Exception):
	"""Error raised from routers and services, rendered as an error envelope."""

	def __init__(self, status_code: int, message: str, details=None):
		super().__init__(message)
		self.status_code = status_code
		self.message = message
		self.details = details


def _now() -> str:
	return datetime.now().isoformat(timespec="seconds")


def success(data=None, message: str = "Success", status_code: int = 200) -> JSONResponse:
	body = {"success": True, "message": message, "timestamp": _now()}
	if data is not None:
		body["data"] = data
	return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def error(message: str, status_code: int = 400, details=None) -> JSONResponse:
	body = {"success": False, "message": message, "timestamp": _now()}
	if details is not None:
		body["details"] = details
	return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def paginate(items: list, total: int, page: int, per_page: int) -> dict:
	total_pages = math.ceil(total / per_page) if per_page else 0
	return {
		"items": items,
		"pagination": {
			"current_page": page,
			"per_page": per_page,
			"total": total,
			"total_pages": total_pages,
			"has_next": page < total_pages,
			"has_prev": page > 1,
		},
	}


async def api_error_handler(request: Request, exc: ApiError):
	return error(exc.message, exc.status_code, exc.details)


async def http_exception_handler(request: Request, exc: HTTPException):
	if exc.status_code == 404 and exc.detail == "Not Found":
		return error("Route not found", 404, {"method": request.method, "path": request.url.path})
	if exc.status_code == 405:
		return error("Method not allowed", 405, {"method": request.method, "path": request.url.path})
	return error(str(exc.detail), exc.status_code)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
	details: dict[str, list[str]] = {}
	for err in exc.errors():
		loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
		details.setdefault(".".join(loc) or "request", []).append(err.get("msg", "invalid"))
	return error("Validation failed", 422, details)


async def unhandled_exception_handler(request: Request, exc: Exception):
	log.exception("Unhandled error: %s", exc)
	return error("Internal server error", 500)
