import re
from datetime import datetime
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException
from app.config import settings
from app.db import engine, Base
from app.routers import auth, users, patients, doctors, appointments
from app.routers import reminders, admin
from app.routers import ai_dashboard, triage, summaries, alerts
from app.responses import (
	ApiError,
	api_error_handler,
	http_exception_handler,
	unhandled_exception_handler,
	validation_exception_handler,
)
from app.logger import get_logger

app = FastAPI(title=f"{settings.app_name} API", version=settings.app_version)
log = get_logger("api")

app.add_middleware(
	CORSMiddleware,
	allow_origins=["*"],
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

# Create tables on startup; there is no migration tooling
Base.metadata.create_all(bind=engine)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(users.profile_router)
app.include_router(patients.router)
app.include_router(doctors.router)
app.include_router(appointments.router)
app.include_router(reminders.router)
app.include_router(ai_dashboard.router)
app.include_router(triage.router)
app.include_router(summaries.router)
app.include_router(alerts.router)
app.include_router(admin.router)

app.add_exception_handler(ApiError, api_error_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


@app.middleware("http")
async def normalize_path(request: Request, call_next):
	path = re.sub(r"/{2,}", "/", request.scope["path"])
	if len(path) > 1:
		path = path.rstrip("/")
	request.scope["path"] = path or "/"
	return await call_next(request)


@app.get("/")
@app.get("/health")

def health():
	return {
		"success": True,
		"message": f"{settings.app_name} API is running",
		"timestamp": datetime.now().isoformat(timespec="seconds"),
		"version": settings.app_version,
		"env": settings.app_env,
	}
