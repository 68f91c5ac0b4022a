"""Request middleware chain: authentication, role checks and input validation.

Each stage is a FastAPI dependency so routers can stack them with
``dependencies=[...]``. Stages run in the order they are listed and stop the
request by raising :class:`ApiError`.
"""
import json
import re
from datetime import datetime
from fastapi import Depends, Request
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from app import models
from app.db import Base, get_db
from app.responses import ApiError
from app.security import verify_access_token
from app.logger import get_logger

log = get_logger("middleware")

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_RE = re.compile(r"^\+?[1-9]\d{0,15}$")
INTEGER_RE = re.compile(r"^-?\d+$")

ADMIN_ONLY = ("admin",)
DOCTOR_ACCESS = ("admin", "doctor")
STAFF_ACCESS = ("admin", "doctor", "nurse", "receptionist")

USER_RULES = {
	"username": "required|min:3|max:50|unique:users",
	"email": "required|email|unique:users",
	"password": "required|password|confirmed",
	"first_name": "required|min:2|max:50",
	"last_name": "required|min:2|max:50",
	"role": "required|in:admin,doctor,nurse,receptionist",
	"phone": "phone",
	"is_active": "boolean",
}

PATIENT_RULES = {
	"first_name": "required|min:2|max:50",
	"last_name": "required|min:2|max:50",
	"email": "required|email",
	"phone": "required|phone",
	"date_of_birth": "required|date",
	"gender": "in:male,female,other",
}

APPOINTMENT_RULES = {
	"patient_id": "required|integer|exists:patients.id",
	"doctor_id": "required|integer|exists:doctors.id",
	"appointment_date": "required|date",
	"start_time": "required|time",
	"end_time": "required|time",
	"appointment_type": "required|max:100",
	"priority": "in:low,normal,high,urgent",
	"status": "in:scheduled,confirmed,completed,cancelled,no_show",
	"follow_up_required": "boolean",
	"follow_up_date": "date",
}

LOGIN_RULES = {
	"email": "required",
	"password": "required",
}


async def read_json_body(request: Request) -> dict:
	raw = await request.body()
	if not raw:
		return {}
	try:
		data = json.loads(raw)
	except ValueError:
		raise ApiError(400, "Invalid JSON body")
	return data if isinstance(data, dict) else {}


async def _extract_token(request: Request) -> str | None:
	header = request.headers.get("authorization", "")
	if header.lower().startswith("bearer "):
		token = header[7:].strip()
		if token:
			return token
	token = request.query_params.get("token")
	if token:
		return token
	if request.headers.get("content-type", "").startswith("application/json"):
		try:
			body = await read_json_body(request)
		except ApiError:
			return None
		if isinstance(body.get("token"), str) and body["token"]:
			return body["token"]
	return None


async def authenticate(request: Request, db: Session = Depends(get_db)) -> models.User:
	token = await _extract_token(request)
	if not token:
		raise ApiError(401, "Authentication token required")
	payload = verify_access_token(token)
	if not payload:
		raise ApiError(401, "Invalid or expired token")
	user = db.query(models.User).filter(models.User.id == payload.get("user_id")).first()
	if not user:
		raise ApiError(401, "User not found")
	if not user.is_active:
		raise ApiError(401, "User account is inactive")
	request.state.auth_user = user
	request.state.user_id = user.id
	request.state.user_role = user.role
	return user


def current_user(user: models.User = Depends(authenticate)) -> models.User:
	return user


def require_roles(*roles: str):
	def check_role(user: models.User = Depends(authenticate)) -> models.User:
		if user.role not in roles:
			log.info("User %s (%s) denied, requires %s", user.id, user.role, roles)
			raise ApiError(403, f"Insufficient permissions. Required roles: {', '.join(roles)}")
		return user
	return check_role


class Validator:
	"""Checks a dict of input against ``"rule|rule:arg"`` strings."""

	def __init__(self, data: dict, rules: dict[str, str], db: Session | None = None):
		self.data = data
		self.rules = rules
		self.db = db
		self.errors: dict[str, list[str]] = {}

	def validate(self) -> bool:
		for field, rule_string in self.rules.items():
			value = self.data.get(field)
			for rule in rule_string.split("|"):
				name, _, arg = rule.partition(":")
				if name not in ("required", "filled") and _is_empty(value):
					continue
				message = getattr(self, f"_rule_{name}")(field, value, arg)
				if message:
					self.errors.setdefault(field, []).append(message)
		return not self.errors

	def _rule_required(self, field, value, arg):
		if _is_empty(value):
			return f"The {field} field is required."

	def _rule_filled(self, field, value, arg):
		if field in self.data and _is_empty(value):
			return f"The {field} field must have a value."

	def _rule_email(self, field, value, arg):
		if not isinstance(value, str) or not EMAIL_RE.match(value):
			return f"The {field} must be a valid email address."

	def _rule_min(self, field, value, arg):
		limit = float(arg)
		if _is_number(value):
			if value < limit:
				return f"The {field} must be at least {arg}."
		elif len(str(value)) < limit:
			return f"The {field} must be at least {arg} characters."

	def _rule_max(self, field, value, arg):
		limit = float(arg)
		if _is_number(value):
			if value > limit:
				return f"The {field} may not be greater than {arg}."
		elif len(str(value)) > limit:
			return f"The {field} may not be greater than {arg} characters."

	def _rule_numeric(self, field, value, arg):
		if _is_number(value):
			return None
		try:
			float(str(value))
		except ValueError:
			return f"The {field} must be a number."

	def _rule_integer(self, field, value, arg):
		if isinstance(value, bool) or not (isinstance(value, int) or INTEGER_RE.match(str(value))):
			return f"The {field} must be an integer."

	def _rule_boolean(self, field, value, arg):
		try:
			parse_bool(value)
		except ValueError:
			return f"The {field} field must be true or false."

	def _rule_date(self, field, value, arg):
		if not _parses(value, ("%Y-%m-%d",)):
			return f"The {field} is not a valid date (YYYY-MM-DD)."

	def _rule_datetime(self, field, value, arg):
		if not _parses(value, ("%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M")):
			return f"The {field} is not a valid datetime."

	def _rule_time(self, field, value, arg):
		if not _parses(value, ("%H:%M:%S", "%H:%M")):
			return f"The {field} is not a valid time (HH:MM:SS)."

	def _rule_in(self, field, value, arg):
		allowed = arg.split(",")
		if str(value) not in allowed:
			return f"The selected {field} is invalid. Allowed: {', '.join(allowed)}."

	def _rule_phone(self, field, value, arg):
		cleaned = re.sub(r"[^\d+]", "", str(value))
		if not PHONE_RE.match(cleaned):
			return f"The {field} must be a valid phone number."

	def _rule_password(self, field, value, arg):
		value = str(value)
		if len(value) < 8 or not re.search(r"[A-Za-z]", value) or not re.search(r"\d", value):
			return f"The {field} must be at least 8 characters and contain letters and numbers."

	def _rule_confirmed(self, field, value, arg):
		if self.data.get(f"{field}_confirmation") != value:
			return f"The {field} confirmation does not match."

	def _rule_unique(self, field, value, arg):
		table_name, _, column = arg.partition(",")
		if self._count(table_name, column or field, value):
			return f"The {field} has already been taken."

	def _rule_exists(self, field, value, arg):
		table_name, _, column = arg.partition(".")
		if not self._count(table_name, column or "id", value):
			return f"The selected {field} does not exist."

	def _count(self, table_name: str, column: str, value) -> int:
		if self.db is None:
			raise RuntimeError("database-backed rules need a session")
		table = Base.metadata.tables[table_name]
		stmt = select(func.count()).select_from(table).where(table.c[column] == value)
		return self.db.execute(stmt).scalar() or 0


BOOL_VALUES = {"true": True, "1": True, "false": False, "0": False}


def parse_bool(value) -> bool:
	if isinstance(value, bool):
		return value
	if isinstance(value, (int, str)) and str(value).strip().lower() in BOOL_VALUES:
		return BOOL_VALUES[str(value).strip().lower()]
	raise ValueError(f"not a boolean: {value!r}")


def _is_empty(value) -> bool:
	return value is None or (isinstance(value, str) and not value.strip()) or value == [] or value == {}


def _is_number(value) -> bool:
	return isinstance(value, (int, float)) and not isinstance(value, bool)


def _parses(value, formats) -> bool:
	for fmt in formats:
		try:
			datetime.strptime(str(value), fmt)
			return True
		except ValueError:
			continue
	return False


def validate(rules: dict[str, str]):
	async def run_validation(request: Request, db: Session = Depends(get_db)) -> dict:
		data = await read_json_body(request)
		v = Validator(data, rules, db)
		if not v.validate():
			raise ApiError(422, "Validation failed", v.errors)
		return data
	return run_validation


# Endpoint presets, applied as router/route ``dependencies``.

def public_endpoint() -> list:
	return []


def auth_endpoint() -> list:
	return [Depends(authenticate)]


def admin_endpoint() -> list:
	return [Depends(authenticate), Depends(require_roles(*ADMIN_ONLY))]


def doctor_endpoint() -> list:
	return [Depends(authenticate), Depends(require_roles(*DOCTOR_ACCESS))]


def staff_endpoint() -> list:
	return [Depends(authenticate), Depends(require_roles(*STAFF_ACCESS))]


def login_endpoint() -> list:
	return [Depends(validate(LOGIN_RULES))]
