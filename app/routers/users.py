from fastapi import APIRouter, Depends, Query
from sqlalchemy import func as sa_func, or_
from sqlalchemy.orm import Session
from app.db import get_db
from app import models
from app import security
from app.middleware import USER_RULES, admin_endpoint, auth_endpoint, current_user, parse_bool, validate
from app.responses import ApiError, paginate, success
from app.schemas import DoctorOut, UserOut
from app.logger import get_logger

router = APIRouter(prefix="/users", tags=["users"], dependencies=admin_endpoint())
profile_router = APIRouter(prefix="/profile", tags=["profile"], dependencies=auth_endpoint())
log = get_logger("users")

UPDATABLE_FIELDS = ("email", "first_name", "last_name", "phone", "role", "is_active")
PROFILE_FIELDS = ("email", "first_name", "last_name", "phone")
UPDATE_RULES = {
	"email": "filled|email|max:100",
	"first_name": "filled|min:2|max:50",
	"last_name": "filled|min:2|max:50",
	"phone": "phone",
	"role": "filled|in:admin,doctor,nurse,receptionist",
	"is_active": "filled|boolean",
	"password": "password|confirmed",
}
PROFILE_RULES = {k: UPDATE_RULES[k] for k in (*PROFILE_FIELDS, "password")}


def _user_dict(user: models.User) -> dict:
	data = UserOut.model_validate(user).model_dump()
	if user.doctor:
		data["doctor_profile"] = DoctorOut.model_validate(user.doctor).model_dump()
	return data


def _get_user(db: Session, user_id: int) -> models.User:
	user = db.query(models.User).filter(models.User.id == user_id).first()
	if not user:
		raise ApiError(404, "User not found")
	return user


def _ensure_doctor_profile(db: Session, user: models.User, data: dict):
	if user.doctor:
		return
	db.add(models.Doctor(
		user_id=user.id,
		specialty=data.get("specialty") or "General Practice",
		license_number=data.get("license_number") or f"LIC{user.id:06d}",
	))


def _drop_doctor_profile(db: Session, user: models.User):
	doctor = user.doctor
	if not doctor:
		return
	if db.query(models.Appointment).filter(models.Appointment.doctor_id == doctor.id).count():
		raise ApiError(409, "Cannot change role of a doctor with existing appointments")
	db.delete(doctor)


def _check_email_free(db: Session, email: str, user_id: int):
	taken = db.query(models.User.id).filter(
		sa_func.lower(models.User.email) == email.lower(),
		models.User.id != user_id,
	).first()
	if taken:
		raise ApiError(400, "Email already exists")


@router.get("")
def list_users(
	page: int = Query(1, ge=1),
	per_page: int = Query(20, ge=1, le=100),
	search: str | None = None,
	role: str | None = None,
	is_active: bool | None = None,
	db: Session = Depends(get_db),
):
	q = db.query(models.User)
	if search:
		like = f"%{search.lower()}%"
		q = q.filter(or_(
			sa_func.lower(models.User.username).like(like),
			sa_func.lower(models.User.email).like(like),
			sa_func.lower(models.User.first_name).like(like),
			sa_func.lower(models.User.last_name).like(like),
		))
	if role:
		q = q.filter(models.User.role == role)
	if is_active is not None:
		q = q.filter(models.User.is_active.is_(is_active))
	total = q.count()
	rows = q.order_by(models.User.last_name, models.User.first_name).offset((page - 1) * per_page).limit(per_page).all()
	return success(paginate([UserOut.model_validate(u).model_dump() for u in rows], total, page, per_page))


@router.get("/{user_id}")
def get_user(user_id: int, db: Session = Depends(get_db)):
	return success(_user_dict(_get_user(db, user_id)))


@router.post("", status_code=201)
def create_user(payload: dict = Depends(validate(USER_RULES)), db: Session = Depends(get_db)):
	user = models.User(
		username=payload["username"].strip(),
		email=payload["email"].strip().lower(),
		password_hash=security.hash_password(payload["password"]),
		role=payload["role"],
		first_name=payload["first_name"].strip(),
		last_name=payload["last_name"].strip(),
		phone=payload.get("phone"),
		is_active=True if payload.get("is_active") in (None, "") else parse_bool(payload["is_active"]),
	)
	db.add(user)
	db.flush()
	if user.role == "doctor":
		_ensure_doctor_profile(db, user, payload)
	db.commit()
	db.refresh(user)
	log.info("Created user %s (%s)", user.id, user.role)
	return success(_user_dict(user), "User created successfully", 201)


@router.put("/{user_id}")
def update_user(user_id: int, data: dict = Depends(validate(UPDATE_RULES)), db: Session = Depends(get_db)):
	user = _get_user(db, user_id)
	changes = {k: data[k] for k in UPDATABLE_FIELDS if k in data}
	if not changes and not data.get("password"):
		raise ApiError(400, "No valid fields to update")
	if "is_active" in changes:
		changes["is_active"] = parse_bool(changes["is_active"])
	if "email" in changes:
		changes["email"] = str(changes["email"]).strip().lower()
		_check_email_free(db, changes["email"], user.id)
	if "role" in changes and changes["role"] != user.role:
		if changes["role"] == "doctor":
			_ensure_doctor_profile(db, user, data)
		elif user.role == "doctor":
			_drop_doctor_profile(db, user)
	for k, val in changes.items():
		setattr(user, k, val)
	if data.get("password"):
		user.password_hash = security.hash_password(data["password"])
		security.revoke_all_user_tokens(db, user.id)
	db.commit()
	db.refresh(user)
	return success(_user_dict(user), "User updated successfully")


@router.delete("/{user_id}")
def delete_user(user_id: int, me: models.User = Depends(current_user), db: Session = Depends(get_db)):
	if user_id == me.id:
		raise ApiError(400, "You cannot delete your own account")
	user = _get_user(db, user_id)
	user.is_active = False
	db.commit()
	revoked = security.revoke_all_user_tokens(db, user.id)
	log.info("Deactivated user %s, %d tokens revoked", user.id, revoked)
	return success(message="User deactivated successfully")


@router.post("/{user_id}/activate")
def activate_user(user_id: int, db: Session = Depends(get_db)):
	user = _get_user(db, user_id)
	user.is_active = True
	db.commit()
	db.refresh(user)
	return success(_user_dict(user), "User activated successfully")


@profile_router.get("")
def get_profile(me: models.User = Depends(current_user)):
	return success(_user_dict(me))


@profile_router.put("")
def update_profile(data: dict = Depends(validate(PROFILE_RULES)), me: models.User = Depends(current_user), db: Session = Depends(get_db)):
	changes = {k: data[k] for k in PROFILE_FIELDS if k in data}
	if not changes and not data.get("password"):
		raise ApiError(400, "No valid fields to update")
	user = me
	if "email" in changes:
		changes["email"] = str(changes["email"]).strip().lower()
		_check_email_free(db, changes["email"], user.id)
	if data.get("password"):
		if not security.verify_password(str(data.get("current_password") or ""), user.password_hash):
			raise ApiError(400, "Current password is incorrect")
		user.password_hash = security.hash_password(data["password"])
	for k, val in changes.items():
		setattr(user, k, val)
	db.commit()
	db.refresh(user)
	return success(_user_dict(user), "Profile updated successfully")
