from datetime import date
from fastapi import APIRouter, Depends, Query
from sqlalchemy import func as sa_func
from sqlalchemy.orm import Session
from app.db import get_db
from app import models
from app.middleware import ADMIN_ONLY, Validator, auth_endpoint, require_roles, validate
from app.responses import ApiError, success
from app.schemas import AppointmentOut, DoctorOut
from app.services.booking import parse_date, parse_time

router = APIRouter(prefix="/doctors", tags=["doctors"], dependencies=auth_endpoint())

DOCTOR_RULES = {
	"user_id": "required|integer|exists:users.id",
	"specialty": "required|min:2|max:100",
	"license_number": "required|max:50",
	"consultation_duration": "integer|min:5|max:240",
}
UPDATE_RULES = {
	"specialty": "filled|min:2|max:100",
	"license_number": "filled|max:50",
	"consultation_duration": "integer|min:5|max:240",
}
UPDATABLE_FIELDS = ("specialty", "license_number", "consultation_duration", "working_days", "working_hours", "bio", "qualifications")


def _doctor_dict(d: models.Doctor) -> dict:
	data = DoctorOut.model_validate(d).model_dump()
	u = d.user
	data.update({
		"first_name": u.first_name if u else None,
		"last_name": u.last_name if u else None,
		"email": u.email if u else None,
		"phone": u.phone if u else None,
		"is_active": u.is_active if u else False,
	})
	return data


def _get_doctor(db: Session, doctor_id: int) -> models.Doctor:
	d = db.query(models.Doctor).filter(models.Doctor.id == doctor_id).first()
	if not d:
		raise ApiError(404, "Doctor not found")
	return d


def _license_taken(db: Session, license_number: str, exclude_id: int | None = None) -> bool:
	q = db.query(models.Doctor.id).filter(models.Doctor.license_number == license_number)
	if exclude_id is not None:
		q = q.filter(models.Doctor.id != exclude_id)
	return q.first() is not None


def _check_schedule(data: dict):
	errors = {}
	hours = data.get("working_hours")
	if hours is not None:
		v = Validator(hours if isinstance(hours, dict) else {}, {"start": "required|time", "end": "required|time"})
		if not v.validate():
			errors["working_hours"] = [m for msgs in v.errors.values() for m in msgs]
		elif parse_time(hours["start"]) >= parse_time(hours["end"]):
			errors["working_hours"] = ["The working hours must end after they start."]
	days = data.get("working_days")
	if days is not None:
		allowed = {"monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"}
		if not isinstance(days, list) or not set(d.lower() for d in days if isinstance(d, str)) <= allowed:
			errors["working_days"] = ["The working days must be a list of weekday names."]
	if errors:
		raise ApiError(422, "Validation failed", errors)


@router.get("")
def list_doctors(specialty: str | None = None, db: Session = Depends(get_db)):
	q = db.query(models.Doctor).join(models.User, models.Doctor.user_id == models.User.id).filter(models.User.is_active.is_(True))
	if specialty:
		q = q.filter(sa_func.lower(models.Doctor.specialty) == specialty.lower())
	rows = q.order_by(models.User.last_name, models.User.first_name).all()
	return success([_doctor_dict(d) for d in rows])


@router.get("/specialties")
def list_specialties(db: Session = Depends(get_db)):
	rows = db.query(models.Doctor.specialty, sa_func.count(models.Doctor.id)).join(
		models.User, models.Doctor.user_id == models.User.id,
	).filter(models.User.is_active.is_(True)).group_by(models.Doctor.specialty).order_by(models.Doctor.specialty).all()
	return success([{"specialty": s, "doctor_count": c} for s, c in rows])


@router.get("/{doctor_id}")
def get_doctor(doctor_id: int, db: Session = Depends(get_db)):
	return success(_doctor_dict(_get_doctor(db, doctor_id)))


@router.get("/{doctor_id}/schedule")
def doctor_schedule(doctor_id: int, day: str | None = Query(None, alias="date"), db: Session = Depends(get_db)):
	d = _get_doctor(db, doctor_id)
	try:
		day = parse_date(day) if day else date.today()
	except ValueError:
		raise ApiError(422, "Validation failed", {"date": ["The date is not a valid date (YYYY-MM-DD)."]})
	rows = db.query(models.Appointment).filter(
		models.Appointment.doctor_id == d.id,
		models.Appointment.appointment_date == day,
	).order_by(models.Appointment.start_time).all()
	return success({
		"doctor_id": d.id,
		"date": day.isoformat(),
		"working_days": d.working_days,
		"working_hours": d.working_hours,
		"is_working_day": day.strftime("%A").lower() in [w.lower() for w in (d.working_days or [])],
		"appointments": [AppointmentOut.model_validate(a).model_dump() for a in rows],
	})


@router.get("/{doctor_id}/stats")
def doctor_stats(doctor_id: int, db: Session = Depends(get_db)):
	d = _get_doctor(db, doctor_id)
	by_status = dict(db.query(models.Appointment.status, sa_func.count()).filter(
		models.Appointment.doctor_id == d.id,
	).group_by(models.Appointment.status).all())
	today = date.today()
	todays = db.query(models.Appointment).filter(
		models.Appointment.doctor_id == d.id,
		models.Appointment.appointment_date == today,
		models.Appointment.status != "cancelled",
	).count()
	upcoming = db.query(models.Appointment).filter(
		models.Appointment.doctor_id == d.id,
		models.Appointment.appointment_date > today,
		models.Appointment.status.in_(("scheduled", "confirmed")),
	).count()
	return success({
		"doctor_id": d.id,
		"total_appointments": sum(by_status.values()),
		"by_status": {s: by_status.get(s, 0) for s in models.APPOINTMENT_STATUSES},
		"today_appointments": todays,
		"upcoming_appointments": upcoming,
	})


@router.post("", status_code=201, dependencies=[Depends(require_roles(*ADMIN_ONLY))])
def create_doctor(payload: dict = Depends(validate(DOCTOR_RULES)), db: Session = Depends(get_db)):
	_check_schedule(payload)
	user = db.query(models.User).filter(models.User.id == int(payload["user_id"])).first()
	if user.role != "doctor":
		raise ApiError(422, "Validation failed", {"user_id": ["The user must have the doctor role."]})
	if user.doctor:
		raise ApiError(409, "Doctor profile already exists for this user")
	if _license_taken(db, payload["license_number"]):
		raise ApiError(409, "License number already in use")
	d = models.Doctor(user_id=user.id, **{k: payload[k] for k in UPDATABLE_FIELDS if k in payload})
	db.add(d)
	db.commit()
	db.refresh(d)
	return success(_doctor_dict(d), "Doctor created successfully", 201)


@router.put("/{doctor_id}", dependencies=[Depends(require_roles(*ADMIN_ONLY))])
def update_doctor(doctor_id: int, payload: dict = Depends(validate(UPDATE_RULES)), db: Session = Depends(get_db)):
	d = _get_doctor(db, doctor_id)
	fields = {k: payload[k] for k in UPDATABLE_FIELDS if k in payload}
	if not fields:
		raise ApiError(400, "No valid fields to update")
	_check_schedule(fields)
	if "license_number" in fields and _license_taken(db, fields["license_number"], d.id):
		raise ApiError(409, "License number already in use")
	for k, v in fields.items():
		setattr(d, k, v)
	db.commit()
	db.refresh(d)
	return success(_doctor_dict(d), "Doctor updated successfully")
