from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from app.db import get_db
from app import models
from app.middleware import APPOINTMENT_RULES, doctor_endpoint, current_user, parse_bool, require_roles, validate
from app.responses import ApiError, success
from app.schemas import AppointmentOut
from app.services import booking
from app.services.reminders import cancel_appointment_reminders, schedule_appointment_reminders
from app.logger import get_logger

router = APIRouter(prefix="/appointments", tags=["appointments"], dependencies=doctor_endpoint())
log = get_logger("appointments")

CANCEL_ROLES = ("admin", "doctor", "receptionist")
UPDATABLE_FIELDS = (
	"appointment_date", "start_time", "end_time", "status", "appointment_type", "priority",
	"notes", "diagnosis", "treatment_notes", "follow_up_required", "follow_up_date",
)
UPDATE_RULES = {
	"appointment_date": "date",
	"start_time": "time",
	"end_time": "time",
	"appointment_type": "max:100",
	"priority": "in:low,normal,high,urgent",
	"status": "in:scheduled,confirmed,completed,cancelled,no_show",
	"follow_up_required": "boolean",
	"follow_up_date": "date",
}
SLOT_FIELDS = ("appointment_date", "start_time", "end_time")
NULLABLE_FIELDS = ("notes", "diagnosis", "treatment_notes", "follow_up_date")


def appointment_dict(a: models.Appointment) -> dict:
	data = AppointmentOut.model_validate(a).model_dump()
	data["patient_name"] = a.patient.full_name if a.patient else None
	data["doctor_name"] = f"Dr. {a.doctor.user.full_name}" if a.doctor and a.doctor.user else None
	data["specialty"] = a.doctor.specialty if a.doctor else None
	return data


def get_appointment(db: Session, appointment_id: int) -> models.Appointment:
	a = db.query(models.Appointment).filter(models.Appointment.id == appointment_id).first()
	if not a:
		raise ApiError(404, "Appointment not found")
	return a


def _coerce(fields: dict) -> dict:
	out = {k: (None if v == "" else v) for k, v in fields.items() if v not in (None, "") or k in NULLABLE_FIELDS}
	for k in ("appointment_date", "follow_up_date"):
		if out.get(k):
			out[k] = booking.parse_date(out[k])
	for k in ("start_time", "end_time"):
		if out.get(k):
			out[k] = booking.parse_time(out[k])
	if "follow_up_required" in out:
		out["follow_up_required"] = parse_bool(out["follow_up_required"])
	return out


def _commit_slot(db: Session):
	# the unique slot index also covers cancelled rows
	try:
		db.commit()
	except IntegrityError:
		db.rollback()
		raise ApiError(409, "Time slot conflicts with existing appointment")


def _require_order(start, end):
	if end <= start:
		raise ApiError(422, "Validation failed", {"end_time": ["The end time must be after the start time."]})


@router.get("")
def list_appointments(
	date: str | None = None,
	doctor_id: int | None = None,
	patient_id: int | None = None,
	status: str | None = None,
	db: Session = Depends(get_db),
):
	q = db.query(models.Appointment)
	if date:
		try:
			q = q.filter(models.Appointment.appointment_date == booking.parse_date(date))
		except ValueError:
			raise ApiError(422, "Validation failed", {"date": ["The date is not a valid date (YYYY-MM-DD)."]})
	if doctor_id:
		q = q.filter(models.Appointment.doctor_id == doctor_id)
	if patient_id:
		q = q.filter(models.Appointment.patient_id == patient_id)
	if status:
		q = q.filter(models.Appointment.status == status)
	rows = q.order_by(models.Appointment.appointment_date, models.Appointment.start_time).all()
	return success([appointment_dict(a) for a in rows])


@router.get("/available-slots")
def available_slots(
	doctor_id: int,
	date: str,
	duration: int = Query(booking.DEFAULT_DURATION_MINUTES, ge=5, le=480),
	db: Session = Depends(get_db),
):
	doctor = db.query(models.Doctor).filter(models.Doctor.id == doctor_id).first()
	if not doctor:
		raise ApiError(404, "Doctor not found")
	try:
		day = booking.parse_date(date)
	except ValueError:
		raise ApiError(422, "Validation failed", {"date": ["The date is not a valid date (YYYY-MM-DD)."]})
	return success({
		"date": day.isoformat(),
		"doctor_id": doctor.id,
		"duration": duration,
		"available_slots": booking.available_slots(db, doctor, day, duration),
	})


@router.get("/{appointment_id}")
def get_one(appointment_id: int, db: Session = Depends(get_db)):
	return success(appointment_dict(get_appointment(db, appointment_id)))


@router.post("", status_code=201)
def create_appointment(
	payload: dict = Depends(validate(APPOINTMENT_RULES)),
	user: models.User = Depends(current_user),
	db: Session = Depends(get_db),
):
	fields = _coerce({k: payload[k] for k in UPDATABLE_FIELDS if k in payload})
	_require_order(fields["start_time"], fields["end_time"])
	doctor_id, patient_id = int(payload["doctor_id"]), int(payload["patient_id"])
	if booking.has_conflict(db, doctor_id, fields["appointment_date"], fields["start_time"], fields["end_time"]):
		raise ApiError(409, "Time slot conflicts with existing appointment")
	fields.setdefault("priority", "normal")
	fields.setdefault("status", "scheduled")
	appt = models.Appointment(doctor_id=doctor_id, patient_id=patient_id, created_by=user.id, **fields)
	db.add(appt)
	_commit_slot(db)
	db.refresh(appt)
	log.info("Appointment %s booked for patient %s with doctor %s", appt.id, patient_id, doctor_id)
	schedule_appointment_reminders(db, appt)
	return success(appointment_dict(appt), "Appointment created successfully", 201)


@router.put("/{appointment_id}")
def update_appointment(appointment_id: int, payload: dict = Depends(validate(UPDATE_RULES)), db: Session = Depends(get_db)):
	appt = get_appointment(db, appointment_id)
	fields = _coerce({k: payload[k] for k in UPDATABLE_FIELDS if k in payload})
	if not fields:
		raise ApiError(400, "No valid fields to update")
	reopening = appt.status == "cancelled" and fields.get("status", appt.status) != "cancelled"
	if reopening or any(k in fields for k in SLOT_FIELDS):
		day = fields.get("appointment_date", appt.appointment_date)
		start = fields.get("start_time", appt.start_time)
		end = fields.get("end_time", appt.end_time)
		_require_order(start, end)
		if booking.has_conflict(db, appt.doctor_id, day, start, end, exclude_id=appt.id):
			raise ApiError(409, "Time slot conflicts with existing appointment")
	for k, v in fields.items():
		setattr(appt, k, v)
	_commit_slot(db)
	db.refresh(appt)
	if appt.status == "cancelled":
		cancel_appointment_reminders(db, appt.id)
	elif reopening:
		schedule_appointment_reminders(db, appt)
	return success(appointment_dict(appt), "Appointment updated successfully")


@router.delete("/{appointment_id}", dependencies=[Depends(require_roles(*CANCEL_ROLES))])
def cancel_appointment(appointment_id: int, db: Session = Depends(get_db)):
	appt = get_appointment(db, appointment_id)
	appt.status = "cancelled"
	db.commit()
	cancelled = cancel_appointment_reminders(db, appt.id)
	log.info("Appointment %s cancelled, %d reminders cancelled", appt.id, cancelled)
	return success({"reminders_cancelled": cancelled}, "Appointment cancelled successfully")
