from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from sqlalchemy.sql import func as sa_func
from sqlalchemy import or_
from app.db import get_db
from app import models
from app.middleware import PATIENT_RULES, ADMIN_ONLY, doctor_endpoint, require_roles, validate
from app.responses import ApiError, success
from app.schemas import AppointmentOut, PatientOut
from app.services.booking import parse_date

router = APIRouter(prefix="/patients", tags=["patients"], dependencies=doctor_endpoint())

UPDATABLE_FIELDS = (
	"first_name", "last_name", "email", "phone", "date_of_birth", "gender", "address",
	"emergency_contact_name", "emergency_contact_phone", "medical_notes", "allergies",
	"blood_type", "insurance_provider", "insurance_policy_number",
)
UPDATE_RULES = {
	"first_name": "filled|min:2|max:50",
	"last_name": "filled|min:2|max:50",
	"email": "filled|email|max:100",
	"phone": "filled|phone",
	"date_of_birth": "filled|date",
	"gender": "in:male,female,other",
	"emergency_contact_phone": "phone",
}


def _get_patient(db: Session, patient_id: int) -> models.Patient:
	p = db.query(models.Patient).filter(models.Patient.id == patient_id).first()
	if not p:
		raise ApiError(404, "Patient not found")
	return p


def _email_taken(db: Session, email: str, exclude_id: int | None = None) -> bool:
	q = db.query(models.Patient.id).filter(sa_func.lower(models.Patient.email) == email.lower())
	if exclude_id is not None:
		q = q.filter(models.Patient.id != exclude_id)
	return q.first() is not None


def _clean(data: dict) -> dict:
	fields = {k: (None if data[k] == "" else data[k]) for k in UPDATABLE_FIELDS if k in data}
	if fields.get("email"):
		fields["email"] = str(fields["email"]).strip().lower()
	if fields.get("date_of_birth"):
		fields["date_of_birth"] = parse_date(fields["date_of_birth"])
	return fields


@router.get("")
def list_patients(
	search: str | None = None,
	limit: int = Query(50, ge=1, le=500),
	offset: int = Query(0, ge=0),
	db: Session = Depends(get_db),
):
	q = db.query(models.Patient)
	if search:
		like = f"%{search.lower()}%"
		q = q.filter(or_(
			sa_func.lower(models.Patient.first_name).like(like),
			sa_func.lower(models.Patient.last_name).like(like),
			sa_func.lower(models.Patient.email).like(like),
		))
	total = q.count()
	rows = q.order_by(models.Patient.last_name, models.Patient.first_name).offset(offset).limit(limit).all()
	return success({
		"patients": [PatientOut.model_validate(p).model_dump() for p in rows],
		"total": total,
		"limit": limit,
		"offset": offset,
	})


@router.get("/{patient_id}")
def get_patient(patient_id: int, db: Session = Depends(get_db)):
	return success(PatientOut.model_validate(_get_patient(db, patient_id)).model_dump())


@router.post("", status_code=201)
def create_patient(payload: dict = Depends(validate(PATIENT_RULES)), db: Session = Depends(get_db)):
	fields = _clean(payload)
	if _email_taken(db, fields["email"]):
		raise ApiError(409, "A patient with this email already exists")
	patient = models.Patient(**fields)
	db.add(patient)
	db.commit()
	db.refresh(patient)
	return success(PatientOut.model_validate(patient).model_dump(), "Patient created successfully", 201)


@router.put("/{patient_id}")
def update_patient(patient_id: int, payload: dict = Depends(validate(UPDATE_RULES)), db: Session = Depends(get_db)):
	patient = _get_patient(db, patient_id)
	fields = _clean(payload)
	if not fields:
		raise ApiError(400, "No valid fields to update")
	if fields.get("email") and _email_taken(db, fields["email"], patient.id):
		raise ApiError(409, "A patient with this email already exists")
	for k, v in fields.items():
		setattr(patient, k, v)
	db.commit()
	db.refresh(patient)
	return success(PatientOut.model_validate(patient).model_dump(), "Patient updated successfully")


@router.delete("/{patient_id}", dependencies=[Depends(require_roles(*ADMIN_ONLY))])
def delete_patient(patient_id: int, db: Session = Depends(get_db)):
	patient = _get_patient(db, patient_id)
	if db.query(models.Appointment.id).filter(models.Appointment.patient_id == patient.id).first():
		raise ApiError(409, "Cannot delete patient with existing appointments")
	db.delete(patient)
	db.commit()
	return success(message="Patient deleted successfully")


@router.get("/{patient_id}/appointments")
def patient_appointments(patient_id: int, db: Session = Depends(get_db)):
	patient = _get_patient(db, patient_id)
	rows = db.query(models.Appointment).filter(models.Appointment.patient_id == patient.id).order_by(
		models.Appointment.appointment_date.desc(), models.Appointment.start_time.desc(),
	).all()
	return success([AppointmentOut.model_validate(a).model_dump() for a in rows])
