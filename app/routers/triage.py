from datetime import date, timedelta
from fastapi import APIRouter, Depends
from sqlalchemy import func as sa_func
from sqlalchemy.orm import Session
from app.db import get_db
from app import models
from app.middleware import doctor_endpoint
from app.responses import ApiError, success
from app.schemas import BatchTriageIn, PriorityIn, QuickTriageIn, SymptomTriageIn
from app.services import triage
from app.services.booking import parse_date
from app.routers.appointments import get_appointment

router = APIRouter(prefix="/ai/triage", tags=["ai"], dependencies=doctor_endpoint())

MAX_BATCH = 50


@router.post("/appointment/{appointment_id}")
def analyze_appointment(appointment_id: int, db: Session = Depends(get_db)):
	appt = get_appointment(db, appointment_id)
	return success(triage.analyze_appointment(db, appt), "Triage analysis completed")


@router.post("/batch")
def batch(payload: BatchTriageIn, db: Session = Depends(get_db)):
	q = db.query(models.Appointment)
	if payload.appointment_ids:
		q = q.filter(models.Appointment.id.in_(payload.appointment_ids))
	elif payload.date:
		try:
			day = parse_date(payload.date)
		except ValueError:
			raise ApiError(422, "Validation failed", {"date": ["The date is not a valid date (YYYY-MM-DD)."]})
		q = q.filter(models.Appointment.appointment_date == day, models.Appointment.status != "cancelled")
	else:
		raise ApiError(422, "Validation failed", {"appointment_ids": ["Provide appointment_ids or a date."]})
	rows = q.order_by(models.Appointment.start_time).limit(MAX_BATCH).all()
	return success(triage.batch_analyze(db, rows), "Batch triage completed")


@router.post("/symptoms")
def symptoms(payload: SymptomTriageIn):
	return success(triage.symptom_triage(payload.symptoms, payload.age, payload.gender, payload.medical_history))


@router.post("/referral/{appointment_id}")
def referral(appointment_id: int, db: Session = Depends(get_db)):
	return success(triage.referral_recommendation(get_appointment(db, appointment_id)))


@router.post("/quick")
def quick(payload: QuickTriageIn):
	return success(triage.quick_assessment(payload.symptoms))


@router.get("/stats")
def stats(
	start_date: str | None = None,
	end_date: str | None = None,
	db: Session = Depends(get_db),
):
	try:
		end = parse_date(end_date) if end_date else date.today()
		start = parse_date(start_date) if start_date else end - timedelta(days=7)
	except ValueError:
		raise ApiError(422, "Validation failed", {"date": ["Dates must be YYYY-MM-DD."]})
	rows = db.query(models.Appointment.priority, sa_func.count()).filter(
		models.Appointment.appointment_date >= start,
		models.Appointment.appointment_date <= end,
		models.Appointment.status != "cancelled",
	).group_by(models.Appointment.priority).all()
	counts = dict(rows)
	distribution = {p: counts.get(p, 0) for p in models.APPOINTMENT_PRIORITIES}
	return success({
		"start_date": start.isoformat(),
		"end_date": end.isoformat(),
		"total": sum(distribution.values()),
		"priority_distribution": distribution,
		"high_priority": distribution["high"] + distribution["urgent"],
	})


@router.put("/appointment/{appointment_id}/priority")
def update_priority(appointment_id: int, payload: PriorityIn, db: Session = Depends(get_db)):
	if payload.priority not in models.APPOINTMENT_PRIORITIES:
		raise ApiError(422, "Validation failed", {"priority": [f"Allowed: {', '.join(models.APPOINTMENT_PRIORITIES)}"]})
	appt = get_appointment(db, appointment_id)
	previous = appt.priority
	appt.priority = payload.priority
	db.commit()
	return success({"appointment_id": appt.id, "previous_priority": previous, "priority": appt.priority}, "Priority updated")
