from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from app.db import get_db
from app import models
from app.integrations import notifications
from app.middleware import ADMIN_ONLY, doctor_endpoint, require_roles
from app.responses import ApiError, success
from app.schemas import ManualReminderIn, PhoneIn, ReminderOut, TestEmailIn
from app.services import reminders as reminder_service
from app.routers.appointments import get_appointment

router = APIRouter(prefix="/reminders", tags=["reminders"], dependencies=doctor_endpoint())
admin_only = [Depends(require_roles(*ADMIN_ONLY))]


@router.post("/appointment/{appointment_id}/schedule")
def schedule(appointment_id: int, db: Session = Depends(get_db)):
	appt = get_appointment(db, appointment_id)
	if appt.status == "cancelled":
		raise ApiError(400, "Cannot schedule reminders for a cancelled appointment")
	created = reminder_service.schedule_appointment_reminders(db, appt)
	return success({
		"scheduled": len(created),
		"reminders": [ReminderOut.model_validate(r).model_dump() for r in created],
	}, "Reminders scheduled")


@router.post("/appointment/{appointment_id}/send")
def send_now(appointment_id: int, payload: ManualReminderIn, db: Session = Depends(get_db)):
	if payload.reminder_type not in ("email", "sms"):
		raise ApiError(422, "Validation failed", {"reminder_type": ["Allowed: email, sms"]})
	appt = get_appointment(db, appointment_id)
	result = reminder_service.send_manual(db, appt, payload.reminder_type, payload.message)
	if not result["success"]:
		raise ApiError(502, "Failed to send reminder", result)
	return success(result, "Reminder sent")


@router.post("/appointment/{appointment_id}/cancel")
def cancel(appointment_id: int, db: Session = Depends(get_db)):
	appt = get_appointment(db, appointment_id)
	count = reminder_service.cancel_appointment_reminders(db, appt.id)
	return success({"cancelled": count}, "Pending reminders cancelled")


@router.get("/appointment/{appointment_id}")
def list_for_appointment(appointment_id: int, db: Session = Depends(get_db)):
	appt = get_appointment(db, appointment_id)
	rows = db.query(models.Reminder).filter(models.Reminder.appointment_id == appt.id).order_by(models.Reminder.scheduled_time).all()
	return success([ReminderOut.model_validate(r).model_dump() for r in rows])


@router.get("/stats")
def stats(days: int = Query(7, ge=1, le=365), db: Session = Depends(get_db)):
	return success(reminder_service.reminder_stats(db, days))


@router.post("/process", dependencies=admin_only)
def process(db: Session = Depends(get_db)):
	return success(reminder_service.process_pending(db), "Reminder batch processed")


@router.post("/test-email", dependencies=admin_only)
def test_email(payload: TestEmailIn):
	result = notifications.send_email(
		payload.email,
		"Test email",
		"<p>This is a test email from the clinic reminder service.</p>",
		"This is a test email from the clinic reminder service.",
	)
	if not result["success"]:
		raise ApiError(502, result.get("error") or "Email failed")
	return success(result, "Test email sent")


@router.post("/test-sms", dependencies=admin_only)
def test_sms(payload: PhoneIn):
	result = notifications.send_sms(payload.phone, "Test message from the clinic reminder service.")
	if not result["success"]:
		raise ApiError(502, result.get("error") or "SMS failed")
	return success(result, "Test SMS sent")


@router.post("/validate-phone")
def validate_phone(payload: PhoneIn):
	return success({
		"original": payload.phone,
		"formatted": notifications.format_phone(payload.phone),
		"valid": notifications.validate_phone(payload.phone),
	})


@router.get("/message-status/{sid}", dependencies=admin_only)
def message_status(sid: str):
	return success(notifications.get_message_status(sid))
