from datetime import datetime, timedelta
from html import escape
from sqlalchemy import func
from sqlalchemy.orm import Session
from app import models
from app.config import settings
from app.integrations import notifications
from app.logger import get_logger

log = get_logger("reminders")

TEMPLATE_24H = "appointment_reminder_24h"
TEMPLATE_2H = "appointment_reminder_2h"
TEMPLATE_CONFIRMATION = "appointment_confirmation"
TEMPLATE_MANUAL = "manual"


def appointment_datetime(appointment: models.Appointment) -> datetime:
	return datetime.combine(appointment.appointment_date, appointment.start_time)


def _doctor_name(appointment: models.Appointment) -> str:
	doctor = appointment.doctor
	if doctor and doctor.user:
		return f"Dr. {doctor.user.last_name}"
	return "your doctor"


def schedule_appointment_reminders(db: Session, appointment: models.Appointment) -> list[models.Reminder]:
	patient = appointment.patient
	if not patient:
		return []
	now = datetime.now()
	starts_at = appointment_datetime(appointment)
	plan = []
	if patient.email:
		plan.append(("email", TEMPLATE_24H, starts_at - timedelta(hours=settings.reminder_lead_time_hours), patient.email))
	if patient.phone:
		plan.append(("sms", TEMPLATE_2H, starts_at - timedelta(hours=settings.reminder_second_notice_hours), patient.phone))
	created = []
	for kind, template, when, contact in plan:
		if when <= now:
			continue
		created.append(models.Reminder(
			appointment_id=appointment.id,
			reminder_type=kind,
			reminder_template=template,
			scheduled_time=when,
			recipient_contact=contact,
			max_attempts=settings.reminder_max_attempts,
		))
	if patient.email:
		created.append(models.Reminder(
			appointment_id=appointment.id,
			reminder_type="email",
			reminder_template=TEMPLATE_CONFIRMATION,
			scheduled_time=now,
			recipient_contact=patient.email,
			max_attempts=settings.reminder_max_attempts,
		))
	db.add_all(created)
	db.commit()
	log.info("Scheduled %d reminders for appointment %s", len(created), appointment.id)
	return created


def _hours_before(reminder: models.Reminder, appointment: models.Appointment) -> int:
	delta = appointment_datetime(appointment) - reminder.scheduled_time
	return max(1, round(delta.total_seconds() / 3600))


def _compose(reminder: models.Reminder, appointment: models.Appointment) -> dict:
	patient = appointment.patient
	doctor_name = _doctor_name(appointment)
	confirmation = "confirmation" in (reminder.reminder_template or "")
	if reminder.reminder_type == "email":
		if confirmation:
			subject, html, text = notifications.build_confirmation_email(appointment, patient, doctor_name)
		else:
			subject, html, text = notifications.build_reminder_email(appointment, patient, doctor_name, _hours_before(reminder, appointment))
		return {"subject": subject, "html": html, "text": text}
	if confirmation:
		return {"text": notifications.build_confirmation_sms(appointment, patient, doctor_name)}
	return {"text": notifications.build_reminder_sms(appointment, patient, doctor_name)}


def deliver(reminder: models.Reminder, appointment: models.Appointment) -> dict:
	if reminder.reminder_type not in ("email", "sms"):
		return {"success": False, "error": "Unsupported reminder type"}
	if reminder.message_content:
		msg = {"subject": f"Message from {settings.app_name}", "html": f"<p>{escape(reminder.message_content)}</p>", "text": reminder.message_content}
	else:
		msg = _compose(reminder, appointment)
	patient = appointment.patient
	if reminder.reminder_type == "email":
		to = reminder.recipient_contact or patient.email
		result = notifications.send_email(to, msg["subject"], msg["html"], msg["text"])
	else:
		to = reminder.recipient_contact or patient.phone
		result = notifications.send_sms(to, msg["text"])
	if not reminder.message_content:
		reminder.message_content = msg["text"]
	return result


def _record_result(reminder: models.Reminder, result: dict):
	now = datetime.now()
	if result.get("success"):
		reminder.status = "sent"
		reminder.sent_at = now
		reminder.error_message = None
		reminder.provider_message_id = result.get("message_id")
		reminder.delivery_status = result.get("status") or "sent"
		reminder.cost_cents = result.get("cost_cents", 0)
		return
	reminder.attempts = (reminder.attempts or 0) + 1
	reminder.error_message = result.get("error")
	if reminder.attempts >= reminder.max_attempts:
		reminder.status = "failed"


def due_reminders(db: Session, limit: int | None = None) -> list[models.Reminder]:
	return db.query(models.Reminder).filter(
		models.Reminder.status == "pending",
		models.Reminder.scheduled_time <= datetime.now(),
		models.Reminder.attempts < models.Reminder.max_attempts,
	).order_by(models.Reminder.scheduled_time.asc()).limit(limit or settings.reminder_batch_size).all()


def process_pending(db: Session) -> dict:
	results = {"processed": 0, "successful": 0, "failed": 0, "details": []}
	for reminder in due_reminders(db):
		results["processed"] += 1
		appointment = reminder.appointment
		try:
			if appointment is None or appointment.status == "cancelled":
				reminder.status = "cancelled"
				db.commit()
				results["details"].append({"reminder_id": reminder.id, "status": "cancelled"})
				continue
			result = deliver(reminder, appointment)
			_record_result(reminder, result)
			db.commit()
		except Exception as e:
			db.rollback()
			log.exception("Reminder %s crashed: %s", reminder.id, e)
			result = {"success": False, "error": str(e)}
			_record_result(reminder, result)
			db.commit()
		if result.get("success"):
			results["successful"] += 1
			log.info("Reminder %s sent via %s", reminder.id, reminder.reminder_type)
		else:
			results["failed"] += 1
			log.warning("Reminder %s failed: %s", reminder.id, result.get("error"))
		results["details"].append({
			"reminder_id": reminder.id,
			"type": reminder.reminder_type,
			"success": bool(result.get("success")),
			"error": result.get("error"),
		})
	log.info("Processed %d reminders: %d sent, %d failed", results["processed"], results["successful"], results["failed"])
	return results


def cancel_appointment_reminders(db: Session, appointment_id: int) -> int:
	count = db.query(models.Reminder).filter(
		models.Reminder.appointment_id == appointment_id,
		models.Reminder.status == "pending",
	).update({models.Reminder.status: "cancelled"}, synchronize_session=False)
	db.commit()
	return count


def send_manual(db: Session, appointment: models.Appointment, reminder_type: str, message: str | None = None) -> dict:
	patient = appointment.patient
	contact = patient.email if reminder_type == "email" else patient.phone
	reminder = models.Reminder(
		appointment_id=appointment.id,
		reminder_type=reminder_type,
		reminder_template=TEMPLATE_MANUAL,
		scheduled_time=datetime.now(),
		recipient_contact=contact,
		message_content=message or None,
		max_attempts=1,
	)
	db.add(reminder)
	if not contact:
		result = {"success": False, "error": f"Patient has no {'email' if reminder_type == 'email' else 'phone number'}"}
	else:
		result = deliver(reminder, appointment)
	_record_result(reminder, result)
	db.commit()
	db.refresh(reminder)
	log.info("Manual %s reminder for appointment %s: %s", reminder_type, appointment.id, reminder.status)
	return {"reminder_id": reminder.id, "success": bool(result.get("success")), "error": result.get("error"), "status": reminder.status}


def reminder_stats(db: Session, days: int = 7) -> dict:
	since = datetime.now() - timedelta(days=days)
	rows = db.query(models.Reminder.status, models.Reminder.reminder_type, func.count(), func.coalesce(func.sum(models.Reminder.cost_cents), 0)).filter(
		models.Reminder.created_at >= since,
	).group_by(models.Reminder.status, models.Reminder.reminder_type).all()
	by_status = {s: 0 for s in models.REMINDER_STATUSES}
	by_type = {"email": 0, "sms": 0}
	cost_cents = 0
	for status, kind, count, cost in rows:
		by_status[status] = by_status.get(status, 0) + count
		by_type[kind] = by_type.get(kind, 0) + count
		cost_cents += int(cost or 0)
	attempted = by_status["sent"] + by_status["failed"]
	return {
		"period_days": days,
		"total": sum(by_status.values()),
		"pending": by_status["pending"],
		"sent": by_status["sent"],
		"failed": by_status["failed"],
		"cancelled": by_status["cancelled"],
		"success_rate": round(by_status["sent"] / attempted * 100, 2) if attempted else 0.0,
		"email_count": by_type["email"],
		"sms_count": by_type["sms"],
		"total_cost_dollars": round(cost_cents / 100, 2),
	}
