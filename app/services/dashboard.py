import re
from datetime import date, datetime, time, timedelta
from sqlalchemy import func
from sqlalchemy.orm import Session
from app import models
from app.services import groq_client
from app.services.reminders import reminder_stats
from app.logger import get_logger

log = get_logger("ai.dashboard")

TASK_LINE_RE = re.compile(r"^\d+\.", re.MULTILINE)


def _trend(current: int, previous: int) -> str:
	if current > previous:
		return "up"
	if current < previous:
		return "down"
	return "stable"


def _appointment_brief(a: models.Appointment) -> dict:
	return {
		"appointment_id": a.id,
		"patient_id": a.patient_id,
		"patient_name": a.patient.full_name if a.patient else None,
		"start_time": a.start_time.strftime("%H:%M"),
		"appointment_type": a.appointment_type,
		"priority": a.priority,
		"status": a.status,
	}


def overdue_follow_ups(db: Session, today: date | None = None) -> list[dict]:
	today = today or date.today()
	rows = db.query(models.Appointment).filter(
		models.Appointment.follow_up_required.is_(True),
		models.Appointment.follow_up_date.is_not(None),
		models.Appointment.follow_up_date < today,
		models.Appointment.status != "cancelled",
	).all()
	overdue = []
	for a in rows:
		booked = db.query(models.Appointment.id).filter(
			models.Appointment.patient_id == a.patient_id,
			models.Appointment.appointment_date >= a.follow_up_date,
			models.Appointment.status != "cancelled",
		).first()
		if booked:
			continue
		overdue.append({
			"appointment_id": a.id,
			"patient_id": a.patient_id,
			"patient_name": a.patient.full_name if a.patient else None,
			"follow_up_date": a.follow_up_date.isoformat(),
			"days_overdue": (today - a.follow_up_date).days,
		})
	return overdue


def clinic_status(db: Session) -> dict:
	now = datetime.now()
	today = now.date()
	todays = db.query(models.Appointment).filter(models.Appointment.appointment_date == today).order_by(models.Appointment.start_time).all()
	by_status = {s: 0 for s in models.APPOINTMENT_STATUSES}
	for a in todays:
		by_status[a.status] = by_status.get(a.status, 0) + 1
	active = [a for a in todays if a.status != "cancelled"]
	window_end = (now + timedelta(hours=2)).time() if (now + timedelta(hours=2)).date() == today else time.max
	upcoming = [a for a in active if a.status in ("scheduled", "confirmed") and now.time() <= a.start_time <= window_end]
	urgent = [a for a in active if a.priority in ("high", "urgent")]
	pending = db.query(func.count(models.Reminder.id)).filter(
		models.Reminder.status == "pending",
		models.Reminder.scheduled_time <= now,
	).scalar() or 0
	follow_ups = overdue_follow_ups(db, today)
	return {
		"date": today.isoformat(),
		"total_appointments": len(todays),
		"appointments_by_status": by_status,
		"urgent_cases": [_appointment_brief(a) for a in urgent],
		"urgent_count": len(urgent),
		"upcoming_appointments": [_appointment_brief(a) for a in upcoming],
		"upcoming_count": len(upcoming),
		"pending_reminders": pending,
		"overdue_follow_ups": follow_ups,
		"overdue_follow_up_count": len(follow_ups),
	}


def _day_counts(db: Session, day: date) -> dict:
	rows = db.query(models.Appointment.status, func.count()).filter(
		models.Appointment.appointment_date == day,
	).group_by(models.Appointment.status).all()
	counts = dict(rows)
	return {
		"total": sum(counts.values()),
		"completed": counts.get("completed", 0),
		"cancelled": counts.get("cancelled", 0),
		"no_show": counts.get("no_show", 0),
	}


def performance_metrics(db: Session) -> dict:
	today = date.today()
	current = _day_counts(db, today)
	previous = _day_counts(db, today - timedelta(days=1))
	return {
		"today": current,
		"yesterday": previous,
		"trends": {k: _trend(current[k], previous[k]) for k in current},
		"reminders_week": reminder_stats(db, 7),
	}


def _snapshot_text(status: dict, metrics: dict) -> str:
	by_status = ", ".join(f"{k}: {v}" for k, v in status["appointments_by_status"].items())
	rem = metrics["reminders_week"]
	return (
		f"Date: {status['date']}\n"
		f"Appointments today: {status['total_appointments']} ({by_status})\n"
		f"Urgent or high priority cases today: {status['urgent_count']}\n"
		f"Appointments in the next 2 hours: {status['upcoming_count']}\n"
		f"Reminders waiting to send: {status['pending_reminders']}\n"
		f"Overdue follow-ups: {status['overdue_follow_up_count']}\n"
		f"Yesterday's appointments: {metrics['yesterday']['total']} (trend {metrics['trends']['total']})\n"
		f"Reminders this week: {rem['sent']} sent, {rem['failed']} failed, success rate {rem['success_rate']}%"
	)


def _fallback_briefing(status: dict, metrics: dict) -> str:
	lines = [
		f"Daily briefing for {status['date']}.",
		f"There are {status['total_appointments']} appointments scheduled today, {status['upcoming_count']} in the next two hours.",
	]
	if status["urgent_count"]:
		lines.append(f"{status['urgent_count']} urgent or high priority cases need attention.")
	if status["pending_reminders"]:
		lines.append(f"{status['pending_reminders']} patient reminders are waiting to be sent.")
	if status["overdue_follow_up_count"]:
		lines.append(f"{status['overdue_follow_up_count']} patients have overdue follow-ups.")
	lines.append(f"Appointment volume is {metrics['trends']['total']} compared with yesterday.")
	return " ".join(lines)


def _fallback_priorities(status: dict) -> list[str]:
	tasks = []
	if status["urgent_count"]:
		tasks.append(f"Review {status['urgent_count']} urgent or high priority appointments")
	if status["upcoming_count"]:
		tasks.append(f"Prepare for {status['upcoming_count']} appointments in the next two hours")
	if status["overdue_follow_up_count"]:
		tasks.append(f"Contact {status['overdue_follow_up_count']} patients with overdue follow-ups")
	if status["pending_reminders"]:
		tasks.append(f"Check {status['pending_reminders']} pending reminders")
	tasks.append("Review today's schedule for gaps and double bookings")
	return tasks


def daily_briefing(db: Session) -> dict:
	status = clinic_status(db)
	metrics = performance_metrics(db)
	prompt = (
		"Write a short morning briefing (under 200 words) for clinic staff from this snapshot. "
		"Lead with anything that needs immediate attention.\n\n" + _snapshot_text(status, metrics)
	)
	result = groq_client.generate(prompt, "dashboard")
	if result["success"]:
		briefing = result["content"]
	else:
		log.warning("Briefing fell back to template: %s", result.get("error"))
		briefing = _fallback_briefing(status, metrics)
	return {
		"briefing": briefing,
		"clinic_status": status,
		"performance": metrics,
		"ai_generated": result["success"],
		"model_used": result.get("model_used"),
		"tokens_used": result.get("tokens_used", 0),
	}


def priority_tasks(db: Session) -> dict:
	status = clinic_status(db)
	prompt = (
		"List the top priority tasks for clinic staff right now as a numbered list, one task per line, "
		"most important first. Maximum 7 tasks.\n\n" + _snapshot_text(status, performance_metrics(db))
	)
	result = groq_client.generate(prompt, "dashboard")
	if result["success"]:
		text = result["content"]
	else:
		text = "\n".join(f"{i}. {t}" for i, t in enumerate(_fallback_priorities(status), start=1))
	return {
		"tasks": text,
		"task_count": len(TASK_LINE_RE.findall(text)),
		"ai_generated": result["success"],
		"model_used": result.get("model_used"),
	}


def analyze(db: Session, query: str, context: str | None = None) -> dict:
	snapshot = _snapshot_text(clinic_status(db), performance_metrics(db))
	prompt = f"Clinic snapshot:\n{snapshot}\n\n"
	if context:
		prompt += f"Additional context:\n{context}\n\n"
	prompt += f"Question: {query}"
	result = groq_client.generate(prompt, "dashboard")
	if not result["success"]:
		return {"answer": None, "ai_generated": False, "error": result.get("error")}
	return {
		"answer": result["content"],
		"ai_generated": True,
		"model_used": result["model_used"],
		"tokens_used": result["tokens_used"],
	}


def dashboard_summary(db: Session) -> dict:
	return {"clinic_status": clinic_status(db), "performance": performance_metrics(db)}
