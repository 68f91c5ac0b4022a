import re
from datetime import datetime, timedelta
from sqlalchemy import func
from sqlalchemy.orm import Session
from app import models
from app.responses import ApiError
from app.services import groq_client
from app.services.dashboard import clinic_status
from app.logger import get_logger

log = get_logger("ai.alerts")

ALERT_FIELDS = ("ALERT_TYPE", "PRIORITY", "TITLE", "DESCRIPTION", "ACTION_REQUIRED", "TIMELINE", "PATIENT_ID")
URGENT_VOLUME_THRESHOLD = 5
CRITICAL_PRIORITY = 4
ACTIVE_LIMIT = 50
EDITABLE_FIELDS = ("title", "description", "action_required", "timeline", "priority")

ALERT_FORMAT = """For each issue found, output a block in exactly this format:
ALERT_TYPE: <patient_safety | operational | quality | revenue | inventory>
PRIORITY: <1-5, 5 = most severe>
TITLE: <short title>
DESCRIPTION: <what is happening>
ACTION_REQUIRED: <what staff should do>
TIMELINE: <when it must be done>
PATIENT_ID: <patient id number, or "general">
Output nothing else."""


def _clamp_priority(value) -> int:
	m = re.search(r"\d+", str(value or ""))
	return min(5, max(1, int(m.group(0)))) if m else 3


def _block_field(block: str, label: str) -> str | None:
	others = "|".join(f for f in ALERT_FIELDS if f != label)
	m = re.search(rf"{label}\s*:\s*(.*?)(?=\n\s*(?:{others})\s*:|\Z)", block, re.DOTALL)
	return m.group(1).strip() if m else None


def parse_alert_blocks(text: str) -> list[dict]:
	alerts = []
	for block in re.split(r"(?=ALERT_TYPE:)", text):
		if "ALERT_TYPE:" not in block:
			continue
		alert_type = (_block_field(block, "ALERT_TYPE") or "").strip().lower().replace(" ", "_")
		if alert_type not in models.ALERT_TYPES:
			alert_type = "operational"
		title = _block_field(block, "TITLE")
		if not title:
			continue
		patient_raw = _block_field(block, "PATIENT_ID") or ""
		patient_match = re.fullmatch(r"\s*#?(\d+)\s*", patient_raw)
		alerts.append({
			"type": alert_type,
			"priority": _clamp_priority(_block_field(block, "PRIORITY")),
			"title": title[:255],
			"description": _block_field(block, "DESCRIPTION") or "",
			"action_required": _block_field(block, "ACTION_REQUIRED") or "",
			"timeline": (_block_field(block, "TIMELINE") or "")[:100],
			"patient_id": int(patient_match.group(1)) if patient_match else None,
			"source": "ai",
		})
	return alerts


def system_alerts(status: dict) -> list[dict]:
	alerts = []
	if status["urgent_count"] > URGENT_VOLUME_THRESHOLD:
		alerts.append({
			"type": "operational",
			"priority": 4,
			"title": "High volume of urgent appointments",
			"description": f"{status['urgent_count']} urgent or high priority appointments are booked today.",
			"action_required": "Review staffing and consider extending clinic hours or triaging non-urgent visits.",
			"timeline": "today",
			"patient_id": None,
			"source": "system",
		})
	return alerts


def fallback_alerts(follow_ups: list[dict]) -> list[dict]:
	if not follow_ups:
		return []
	return [{
		"type": "patient_safety",
		"priority": 3,
		"title": "Overdue patient follow-ups",
		"description": f"{len(follow_ups)} patients have not been seen for a required follow-up.",
		"action_required": "Contact the patients and book follow-up appointments.",
		"timeline": "this week",
		"patient_id": follow_ups[0]["patient_id"] if len(follow_ups) == 1 else None,
		"source": "system",
	}]


def _snapshot(status: dict) -> str:
	lines = [
		f"Date: {status['date']}",
		f"Appointments today: {status['total_appointments']}",
		f"Status breakdown: {status['appointments_by_status']}",
		f"Urgent or high priority today: {status['urgent_count']}",
		f"Pending reminders due: {status['pending_reminders']}",
		f"Overdue follow-ups: {status['overdue_follow_up_count']}",
	]
	for case in status["urgent_cases"][:10]:
		lines.append(f"- Urgent case: patient {case['patient_id']} at {case['start_time']} ({case['appointment_type']}, {case['priority']})")
	for f in status["overdue_follow_ups"][:10]:
		lines.append(f"- Overdue follow-up: patient {f['patient_id']}, {f['days_overdue']} days overdue")
	return "\n".join(lines)


def _valid_patient_id(db: Session, patient_id: int | None) -> int | None:
	if patient_id is None:
		return None
	exists = db.query(models.Patient.id).filter(models.Patient.id == patient_id).first()
	return patient_id if exists else None


def generate_intelligent_alerts(db: Session, user_id: int | None = None) -> dict:
	status = clinic_status(db)
	result = groq_client.generate(f"Review this clinic snapshot and raise alerts.\n\n{_snapshot(status)}\n\n{ALERT_FORMAT}", "alerts")
	alerts = parse_alert_blocks(result["content"]) if result["success"] else []
	alerts += system_alerts(status)
	if not result["success"]:
		log.warning("Alert generation fell back: %s", result.get("error"))
		alerts += fallback_alerts(status["overdue_follow_ups"])
	alerts.sort(key=lambda a: a["priority"], reverse=True)
	stored = []
	for a in alerts:
		row = models.AIAlert(**{**a, "patient_id": _valid_patient_id(db, a["patient_id"])}, created_by=user_id)
		db.add(row)
		stored.append(row)
	db.commit()
	for row in stored:
		db.refresh(row)
	return {
		"alerts": [alert_to_dict(r) for r in stored],
		"total": len(stored),
		"ai_generated": result["success"],
		"model_used": result.get("model_used"),
	}


def active_alerts(db: Session, priority_min: int | None = None, patient_id: int | None = None, alert_type: str | None = None) -> list[models.AIAlert]:
	q = db.query(models.AIAlert).filter(models.AIAlert.is_active.is_(True))
	if priority_min:
		q = q.filter(models.AIAlert.priority >= priority_min)
	if patient_id:
		q = q.filter(models.AIAlert.patient_id == patient_id)
	if alert_type:
		q = q.filter(models.AIAlert.type == alert_type)
	return q.order_by(models.AIAlert.priority.desc(), models.AIAlert.created_at.desc(), models.AIAlert.id.desc()).limit(ACTIVE_LIMIT).all()


def get_alert(db: Session, alert_id: int) -> models.AIAlert:
	alert = db.query(models.AIAlert).filter(models.AIAlert.id == alert_id).first()
	if not alert:
		raise ApiError(404, "Alert not found")
	return alert


def create_manual_alert(db: Session, data: dict, user_id: int) -> models.AIAlert:
	if data.get("type") not in models.ALERT_TYPES:
		raise ApiError(422, "Validation failed", {"type": [f"Allowed: {', '.join(models.ALERT_TYPES)}"]})
	if not data.get("title"):
		raise ApiError(422, "Validation failed", {"title": ["The title field is required."]})
	alert = models.AIAlert(
		type=data["type"],
		priority=_clamp_priority(data.get("priority", 3)),
		title=data["title"][:255],
		description=data.get("description"),
		action_required=data.get("action_required"),
		timeline=data.get("timeline"),
		patient_id=_valid_patient_id(db, data.get("patient_id")),
		source="manual",
		created_by=user_id,
	)
	db.add(alert)
	db.commit()
	db.refresh(alert)
	return alert


def update_alert(db: Session, alert: models.AIAlert, data: dict) -> models.AIAlert:
	changes = {k: v for k, v in data.items() if k in EDITABLE_FIELDS}
	if not changes:
		raise ApiError(400, "No valid fields to update")
	for k in ("title", "priority"):
		if k in changes and changes[k] in (None, ""):
			raise ApiError(422, "Validation failed", {k: [f"The {k} field must have a value."]})
	if "priority" in changes:
		changes["priority"] = _clamp_priority(changes["priority"])
	for k, v in changes.items():
		setattr(alert, k, v)
	db.commit()
	db.refresh(alert)
	return alert


def acknowledge(db: Session, alert: models.AIAlert, user_id: int) -> models.AIAlert:
	alert.status = "acknowledged"
	alert.acknowledged_by = user_id
	alert.acknowledged_at = datetime.now()
	db.commit()
	db.refresh(alert)
	return alert


def dismiss(db: Session, alert: models.AIAlert) -> models.AIAlert:
	alert.status = "dismissed"
	alert.is_active = False
	db.commit()
	db.refresh(alert)
	return alert


def resolve(db: Session, alert: models.AIAlert, user_id: int, notes: str | None = None) -> models.AIAlert:
	alert.status = "resolved"
	alert.is_active = False
	alert.resolved_by = user_id
	alert.resolved_at = datetime.now()
	alert.resolution_notes = notes
	db.commit()
	db.refresh(alert)
	return alert


def bulk_acknowledge(db: Session, alert_ids: list[int], user_id: int) -> int:
	count = db.query(models.AIAlert).filter(
		models.AIAlert.id.in_(alert_ids),
		models.AIAlert.status == "active",
	).update({
		models.AIAlert.status: "acknowledged",
		models.AIAlert.acknowledged_by: user_id,
		models.AIAlert.acknowledged_at: datetime.now(),
	}, synchronize_session=False)
	db.commit()
	return count


def alert_dashboard(db: Session) -> dict:
	active = db.query(models.AIAlert).filter(models.AIAlert.is_active.is_(True)).all()
	by_type = {t: 0 for t in models.ALERT_TYPES}
	by_priority = {p: 0 for p in range(1, 6)}
	for a in active:
		by_type[a.type] = by_type.get(a.type, 0) + 1
		by_priority[a.priority] = by_priority.get(a.priority, 0) + 1
	critical = sorted((a for a in active if a.priority >= CRITICAL_PRIORITY), key=lambda a: a.priority, reverse=True)
	return {
		"total_active": len(active),
		"by_type": by_type,
		"by_priority": by_priority,
		"critical_alerts": [alert_to_dict(a) for a in critical],
	}


def alert_analytics(db: Session, days: int = 30) -> dict:
	since = datetime.now() - timedelta(days=days)
	base = db.query(models.AIAlert).filter(models.AIAlert.created_at >= since)

	def grouped(column):
		return dict(base.with_entities(column, func.count()).group_by(column).all())

	return {
		"period_days": days,
		"since": since.date().isoformat(),
		"total": base.count(),
		"by_status": grouped(models.AIAlert.status),
		"by_type": grouped(models.AIAlert.type),
		"by_source": grouped(models.AIAlert.source),
	}


def alert_to_dict(a: models.AIAlert) -> dict:
	return {
		"id": a.id,
		"type": a.type,
		"priority": a.priority,
		"title": a.title,
		"description": a.description,
		"action_required": a.action_required,
		"timeline": a.timeline,
		"patient_id": a.patient_id,
		"source": a.source,
		"status": a.status,
		"is_active": a.is_active,
		"acknowledged_by": a.acknowledged_by,
		"acknowledged_at": a.acknowledged_at.isoformat() if a.acknowledged_at else None,
		"resolved_by": a.resolved_by,
		"resolved_at": a.resolved_at.isoformat() if a.resolved_at else None,
		"resolution_notes": a.resolution_notes,
		"created_at": a.created_at.isoformat() if a.created_at else None,
	}
