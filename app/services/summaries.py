import json
import re
from html import escape
from sqlalchemy import func
from sqlalchemy.orm import Session
from app import models
from app.responses import ApiError
from app.services import groq_client
from app.services.triage import calculate_age
from app.logger import get_logger

log = get_logger("ai.summaries")

SECTIONS = (
	"VISIT_OVERVIEW",
	"CHIEF_COMPLAINT",
	"CLINICAL_FINDINGS",
	"TREATMENT_PROVIDED",
	"FOLLOW_UP_PLAN",
	"PROVIDER_NOTES",
	"BILLING_NOTES",
	"PATIENT_INSTRUCTIONS",
)
SOAP_SECTIONS = ("SUBJECTIVE", "OBJECTIVE", "ASSESSMENT", "PLAN")

CPT_RE = re.compile(r"CPT\s*:?\s*(\d{5})", re.IGNORECASE)
ICD10_RE = re.compile(r"ICD[-\s]*10\s*:?\s*([A-Z]\d{2}(?:\.\d{1,3})?)", re.IGNORECASE)
SERVICE_LEVEL_RE = re.compile(r"99(\d{3})")

EXPORT_FORMATS = ("json", "html", "text")


def parse_sections(text: str, headers=SECTIONS) -> dict:
	alternation = "|".join(headers)
	pattern = re.compile(rf"(?:^|\n)[#*\s]*({alternation})[*\s]*:?[*]*\s*(.*?)(?=\n[#*\s]*(?:{alternation})[*\s]*:|\Z)", re.IGNORECASE | re.DOTALL)
	sections = {m.group(1).lower(): m.group(2).strip() for m in pattern.finditer(text)}
	if not sections:
		return {headers[0].lower(): text.strip()}
	return sections


def parse_billing_codes(text: str) -> dict:
	level = SERVICE_LEVEL_RE.search(text)
	return {
		"cpt_codes": sorted(set(CPT_RE.findall(text))),
		"icd10_codes": sorted({c.upper() for c in ICD10_RE.findall(text)}),
		"service_level": f"99{level.group(1)}" if level else None,
	}


def _visit_context(appointment: models.Appointment) -> str:
	p = appointment.patient
	doctor = appointment.doctor
	age = calculate_age(p.date_of_birth)
	return "\n".join([
		f"Patient: {p.full_name}, age {age if age is not None else 'unknown'}, {p.gender or 'gender not recorded'}",
		f"Allergies: {p.allergies or 'none recorded'}",
		f"Visit date: {appointment.appointment_date.isoformat()} {appointment.start_time.strftime('%H:%M')}",
		f"Provider: Dr. {doctor.user.full_name if doctor and doctor.user else 'unknown'} ({doctor.specialty if doctor else 'unknown'})",
		f"Visit type: {appointment.appointment_type}",
		f"Status: {appointment.status}",
		f"Notes: {appointment.notes or 'none'}",
		f"Diagnosis: {appointment.diagnosis or 'none recorded'}",
		f"Treatment notes: {appointment.treatment_notes or 'none recorded'}",
		f"Follow-up required: {'yes, by ' + appointment.follow_up_date.isoformat() if appointment.follow_up_required and appointment.follow_up_date else ('yes' if appointment.follow_up_required else 'no')}",
	])


def _prompt(summary_type: str, appointment: models.Appointment) -> str:
	context = _visit_context(appointment)
	if summary_type == "soap":
		return f"Write a SOAP note with the headers {', '.join(h + ':' for h in SOAP_SECTIONS)} for this visit.\n\n{context}"
	if summary_type == "billing":
		return (
			"Prepare a billing summary for this visit. List suggested procedure codes as 'CPT: #####', "
			"diagnosis codes as 'ICD-10: A00.0', and the evaluation and management level.\n\n" + context
		)
	if summary_type == "patient":
		return (
			"Write a friendly visit summary for the patient in plain language (no jargon), covering what was found, "
			"what was done, and what they should do next.\n\n" + context
		)
	headers = "\n".join(f"{h}:" for h in SECTIONS)
	return f"Summarize this visit using exactly these section headers:\n{headers}\n\n{context}"


def _fallback_soap(appointment: models.Appointment) -> str:
	return "\n".join([
		f"SUBJECTIVE: {appointment.notes or 'Not documented.'}",
		f"OBJECTIVE: Visit type {appointment.appointment_type}. Status {appointment.status}.",
		f"ASSESSMENT: {appointment.diagnosis or 'Pending clinician assessment.'}",
		f"PLAN: {appointment.treatment_notes or 'To be determined.'}"
		+ (f" Follow-up by {appointment.follow_up_date.isoformat()}." if appointment.follow_up_date else ""),
	])


def _structure(summary_type: str, text: str) -> dict:
	if summary_type == "soap":
		return parse_sections(text, SOAP_SECTIONS)
	if summary_type == "billing":
		return {"billing_text": text, **parse_billing_codes(text)}
	if summary_type == "patient":
		return {"patient_summary": text}
	return parse_sections(text)


def active_summary(db: Session, appointment_id: int, summary_type: str | None = None) -> models.AppointmentSummary | None:
	q = db.query(models.AppointmentSummary).filter(
		models.AppointmentSummary.appointment_id == appointment_id,
		models.AppointmentSummary.is_active.is_(True),
	)
	if summary_type:
		q = q.filter(models.AppointmentSummary.summary_type == summary_type)
	return q.order_by(models.AppointmentSummary.created_at.desc(), models.AppointmentSummary.id.desc()).first()


def generate_summary(db: Session, appointment: models.Appointment, summary_type: str = "standard", user_id: int | None = None, force: bool = False) -> models.AppointmentSummary:
	if summary_type not in models.SUMMARY_TYPES:
		raise ApiError(422, f"Invalid summary type. Allowed: {', '.join(models.SUMMARY_TYPES)}")
	if not force and active_summary(db, appointment.id, summary_type):
		raise ApiError(409, "Summary already exists for this appointment. Use force_regenerate to replace it.")
	result = groq_client.generate(_prompt(summary_type, appointment), "summary")
	if result["success"]:
		text = result["content"]
	elif summary_type == "soap":
		log.warning("SOAP note for appointment %s fell back: %s", appointment.id, result.get("error"))
		text = _fallback_soap(appointment)
	else:
		raise ApiError(502, "AI summary generation failed", {"error": result.get("error")})
	db.query(models.AppointmentSummary).filter(
		models.AppointmentSummary.appointment_id == appointment.id,
		models.AppointmentSummary.summary_type == summary_type,
		models.AppointmentSummary.is_active.is_(True),
	).update({models.AppointmentSummary.is_active: False}, synchronize_session=False)
	summary = models.AppointmentSummary(
		appointment_id=appointment.id,
		summary_type=summary_type,
		summary_text=text,
		structured_summary=_structure(summary_type, text),
		ai_model_used=result.get("model_used") if result["success"] else "fallback",
		tokens_used=result.get("tokens_used", 0),
		response_time_ms=result.get("response_time", 0),
		created_by=user_id,
	)
	db.add(summary)
	db.commit()
	db.refresh(summary)
	return summary


def batch_generate(db: Session, appointment_ids: list[int], summary_type: str = "standard", user_id: int | None = None) -> dict:
	results = []
	for appointment_id in appointment_ids:
		appointment = db.query(models.Appointment).filter(models.Appointment.id == appointment_id).first()
		if not appointment:
			results.append({"appointment_id": appointment_id, "success": False, "error": "Appointment not found"})
			continue
		if summary_type == "soap":
			results.append({"appointment_id": appointment_id, "success": False, "error": "SOAP notes cannot be generated in batch"})
			continue
		try:
			summary = generate_summary(db, appointment, summary_type, user_id, force=True)
		except ApiError as e:
			results.append({"appointment_id": appointment_id, "success": False, "error": e.message})
			continue
		results.append({"appointment_id": appointment_id, "success": True, "summary_id": summary.id})
	succeeded = sum(1 for r in results if r["success"])
	return {"results": results, "total": len(results), "successful": succeeded, "failed": len(results) - succeeded}


def summary_stats(db: Session) -> dict:
	rows = db.query(
		models.AppointmentSummary.summary_type,
		func.count(),
		func.avg(models.AppointmentSummary.tokens_used),
		func.avg(models.AppointmentSummary.response_time_ms),
	).group_by(models.AppointmentSummary.summary_type).all()
	by_type = {}
	for summary_type, count, tokens, ms in rows:
		by_type[summary_type] = {
			"count": count,
			"avg_tokens": round(float(tokens or 0), 1),
			"avg_response_time_ms": round(float(ms or 0), 1),
		}
	return {
		"total_summaries": sum(v["count"] for v in by_type.values()),
		"active_summaries": db.query(models.AppointmentSummary).filter(models.AppointmentSummary.is_active.is_(True)).count(),
		"by_type": by_type,
	}


def summary_to_dict(summary: models.AppointmentSummary) -> dict:
	return {
		"id": summary.id,
		"appointment_id": summary.appointment_id,
		"summary_type": summary.summary_type,
		"summary_text": summary.summary_text,
		"structured_summary": summary.structured_summary,
		"ai_model_used": summary.ai_model_used,
		"tokens_used": summary.tokens_used,
		"response_time_ms": summary.response_time_ms,
		"is_active": summary.is_active,
		"created_at": summary.created_at.isoformat() if summary.created_at else None,
	}


def export_summary(summary: models.AppointmentSummary, fmt: str) -> tuple[str, str]:
	"""Render a stored summary, returning (body, media type)."""
	if fmt == "json":
		return json.dumps(summary_to_dict(summary), indent=2), "application/json"
	sections = summary.structured_summary or {}
	if fmt == "text":
		lines = [f"Appointment #{summary.appointment_id} - {summary.summary_type} summary", ""]
		for key, value in sections.items():
			if isinstance(value, list):
				value = ", ".join(value)
			lines += [key.replace("_", " ").upper(), str(value or ""), ""]
		return "\n".join(lines), "text/plain"
	if fmt == "html":
		parts = [f"<h1>Appointment #{summary.appointment_id} &ndash; {escape(summary.summary_type.title())} Summary</h1>"]
		for key, value in sections.items():
			if isinstance(value, list):
				value = ", ".join(value)
			parts.append(f"<h2>{escape(key.replace('_', ' ').title())}</h2><p>{escape(str(value or '')).replace(chr(10), '<br>')}</p>")
		return "<!DOCTYPE html><html><body>" + "".join(parts) + "</body></html>", "text/html"
	raise ApiError(422, f"Invalid export format. Allowed: {', '.join(EXPORT_FORMATS)}")
