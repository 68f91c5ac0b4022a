import re
from datetime import date
from sqlalchemy.orm import Session
from app import models
from app.services import groq_client
from app.logger import get_logger

log = get_logger("ai.triage")

URGENCY_LEVELS = {5: "immediate", 4: "urgent", 3: "semi-urgent", 2: "standard", 1: "routine"}
PRIORITY_SCORES = {"urgent": 4, "high": 3, "normal": 2, "low": 1}
SYMPTOM_KEYWORDS = ("pain", "fever", "headache", "nausea", "fatigue", "cough", "shortness of breath")
HIGH_PRIORITY_SCORE = 4

DEFAULT_URGENCY = 2
DEFAULT_SPECIALIST = "primary care"
DEFAULT_DURATION = 30
DEFAULT_CONFIDENCE = 3

LABELS = ("URGENCY_SCORE", "SPECIALIST", "DURATION", "RED_FLAGS", "DIAGNOSES", "TESTS", "NOTES", "CONFIDENCE")

RESPONSE_FORMAT = """Respond using exactly these labelled fields:
URGENCY_SCORE: <1-5, 5 = immediate>
SPECIALIST: <recommended specialist or "primary care">
DURATION: <suggested appointment length in minutes>
RED_FLAGS: <bulleted list, or "none">
DIAGNOSES: <bulleted list of possible diagnoses>
TESTS: <bulleted list of suggested tests>
NOTES: <short clinical notes>
CONFIDENCE: <1-5>"""


def calculate_age(dob: date | None, today: date | None = None) -> int | None:
	if not dob:
		return None
	today = today or date.today()
	return today.year - dob.year - ((today.month, today.day) < (dob.month, dob.day))


def extract_symptoms(text: str | None) -> list[str]:
	lowered = (text or "").lower()
	return [k for k in SYMPTOM_KEYWORDS if k in lowered]


def urgency_label(score: int) -> str:
	return URGENCY_LEVELS.get(score, "standard")


def _field(text: str, label: str) -> str | None:
	others = "|".join(l for l in LABELS if l != label)
	m = re.search(rf"{label}\s*:\s*(.*?)(?=\n\s*(?:{others})\s*:|\Z)", text, re.IGNORECASE | re.DOTALL)
	return m.group(1).strip() if m else None


def _int_field(text: str, label: str, default: int) -> int:
	raw = _field(text, label)
	m = re.search(r"\d+", raw or "")
	return int(m.group(0)) if m else default


def split_list(raw: str | None) -> list[str]:
	if not raw:
		return []
	parts = re.split(r"\n|•|\*|(?:^|\s)-\s|\d+\.\s", raw)
	items = [p.strip(" -\t") for p in parts]
	return [i for i in items if i and i.lower() not in ("none", "n/a")]


def parse_triage_response(text: str) -> dict:
	score = min(5, max(1, _int_field(text, "URGENCY_SCORE", DEFAULT_URGENCY)))
	confidence = min(5, max(1, _int_field(text, "CONFIDENCE", DEFAULT_CONFIDENCE)))
	return {
		"urgency_score": score,
		"urgency_level": urgency_label(score),
		"specialist": (_field(text, "SPECIALIST") or DEFAULT_SPECIALIST).splitlines()[0].strip() or DEFAULT_SPECIALIST,
		"duration": _int_field(text, "DURATION", DEFAULT_DURATION),
		"red_flags": split_list(_field(text, "RED_FLAGS")),
		"diagnoses": split_list(_field(text, "DIAGNOSES")),
		"tests": split_list(_field(text, "TESTS")),
		"notes": _field(text, "NOTES") or "",
		"confidence": confidence,
	}


def _patient_context(appointment: models.Appointment) -> str:
	p = appointment.patient
	age = calculate_age(p.date_of_birth)
	lines = [
		f"Age: {age if age is not None else 'unknown'}",
		f"Gender: {p.gender or 'unknown'}",
		f"Allergies: {p.allergies or 'none recorded'}",
		f"Medical history: {p.medical_notes or 'none recorded'}",
		f"Appointment type: {appointment.appointment_type}",
		f"Current priority: {appointment.priority}",
		f"Reason / notes: {appointment.notes or 'not provided'}",
	]
	symptoms = extract_symptoms(appointment.notes)
	if symptoms:
		lines.append(f"Reported symptoms: {', '.join(symptoms)}")
	return "\n".join(lines)


def fallback_triage(appointment: models.Appointment) -> dict:
	score = PRIORITY_SCORES.get(appointment.priority, DEFAULT_URGENCY)
	return {
		"urgency_score": score,
		"urgency_level": urgency_label(score),
		"specialist": DEFAULT_SPECIALIST,
		"duration": DEFAULT_DURATION,
		"red_flags": [],
		"diagnoses": [],
		"tests": [],
		"notes": "Automated triage unavailable; score derived from the booked priority. Clinical review required.",
		"confidence": 1,
	}


def analyze_appointment(db: Session, appointment: models.Appointment) -> dict:
	prompt = (
		"Triage the following patient visit.\n\n"
		f"{_patient_context(appointment)}\n\n{RESPONSE_FORMAT}"
	)
	result = groq_client.generate(prompt, "triage")
	if result["success"]:
		triage = parse_triage_response(result["content"])
	else:
		log.warning("Triage for appointment %s fell back: %s", appointment.id, result.get("error"))
		triage = fallback_triage(appointment)
	triage.update({
		"appointment_id": appointment.id,
		"patient_id": appointment.patient_id,
		"patient_name": appointment.patient.full_name,
		"symptoms": extract_symptoms(appointment.notes),
		"ai_generated": result["success"],
		"model_used": result.get("model_used"),
	})
	return triage


def batch_analyze(db: Session, appointments: list[models.Appointment]) -> dict:
	results = [analyze_appointment(db, a) for a in appointments]
	results.sort(key=lambda r: r["urgency_score"], reverse=True)
	return {
		"results": results,
		"total_analyzed": len(results),
		"high_priority_count": sum(1 for r in results if r["urgency_score"] >= HIGH_PRIORITY_SCORE),
	}


def symptom_triage(symptoms: str, age: int | None = None, gender: str | None = None, medical_history: str | None = None) -> dict:
	prompt = (
		"Triage a patient based on reported symptoms.\n\n"
		f"Symptoms: {symptoms}\n"
		f"Age: {age if age is not None else 'unknown'}\n"
		f"Gender: {gender or 'unknown'}\n"
		f"Medical history: {medical_history or 'none provided'}\n\n{RESPONSE_FORMAT}"
	)
	result = groq_client.generate(prompt, "triage")
	if result["success"]:
		triage = parse_triage_response(result["content"])
	else:
		score = 3 if "shortness of breath" in symptoms.lower() else DEFAULT_URGENCY
		triage = {
			"urgency_score": score,
			"urgency_level": urgency_label(score),
			"specialist": DEFAULT_SPECIALIST,
			"duration": DEFAULT_DURATION,
			"red_flags": [],
			"diagnoses": [],
			"tests": [],
			"notes": "Automated triage unavailable. Clinical review required.",
			"confidence": 1,
		}
	triage.update({"symptoms": extract_symptoms(symptoms), "ai_generated": result["success"], "model_used": result.get("model_used")})
	return triage


def quick_assessment(symptoms: str) -> dict:
	prompt = (
		f"Symptoms: {symptoms}\n\n"
		"Give only:\nURGENCY_SCORE: <1-5>\nNOTES: <one sentence>"
	)
	result = groq_client.generate(prompt, "triage")
	if result["success"]:
		score = min(5, max(1, _int_field(result["content"], "URGENCY_SCORE", DEFAULT_URGENCY)))
		notes = _field(result["content"], "NOTES") or ""
	else:
		score, notes = DEFAULT_URGENCY, "Automated assessment unavailable."
	return {
		"urgency_score": score,
		"urgency_level": urgency_label(score),
		"requires_urgent_care": score >= HIGH_PRIORITY_SCORE,
		"notes": notes,
		"ai_generated": result["success"],
	}


def referral_recommendation(appointment: models.Appointment) -> dict:
	prompt = (
		"Based on this visit, recommend whether a specialist referral is needed, which specialty, "
		"how urgently, and what information to include in the referral letter.\n\n"
		f"{_patient_context(appointment)}\n"
		f"Diagnosis: {appointment.diagnosis or 'not recorded'}\n"
		f"Treatment notes: {appointment.treatment_notes or 'not recorded'}"
	)
	result = groq_client.generate(prompt, "triage")
	return {
		"appointment_id": appointment.id,
		"recommendation": result["content"] if result["success"] else "Referral guidance unavailable. Refer according to clinical judgement.",
		"ai_generated": result["success"],
		"model_used": result.get("model_used"),
	}
