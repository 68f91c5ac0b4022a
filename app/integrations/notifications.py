import math
import re
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import formataddr, make_msgid
from html import escape
import requests
from app.config import settings
from app.logger import get_logger

log = get_logger("notifications")

TWILIO_API = "https://api.twilio.com/2010-04-01"
SMS_SEGMENT_LENGTH = 160
E164_RE = re.compile(r"^\+[1-9]\d{7,14}$")


# Email

def send_email(to_email: str, subject: str, html_body: str, text_body: str | None = None) -> dict:
	if not settings.smtp_host:
		return {"success": False, "error": "Email service not configured"}
	if not to_email or "@" not in to_email:
		return {"success": False, "error": "Invalid recipient address"}
	msg = MIMEMultipart("alternative")
	msg["Subject"] = subject
	msg["From"] = formataddr((settings.mail_from_name, settings.mail_from_address))
	msg["To"] = to_email
	msg["Message-ID"] = make_msgid(domain=settings.mail_from_address.split("@")[-1])
	msg.attach(MIMEText(text_body or re.sub(r"<[^>]+>", "", html_body), "plain"))
	msg.attach(MIMEText(html_body, "html"))
	try:
		with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=20) as server:
			server.ehlo()
			if settings.smtp_use_tls:
				server.starttls()
				server.ehlo()
			if settings.smtp_username and settings.smtp_password:
				server.login(settings.smtp_username, settings.smtp_password)
			server.sendmail(settings.mail_from_address, [to_email], msg.as_string())
	except smtplib.SMTPAuthenticationError as e:
		log.error("SMTP authentication failed: %s", e)
		return {"success": False, "error": "SMTP authentication failed"}
	except (smtplib.SMTPException, OSError) as e:
		log.error("Email to %s failed: %s", to_email, e)
		return {"success": False, "error": str(e)}
	return {"success": True, "message_id": msg["Message-ID"]}


def _appointment_facts(appointment, doctor_name: str) -> dict:
	return {
		"date": appointment.appointment_date.strftime("%A, %B %d, %Y"),
		"time": appointment.start_time.strftime("%I:%M %p").lstrip("0"),
		"doctor": doctor_name,
		"type": appointment.appointment_type,
	}


def _email_html(heading: str, greeting: str, intro: str, facts: dict, closing: str) -> str:
	rows = "".join(
		f"<tr><td style=\"padding:4px 12px 4px 0\"><strong>{escape(k)}</strong></td><td>{escape(str(v))}</td></tr>"
		for k, v in facts.items()
	)
	return (
		"<!DOCTYPE html><html><body style=\"font-family:Arial,sans-serif;color:#333\">"
		f"<h2 style=\"color:#2c7be5\">{escape(heading)}</h2>"
		f"<p>{escape(greeting)}</p><p>{escape(intro)}</p>"
		f"<table>{rows}</table>"
		f"<p>{escape(closing)}</p>"
		f"<p style=\"color:#888;font-size:12px\">{escape(settings.app_name)}</p>"
		"</body></html>"
	)


def _email_text(greeting: str, intro: str, facts: dict, closing: str) -> str:
	lines = [greeting, "", intro, ""]
	lines += [f"{k}: {v}" for k, v in facts.items()]
	lines += ["", closing, "", settings.app_name]
	return "\n".join(lines)


def build_reminder_email(appointment, patient, doctor_name: str, hours_before: int) -> tuple[str, str, str]:
	f = _appointment_facts(appointment, doctor_name)
	facts = {"Date": f["date"], "Time": f["time"], "Doctor": f["doctor"], "Visit type": f["type"]}
	when = "tomorrow" if hours_before >= 24 else f"in {hours_before} hours"
	subject = f"Appointment Reminder - {f['date']}"
	greeting = f"Dear {patient.first_name},"
	intro = f"This is a reminder that your appointment is {when}."
	closing = "Please arrive 15 minutes early. If you need to reschedule, contact the clinic."
	return subject, _email_html("Appointment Reminder", greeting, intro, facts, closing), _email_text(greeting, intro, facts, closing)


def build_confirmation_email(appointment, patient, doctor_name: str) -> tuple[str, str, str]:
	f = _appointment_facts(appointment, doctor_name)
	facts = {"Date": f["date"], "Time": f["time"], "Doctor": f["doctor"], "Visit type": f["type"], "Reference": f"#{appointment.id}"}
	subject = "Appointment Confirmation"
	greeting = f"Dear {patient.first_name},"
	intro = "Your appointment has been booked."
	closing = "You will receive reminders before your visit."
	return subject, _email_html("Appointment Confirmed", greeting, intro, facts, closing), _email_text(greeting, intro, facts, closing)


# SMS

def format_phone(number: str | None) -> str:
	cleaned = re.sub(r"[^\d+]", "", number or "")
	digits = cleaned.lstrip("+")
	if not digits:
		return ""
	if len(digits) == 10 and not cleaned.startswith("+"):
		return f"+1{digits}"
	return f"+{digits}"


def validate_phone(number: str | None) -> bool:
	return bool(E164_RE.match(format_phone(number)))


def estimate_sms_cost(body: str) -> int:
	segments = max(1, math.ceil(len(body) / SMS_SEGMENT_LENGTH))
	return segments * settings.sms_cost_cents


def _twilio_configured() -> bool:
	return bool(settings.twilio_account_sid and settings.twilio_auth_token and settings.twilio_from_number)


def send_sms(to_number: str, body: str) -> dict:
	if not _twilio_configured():
		return {"success": False, "error": "SMS service not configured"}
	to = format_phone(to_number)
	if not E164_RE.match(to):
		return {"success": False, "error": "Invalid phone number"}
	url = f"{TWILIO_API}/Accounts/{settings.twilio_account_sid}/Messages.json"
	data = {"To": to, "From": settings.twilio_from_number, "Body": body}
	try:
		r = requests.post(url, data=data, auth=(settings.twilio_account_sid, settings.twilio_auth_token), timeout=15)
	except requests.RequestException as e:
		log.error("SMS to %s failed: %s", to, e)
		return {"success": False, "error": str(e)}
	try:
		payload = r.json() if r.headers.get("content-type", "").startswith("application/json") else {}
	except ValueError:
		if r.status_code < 300:
			return {"success": False, "error": "Unreadable response from SMS provider"}
		payload = {}
	if r.status_code >= 300:
		return {"success": False, "error": payload.get("message") or r.text[:300], "code": payload.get("code")}
	return {
		"success": True,
		"message_id": payload.get("sid"),
		"status": payload.get("status"),
		"cost_cents": estimate_sms_cost(body),
	}


def get_message_status(sid: str) -> dict:
	if not _twilio_configured():
		return {"success": False, "error": "SMS service not configured"}
	url = f"{TWILIO_API}/Accounts/{settings.twilio_account_sid}/Messages/{sid}.json"
	try:
		r = requests.get(url, auth=(settings.twilio_account_sid, settings.twilio_auth_token), timeout=15)
		r.raise_for_status()
		payload = r.json()
	except requests.RequestException as e:
		return {"success": False, "error": str(e)}
	except ValueError:
		return {"success": False, "error": "Unreadable response from SMS provider"}
	return {
		"success": True,
		"status": payload.get("status"),
		"error_code": payload.get("error_code"),
		"error_message": payload.get("error_message"),
		"date_sent": payload.get("date_sent"),
		"price": payload.get("price"),
	}


def build_reminder_sms(appointment, patient, doctor_name: str) -> str:
	f = _appointment_facts(appointment, doctor_name)
	return (
		f"Hi {patient.first_name}, reminder: your appointment with {f['doctor']} is on "
		f"{appointment.appointment_date.isoformat()} at {f['time']}. Reply or call to reschedule. - {settings.mail_from_name}"
	)


def build_confirmation_sms(appointment, patient, doctor_name: str) -> str:
	f = _appointment_facts(appointment, doctor_name)
	return (
		f"Hi {patient.first_name}, your appointment with {f['doctor']} on "
		f"{appointment.appointment_date.isoformat()} at {f['time']} is confirmed. Ref #{appointment.id}."
	)
