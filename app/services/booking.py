from sqlalchemy.orm import Session
from datetime import date, datetime, time, timedelta
from app import models

DEFAULT_DURATION_MINUTES = 30


def parse_time(value) -> time:
	if isinstance(value, time):
		return value
	s = str(value).strip()
	return datetime.strptime(s, "%H:%M:%S" if len(s.split(':')) == 3 else "%H:%M").time()


def parse_date(value) -> date:
	if isinstance(value, date):
		return value
	return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()


def add_minutes(t: time, minutes: int) -> time:
	return (datetime.combine(date.min, t) + timedelta(minutes=minutes)).time()


def overlaps(s1: time, e1: time, s2: time, e2: time) -> bool:
	return s1 < e2 and e1 > s2


def booked_ranges(db: Session, doctor_id: int, day: date, exclude_id: int | None = None) -> list[tuple[time, time]]:
	q = db.query(models.Appointment).filter(
		models.Appointment.doctor_id == doctor_id,
		models.Appointment.appointment_date == day,
		models.Appointment.status != "cancelled",
	)
	if exclude_id is not None:
		q = q.filter(models.Appointment.id != exclude_id)
	return [(a.start_time, a.end_time) for a in q.all()]


def has_conflict(db: Session, doctor_id: int, day: date, start: time, end: time, exclude_id: int | None = None) -> bool:
	return any(overlaps(start, end, s, e) for s, e in booked_ranges(db, doctor_id, day, exclude_id))


def available_slots(db: Session, doctor: models.Doctor, day: date, duration: int = DEFAULT_DURATION_MINUTES) -> list[dict]:
	hours = doctor.working_hours or models.DEFAULT_WORKING_HOURS
	start = parse_time(hours.get("start", "09:00"))
	end = parse_time(hours.get("end", "17:00"))
	booked = booked_ranges(db, doctor.id, day)
	slots = []
	cursor = datetime.combine(day, start)
	day_end = datetime.combine(day, end)
	step = timedelta(minutes=duration)
	while cursor + step <= day_end:
		s, e = cursor.time(), (cursor + step).time()
		if not any(overlaps(s, e, bs, be) for bs, be in booked):
			slots.append({"start_time": s.strftime("%H:%M:%S"), "end_time": e.strftime("%H:%M:%S")})
		cursor += step
	return slots
