from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.db import get_db
from app import models
from app.middleware import admin_endpoint
from app.responses import ApiError
from app.services.booking import parse_date
import pandas as pd
from io import BytesIO
from fastapi.responses import StreamingResponse
from datetime import datetime

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=admin_endpoint())

EXPORT_COLUMNS = [
	"appointment_id", "date", "start_time", "end_time", "patient_id", "patient_name",
	"doctor_id", "doctor_name", "specialty", "appointment_type", "priority", "status",
	"follow_up_required", "follow_up_date",
]

@router.get("/export/appointments.xlsx")

def export_appointments(start_date: str | None = None, end_date: str | None = None, db: Session = Depends(get_db)):
	q = db.query(models.Appointment)
	try:
		if start_date:
			q = q.filter(models.Appointment.appointment_date >= parse_date(start_date))
		if end_date:
			q = q.filter(models.Appointment.appointment_date <= parse_date(end_date))
	except ValueError:
		raise ApiError(422, "Validation failed", {"date": ["Dates must be YYYY-MM-DD."]})
	rows = q.order_by(models.Appointment.appointment_date, models.Appointment.start_time).all()
	# prefetch patients + doctors
	patients = {p.id: p for p in db.query(models.Patient).all()}
	doctors = {d.id: d for d in db.query(models.Doctor).all()}
	data = []
	for a in rows:
		p = patients.get(a.patient_id)
		d = doctors.get(a.doctor_id)
		data.append({
			"appointment_id": a.id,
			"date": a.appointment_date,
			"start_time": a.start_time.strftime("%H:%M"),
			"end_time": a.end_time.strftime("%H:%M"),
			"patient_id": a.patient_id,
			"patient_name": p.full_name if p else None,
			"doctor_id": a.doctor_id,
			"doctor_name": d.user.full_name if d and d.user else None,
			"specialty": d.specialty if d else None,
			"appointment_type": a.appointment_type,
			"priority": a.priority,
			"status": a.status,
			"follow_up_required": bool(a.follow_up_required),
			"follow_up_date": a.follow_up_date,
		})
	df = pd.DataFrame(data, columns=EXPORT_COLUMNS)
	output = BytesIO()
	df.to_excel(output, index=False, sheet_name="Appointments")
	output.seek(0)
	fname = f"appointments_{datetime.now().strftime('%Y%m%d_%H%M%S')}.xlsx"
	return StreamingResponse(output, media_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet', headers={"Content-Disposition": f"attachment; filename={fname}"})
