from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session
from app.db import get_db
from app import models
from app.middleware import current_user, doctor_endpoint
from app.responses import ApiError, success
from app.schemas import BatchSummaryIn, SummaryRequest
from app.services import summaries
from app.routers.appointments import get_appointment

router = APIRouter(prefix="/ai/summaries", tags=["ai"], dependencies=doctor_endpoint())


@router.post("/appointment/{appointment_id}", status_code=201)
def generate(appointment_id: int, payload: SummaryRequest, user: models.User = Depends(current_user), db: Session = Depends(get_db)):
	appt = get_appointment(db, appointment_id)
	summary = summaries.generate_summary(db, appt, payload.summary_type, user.id, payload.force_regenerate)
	return success(summaries.summary_to_dict(summary), "Summary generated", 201)


@router.get("/appointment/{appointment_id}")
def latest(appointment_id: int, summary_type: str | None = None, db: Session = Depends(get_db)):
	get_appointment(db, appointment_id)
	summary = summaries.active_summary(db, appointment_id, summary_type)
	if not summary:
		raise ApiError(404, "No summary found for this appointment")
	return success(summaries.summary_to_dict(summary))


@router.put("/appointment/{appointment_id}")
def regenerate(appointment_id: int, payload: SummaryRequest, user: models.User = Depends(current_user), db: Session = Depends(get_db)):
	appt = get_appointment(db, appointment_id)
	summary = summaries.generate_summary(db, appt, payload.summary_type, user.id, force=True)
	return success(summaries.summary_to_dict(summary), "Summary regenerated")


@router.post("/batch")
def batch(payload: BatchSummaryIn, user: models.User = Depends(current_user), db: Session = Depends(get_db)):
	return success(summaries.batch_generate(db, payload.appointment_ids, payload.summary_type, user.id), "Batch summary completed")


@router.get("/stats")
def stats(db: Session = Depends(get_db)):
	return success(summaries.summary_stats(db))


@router.get("/appointment/{appointment_id}/export")
def export(appointment_id: int, format: str = Query("json"), summary_type: str | None = None, db: Session = Depends(get_db)):
	if format not in summaries.EXPORT_FORMATS:
		raise ApiError(422, f"Invalid export format. Allowed: {', '.join(summaries.EXPORT_FORMATS)}")
	summary = summaries.active_summary(db, appointment_id, summary_type)
	if not summary:
		raise ApiError(404, "No summary found for this appointment")
	body, media_type = summaries.export_summary(summary, format)
	ext = {"json": "json", "html": "html", "text": "txt"}[format]
	return Response(
		content=body,
		media_type=media_type,
		headers={"Content-Disposition": f"attachment; filename=appointment_{appointment_id}_summary.{ext}"},
	)
