from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from app.db import get_db
from app import models
from app.middleware import current_user, doctor_endpoint
from app.responses import success
from app.schemas import AlertIn, AlertUpdate, BulkAcknowledgeIn, ResolveIn
from app.services import alerts

router = APIRouter(prefix="/ai/alerts", tags=["ai"], dependencies=doctor_endpoint())


def _listing(rows) -> dict:
	return {"alerts": [alerts.alert_to_dict(a) for a in rows], "total": len(rows)}


@router.post("/generate")
def generate(user: models.User = Depends(current_user), db: Session = Depends(get_db)):
	return success(alerts.generate_intelligent_alerts(db, user.id), "Alerts generated")


@router.get("")
def active(
	priority_min: int | None = Query(None, ge=1, le=5),
	patient_id: int | None = None,
	type: str | None = None,
	db: Session = Depends(get_db),
):
	return success(_listing(alerts.active_alerts(db, priority_min, patient_id, type)))


@router.post("", status_code=201)
def create(payload: AlertIn, user: models.User = Depends(current_user), db: Session = Depends(get_db)):
	alert = alerts.create_manual_alert(db, payload.model_dump(), user.id)
	return success(alerts.alert_to_dict(alert), "Alert created", 201)


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db)):
	return success(alerts.alert_dashboard(db))


@router.get("/analytics")
def analytics(days: int = Query(30, ge=1, le=365), db: Session = Depends(get_db)):
	return success(alerts.alert_analytics(db, days))


@router.get("/patient-safety")
def patient_safety(db: Session = Depends(get_db)):
	return success(_listing(alerts.active_alerts(db, alert_type="patient_safety")))


@router.get("/operational")
def operational(db: Session = Depends(get_db)):
	return success(_listing(alerts.active_alerts(db, alert_type="operational")))


@router.get("/quality")
def quality(db: Session = Depends(get_db)):
	return success(_listing(alerts.active_alerts(db, alert_type="quality")))


@router.post("/bulk-acknowledge")
def bulk_acknowledge(payload: BulkAcknowledgeIn, user: models.User = Depends(current_user), db: Session = Depends(get_db)):
	count = alerts.bulk_acknowledge(db, payload.alert_ids, user.id)
	return success({"acknowledged": count}, f"{count} alerts acknowledged")


@router.put("/{alert_id}")
def update(alert_id: int, payload: AlertUpdate, db: Session = Depends(get_db)):
	alert = alerts.update_alert(db, alerts.get_alert(db, alert_id), payload.model_dump(exclude_unset=True))
	return success(alerts.alert_to_dict(alert), "Alert updated")


@router.post("/{alert_id}/acknowledge")
def acknowledge(alert_id: int, user: models.User = Depends(current_user), db: Session = Depends(get_db)):
	alert = alerts.acknowledge(db, alerts.get_alert(db, alert_id), user.id)
	return success(alerts.alert_to_dict(alert), "Alert acknowledged")


@router.post("/{alert_id}/dismiss")
def dismiss(alert_id: int, db: Session = Depends(get_db)):
	alert = alerts.dismiss(db, alerts.get_alert(db, alert_id))
	return success(alerts.alert_to_dict(alert), "Alert dismissed")


@router.post("/{alert_id}/resolve")
def resolve(alert_id: int, payload: ResolveIn, user: models.User = Depends(current_user), db: Session = Depends(get_db)):
	alert = alerts.resolve(db, alerts.get_alert(db, alert_id), user.id, payload.resolution_notes)
	return success(alerts.alert_to_dict(alert), "Alert resolved")
