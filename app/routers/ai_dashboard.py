from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.db import get_db
from app.middleware import doctor_endpoint
from app.responses import ApiError, success
from app.schemas import AnalyzeIn
from app.services import dashboard, groq_client

router = APIRouter(prefix="/ai", tags=["ai"], dependencies=doctor_endpoint())


@router.get("/dashboard/briefing")
def briefing(db: Session = Depends(get_db)):
	return success(dashboard.daily_briefing(db), "Daily briefing generated")


@router.get("/dashboard/priorities")
def priorities(db: Session = Depends(get_db)):
	return success(dashboard.priority_tasks(db))


@router.post("/dashboard/analyze")
def analyze(payload: AnalyzeIn, db: Session = Depends(get_db)):
	result = dashboard.analyze(db, payload.query, payload.context)
	if not result["ai_generated"]:
		raise ApiError(503, "AI analysis unavailable", {"error": result.get("error")})
	return success(result)


@router.get("/dashboard/summary")
def summary(db: Session = Depends(get_db)):
	return success(dashboard.dashboard_summary(db))


@router.get("/model-info")
def model_info():
	return success(groq_client.model_info())


@router.get("/test")
def test_ai():
	result = groq_client.test_connection()
	return success(result, "AI connection OK" if result["connected"] else "AI connection failed")
