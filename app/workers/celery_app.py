from celery import Celery
from app.config import settings
from app.db import SessionLocal
from app.services.reminders import process_pending
from app.logger import get_logger

log = get_logger("worker")

celery_app = Celery(
	"clinic",
	broker=settings.celery_broker_url,
	backend=settings.celery_result_backend,
)

celery_app.conf.beat_schedule = {
	"process-due-reminders": {
		"task": "app.workers.celery_app.process_reminders_task",
		"schedule": float(settings.reminder_poll_seconds),
	},
}
celery_app.conf.timezone = settings.timezone

@celery_app.task(name="app.workers.celery_app.process_reminders_task")

def process_reminders_task() -> dict:
	db = SessionLocal()
	try:
		result = process_pending(db)
	finally:
		db.close()
	# details can be large; the counts are enough for the result backend
	return {k: result[k] for k in ("processed", "successful", "failed")}
