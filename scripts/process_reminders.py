"""Cron entry point: send every reminder that is due.

    */5 * * * * cd /srv/clinic && python -m scripts.process_reminders
"""
import json
import sys
from app.db import SessionLocal, Base, engine
from app.services.reminders import process_pending
from app.logger import get_logger

log = get_logger("cron")


def main() -> int:
	Base.metadata.create_all(bind=engine)
	db = SessionLocal()
	try:
		result = process_pending(db)
	finally:
		db.close()
	print(json.dumps(result, indent=2, default=str))
	return 1 if result["failed"] else 0


if __name__ == "__main__":
	sys.exit(main())
