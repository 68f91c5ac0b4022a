import logging
import os

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("LOG_FORMAT", "%(asctime)s %(levelname)s [%(name)s] %(message)s")

logging.basicConfig(
	level=getattr(logging, LOG_LEVEL, logging.INFO),
	format=LOG_FORMAT,
)

# provider SDKs log every request at INFO
for noisy in ("httpx", "groq", "urllib3"):
	logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
	return logging.getLogger(f"clinic.{name}")
