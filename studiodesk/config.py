import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./studiodesk.db")

# Background jobs: "arq" (Redis-backed worker) or "inprocess" (single process, in-memory queue)
JOB_BACKEND = os.getenv("JOB_BACKEND", "arq").lower()

# Retry budget and exponential backoff for notification jobs
JOB_MAX_ATTEMPTS = int(os.getenv("JOB_MAX_ATTEMPTS", "3"))
JOB_BACKOFF_BASE_SECONDS = int(os.getenv("JOB_BACKOFF_BASE_SECONDS", "60"))
JOB_BACKOFF_MAX_SECONDS = int(os.getenv("JOB_BACKOFF_MAX_SECONDS", "3600"))
WORKER_POLL_INTERVAL_SECONDS = float(os.getenv("WORKER_POLL_INTERVAL_SECONDS", "30"))

# Studio hours used to enumerate bookable slots (studio-local time)
STUDIO_OPEN_HOUR = int(os.getenv("STUDIO_OPEN_HOUR", "9"))
STUDIO_CLOSE_HOUR = int(os.getenv("STUDIO_CLOSE_HOUR", "18"))
SLOT_STEP_MINUTES = int(os.getenv("SLOT_STEP_MINUTES", "30"))
DEFAULT_STUDIO_TIMEZONE = os.getenv("DEFAULT_STUDIO_TIMEZONE", "UTC")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "StudioDesk <noreply@studiodesk.app>")

# Frontend base URL used in notification links
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
