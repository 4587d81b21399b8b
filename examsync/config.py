"""Runtime configuration read from the environment (a local .env file is honoured)."""

import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("EXAMSYNC_DATABASE_URL", "sqlite:///./examsync.db")
# echo=False by default to avoid noisy logs; toggle for debugging
SQL_ECHO = os.getenv("EXAMSYNC_SQL_ECHO", "0").lower() in ("1", "true", "yes")

LOG_LEVEL = os.getenv("EXAMSYNC_LOG_LEVEL", "INFO").upper()

# Client side
API_URL = os.getenv("EXAMSYNC_API_URL", "http://localhost:8000")
PROGRESS_DIR = os.getenv("EXAMSYNC_PROGRESS_DIR", ".examsync")
REQUEST_TIMEOUT_SECONDS = float(os.getenv("EXAMSYNC_REQUEST_TIMEOUT") or 10)

HOST = os.getenv("EXAMSYNC_HOST", "127.0.0.1")
PORT = int(os.getenv("EXAMSYNC_PORT") or 8000)
