from dotenv import load_dotenv
import os

# Load environment variables
load_dotenv()


def _get_list(name: str, default: str = "") -> list:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


# Database
DATABASE_URL = os.getenv("DATABASE_URL", "")
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"
STATEMENT_TIMEOUT_MS = int(os.getenv("STATEMENT_TIMEOUT_MS", "15000"))

# HTTP
CORS_ORIGINS = _get_list(
    "CORS_ORIGINS",
    "http://localhost:3000,https://localhost:3000,http://127.0.0.1:3000,https://127.0.0.1:3000",
)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Receipts
RECEIPT_UPLOAD_DIR = os.getenv("RECEIPT_UPLOAD_DIR", "./uploads/receipts")
RECEIPT_MAX_BYTES = int(os.getenv("RECEIPT_MAX_BYTES", str(10 * 1024 * 1024)))
RECEIPT_ALLOWED_TYPES = ("image/jpeg", "image/jpg", "image/png", "application/pdf")

# Approval workflow
DECISION_MAX_ATTEMPTS = int(os.getenv("DECISION_MAX_ATTEMPTS", "3"))

# Notifications
WEBHOOK_URLS = _get_list("WEBHOOK_URLS")
WEBHOOK_TIMEOUT_SECONDS = float(os.getenv("WEBHOOK_TIMEOUT_SECONDS", "5"))
