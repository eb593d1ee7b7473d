import os

try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass  # dotenv is optional for production, but useful locally


def _flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    # --- Database ---
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_PUBLIC_URL = os.environ.get("DATABASE_PUBLIC_URL")

    # --- Redis (Celery broker + scheduler lock) ---
    REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

    # --- Public URL used in acknowledgment links ---
    APP_URL = os.environ.get("APP_URL", "http://localhost:3000")

    # --- SMTP (email) ---
    SMTP_HOST = os.environ.get("SMTP_HOST", "smtp.gmail.com")
    SMTP_PORT = int(os.environ.get("SMTP_PORT", "587"))
    SMTP_SECURE = _flag("SMTP_SECURE")
    SMTP_USER = os.environ.get("SMTP_USER")
    SMTP_PASS = os.environ.get("SMTP_PASS")
    SMTP_FROM = os.environ.get("SMTP_FROM") or SMTP_USER
    SMTP_TIMEOUT = int(os.environ.get("SMTP_TIMEOUT", "30"))

    # --- Telnyx (SMS) ---
    TELNYX_API_KEY = os.environ.get("TELNYX_API_KEY")
    TELNYX_FROM_NUMBER = os.environ.get("TELNYX_FROM_NUMBER")

    # --- WhatsApp Cloud API ---
    ENABLE_WHATSAPP = _flag("ENABLE_WHATSAPP")
    WHATSAPP_TOKEN = os.environ.get("WHATSAPP_TOKEN")
    WHATSAPP_PHONE_ID = os.environ.get("WHATSAPP_PHONE_ID")
    WHATSAPP_API_BASE = os.environ.get("WHATSAPP_API_BASE", "https://graph.facebook.com/v19.0")
    WHATSAPP_TIMEOUT = int(os.environ.get("WHATSAPP_TIMEOUT", "20"))

    # --- Scheduler ---
    SCHEDULER_INTERVAL_SECONDS = float(os.environ.get("SCHEDULER_INTERVAL_SECONDS", "60"))
    SCHEDULER_DUE_WINDOW_SECONDS = int(os.environ.get("SCHEDULER_DUE_WINDOW_SECONDS", "60"))
    SCHEDULER_OVERDUE_LIMIT = int(os.environ.get("SCHEDULER_OVERDUE_LIMIT", "10"))
    SCHEDULER_MAX_CONCURRENT_REMINDERS = int(os.environ.get("SCHEDULER_MAX_CONCURRENT_REMINDERS", "5"))
    SCHEDULER_LOCK_TIMEOUT = int(os.environ.get("SCHEDULER_LOCK_TIMEOUT", "300"))

    # --- Logging ---
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # --- Add more as needed ---

settings = Settings()
