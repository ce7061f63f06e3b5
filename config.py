import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as schedulesync.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "schedulesync.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Authenticated user id, set by the gateway in front of the API
    ACTOR_HEADER = os.getenv("ACTOR_HEADER", "X-User-Id")

    # Reminder scheduler
    REMINDER_SCAN_INTERVAL_SECONDS = int(os.getenv("REMINDER_SCAN_INTERVAL_SECONDS", "60"))
    REMINDER_HORIZON_MINUTES = 120
    NO_SHOW_HISTORY_LIMIT = 10          # last N finished bookings
    NO_SHOW_RATE_THRESHOLD = 0.3        # adds the 2 hour reminder
    HEAVY_LOAD_THRESHOLD = 6            # approved bookings tomorrow

    # Push (Expo)
    PUSH_ENABLED = os.getenv("PUSH_ENABLED", "false").lower() == "true"
    EXPO_PUSH_URL = os.getenv("EXPO_PUSH_URL", "https://exp.host/--/api/v2/push/send")
    PUSH_TIMEOUT_SECONDS = float(os.getenv("PUSH_TIMEOUT_SECONDS", "10"))

    # Realtime events (published for the socket gateway)
    REDIS_URL = os.getenv("REDIS_URL")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Basic app settings
    DEBUG = False

    # Seed default roles at startup (needs migrated tables)
    SEED_ON_STARTUP = True
