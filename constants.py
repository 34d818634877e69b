import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

# Room lifecycle
ROOM_MAX_DURATION_MINUTES = int(os.getenv("ROOM_MAX_DURATION_MINUTES", 60))
SWEEP_INTERVAL_SECONDS = float(os.getenv("SWEEP_INTERVAL_SECONDS", 60))
ROOM_RETENTION_MINUTES = int(os.getenv("ROOM_RETENTION_MINUTES", 60))

# Validation limits
MESSAGE_MAX_LENGTH = int(os.getenv("MESSAGE_MAX_LENGTH", 2000))
PASSWORD_MIN_LENGTH = int(os.getenv("PASSWORD_MIN_LENGTH", 6))
USERNAME_MAX_LENGTH = int(os.getenv("USERNAME_MAX_LENGTH", 50))
CUSTOM_IMAGE_KEY = "custom"

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 12))

# Uploads
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
UPLOAD_MAX_BYTES = int(os.getenv("UPLOAD_MAX_BYTES", 5 * 1024 * 1024))

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]
