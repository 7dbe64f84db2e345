import os

HOST = os.getenv("HOST", "localhost")
PORT = int(os.getenv("PORT", 8080))

# Unset means the in-memory store is used.
DATABASE_URL = os.getenv("DATABASE_URL", None)

DB_ECHO = os.getenv("DB_ECHO", "false").lower() in ("1", "true", "yes")

ROOM_CODE_LENGTH = int(os.getenv("ROOM_CODE_LENGTH", 6))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)
