import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)
REDIS_DB = int(os.getenv("REDIS_DB", 0))

# Seconds before a Redis command or connect attempt is abandoned
REDIS_SOCKET_TIMEOUT = float(os.getenv("REDIS_SOCKET_TIMEOUT", 5))
REDIS_CONNECT_TIMEOUT = float(os.getenv("REDIS_CONNECT_TIMEOUT", 5))

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

ROOM_TTL_SECONDS = int(os.getenv("ROOM_TTL_SECONDS", 600))
ROOM_CAPACITY = int(os.getenv("ROOM_CAPACITY", 2))
ADMIT_MAX_RETRIES = int(os.getenv("ADMIT_MAX_RETRIES", 16))

SENDER_MAX_LENGTH = 100
TEXT_MAX_LENGTH = 1000

AUTH_COOKIE_NAME = os.getenv("AUTH_COOKIE_NAME", "x-auth-token")
COOKIE_SECURE = os.getenv("COOKIE_SECURE", str(ENVIRONMENT == "production")).lower() in ("1", "true", "yes")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# Picked from when a sender leaves their display name blank
ANIMALS = ["wolf", "hawk", "bear", "shark", "otter", "lynx", "raven", "fox", "owl", "tiger"]

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if ENVIRONMENT == "development" else "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)
