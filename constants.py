import os

TRUTHY = {"1", "true", "yes", "on"}

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))
RELOAD = os.getenv("RELOAD", "false").lower() in TRUTHY

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

WS_PATH = os.getenv("WS_PATH", "/ws")

# WebSocket close code used when the handshake identity is incomplete
POLICY_VIOLATION = 1008
# WebSocket close code used when the handshake fails unexpectedly
INTERNAL_ERROR = 1011
