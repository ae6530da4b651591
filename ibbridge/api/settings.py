import os
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

# Comma-separated list of allowed origins for CORS.
_origins_env = os.getenv("FRONTEND_ORIGINS") or os.getenv("FRONTEND_ORIGIN")
if _origins_env:
    CORS_ORIGINS: List[str] = [origin.strip() for origin in _origins_env.split(",") if origin.strip()]
else:
    CORS_ORIGINS = ["http://localhost:5173"]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "3000"))

# Journals are disabled when the path is empty.
EVENT_LOG_PATH: Optional[str] = os.getenv("EVENT_LOG_PATH") or None
OPS_LOG_PATH: Optional[str] = os.getenv("OPS_LOG_PATH") or None
