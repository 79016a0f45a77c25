import os
from dotenv import load_dotenv

load_dotenv() # Load .env file from project root if running locally

# REST backend the client talks to (base path included)
API_BASE_URL = os.getenv("INVENTORY_API_URL", "http://localhost:4000/api")
REQUEST_TIMEOUT_SECONDS = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "10"))

# Query cache behaviour
CACHE_STALE_SECONDS = float(os.getenv("CACHE_STALE_SECONDS", "5"))
CACHE_RETRY_COUNT = int(os.getenv("CACHE_RETRY_COUNT", "1"))
CACHE_RETRY_DELAY_SECONDS = float(os.getenv("CACHE_RETRY_DELAY_SECONDS", "1.0"))
CACHE_RETRY_TRANSPORT_ONLY = os.getenv("CACHE_RETRY_TRANSPORT_ONLY", "False").lower() == "true"

# For Uvicorn binding
APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
APP_PORT = int(os.getenv("APP_PORT", "5173"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
