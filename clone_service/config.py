import os
from dotenv import load_dotenv

load_dotenv()

MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")

# ---- Driver ----
SERVER_TIMEOUT_MS = int(os.getenv("SERVER_TIMEOUT_MS", "5000"))

# ---- Cloning ----
CLONE_BATCH_SIZE = int(os.getenv("CLONE_BATCH_SIZE", "1000"))

# ---- Document browser ----
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "20"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))
SCHEMA_SAMPLE_SIZE = int(os.getenv("SCHEMA_SAMPLE_SIZE", "50"))

# DEBUG, INFO, WARNING, ...
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Used by clone_client.py only
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")
