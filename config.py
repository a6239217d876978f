import os
from pathlib import Path

# Define the root directory of the project
ROOT_DIR = Path(__file__).resolve().parent

# Where project folders (and their workflow documents) are stored
DATA_DIR = Path(os.environ.get("FORMFLOW_DATA_DIR", ROOT_DIR / "formflow" / "projects"))

# App Defaults - Projects
DEFAULT_PROJECT = "default"

# App Defaults - API
API_HOST = "0.0.0.0"
API_PORT = 8000
CORS_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:8080",
]

# Pagination limits for query results (same clamp as the form API)
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100

# Number of log lines kept for /api/logs
LOG_BUFFER_SIZE = 100
