# API configuration
import os
from pathlib import Path

API_BASE_URL = os.environ.get("LECFEEDBACK_API_URL", "http://localhost:8000/api/v1")
REQUEST_TIMEOUT = 30  # seconds

# Upload jobs are processed asynchronously by the backend
JOB_POLL_INTERVAL = 2.0  # seconds
JOB_MAX_POLLS = 30

# Logging
LOG_LEVEL = os.environ.get("LECFEEDBACK_LOG_LEVEL", "INFO")

# Upload configuration
ALLOWED_UPLOAD_EXTENSIONS = {".xlsx", ".xls", ".csv"}

# Snapshot of the last fetched course listing
PACKAGE_DIR = Path(__file__).resolve().parent
PROCESSED_DIR = PACKAGE_DIR / "data" / "processed"


def default_snapshot_path() -> Path:
    """
    Return the default path of the cached course snapshot inside the package.

    Using a function instead of a constant lets tests pass their own path.
    """
    override = os.environ.get("LECFEEDBACK_SNAPSHOT")
    if override:
        return Path(override)
    return PROCESSED_DIR / "courses.json"
