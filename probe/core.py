"""
FILE DESCRIPTION: Foundational module for global configuration and logging.
KEY FUNCTIONS/CLASSES: setup_logger, CompanyFormatter, configuration constants
"""

import logging
import sys
import os
from datetime import datetime
from pathlib import Path
from dotenv import load_dotenv

# === CONFIGURATION SECTION ===

# Load .env from the project root
load_dotenv(Path(__file__).resolve().parents[1] / '.env')

# Network timeout for a single probe (seconds)
REQUEST_TIMEOUT = float(os.getenv("PROBE_TIMEOUT", 5))

# Redirect hops followed by one probe before it is abandoned
MAX_REDIRECTS = 5

# User-Agent strings for detection probes
DEFAULT_USER_AGENT = os.getenv("DETECTION_USER_AGENT", "SEOAgent-HostDetection/1.0")
QUICK_USER_AGENT = "SEOAgent-QuickDetection/1.0"

# Upper bound on simultaneous path probes against one target host
MAX_PROBE_WORKERS = int(os.getenv("MAX_PROBE_WORKERS", 8))

# Scoring parameters
CONFIDENCE_FLOOR = 20
HEADER_MAX_WEIGHT = 100
DNS_MATCH_WEIGHT = 30
PATH_MAX_WEIGHT = 40

# Statuses meaning "the server routed this path"
PATH_EXISTS_STATUSES = frozenset({200, 403, 404})

# MySQL connection settings for the optional result store
DB_CONFIG = {
    "host": os.getenv("MYSQL_HOST", "localhost"),
    "port": int(os.getenv("MYSQL_PORT", 3306)),
    "user": os.getenv("MYSQL_USER"),
    "password": os.getenv("MYSQL_PASSWORD"),
    "database": os.getenv("MYSQL_DATABASE"),
    "charset": "utf8mb4",
}

LOG_FILE = os.getenv("DETECTION_LOG_FILE")


# === LOGGING SECTION ===

class CompanyFormatter(logging.Formatter):
    """
    FLOW: Receives a log record -> Extracts timestamp -> Formats according to company standard
    (e.g., [ Tue Jan 06 05:32:41 AM UTC 2026 ]) -> Prepends level and context -> Returns final string.
    """
    def format(self, record):
        dt = datetime.fromtimestamp(record.created)
        timestamp = dt.strftime("%a %b %d %I:%M:%S %p UTC %Y")
        # Detector logs carry the inspected site; anything else falls back to the thread
        context = getattr(record, 'context', record.threadName)
        return f"[ {timestamp} ] : {record.levelname} : {context} : {record.getMessage()}"

def setup_logger(name="detector", log_file=None, level=logging.INFO):
    """
    FLOW: Initializes/Retrieves logger -> Checks for existing handlers to prevent duplicates ->
    Sets propagation for child loggers -> Attaches Console and optional File handlers with CompanyFormatter.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.handlers:
        return logger

    if name != "detector":
        logger.propagate = True
        setup_logger("detector", log_file=log_file, level=level)
        return logger

    formatter = CompanyFormatter()

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler (optional)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger

# Global logger instance
logger = setup_logger(log_file=LOG_FILE)
