"""Project-wide settings and defaults."""

import os
from pathlib import Path

# Base paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = Path(os.environ.get("TAGTRACKER_DATA_DIR", str(PROJECT_ROOT / "data")))

# Alert loop
ALERT_CHECK_INTERVAL_SECONDS = int(os.environ.get("ALERT_CHECK_INTERVAL_SECONDS", "30"))
NOTIFY_DISPATCH_INTERVAL_SECONDS = int(os.environ.get("NOTIFY_DISPATCH_INTERVAL_SECONDS", "5"))

# Timezone used for start/end-of-day policies when a location has none.
# Empty means the local zone of the evaluating process.
DEFAULT_TIMEZONE = os.environ.get("TAGTRACKER_DEFAULT_TZ", "")

# Notification channels
NOTIFY_CONSOLE = os.environ.get("NOTIFY_CONSOLE", "true").lower() == "true"
NOTIFY_FILE_PATH = os.environ.get("NOTIFY_FILE_PATH", str(DATA_DIR / "alerts.log"))
NOTIFY_WEBHOOK_URL = os.environ.get("NOTIFY_WEBHOOK_URL", "")

# Scheduler
SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "true").lower() == "true"

# Logging
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
