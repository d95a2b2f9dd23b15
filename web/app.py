#!/usr/bin/env python3
"""Run the MRD Tag Tracker API server."""

import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config.settings import LOG_FORMAT, LOG_LEVEL
from web import create_app

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)

app = create_app()

if __name__ == "__main__":
    # The reloader would start a second alert loop.
    app.run(debug=True, use_reloader=False, host="0.0.0.0", port=5000)
