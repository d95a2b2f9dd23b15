"""Flask application factory for the MRD Tag Tracker API."""

import logging
import os
from typing import Optional

from dotenv import load_dotenv
load_dotenv()  # Load .env file if present

from flask import Flask, jsonify, request

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def create_app(config: Optional[dict] = None):
    """Create and configure the Flask application.

    *config* overrides app config before anything is started; tests pass
    ``{"TESTING": True, "DATA_DIR": tmpdir}``.
    """
    from config.settings import SCHEDULER_ENABLED

    app = Flask(__name__)
    app.config["SECRET_KEY"] = os.environ.get("FLASK_SECRET_KEY", "dev-tagtracker-key")
    app.json.sort_keys = False
    if config:
        app.config.update(config)

    from web.routes.api import bp as api_bp
    app.register_blueprint(api_bp, url_prefix="/api/v1")

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def server_error(e):
        logger.error("Unhandled error on %s: %s", request.path, e)
        return jsonify({"error": "Internal server error"}), 500

    @app.route("/health")
    def health_check():
        return jsonify({"status": "healthy", "version": VERSION}), 200

    # Start scheduler (only in non-testing mode)
    if SCHEDULER_ENABLED and not app.config.get("TESTING"):
        from web.scheduler import init_scheduler
        init_scheduler(app)

    return app
