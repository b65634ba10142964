"""Health check endpoints."""
from flask import Blueprint, current_app, jsonify

from admin_console.core.services import BACKEND_SERVICES, ServiceRegistry

bp = Blueprint("health", __name__)


@bp.route("/health")
def health_check():
    """Liveness: the console process answers."""
    return ("ok", 200, {"Content-Type": "text/plain"})


@bp.route("/ready")
def readiness_check():
    """Readiness: every backend answers ``GET /health``."""
    registry = ServiceRegistry(current_app.config["APP_CONFIG"])
    failing = [name for name in BACKEND_SERVICES if not registry.client(name).health()]
    if failing:
        current_app.logger.warning(f"[ready] Backends not healthy: {', '.join(failing)}")
        return jsonify({"status": "unavailable", "failing": failing}), 503
    return ("ready", 200, {"Content-Type": "text/plain"})
