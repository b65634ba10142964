"""Error handlers for the application.

Backend failures that escape a view are mapped here: a 401 from any
backend ends the console session, an unreachable backend is a 503, any
other backend error a 502.
"""
import traceback

from flask import jsonify, redirect, render_template, request, url_for
from werkzeug.exceptions import HTTPException

from admin_console.core.services import (
    ForbiddenError,
    ServiceAPIError,
    ServiceUnavailableError,
    UnauthorizedError,
)
from admin_console.core.session import clear_session_tokens


def register_error_handlers(app):
    """Register error handlers with the Flask app."""

    def error_page(status: int, title: str, message: str):
        if _wants_json():
            return jsonify({"error": title, "message": message}), status
        return render_template("errors/error.html", title=title, status=status, message=message), status

    def server_error(error, label: str):
        details = traceback.format_exc()
        app.logger.error(f"{label}: {error}", exc_info=True)

        if _wants_json():
            return jsonify({"error": "Internal Server Error", "message": "An unexpected error occurred"}), 500

        # Tracebacks are shown in debug/demo mode only
        show_details = app.debug or app.config.get("DEMO_MODE", False)
        return render_template(
            "errors/500.html",
            title="Internal Server Error",
            error_message=details if show_details else None,
            show_debug=show_details,
        ), 500

    @app.errorhandler(400)
    def bad_request(error):
        return error_page(400, "Bad Request", getattr(error, "description", None) or "Invalid request")

    @app.errorhandler(401)
    def unauthorized(error):
        if _wants_json():
            return jsonify({"error": "Unauthorized", "message": "Authentication required"}), 401
        return redirect(url_for("auth.login"))

    @app.errorhandler(403)
    def forbidden(error):
        return error_page(403, "Forbidden", "Insufficient permissions")

    @app.errorhandler(404)
    def not_found(error):
        return error_page(404, "Not Found", "Resource not found")

    @app.errorhandler(UnauthorizedError)
    def backend_unauthorized(error):
        """A backend rejected the session cookies: sign in again."""
        app.logger.info(f"Backend rejected session ({error.endpoint}), clearing login")
        clear_session_tokens()
        if _wants_json():
            return jsonify({"error": "Unauthorized", "message": "Session expired"}), 401
        return redirect(url_for("auth.login", next=request.full_path.rstrip("?")))

    @app.errorhandler(ForbiddenError)
    def backend_forbidden(error):
        return error_page(403, "Forbidden", error.detail)

    @app.errorhandler(ServiceUnavailableError)
    def backend_unavailable(error):
        app.logger.warning(f"Backend unavailable: {error}")
        return error_page(503, "Service Unavailable", error.detail)

    @app.errorhandler(ServiceAPIError)
    def backend_error(error):
        app.logger.warning(f"Backend error: {error}")
        return error_page(502, "Bad Gateway", error.detail)

    @app.errorhandler(500)
    def internal_error(error):
        return server_error(error, "Internal error")

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Handle uncaught exceptions."""
        if isinstance(error, HTTPException):
            return error
        return server_error(error, "Unhandled exception")


def _wants_json():
    """Check if the client wants a JSON response."""
    return request.accept_mimetypes.accept_json and \
           not request.accept_mimetypes.accept_html
