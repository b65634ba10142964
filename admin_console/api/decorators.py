"""
Flask decorators for authentication.

Admin pages require a console session holding the auth service cookies.
JSON clients get a 401 payload, browsers are redirected to the login page.
"""

import logging
from functools import wraps

from flask import jsonify, redirect, request, url_for

from admin_console.core.session import access_token_expired, clear_session_tokens, is_authenticated

logger = logging.getLogger(__name__)


def _wants_json() -> bool:
    return request.accept_mimetypes.accept_json and not request.accept_mimetypes.accept_html


def require_login(fn):
    """Require an authenticated console session.

    An access token whose ``exp`` is already in the past is treated as a
    logged-out session: there is no refresh flow, the operator signs in again.

    Example:
        @bp.route("/admin/roles/")
        @require_login
        def roles():
            ...
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if is_authenticated() and access_token_expired():
            logger.info("Access token expired, clearing session")
            clear_session_tokens()

        if not is_authenticated():
            if _wants_json():
                return jsonify({"error": "Unauthorized", "message": "Authentication required"}), 401
            return redirect(url_for("auth.login", next=request.full_path.rstrip("?")), code=302)

        return fn(*args, **kwargs)
    return wrapper
