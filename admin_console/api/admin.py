"""Admin dashboard and entity table routes."""
from __future__ import annotations
import logging

from flask import Blueprint, render_template

from admin_console.api.association_table import register_association_table
from admin_console.api.decorators import require_login
from admin_console.api.resources import build_definitions
from admin_console.core.column_builders import PLACEHOLDER
from admin_console.core.crud import TableCrud
from admin_console.core.services import ServiceAPIError, UnauthorizedError
from admin_console.core.session import current_username, get_registry

logger = logging.getLogger(__name__)


def _count(registry, definition) -> object:
    try:
        return len(TableCrud(registry.client(definition.service), definition.path).list())
    except UnauthorizedError:
        raise
    except ServiceAPIError as exc:
        logger.warning("Dashboard count for %s failed: %s", definition.name, exc)
        return PLACEHOLDER


def _version(service) -> str:
    try:
        info = service.version() or {}
    except UnauthorizedError:
        raise
    except ServiceAPIError:
        return PLACEHOLDER
    return str(info.get("version") or PLACEHOLDER)


def create_admin_blueprint(cfg) -> Blueprint:
    """Build the ``admin`` blueprint with one association table per entity.

    Built per app so the table columns pick up the configured date locale.
    """
    bp = Blueprint("admin", __name__)
    definitions = build_definitions(cfg.date_locale)

    @bp.route("/")
    @require_login
    def admin_dashboard():
        """Entity counts and backend versions."""
        registry = get_registry()
        cards = [
            {
                "title": d.title,
                "count": _count(registry, d),
                "endpoint": f"admin.{d.endpoint_prefix}_list",
                "associations": [a.title for a in d.associations],
            }
            for d in definitions
        ]
        versions = {
            "identity": _version(registry.identity),
            "guardian": _version(registry.guardian),
        }
        return render_template(
            "admin/dashboard.html",
            title="Admin",
            cards=cards,
            versions=versions,
            username=current_username(),
        )

    for definition in definitions:
        register_association_table(bp, definition)

    logger.debug("Registered tables: %s", ", ".join(d.name for d in definitions))
    return bp
